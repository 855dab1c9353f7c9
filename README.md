# rmqclient

Building blocks for talking to a message-queue broker and its name servers:
the remoting command frame and its codecs, the custom request headers, the
data a client reports to brokers, round-robin name server selection and
request/reply matching. The package has no dependencies beyond the standard
library.

## Modules

- `rmqclient.codec` – `RemotingCommand` (code, language, version, opaque,
  flag, remark, ext fields, body) and its two header codecs, chosen with
  `CodecType.JSON` or `CodecType.ROCKETMQ`. `encode` builds a whole frame
  (total length, header length tagged with the codec, header, body);
  `decode` reads a frame whose leading length field was already consumed;
  `encode_header` and `decode_header` handle the header alone.
  `new_remoting_command` gives each command a fresh opaque id. Malformed
  input raises `CodecError`. `RPCHook` is an abstract base for hooks run
  before a request and after a response.
- `rmqclient.headers` – dataclasses for the request headers
  (`SendMessageRequestHeader`, `PullMessageRequestHeader`,
  `ReplyMessageRequestHeader` and the rest). Each `encode()` returns the
  string map carried in a command's ext fields; headers the broker sends to
  the client also have a `decode(properties)` class method.
- `rmqclient.model` – `MessageQueue`, `SubscriptionData`, `HeartbeatData`
  (producers and consumers kept unique by group name), `ConsumerRunningInfo`,
  `ConsumerStatus`, `ConsumeMessageDirectlyResult` and their `encode()`
  methods, which produce the JSON the broker expects, including queue tables
  keyed by queue objects. `ResetOffsetBody.decode` accepts both offset table
  layouts (a list of `[queue, offset]` pairs, or an object with queue keys),
  also available as `parse_gson_format` and `parse_fast_json_format`.
- `rmqclient.namesrv` – `NameServers` hands out name server addresses in
  round-robin order, stripping any `http://` or `https://` prefix, and
  refreshes them from its resolver with `update_name_server_address`.
  Resolvers: `PassthroughResolver` (a fixed list) and `EnvResolver` (the
  `;`-separated `NAMESRV_ADDR` variable). `check_addresses` raises
  `NamesrvError` for empty lists, `;`-joined entries or non-IPv4 addresses.
- `rmqclient.reply` – `RequestResponseFuture` waits for a reply message
  (timeouts in seconds, `ReplyTimeoutError` when none comes);
  `RequestResponseFutureMap` matches replies to requests by correlation id,
  raising `ReplyNotMatchedError` for unknown ids. Expired entries are dropped
  by calling `purge_expired()`; a shared map is available as
  `REQUEST_RESPONSE_FUTURE_MAP`.
- `rmqclient.naming` – `get_reply_topic` and `get_retry_topic`.

## Examples

```python
from rmqclient.codec import CodecType, decode, encode, new_remoting_command

command = new_remoting_command(34, None, b"{}")
frame = encode(command, CodecType.ROCKETMQ)
# the first four bytes hold the frame length
same = decode(frame[4:])
assert same.code == command.code and same.body == b"{}"
```

```python
from rmqclient.namesrv import NameServers, PassthroughResolver

servers = NameServers(PassthroughResolver(["127.0.0.1:9876", "127.0.0.2:9876"]))
servers.get_name_server_address()  # "127.0.0.1:9876"
servers.get_name_server_address()  # "127.0.0.2:9876"
```

```python
from rmqclient.headers import PullMessageRequestHeader

PullMessageRequestHeader(consumer_group="group", topic="orders").encode()["topic"]  # "orders"
```

## What it does not do

The package does not open connections. There is no TCP client, no
connection handling and no sending or receiving of commands over a socket;
frames are built and read as bytes, and moving them is left to the caller.
Request and response codes are plain integers the caller supplies, and
there is no lookup of name server addresses over HTTP.

## Running the tests

```
pip install -e .[test]
pytest
```