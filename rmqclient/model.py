"""Data exchanged with brokers: heartbeats, consumer reports and offset tables."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import IntEnum
from functools import cmp_to_key
from typing import Any, Union

_Text = Union[bytes, bytearray, str]


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _as_text(body: _Text) -> str:
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8")
    return body


def _number(value: float) -> Union[int, float]:
    """Render integral floats without a fraction, as the broker side expects."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


@dataclass(frozen=True)
class MessageQueue:
    """One queue of a topic on one broker."""

    topic: str = ""
    broker_name: str = ""
    queue_id: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"topic": self.topic, "brokerName": self.broker_name, "queueId": self.queue_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MessageQueue":
        return cls(
            topic=str(data.get("topic", "")),
            broker_name=str(data.get("brokerName", "")),
            queue_id=int(data.get("queueId", 0)),
        )

    def _sort_key(self) -> tuple[str, str, int]:
        return (self.topic, self.broker_name, self.queue_id)


@dataclass
class FindBrokerResult:
    broker_addr: str = ""
    slave: bool = False
    broker_version: int = 0


class ServiceState(IntEnum):
    CREATE_JUST = 0
    START_FAILED = 1
    RUNNING = 2
    SHUTDOWN = 3


@dataclass
class SubscriptionData:
    """What a consumer group subscribes to on one topic."""

    class_filter_mode: bool = False
    topic: str = ""
    sub_string: str = ""
    tags: set[str] = field(default_factory=set)
    codes: set[str] = field(default_factory=set)
    sub_version: int = 0
    exp_type: str = ""

    def clone(self) -> "SubscriptionData":
        return SubscriptionData(
            class_filter_mode=self.class_filter_mode,
            topic=self.topic,
            sub_string=self.sub_string,
            tags=set(self.tags),
            codes=set(self.codes),
            sub_version=self.sub_version,
            exp_type=self.exp_type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "classFilterMode": self.class_filter_mode,
            "topic": self.topic,
            "subString": self.sub_string,
            "tagsSet": sorted(self.tags),
            "codeSet": sorted(self.codes),
            "subVersion": self.sub_version,
            "expressionType": self.exp_type,
        }


@dataclass
class ProducerData:
    group_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"groupName": self.group_name}


@dataclass
class ConsumerData:
    group_name: str = ""
    consume_type: str = ""
    message_model: str = ""
    consume_from_where: str = ""
    subscription_datas: list[SubscriptionData] = field(default_factory=list)
    unit_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "groupName": self.group_name,
            "consumeType": self.consume_type,
            "messageModel": self.message_model,
            "consumeFromWhere": self.consume_from_where,
            "subscriptionDataSet": [sub.to_dict() for sub in self.subscription_datas],
            "unitMode": self.unit_mode,
        }


@dataclass
class HeartbeatData:
    """Heartbeat of one client; producers and consumers are unique by group name."""

    client_id: str
    producer_datas: dict[str, ProducerData] = field(default_factory=dict)
    consumer_datas: dict[str, ConsumerData] = field(default_factory=dict)

    def add_producer(self, data: ProducerData) -> None:
        self.producer_datas[data.group_name] = data

    def add_consumer(self, data: ConsumerData) -> None:
        self.consumer_datas[data.group_name] = data

    def to_dict(self) -> dict[str, Any]:
        return {
            "clientID": self.client_id,
            "producerDataSet": [p.to_dict() for p in self.producer_datas.values()],
            "consumerDataSet": [c.to_dict() for c in self.consumer_datas.values()],
        }

    def encode(self) -> bytes:
        return _dumps(self.to_dict()).encode("utf-8")


PROP_NAME_SERVER_ADDR = "PROP_NAMESERVER_ADDR"
PROP_THREAD_POOL_CORE_SIZE = "PROP_THREADPOOL_CORE_SIZE"
PROP_CONSUME_ORDERLY = "PROP_CONSUMEORDERLY"
PROP_CONSUME_TYPE = "PROP_CONSUME_TYPE"
PROP_CLIENT_VERSION = "PROP_CLIENT_VERSION"
PROP_CONSUMER_START_TIMESTAMP = "PROP_CONSUMER_START_TIMESTAMP"


@dataclass
class ProcessQueueInfo:
    commit_offset: int = 0
    cached_msg_min_offset: int = 0
    cached_msg_max_offset: int = 0
    cached_msg_count: int = 0
    cached_msg_size_in_mib: int = 0
    transaction_msg_min_offset: int = 0
    transaction_msg_max_offset: int = 0
    transaction_msg_count: int = 0
    locked: bool = False
    try_unlock_times: int = 0
    last_lock_timestamp: int = 0
    dropped: bool = False
    last_pull_timestamp: int = 0
    last_consume_timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "commitOffset": self.commit_offset,
            "cachedMsgMinOffset": self.cached_msg_min_offset,
            "cachedMsgMaxOffset": self.cached_msg_max_offset,
            "cachedMsgCount": self.cached_msg_count,
            "cachedMsgSizeInMiB": self.cached_msg_size_in_mib,
            "transactionMsgMinOffset": self.transaction_msg_min_offset,
            "transactionMsgMaxOffset": self.transaction_msg_max_offset,
            "transactionMsgCount": self.transaction_msg_count,
            "locked": self.locked,
            "tryUnlockTimes": self.try_unlock_times,
            "lastLockTimestamp": self.last_lock_timestamp,
            "dropped": self.dropped,
            "lastPullTimestamp": self.last_pull_timestamp,
            "lastConsumeTimestamp": self.last_consume_timestamp,
        }


@dataclass
class ConsumeStatus:
    pull_rt: float = 0.0
    pull_tps: float = 0.0
    consume_rt: float = 0.0
    consume_ok_tps: float = 0.0
    consume_failed_tps: float = 0.0
    consume_failed_msgs: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "pullRT": _number(self.pull_rt),
            "pullTPS": _number(self.pull_tps),
            "consumeRT": _number(self.consume_rt),
            "consumeOKTPS": _number(self.consume_ok_tps),
            "consumeFailedTPS": _number(self.consume_failed_tps),
            "consumeFailedMsgs": self.consume_failed_msgs,
        }


def _compare_subscriptions(a: SubscriptionData, b: SubscriptionData) -> int:
    if a.class_filter_mode != b.class_filter_mode:
        return -1 if not a.class_filter_mode else 1
    if a.sub_version != b.sub_version:
        return -1 if a.sub_version > b.sub_version else 1
    for left, right in (
        (_dumps(sorted(a.tags)), _dumps(sorted(b.tags))),
        (_dumps(sorted(a.codes)), _dumps(sorted(b.codes))),
    ):
        if left != right:
            return -1 if left > right else 1
    return 0


def _queue_table(table: dict[MessageQueue, Any], render) -> str:
    entries = (
        f"{_dumps(queue.to_dict())}:{_dumps(render(table[queue]))}"
        for queue in sorted(table, key=MessageQueue._sort_key)
    )
    return "{" + ",".join(entries) + "}"


@dataclass
class ConsumerRunningInfo:
    """Running state of a consumer, reported to the broker on request."""

    properties: dict[str, str] = field(default_factory=dict)
    subscription_data: list[SubscriptionData] = field(default_factory=list)
    mq_table: dict[MessageQueue, ProcessQueueInfo] = field(default_factory=dict)
    status_table: dict[str, ConsumeStatus] = field(default_factory=dict)
    jstack: str = ""

    def encode(self) -> bytes:
        """Serialize in the broker's format, where queue tables use object keys."""
        properties = json.dumps(
            self.properties, separators=(",", ":"), ensure_ascii=False, sort_keys=True
        )
        status = _dumps(
            {key: self.status_table[key].to_dict() for key in sorted(self.status_table)}
        )
        subs = sorted(self.subscription_data, key=cmp_to_key(_compare_subscriptions))
        subscriptions = _dumps([sub.to_dict() for sub in subs])
        mq_table = _queue_table(self.mq_table, ProcessQueueInfo.to_dict)
        text = (
            f'{{"properties":{properties},"statusTable":{status},'
            f'"subscriptionSet":{subscriptions},"mqTable":{mq_table}, '
            f'"jstack":"{self.jstack}" }}'
        )
        return text.encode("utf-8")


@dataclass
class ConsumerStatus:
    mq_offset_map: dict[MessageQueue, int] = field(default_factory=dict)

    def encode(self) -> bytes:
        table = _queue_table(self.mq_offset_map, int)
        return f'{{"messageQueueTable":{table}}}'.encode("utf-8")


class ConsumeResult(IntEnum):
    CONSUME_SUCCESS = 0
    CONSUME_RETRY_LATER = 1
    ROLLBACK = 2
    COMMIT = 3
    THROW_EXCEPTION = 4
    RETURN_NULL = 5


@dataclass
class ConsumeMessageDirectlyResult:
    order: bool = False
    auto_commit: bool = False
    consume_result: ConsumeResult = ConsumeResult.CONSUME_SUCCESS
    remark: str = ""
    spent_time_mills: int = 0

    def encode(self) -> bytes:
        return _dumps(
            {
                "order": self.order,
                "autoCommit": self.auto_commit,
                "consumeResult": int(self.consume_result),
                "remark": self.remark,
                "spentTimeMills": self.spent_time_mills,
            }
        ).encode("utf-8")


def parse_gson_format(body: _Text) -> dict[MessageQueue, int]:
    """Parse an offset table written as a list of ``[queue, offset]`` pairs.

    Raises ``ValueError`` on malformed input.
    """
    document = json.loads(_as_text(body))
    table = document.get("offsetTable") if isinstance(document, dict) else None
    if not table:
        return {}
    if not isinstance(table, list):
        raise ValueError("offsetTable is not a list of pairs")
    result: dict[MessageQueue, int] = {}
    for entry in table:
        if not (isinstance(entry, list) and len(entry) == 2 and isinstance(entry[0], dict)):
            raise ValueError(f"malformed offset table entry: {entry!r}")
        offset = entry[1]
        if isinstance(offset, bool) or not isinstance(offset, int):
            raise ValueError(f"malformed offset: {offset!r}")
        result[MessageQueue.from_dict(entry[0])] = offset
    return result


_FAST_TABLE = re.compile(r'"offsetTable"\s*:\s*\{')
_FAST_ENTRY = re.compile(r"(\{[^{}]*\})\s*:\s*(-?\d+)")


def _balanced_object(text: str, start: int) -> str:
    depth = 0
    for pos, char in enumerate(text[start:], start):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]
    raise ValueError("unterminated offsetTable")


def parse_fast_json_format(body: _Text) -> dict[MessageQueue, int]:
    """Parse an offset table whose keys are queue objects.

    Raises ``ValueError`` on malformed input.
    """
    text = _as_text(body)
    match = _FAST_TABLE.search(text)
    if match is None:
        return {}
    inner = _balanced_object(text, match.end() - 1)[1:-1].strip()
    if not inner:
        return {}
    result: dict[MessageQueue, int] = {}
    for entry in _FAST_ENTRY.finditer(inner):
        queue = MessageQueue.from_dict(json.loads(entry.group(1)))
        result[queue] = int(entry.group(2))
    if not result:
        raise ValueError("offsetTable holds no entries")
    return result


@dataclass
class ResetOffsetBody:
    offset_table: dict[MessageQueue, int] = field(default_factory=dict)

    @classmethod
    def decode(cls, body: _Text) -> "ResetOffsetBody":
        """Decode either offset table layout the broker may send."""
        try:
            json.loads(_as_text(body))
        except ValueError:
            return cls(parse_fast_json_format(body))
        return cls(parse_gson_format(body))