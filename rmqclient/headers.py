"""Custom headers carried in the ext fields of remoting commands."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping

DEFAULT_TOPIC = "TBW102"
DEFAULT_TOPIC_QUEUE_NUMS = 4

_INTEGER = re.compile(r"^[+-]?\d+$")
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def _parse_int(text: str, bits: int = 64) -> int:
    """Parse a decimal integer; malformed input gives 0, overflow is clamped."""
    if not _INTEGER.match(text):
        return 0
    limit = 1 << (bits - 1)
    return max(-limit, min(limit - 1, int(text)))


def _parse_bool(text: str) -> bool:
    return text in _TRUE_WORDS


@dataclass
class SendMessageRequestHeader:
    producer_group: str = ""
    topic: str = ""
    queue_id: int = 0
    sys_flag: int = 0
    born_timestamp: int = 0
    flag: int = 0
    properties: str = ""
    reconsume_times: int = 0
    unit_mode: bool = False
    max_reconsume_times: int = 0
    batch: bool = False
    default_topic: str = ""
    default_topic_queue_nums: int = 0

    def encode(self) -> dict[str, str]:
        """Ext fields of a send request; the default topic is always fixed."""
        return {
            "producerGroup": self.producer_group,
            "topic": self.topic,
            "queueId": str(self.queue_id),
            "sysFlag": str(self.sys_flag),
            "bornTimestamp": str(self.born_timestamp),
            "flag": str(self.flag),
            "reconsumeTimes": str(self.reconsume_times),
            "unitMode": _bool_text(self.unit_mode),
            "maxReconsumeTimes": str(self.max_reconsume_times),
            "defaultTopic": DEFAULT_TOPIC,
            "defaultTopicQueueNums": str(DEFAULT_TOPIC_QUEUE_NUMS),
            "batch": _bool_text(self.batch),
            "properties": self.properties,
        }


@dataclass
class SendMessageRequestV2Header:
    """Compact form of a send header, with single-letter keys."""

    header: SendMessageRequestHeader = field(default_factory=SendMessageRequestHeader)

    def encode(self) -> dict[str, str]:
        h = self.header
        return {
            "a": h.producer_group,
            "b": h.topic,
            "c": h.default_topic,
            "d": str(h.default_topic_queue_nums),
            "e": str(h.queue_id),
            "f": str(h.sys_flag),
            "g": str(h.born_timestamp),
            "h": str(h.flag),
            "i": h.properties,
            "j": str(h.reconsume_times),
            "k": _bool_text(h.unit_mode),
            "l": str(h.max_reconsume_times),
            "m": _bool_text(h.batch),
        }


@dataclass
class EndTransactionRequestHeader:
    producer_group: str = ""
    tran_state_table_offset: int = 0
    commit_log_offset: int = 0
    commit_or_rollback: int = 0
    from_transaction_check: bool = False
    msg_id: str = ""
    transaction_id: str = ""

    def encode(self) -> dict[str, str]:
        return {
            "producerGroup": self.producer_group,
            "tranStateTableOffset": str(self.tran_state_table_offset),
            "commitLogOffset": str(self.commit_log_offset),
            "commitOrRollback": str(self.commit_or_rollback),
            "fromTransactionCheck": _bool_text(self.from_transaction_check),
            "msgId": self.msg_id,
            "transactionId": self.transaction_id,
        }


@dataclass
class CheckTransactionStateRequestHeader:
    tran_state_table_offset: int = 0
    commit_log_offset: int = 0
    msg_id: str = ""
    transaction_id: str = ""
    offset_msg_id: str = ""

    def encode(self) -> dict[str, str]:
        return {
            "tranStateTableOffset": str(self.tran_state_table_offset),
            "commitLogOffset": str(self.commit_log_offset),
            "msgId": self.msg_id,
            "transactionId": self.transaction_id,
            "offsetMsgId": self.offset_msg_id,
        }

    @classmethod
    def decode(cls, properties: Mapping[str, str]) -> "CheckTransactionStateRequestHeader":
        """Read the header back; every id field present lands in ``msg_id``."""
        header = cls()
        if "tranStateTableOffset" in properties:
            header.tran_state_table_offset = _parse_int(properties["tranStateTableOffset"])
        if "commitLogOffset" in properties:
            header.commit_log_offset = _parse_int(properties["commitLogOffset"])
        for key in ("msgId", "transactionId", "offsetMsgId"):
            if key in properties:
                header.msg_id = properties[key]
        return header


@dataclass
class ConsumerSendMsgBackRequestHeader:
    group: str = ""
    offset: int = 0
    delay_level: int = 0
    origin_msg_id: str = ""
    origin_topic: str = ""
    unit_mode: bool = False
    max_reconsume_times: int = 0

    def encode(self) -> dict[str, str]:
        return {
            "group": self.group,
            "offset": str(self.offset),
            "delayLevel": str(self.delay_level),
            "originMsgId": self.origin_msg_id,
            "originTopic": self.origin_topic,
            "unitMode": _bool_text(self.unit_mode),
            "maxReconsumeTimes": str(self.max_reconsume_times),
        }


@dataclass
class PullMessageRequestHeader:
    consumer_group: str = ""
    topic: str = ""
    queue_id: int = 0
    queue_offset: int = 0
    max_msg_nums: int = 0
    sys_flag: int = 0
    commit_offset: int = 0
    suspend_timeout_millis: int = 0
    sub_expression: str = ""
    sub_version: int = 0
    expression_type: str = ""

    def encode(self) -> dict[str, str]:
        return {
            "consumerGroup": self.consumer_group,
            "topic": self.topic,
            "queueId": str(self.queue_id),
            "queueOffset": str(self.queue_offset),
            "maxMsgNums": str(self.max_msg_nums),
            "sysFlag": str(self.sys_flag),
            "commitOffset": str(self.commit_offset),
            "suspendTimeoutMillis": str(self.suspend_timeout_millis),
            "subscription": self.sub_expression,
            "subVersion": str(self.sub_version),
            "expressionType": self.expression_type,
        }


@dataclass
class GetConsumerListRequestHeader:
    consumer_group: str = ""

    def encode(self) -> dict[str, str]:
        return {"consumerGroup": self.consumer_group}


@dataclass
class GetMaxOffsetRequestHeader:
    topic: str = ""
    queue_id: int = 0

    def encode(self) -> dict[str, str]:
        return {"topic": self.topic, "queueId": str(self.queue_id)}


@dataclass
class QueryConsumerOffsetRequestHeader:
    consumer_group: str = ""
    topic: str = ""
    queue_id: int = 0

    def encode(self) -> dict[str, str]:
        return {
            "consumerGroup": self.consumer_group,
            "topic": self.topic,
            "queueId": str(self.queue_id),
        }


@dataclass
class SearchOffsetRequestHeader:
    topic: str = ""
    queue_id: int = 0
    timestamp: int = 0

    def encode(self) -> dict[str, str]:
        return {
            "topic": self.topic,
            "queueId": str(self.queue_id),
            "timestamp": str(self.timestamp),
        }


@dataclass
class UpdateConsumerOffsetRequestHeader:
    consumer_group: str = ""
    topic: str = ""
    queue_id: int = 0
    commit_offset: int = 0

    def encode(self) -> dict[str, str]:
        return {
            "consumerGroup": self.consumer_group,
            "topic": self.topic,
            "queueId": str(self.queue_id),
            "commitOffset": str(self.commit_offset),
        }


@dataclass
class GetRouteInfoRequestHeader:
    topic: str = ""

    def encode(self) -> dict[str, str]:
        return {"topic": self.topic}


@dataclass
class GetConsumerRunningInfoHeader:
    consumer_group: str = ""
    client_id: str = ""
    jstack_enable: bool = False

    def encode(self) -> dict[str, str]:
        return {
            "consumerGroup": self.consumer_group,
            "clientId": self.client_id,
            "jstackEnable": _bool_text(self.jstack_enable),
        }

    @classmethod
    def decode(cls, properties: Mapping[str, str]) -> "GetConsumerRunningInfoHeader":
        header = cls()
        if "consumerGroup" in properties:
            header.consumer_group = properties["consumerGroup"]
        if "clientId" in properties:
            header.client_id = properties["clientId"]
        if "jstackEnable" in properties:
            header.jstack_enable = _parse_bool(properties["jstackEnable"])
        return header


@dataclass
class QueryMessageRequestHeader:
    topic: str = ""
    key: str = ""
    max_num: int = 0
    begin_timestamp: int = 0
    end_timestamp: int = 0

    def encode(self) -> dict[str, str]:
        return {
            "topic": self.topic,
            "key": self.key,
            "maxNum": str(self.max_num),
            "beginTimestamp": str(self.begin_timestamp),
            "endTimestamp": str(self.end_timestamp),
        }


@dataclass
class ViewMessageRequestHeader:
    offset: int = 0

    def encode(self) -> dict[str, str]:
        return {"offset": str(self.offset)}


@dataclass
class CreateTopicRequestHeader:
    topic: str = ""
    default_topic: str = ""
    read_queue_nums: int = 0
    write_queue_nums: int = 0
    perm: int = 0
    topic_filter_type: str = ""
    topic_sys_flag: int = 0
    order: bool = False

    def encode(self) -> dict[str, str]:
        return {
            "topic": self.topic,
            "defaultTopic": self.default_topic,
            "readQueueNums": str(self.read_queue_nums),
            "writeQueueNums": str(self.write_queue_nums),
            "perm": str(self.perm),
            "topicFilterType": self.topic_filter_type,
            "topicSysFlag": str(self.topic_sys_flag),
            "order": _bool_text(self.order),
        }


@dataclass
class TopicListRequestHeader:
    topic: str = ""

    def encode(self) -> dict[str, str]:
        return {"topic": self.topic}


@dataclass
class DeleteTopicRequestHeader:
    topic: str = ""

    def encode(self) -> dict[str, str]:
        return {"topic": self.topic}


@dataclass
class ResetOffsetHeader:
    topic: str = ""
    group: str = ""
    timestamp: int = 0
    is_force: bool = False

    def encode(self) -> dict[str, str]:
        return {
            "topic": self.topic,
            "group": self.group,
            "timestamp": str(self.timestamp),
        }

    @classmethod
    def decode(cls, properties: Mapping[str, str]) -> "ResetOffsetHeader":
        header = cls()
        if "topic" in properties:
            header.topic = properties["topic"]
        if "group" in properties:
            header.group = properties["group"]
        if "timestamp" in properties:
            header.timestamp = _parse_int(properties["timestamp"])
        return header


@dataclass
class ConsumeMessageDirectlyHeader:
    consumer_group: str = ""
    client_id: str = ""
    msg_id: str = ""
    broker_name: str = ""

    def encode(self) -> dict[str, str]:
        return {
            "consumerGroup": self.consumer_group,
            "clientId": self.client_id,
            "msgId": self.msg_id,
            "brokerName": self.broker_name,
        }

    @classmethod
    def decode(cls, properties: Mapping[str, str]) -> "ConsumeMessageDirectlyHeader":
        return cls(
            consumer_group=properties.get("consumerGroup", ""),
            client_id=properties.get("clientId", ""),
            msg_id=properties.get("msgId", ""),
            broker_name=properties.get("brokerName", ""),
        )


@dataclass
class GetConsumerStatusRequestHeader:
    topic: str = ""
    group: str = ""
    client_addr: str = ""

    def encode(self) -> dict[str, str]:
        return {"topic": self.topic, "group": self.group, "clientAddr": self.client_addr}

    @classmethod
    def decode(cls, properties: Mapping[str, str]) -> "GetConsumerStatusRequestHeader":
        return cls(
            topic=properties.get("topic", ""),
            group=properties.get("group", ""),
            client_addr=properties.get("clientAddr", ""),
        )


@dataclass
class ReplyMessageRequestHeader:
    producer_group: str = ""
    topic: str = ""
    default_topic: str = ""
    default_topic_queue_nums: int = 0
    queue_id: int = 0
    sys_flag: int = 0
    born_timestamp: int = 0
    flag: int = 0
    properties: str = ""
    reconsume_times: int = 0
    unit_mode: bool = False
    born_host: str = ""
    store_host: str = ""
    store_timestamp: int = 0

    def encode(self) -> dict[str, str]:
        return {
            "producerGroup": self.producer_group,
            "topic": self.topic,
            "defaultTopic": self.default_topic,
            "defaultTopicQueueNums": str(self.default_topic_queue_nums),
            "queueId": str(self.queue_id),
            "sysFlag": str(self.sys_flag),
            "bornTimestamp": str(self.born_timestamp),
            "flag": str(self.flag),
            "properties": self.properties,
            "reconsumeTimes": str(self.reconsume_times),
            "bornHost": self.born_host,
            "storeHost": self.store_host,
            "storeTimestamp": str(self.store_timestamp),
        }

    @classmethod
    def decode(cls, properties: Mapping[str, str]) -> "ReplyMessageRequestHeader":
        header = cls()
        text_fields = {
            "producerGroup": "producer_group",
            "topic": "topic",
            "defaultTopic": "default_topic",
            "properties": "properties",
            "bornHost": "born_host",
            "storeHost": "store_host",
        }
        int_fields = {
            "defaultTopicQueueNums": ("default_topic_queue_nums", 64),
            "queueId": ("queue_id", 64),
            "sysFlag": ("sys_flag", 64),
            "bornTimestamp": ("born_timestamp", 64),
            "flag": ("flag", 32),
            "reconsumeTimes": ("reconsume_times", 32),
            "storeTimestamp": ("store_timestamp", 64),
        }
        for key, attr in text_fields.items():
            if key in properties:
                setattr(header, attr, properties[key])
        for key, (attr, bits) in int_fields.items():
            if key in properties:
                setattr(header, attr, _parse_int(properties[key], bits))
        return header