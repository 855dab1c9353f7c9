import json
import re

import pytest

from rmqclient.model import (
    ConsumeMessageDirectlyResult,
    ConsumeResult,
    ConsumeStatus,
    ConsumerData,
    ConsumerRunningInfo,
    ConsumerStatus,
    HeartbeatData,
    MessageQueue,
    ProcessQueueInfo,
    ProducerData,
    ResetOffsetBody,
    SubscriptionData,
    parse_fast_json_format,
    parse_gson_format,
)


def test_producer_heartbeat():
    hbt = HeartbeatData("producer client id")
    hbt.add_producer(ProducerData("group name"))
    hbt.add_producer(ProducerData("group name 2"))
    doc = json.loads(hbt.encode())
    assert doc["clientID"] == "producer client id"
    assert {p["groupName"] for p in doc["producerDataSet"]} == {"group name", "group name 2"}
    assert doc["consumerDataSet"] == []


def test_consumer_heartbeat():
    hbt = HeartbeatData("consumer client id")
    hbt.add_consumer(ConsumerData(group_name="consumer data 1"))
    hbt.add_consumer(ConsumerData(group_name="consumer data 2"))
    doc = json.loads(hbt.encode())
    names = [c["groupName"] for c in doc["consumerDataSet"]]
    assert names == ["consumer data 1", "consumer data 2"]
    assert doc["consumerDataSet"][0]["subscriptionDataSet"] == []


def test_producer_and_consumer_heartbeat_dedupes_groups():
    hbt = HeartbeatData("consumer client id")
    hbt.add_producer(ProducerData("group name"))
    hbt.add_producer(ProducerData("group name"))
    hbt.add_consumer(ConsumerData(group_name="consumer data 1"))
    doc = hbt.to_dict()
    assert len(doc["producerDataSet"]) == 1
    assert len(doc["consumerDataSet"]) == 1


def test_subscription_clone_is_independent():
    sub = SubscriptionData(topic="t", tags={"a"}, codes={"1"}, sub_version=5)
    copy = sub.clone()
    copy.tags.add("b")
    assert sub.tags == {"a"}
    assert copy.topic == "t"
    assert copy.sub_version == 5


def _running_info():
    props = {
        "maxReconsumeTimes": "-1",
        "unitMode": "false",
        "adjustThreadPoolNumsThreshold": "100000",
        "consumerGroup": "mq-client-go-test%GID_GO_TEST",
        "messageModel": "CLUSTERING",
        "suspendCurrentQueueTimeMillis": "1000",
        "pullThresholdSizeForTopic": "-1",
        "pullThresholdSizeForQueue": "100",
        "PROP_CLIENT_VERSION": "V4_5_1",
        "consumeConcurrentlyMaxSpan": "2000",
        "postSubscriptionWhenPull": "false",
        "consumeTimestamp": "20191127013617",
        "PROP_CONSUME_TYPE": "CONSUME_PASSIVELY",
        "consumeTimeout": "15",
        "consumeMessageBatchMaxSize": "1",
        "PROP_THREADPOOL_CORE_SIZE": "20",
        "pullInterval": "0",
        "pullThresholdForQueue": "1000",
        "pullThresholdForTopic": "-1",
        "consumeFromWhere": "CONSUME_FROM_FIRST_OFFSET",
        "PROP_NAMESERVER_ADDR": "mq-client-go-test.mq-internet-access.mq-internet.aliyuncs.com:80;",
        "pullBatchSize": "32",
        "consumeThreadMin": "20",
        "PROP_CONSUMER_START_TIMESTAMP": "1574791577504",
        "consumeThreadMax": "20",
        "subscription": "{}",
        "PROP_CONSUMEORDERLY": "false",
    }
    subs = [
        SubscriptionData(
            class_filter_mode=True, exp_type="TAG", sub_string="*",
            sub_version=1574791577523, topic="mq-client-go-test%go-test",
        ),
        SubscriptionData(
            class_filter_mode=False, exp_type="TAG", sub_string="*",
            sub_version=1574791579242, topic="%RETRY%mq-client-go-test%GID_GO_TEST",
        ),
    ]
    status = {
        "%RETRY%mq-client-go-test%GID_GO_TEST": ConsumeStatus(11.11, 22.22, 33.33, 44.44, 55.55, 666),
        "mq-client-go-test%go-test": ConsumeStatus(123, 123, 123, 123, 123, 1234),
    }
    topic = "%RETRY%mq-client-go-test%GID_GO_TEST"
    mq_table = {
        MessageQueue(topic, "qd7internet-01", 1): ProcessQueueInfo(
            1, 2, 3, 4, 5, 6, 7, 8, True, 9, 1574791579221, False, 1574791579242, 1574791579221
        ),
        MessageQueue(topic, "qd7internet-01", 0): ProcessQueueInfo(
            last_lock_timestamp=1574791579221,
            last_pull_timestamp=1574791579242,
            last_consume_timestamp=1574791579221,
        ),
    }
    return ConsumerRunningInfo(props, subs, mq_table, status)


def _json_part(text):
    return json.loads(text[: text.index(',"mqTable":')] + "}")


def test_running_info_properties():
    doc = _json_part(_running_info().encode().decode())
    props = doc["properties"]
    assert len(props) == 27
    assert props["PROP_CLIENT_VERSION"] == "V4_5_1"
    assert props["PROP_CONSUME_TYPE"] == "CONSUME_PASSIVELY"
    assert props["PROP_THREADPOOL_CORE_SIZE"] == "20"
    assert props["PROP_NAMESERVER_ADDR"] == (
        "mq-client-go-test.mq-internet-access.mq-internet.aliyuncs.com:80;"
    )
    assert props["PROP_CONSUMER_START_TIMESTAMP"] == "1574791577504"
    assert props["PROP_CONSUMEORDERLY"] == "false"


def test_running_info_subscription_set():
    arr = _json_part(_running_info().encode().decode())["subscriptionSet"]
    assert len(arr) == 2
    m1, m2 = arr
    assert len(m1) == 7
    assert m1["classFilterMode"] is False
    assert m1["codeSet"] == []
    assert m1["expressionType"] == "TAG"
    assert m1["subString"] == "*"
    assert m1["subVersion"] == 1574791579242
    assert m1["tagsSet"] == []
    assert m1["topic"] == "%RETRY%mq-client-go-test%GID_GO_TEST"
    assert len(m2) == 7
    assert m2["classFilterMode"] is True
    assert m2["subVersion"] == 1574791577523
    assert m2["topic"] == "mq-client-go-test%go-test"


def test_running_info_status_table():
    table = _json_part(_running_info().encode().decode())["statusTable"]
    assert len(table) == 2
    s1 = table["mq-client-go-test%go-test"]
    assert len(s1) == 6
    assert s1["pullRT"] == 123
    assert s1["pullTPS"] == 123
    assert s1["consumeRT"] == 123
    assert s1["consumeOKTPS"] == 123
    assert s1["consumeFailedTPS"] == 123
    assert s1["consumeFailedMsgs"] == 1234
    s2 = table["%RETRY%mq-client-go-test%GID_GO_TEST"]
    assert s2["pullRT"] == 11.11
    assert s2["pullTPS"] == 22.22
    assert s2["consumeRT"] == 33.33
    assert s2["consumeOKTPS"] == 44.44
    assert s2["consumeFailedTPS"] == 55.55
    assert s2["consumeFailedMsgs"] == 666


def test_running_info_mq_table():
    text = _running_info().encode().decode()
    start = text.index('"mqTable":') + len('"mqTable":')
    end = text.index(', "jstack"')
    entries = re.findall(r"(\{[^{}]*\}):(\{[^{}]*\})", text[start:end])
    assert len(entries) == 2
    key1, val1 = (json.loads(part) for part in entries[0])
    key2, val2 = (json.loads(part) for part in entries[1])
    assert key1["queueId"] == 0
    assert key2["queueId"] == 1
    assert len(val1) == 14
    assert val1["commitOffset"] == 0
    assert val1["locked"] is False
    assert val1["lastLockTimestamp"] == 1574791579221
    assert val1["lastPullTimestamp"] == 1574791579242
    assert val1["lastConsumeTimestamp"] == 1574791579221
    assert len(val2) == 14
    assert val2["commitOffset"] == 1
    assert val2["cachedMsgMinOffset"] == 2
    assert val2["cachedMsgMaxOffset"] == 3
    assert val2["cachedMsgCount"] == 4
    assert val2["cachedMsgSizeInMiB"] == 5
    assert val2["transactionMsgMinOffset"] == 6
    assert val2["transactionMsgMaxOffset"] == 7
    assert val2["transactionMsgCount"] == 8
    assert val2["locked"] is True
    assert val2["tryUnlockTimes"] == 9
    assert val2["dropped"] is False
    assert text.endswith('"jstack":"" }')


def test_consumer_status_encode():
    status = ConsumerStatus({MessageQueue("b", "x", 1): 7, MessageQueue("a", "x", 0): 3})
    assert status.encode() == (
        b'{"messageQueueTable":{{"topic":"a","brokerName":"x","queueId":0}:3,'
        b'{"topic":"b","brokerName":"x","queueId":1}:7}}'
    )


def test_consumer_status_empty():
    assert ConsumerStatus().encode() == b'{"messageQueueTable":{}}'


@pytest.mark.parametrize(
    "result, remark, spent, expected",
    [
        (ConsumeResult.CONSUME_SUCCESS, "", 2, 0),
        (ConsumeResult.RETURN_NULL, "", 2, 5),
        (ConsumeResult.THROW_EXCEPTION, "Unknown Exception", 5, 4),
    ],
)
def test_consume_message_directly_result(result, remark, spent, expected):
    data = ConsumeMessageDirectlyResult(
        order=False, auto_commit=True, consume_result=result,
        remark=remark, spent_time_mills=spent,
    ).encode()
    doc = json.loads(data)
    assert doc == {
        "order": False,
        "autoCommit": True,
        "consumeResult": expected,
        "remark": remark,
        "spentTimeMills": spent,
    }


def test_reset_offset_gson():
    body = (
        '{"offsetTable":[[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":5},23354233],'
        '[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":4},23354245],'
        '[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":7},23354203],'
        '[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":6},23354312],'
        '[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":1},23373517],'
        '[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":0},23373350],'
        '[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":3},23373424],'
        '[{"topic":"zx_tst","brokerName":"tjwqtst-common-rocketmq-raft0","queueId":2},23373382]]}'
    )
    table = ResetOffsetBody.decode(body.encode()).offset_table
    assert len(table) == 8
    assert table[MessageQueue("zx_tst", "tjwqtst-common-rocketmq-raft0", 5)] == 23354233


def test_reset_offset_fast_json():
    body = (
        '{"offsetTable":{{"brokerName":"RaftNode00","queueId":0,"topic":"topicB"}:11110,'
        '{"brokerName":"RaftNode00","queueId":1,"topic":"topicB"}:0,'
        '{"brokerName":"RaftNode00","queueId":2,"topic":"topicB"}:0,'
        '{"brokerName":"RaftNode00","queueId":3,"topic":"topicB"}:0}}'
    )
    table = ResetOffsetBody.decode(body.encode()).offset_table
    assert len(table) == 4
    assert table[MessageQueue("topicB", "RaftNode00", 0)] == 11110


def test_reset_offset_fast_json_one_item():
    body = '{"offsetTable":{{"brokerName":"RaftNode00","queueId":0,"topic":"topicB"}:11110}}'
    table = ResetOffsetBody.decode(body).offset_table
    assert table == {MessageQueue("topicB", "RaftNode00", 0): 11110}


@pytest.mark.parametrize("body", ['{"offsetTable":{}}', '{"offsetTable":[]}'])
def test_reset_offset_empty(body):
    assert ResetOffsetBody.decode(body).offset_table == {}


def test_parse_gson_rejects_malformed_entry():
    with pytest.raises(ValueError):
        parse_gson_format('{"offsetTable":[[{"topic":"t"},"x"]]}')


def test_parse_fast_json_rejects_garbage():
    with pytest.raises(ValueError):
        parse_fast_json_format('{"offsetTable":{garbage}')


def test_message_queue_round_trip():
    queue = MessageQueue("t", "b", 3)
    assert MessageQueue.from_dict(queue.to_dict()) == queue