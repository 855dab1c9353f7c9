"""Well-known group and topic names."""

RETRY_GROUP_TOPIC_PREFIX = "%RETRY%"
DEFAULT_CONSUMER_GROUP = "DEFAULT_CONSUMER"
CLIENT_INNER_PRODUCER_GROUP = "CLIENT_INNER_PRODUCER"
SYSTEM_TOPIC_PREFIX = "rmq_sys_"
REPLY_MESSAGE_FLAG = "reply"
REPLY_TOPIC_POSTFIX = "REPLY_TOPIC"


def get_reply_topic(cluster_name: str) -> str:
    """Return the reply topic of a cluster."""
    return f"{cluster_name}_{REPLY_TOPIC_POSTFIX}"


def get_retry_topic(group: str) -> str:
    """Return the retry topic of a consumer group."""
    if group.startswith(RETRY_GROUP_TOPIC_PREFIX):
        return group
    return RETRY_GROUP_TOPIC_PREFIX + group