"""
Assembles a ClusterSnapshot from the individual collectors.
"""
import logging
from typing import Dict, List, Sequence, Tuple

from kafka.errors import KafkaError

from .formatting import format_number
from .inspector import KafkaInspector
from .models import ClusterSnapshot, ConsumerGroupInfo, TopicInfo, utc_timestamp
from .topology import aggregate_topology, broker_details

logger = logging.getLogger(__name__)


def collect_topics(inspector: KafkaInspector, topics: Dict[str, Tuple[int, int]]) -> List[TopicInfo]:
    """
    TopicInfo per topic, sorted by name. Config and watermark failures only
    cost that topic its configs or message count.
    """
    infos = []
    for name in sorted(topics):
        partitions, replication_factor = topics[name]

        try:
            configs = inspector.topic_configs(name)
        except KafkaError as e:
            logger.warning(f"Could not describe configs of topic {name}: {e}")
            configs = {}

        try:
            end_offsets = inspector.partition_end_offsets(name, partitions)
            total_messages = sum(end_offsets.values())
        except KafkaError as e:
            logger.warning(f"Could not get offsets for topic {name}: {e}")
            total_messages = 0

        infos.append(
            TopicInfo(
                name=name,
                partitions=partitions,
                replication_factor=replication_factor,
                total_messages=total_messages,
                configs=configs,
            )
        )
    return infos


def collect_consumer_groups(inspector: KafkaInspector) -> List[ConsumerGroupInfo]:
    """
    Every consumer group sorted by name. Listing failures propagate; a group
    whose describe fails is kept with empty state and no topics.
    """
    groups = []
    for name in sorted(inspector.list_consumer_groups()):
        try:
            desc = inspector.describe_consumer_group(name)
        except KafkaError as e:
            logger.warning(f"Could not describe consumer group '{name}': {e}")
            groups.append(ConsumerGroupInfo(name=name))
            continue
        groups.append(
            ConsumerGroupInfo(name=name, state=desc.state, members=desc.members, topics=desc.topics)
        )
    return groups


def build_cluster_snapshot(inspector: KafkaInspector, bootstrap_servers: Sequence[str]) -> ClusterSnapshot:
    timestamp = utc_timestamp()

    logger.info("Fetching broker information...")
    try:
        brokers = inspector.list_brokers()
    except KafkaError as e:
        logger.warning(f"Could not fetch metadata: {e}")
        brokers = []

    logger.info("Fetching topics...")
    topics = inspector.list_topics()
    topic_infos = collect_topics(inspector, topics)

    details = []
    total_urps = 0
    if brokers:
        logger.info("Calculating broker metrics...")
        rollup = aggregate_topology(inspector, topics)
        details = broker_details(inspector, brokers, rollup)
        total_urps = rollup.total_under_replicated

    logger.info("Fetching consumer groups...")
    groups = collect_consumer_groups(inspector)

    return ClusterSnapshot(
        timestamp=timestamp,
        broker_addresses=tuple(bootstrap_servers),
        brokers=tuple(details),
        topics=tuple(topic_infos),
        consumer_groups=tuple(groups),
        total_under_replicated=total_urps,
    )


def log_summary(snapshot: ClusterSnapshot) -> None:
    logger.info("Summary:")
    logger.info(f"  Total Brokers: {len(snapshot.brokers)}")
    logger.info(f"  Total Topics: {snapshot.total_topics}")
    logger.info(f"  Total Partitions: {snapshot.total_partitions}")
    logger.info(f"  Total Messages: {format_number(snapshot.total_messages)}")
    logger.info(f"  Total Consumer Groups: {snapshot.total_consumer_groups}")
    if snapshot.total_under_replicated > 0:
        logger.warning(f"  Under-Replicated Partitions: {snapshot.total_under_replicated}")
