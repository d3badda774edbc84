"""
Shared fixtures: an in-memory stand-in for KafkaInspector.
"""
from typing import Dict, List, Optional, Tuple

import pytest
from kafka.errors import KafkaError, KafkaTimeoutError

from kafka_snapshot.models import GroupDescription, PartitionState


class FakeInspector:
    """
    Serves canned cluster state through the same methods as KafkaInspector.
    Entries in ``failing_*`` make the matching call raise a KafkaError.
    """

    def __init__(
        self,
        brokers: Optional[List[Tuple[int, str]]] = None,
        topics: Optional[Dict[str, List[PartitionState]]] = None,
        configs: Optional[Dict[str, Dict[str, str]]] = None,
        end_offsets: Optional[Dict[str, Dict[int, int]]] = None,
        groups: Optional[Dict[str, GroupDescription]] = None,
        group_offsets: Optional[Dict[Tuple[str, str], Dict[int, int]]] = None,
        log_dirs: Optional[Dict[int, list]] = None,
        versions: Optional[Dict[int, str]] = None,
        bootstrap_servers: Optional[List[str]] = None,
    ):
        self.brokers = brokers or []
        self.topics = topics or {}
        self.configs = configs or {}
        self.end_offsets = end_offsets or {}
        self.groups = groups or {}
        self.group_offsets = group_offsets or {}
        self.log_dirs = log_dirs or {}
        self.versions = versions or {}
        self.bootstrap_servers = bootstrap_servers or ["b1:9092", "b2:9092", "b3:9092"]
        self.failing_log_dirs: set = set()
        self.failing_describe: set = set()
        self.failing_configs: set = set()
        self.failing_group_offsets: set = set()
        self.failing_groups: set = set()
        self.offset_calls: List[Tuple[str, str, Optional[int]]] = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.closed = True

    def list_brokers(self):
        return list(self.brokers)

    def broker_version(self, node_id):
        return self.versions.get(node_id, "Unknown")

    def describe_log_dirs(self, node_id):
        if node_id in self.failing_log_dirs:
            raise KafkaTimeoutError(f"broker {node_id} unreachable")
        return self.log_dirs.get(node_id, [])

    def list_topics(self):
        return {
            name: (len(parts), len(parts[0].replicas) if parts else 0)
            for name, parts in self.topics.items()
        }

    def describe_topic_partitions(self, topic):
        if topic in self.failing_describe:
            raise KafkaError(f"describe failed for {topic}")
        return list(self.topics.get(topic, []))

    def topic_configs(self, topic):
        if topic in self.failing_configs:
            raise KafkaError(f"configs failed for {topic}")
        return dict(self.configs.get(topic, {}))

    def partition_end_offsets(self, topic, partition_count):
        return dict(self.end_offsets.get(topic, {}))

    def list_consumer_groups(self):
        return list(self.groups)

    def describe_consumer_group(self, group):
        if group in self.failing_groups:
            raise KafkaError(f"describe failed for group {group}")
        return self.groups[group]

    def list_group_offsets(self, group, topic, partition_count=None):
        self.offset_calls.append((group, topic, partition_count))
        if (group, topic) in self.failing_group_offsets:
            raise KafkaError(f"offsets failed for {group}/{topic}")
        return dict(self.group_offsets.get((group, topic), {}))


def partition(number, leader, replicas, isr=None):
    return PartitionState(
        partition=number,
        leader=leader,
        replicas=tuple(replicas),
        isr=tuple(replicas if isr is None else isr),
    )


@pytest.fixture
def three_broker_cluster():
    """
    Three brokers, topic "events" with 4 partitions at RF 3 (partition 2
    under-replicated with ISR of 2), an internal offsets topic and group "svc".
    """
    events = [
        partition(0, 1, [1, 2, 3]),
        partition(1, 2, [2, 3, 1]),
        partition(2, 3, [3, 1, 2], isr=[3, 1]),
        partition(3, 1, [1, 3, 2]),
    ]
    offsets_topic = [partition(0, 2, [2, 3, 1])]
    return FakeInspector(
        brokers=[(1, "b1:9092"), (2, "b2:9092"), (3, "b3:9092")],
        topics={"events": events, "__consumer_offsets": offsets_topic},
        configs={"events": {"retention.ms": "86400000", "cleanup.policy": "delete"}},
        end_offsets={"events": {0: 120, 1: 60, 2: 80, 3: 5}, "__consumer_offsets": {0: 40}},
        groups={
            "svc": GroupDescription(group="svc", state="Stable", members=2, topics=("events",)),
            "idle": GroupDescription(group="idle", state="Empty", members=0, topics=()),
        },
        group_offsets={("svc", "events"): {3: 0, 1: 50, 0: 100, 2: 75}},
        versions={1: "Kafka 3.6", 2: "Kafka 3.6"},
    )
