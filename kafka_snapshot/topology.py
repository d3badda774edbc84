"""
Per-broker rollup of partition placement, leadership and under-replication.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from kafka.errors import KafkaError

from .inspector import KafkaInspector
from .models import BrokerInfo, PartitionState

logger = logging.getLogger(__name__)


@dataclass
class TopologyRollup:
    """
    Counts keyed by broker id, built fresh for every run.

    ``total_under_replicated`` counts each under-replicated partition once,
    while every replica broker of that partition gets +1 in
    ``under_replicated``, so the per-broker sum is usually larger.
    """
    partitions: Dict[int, int] = field(default_factory=dict)
    leaders: Dict[int, int] = field(default_factory=dict)
    under_replicated: Dict[int, int] = field(default_factory=dict)
    total_under_replicated: int = 0

    def add_partition(self, state: PartitionState) -> None:
        for replica in state.replicas:
            self.partitions[replica] = self.partitions.get(replica, 0) + 1

        # leader -1 means no leader elected
        if state.leader >= 0:
            self.leaders[state.leader] = self.leaders.get(state.leader, 0) + 1

        if state.under_replicated:
            for replica in state.replicas:
                self.under_replicated[replica] = self.under_replicated.get(replica, 0) + 1
            self.total_under_replicated += 1

    def apply(self, broker: BrokerInfo, version: str = "") -> BrokerInfo:
        """
        Return a copy of ``broker`` carrying this rollup's counts.
        """
        return BrokerInfo(
            id=broker.id,
            address=broker.address,
            version=version or broker.version,
            partitions=self.partitions.get(broker.id, 0),
            leaders=self.leaders.get(broker.id, 0),
            under_replicated=self.under_replicated.get(broker.id, 0),
        )


def aggregate_partitions(partitions: Iterable[PartitionState]) -> TopologyRollup:
    rollup = TopologyRollup()
    for state in partitions:
        rollup.add_partition(state)
    return rollup


def aggregate_topology(inspector: KafkaInspector, topics: Iterable[str]) -> TopologyRollup:
    """
    Describe every topic and fold its partitions into one rollup.

    A topic whose describe call fails contributes nothing and is only logged.
    """
    rollup = TopologyRollup()
    for topic in sorted(topics):
        try:
            states = inspector.describe_topic_partitions(topic)
        except KafkaError as e:
            logger.warning(f"Could not describe topic {topic}, skipping it for broker metrics: {e}")
            continue
        for state in states:
            rollup.add_partition(state)
    return rollup


def broker_details(
    inspector: KafkaInspector,
    brokers: Sequence[Tuple[int, str]],
    rollup: TopologyRollup,
) -> List[BrokerInfo]:
    """
    BrokerInfo per broker with rollup counts and a best-effort version.
    """
    details = []
    for node_id, address in brokers:
        version = inspector.broker_version(node_id) or "Unknown"
        details.append(rollup.apply(BrokerInfo(id=node_id, address=address), version))
    return details
