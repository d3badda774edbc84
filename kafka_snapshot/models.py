"""
Value types produced by one snapshot run.

Everything here is built once per run and not mutated afterwards; the
``to_dict`` methods give the JSON layout written by the report emitters.
"""
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .formatting import format_bytes


def utc_timestamp() -> str:
    """
    Current time as an RFC 3339 string in UTC, e.g. "2024-05-01T12:00:00Z".
    """
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------- Cluster client values ----------

@dataclass(frozen=True)
class PartitionState:
    partition: int
    leader: int
    replicas: Tuple[int, ...]
    isr: Tuple[int, ...]

    @property
    def under_replicated(self) -> bool:
        return len(self.isr) < len(self.replicas)


@dataclass(frozen=True)
class GroupDescription:
    group: str
    state: str
    members: int
    topics: Tuple[str, ...]


# ---------- Snapshot entities ----------

@dataclass(frozen=True)
class BrokerInfo:
    id: int
    address: str
    version: str = "Unknown"
    partitions: int = 0
    leaders: int = 0
    under_replicated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "version": self.version,
            "partitions": self.partitions,
            "leaders": self.leaders,
            "under_replicated_partitions": self.under_replicated,
        }


@dataclass(frozen=True)
class TopicInfo:
    name: str
    partitions: int
    replication_factor: int
    total_messages: int = 0
    configs: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "partitions": self.partitions,
            "replication_factor": self.replication_factor,
            "total_messages": self.total_messages,
        }
        if self.configs:
            data["configs"] = dict(sorted(self.configs.items()))
        return data


@dataclass(frozen=True)
class ConsumerGroupInfo:
    name: str
    state: str = ""
    members: int = 0
    topics: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "topics": list(self.topics),
            "members": self.members,
            "state": self.state,
        }


@dataclass(frozen=True)
class ClusterSnapshot:
    """
    Root artifact of a snapshot run; every emitter reads from this.

    Topics and consumer groups are sorted by name. ``total_messages`` is the
    sum of per-partition high-water marks and is not transactionally
    consistent with the replica view, which was read at a different instant.
    """
    timestamp: str
    broker_addresses: Tuple[str, ...]
    brokers: Tuple[BrokerInfo, ...]
    topics: Tuple[TopicInfo, ...]
    consumer_groups: Tuple[ConsumerGroupInfo, ...]
    total_under_replicated: int = 0

    @property
    def total_topics(self) -> int:
        return len(self.topics)

    @property
    def total_consumer_groups(self) -> int:
        return len(self.consumer_groups)

    @property
    def total_partitions(self) -> int:
        return sum(t.partitions for t in self.topics)

    @property
    def total_messages(self) -> int:
        return sum(t.total_messages for t in self.topics)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "broker_addresses": list(self.broker_addresses),
            "brokers": [b.to_dict() for b in self.brokers],
            "topics": [t.to_dict() for t in self.topics],
            "consumer_groups": [g.to_dict() for g in self.consumer_groups],
            "total_topics": self.total_topics,
            "total_consumer_groups": self.total_consumer_groups,
            "total_partitions": self.total_partitions,
            "total_messages": self.total_messages,
            "total_under_replicated_partitions": self.total_under_replicated,
        }


# ---------- Topic sizes ----------

@dataclass(frozen=True)
class TopicSize:
    """
    ``total_size`` counts every replica (a 3-replica partition counts three
    times); ``partitions`` is the number of distinct partition numbers seen.
    """
    topic: str
    total_size: int
    partitions: int

    @property
    def total_size_human(self) -> str:
        return format_bytes(self.total_size)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "total_size_bytes": self.total_size,
            "total_size_human": self.total_size_human,
            "partitions": self.partitions,
        }


@dataclass(frozen=True)
class TopicSizesReport:
    timestamp: str
    cluster: str
    topics: Tuple[TopicSize, ...]
    total_size: int
    total_partitions: int

    @property
    def total_topics(self) -> int:
        return len(self.topics)

    @property
    def total_size_human(self) -> str:
        return format_bytes(self.total_size)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "cluster": self.cluster,
            "topics": [t.to_dict() for t in self.topics],
            "total_size_bytes": self.total_size,
            "total_size_human": self.total_size_human,
            "total_topics": self.total_topics,
            "total_partitions": self.total_partitions,
        }


# ---------- Consumer offsets ----------

@dataclass(frozen=True)
class PartitionOffset:
    partition: int
    offset: int

    def to_dict(self) -> Dict[str, int]:
        return {"partition": self.partition, "offset": self.offset}


@dataclass(frozen=True)
class ConsumerGroupOffsets:
    """
    Committed offsets of one group; each topic's list is sorted by partition.
    """
    group: str
    topics: Dict[str, List[PartitionOffset]]
    captured_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group": self.group,
            "topics": {
                topic: [p.to_dict() for p in partitions]
                for topic, partitions in sorted(self.topics.items())
            },
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsumerGroupOffsets":
        topics = {
            topic: sorted(
                (PartitionOffset(int(p["partition"]), int(p["offset"])) for p in partitions),
                key=lambda p: p.partition,
            )
            for topic, partitions in (data.get("topics") or {}).items()
        }
        return cls(group=data["group"], topics=topics, captured_at=data.get("captured_at", ""))


@dataclass(frozen=True)
class ConsumerOffsetsBackup:
    timestamp: str
    cluster: str
    consumer_groups: Tuple[ConsumerGroupOffsets, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "cluster": self.cluster,
            "consumer_groups": [g.to_dict() for g in self.consumer_groups],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsumerOffsetsBackup":
        return cls(
            timestamp=data.get("timestamp", ""),
            cluster=data.get("cluster", ""),
            consumer_groups=tuple(
                ConsumerGroupOffsets.from_dict(g) for g in data.get("consumer_groups") or []
            ),
        )
