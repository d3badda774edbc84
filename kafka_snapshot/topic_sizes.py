"""
Topic storage footprint: collection from the brokers' log directories and
reconciliation into a TopicSizesReport.

Both collection paths (the DescribeLogDirs request sent to each broker here,
and the kafka-log-dirs tool in ``log_dirs_cli``) feed the same
SizeAccumulator, so totals and sorting are computed in one place.
"""
import json
import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Set

from kafka.errors import KafkaError

from .errors import NoTopicSizeDataError
from .formatting import format_number
from .inspector import KafkaInspector
from .models import TopicSize, TopicSizesReport, utc_timestamp

logger = logging.getLogger(__name__)


class PartitionSize(NamedTuple):
    """One replica's size as reported by one broker log directory."""
    topic: str
    partition: int
    size: int


class SizeAccumulator:
    """
    Sums replica sizes per topic and tracks the distinct partitions seen.
    """

    def __init__(self, topic_filter: Optional[Iterable[str]] = None):
        self._filter: Optional[Set[str]] = set(topic_filter) if topic_filter else None
        self._sizes: Dict[str, int] = {}
        self._partitions: Dict[str, Set[int]] = {}

    def wants(self, topic: str) -> bool:
        return self._filter is None or topic in self._filter

    def add(self, record: PartitionSize) -> None:
        if not self.wants(record.topic):
            return
        self._sizes[record.topic] = self._sizes.get(record.topic, 0) + record.size
        self._partitions.setdefault(record.topic, set()).add(record.partition)

    def extend(self, records: Iterable[PartitionSize]) -> None:
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self._sizes)

    def topic_sizes(self) -> List[TopicSize]:
        return [
            TopicSize(topic=topic, total_size=size, partitions=len(self._partitions[topic]))
            for topic, size in self._sizes.items()
        ]


def reconcile(accumulator: SizeAccumulator, cluster: str) -> TopicSizesReport:
    """
    Build the report: topics sorted by total size, largest first (stable on
    ties), TotalSize and TotalPartitions summed from the topic rows.

    Raises NoTopicSizeDataError when nothing was collected, since an empty
    report cannot be told apart from a total collection failure.
    """
    if not len(accumulator):
        raise NoTopicSizeDataError()

    topics = sorted(accumulator.topic_sizes(), key=lambda t: t.total_size, reverse=True)
    return TopicSizesReport(
        timestamp=utc_timestamp(),
        cluster=cluster,
        topics=tuple(topics),
        total_size=sum(t.total_size for t in topics),
        total_partitions=sum(t.partitions for t in topics),
    )


def get_topic_sizes(
    inspector: KafkaInspector,
    topic_filter: Optional[Iterable[str]] = None,
) -> TopicSizesReport:
    """
    Query every broker's log directories and aggregate per-topic sizes.

    A broker that errors, is unreachable or reports no log directories is
    logged and skipped; the report covers whatever the other brokers returned.
    """
    logger.info("Querying brokers for log directory information...")
    brokers = inspector.list_brokers()
    logger.info(f"Found {len(brokers)} brokers")

    accumulator = SizeAccumulator(topic_filter)
    for node_id, address in brokers:
        logger.info(f"Querying broker {node_id} at {address}...")
        try:
            log_dirs = inspector.describe_log_dirs(node_id)
        except (KafkaError, OSError) as e:
            logger.warning(f"Error querying log dirs from broker {node_id} at {address}: {e}")
            continue

        if not log_dirs:
            logger.warning(f"No log directories returned from broker {node_id}")
            continue

        for error_code, log_dir, topics in log_dirs:
            if error_code:
                logger.warning(f"Log directory error on broker {node_id} ({log_dir}): error_code={error_code}")
                continue
            for topic, partitions in topics:
                accumulator.extend(
                    PartitionSize(topic, int(p[0]), int(p[1])) for p in partitions
                )

    report = reconcile(accumulator, ",".join(inspector.bootstrap_servers))
    logger.info(f"Successfully retrieved size information for {report.total_topics} topics")
    return report


def save_topic_sizes_json(report: TopicSizesReport, filename: str) -> None:
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
    logger.info(f"Saved topic sizes report to {filename}")


def render_topic_sizes_table(report: TopicSizesReport) -> str:
    """
    Console table: TOPIC / PARTITIONS / TOTAL SIZE / SIZE (BYTES) plus a summary.
    """
    rule = "=" * 80
    headers = ("TOPIC", "PARTITIONS", "TOTAL SIZE", "SIZE (BYTES)")
    rows = [
        (t.topic, str(t.partitions), t.total_size_human, format_number(t.total_size))
        for t in report.topics
    ]
    widths = [max(len(h), 40 if i == 0 else 10) for i, h in enumerate(headers)]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(cells) -> str:
        return "   ".join(cell.ljust(w) for cell, w in zip(cells, widths)).rstrip()

    out = [
        "",
        rule,
        "Kafka Topic Sizes Report",
        f"Generated: {report.timestamp}",
        f"Cluster: {report.cluster}",
        rule,
        "",
        line(headers),
        line(["-" * w for w in widths]),
    ]
    out.extend(line(row) for row in rows)
    out += [
        "",
        rule,
        "Summary:",
        f"  Total Topics: {report.total_topics}",
        f"  Total Partitions: {report.total_partitions}",
        f"  Total Size: {report.total_size_human} ({format_number(report.total_size)} bytes)",
        rule,
        "",
    ]
    return "\n".join(out)


def print_topic_sizes(report: TopicSizesReport) -> None:
    print(render_topic_sizes_table(report))
