"""
Consumer group offset snapshots and the shell script that restores them.
"""
import json
import logging
import os
import shlex
from typing import Dict, Iterable, List, Optional

from kafka.errors import KafkaError

from .inspector import KafkaInspector
from .models import (
    ConsumerGroupInfo,
    ConsumerGroupOffsets,
    ConsumerOffsetsBackup,
    PartitionOffset,
    utc_timestamp,
)

logger = logging.getLogger(__name__)


def snapshot_consumer_offsets(
    inspector: KafkaInspector,
    groups: Iterable[ConsumerGroupInfo],
    cluster: str,
    partition_counts: Optional[Dict[str, int]] = None,
) -> ConsumerOffsetsBackup:
    """
    Capture the committed offset of every partition, per group and topic.

    Groups with no subscribed topics are skipped, as are topics whose offset
    listing fails or comes back empty. A group is kept if any topic succeeded.
    ``partition_counts`` scopes each fetch to one topic; when omitted it is
    read from the topic listing.
    """
    if partition_counts is None:
        try:
            partition_counts = {name: count for name, (count, _rf) in inspector.list_topics().items()}
        except KafkaError as e:
            logger.warning(f"Could not list topics, fetching unscoped group offsets: {e}")
            partition_counts = {}

    captured: List[ConsumerGroupOffsets] = []
    for group in groups:
        if not group.topics:
            continue

        topics: Dict[str, List[PartitionOffset]] = {}
        for topic in group.topics:
            try:
                offsets = inspector.list_group_offsets(group.name, topic, partition_counts.get(topic))
            except KafkaError as e:
                logger.warning(f"Could not fetch offsets for group {group.name}, topic {topic}: {e}")
                continue
            partition_offsets = [
                PartitionOffset(partition=p, offset=o) for p, o in sorted(offsets.items())
            ]
            if partition_offsets:
                topics[topic] = partition_offsets

        if topics:
            captured.append(
                ConsumerGroupOffsets(group=group.name, topics=topics, captured_at=utc_timestamp())
            )

    return ConsumerOffsetsBackup(
        timestamp=utc_timestamp(),
        cluster=cluster,
        consumer_groups=tuple(captured),
    )


def save_offsets_backup(backup: ConsumerOffsetsBackup, filename: str) -> None:
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(backup.to_dict(), f, indent=2)
    logger.info(f"Saved offsets of {len(backup.consumer_groups)} consumer groups to {filename}")


def load_offsets_backup(filename: str) -> ConsumerOffsetsBackup:
    with open(filename, encoding="utf-8") as f:
        return ConsumerOffsetsBackup.from_dict(json.load(f))


_RESTORE_HEADER = """#!/bin/bash
# Consumer Group Offsets Restore Script
# Generated: {timestamp}
# Source Cluster: {cluster}
# Total Consumer Groups: {group_count}
#
# Usage:
#   1. Set BOOTSTRAP_SERVERS to point to your target cluster
#   2. Set COMMAND_CONFIG if authentication is needed, e.g.
#      COMMAND_CONFIG="--command-config client.properties"
#   3. Run: chmod +x {script} && ./{script}
#

# Target cluster configuration (override through the environment)
BOOTSTRAP_SERVERS="${{BOOTSTRAP_SERVERS:-{target}}}"
COMMAND_CONFIG="${{COMMAND_CONFIG:-}}"

# Kafka consumer groups command (adjust path if needed)
KAFKA_CONSUMER_GROUPS="${{KAFKA_CONSUMER_GROUPS:-kafka-consumer-groups.sh}}"

# Staged offsets file of the block in progress; removed on any exit
OFFSETS_FILE=""
cleanup() {{
  if [ -n "$OFFSETS_FILE" ]; then
    rm -f "$OFFSETS_FILE"
  fi
}}
trap cleanup EXIT

echo "========================================"
echo "Restoring offsets for {group_count} consumer groups"
echo "Target: $BOOTSTRAP_SERVERS"
echo "========================================"
echo ""

RESTORED=0
FAILED=0

"""

_RESTORE_FOOTER = """echo "========================================"
echo "Offset Restore Summary:"
echo "  Successfully restored: $RESTORED topics"
echo "  Failed: $FAILED topics"
echo "========================================"
echo ""
echo "Note: Verify offsets were restored correctly:"
echo "  $KAFKA_CONSUMER_GROUPS --bootstrap-server \\"$BOOTSTRAP_SERVERS\\" $COMMAND_CONFIG --group <group-name> --describe"

if [ "$FAILED" -gt 0 ]; then
  exit 1
fi
"""


def restore_block(group: str, topic: str, partitions: List[PartitionOffset]) -> str:
    """
    Commands restoring one group's offsets on one topic.

    The offsets file is staged with mktemp and removed right after the reset
    attempt on both the success and the failure branch.
    """
    qgroup, qtopic = shlex.quote(group), shlex.quote(topic)
    lines = [
        f'echo "  Topic:" {qtopic} "({len(partitions)} partitions)"',
        'OFFSETS_FILE="$(mktemp "${TMPDIR:-/tmp}/offsets.XXXXXX")"',
        "cat > \"$OFFSETS_FILE\" << 'OFFSET_EOF'",
    ]
    lines += [f"{topic},{p.partition},{p.offset}" for p in partitions]
    lines += [
        "OFFSET_EOF",
        "",
        'if $KAFKA_CONSUMER_GROUPS --bootstrap-server "$BOOTSTRAP_SERVERS" $COMMAND_CONFIG \\',
        f"  --group {qgroup} \\",
        f"  --topic {qtopic} \\",
        "  --reset-offsets \\",
        '  --from-file "$OFFSETS_FILE" \\',
        "  --execute; then",
        f'  echo "    ✓ Restored {len(partitions)} partitions"',
        "  RESTORED=$((RESTORED + 1))",
        "else",
        '  echo "    ✗ Failed to restore offsets"',
        "  FAILED=$((FAILED + 1))",
        "fi",
        'rm -f "$OFFSETS_FILE"',
        'OFFSETS_FILE=""',
        "",
    ]
    return "\n".join(lines) + "\n"


def render_restore_script(
    backup: ConsumerOffsetsBackup,
    script_name: str = "restore-offsets.sh",
    target_bootstrap: str = "localhost:9092",
) -> str:
    """
    Pure function of the backup: the same input always renders the same text.
    """
    total = len(backup.consumer_groups)
    parts = [
        _RESTORE_HEADER.format(
            timestamp=backup.timestamp,
            cluster=backup.cluster,
            group_count=total,
            script=script_name,
            target=target_bootstrap,
        )
    ]
    for idx, group in enumerate(backup.consumer_groups, start=1):
        parts.append(f"# Consumer Group {idx}/{total}: {group.group}\n")
        parts.append(
            f'echo "[{idx}/{total}] Restoring offsets for consumer group:" {shlex.quote(group.group)}\n'
        )
        for topic in sorted(group.topics):
            parts.append(restore_block(group.group, topic, group.topics[topic]))
        parts.append("\n")
    parts.append(_RESTORE_FOOTER)
    return "".join(parts)


def write_restore_script(
    backup: ConsumerOffsetsBackup,
    filename: str,
    target_bootstrap: str = "localhost:9092",
) -> None:
    script = render_restore_script(backup, os.path.basename(filename), target_bootstrap)
    with open(filename, "w", encoding="utf-8") as f:
        f.write(script)
    os.chmod(filename, 0o755)
    logger.info(f"Wrote offset restore script for {len(backup.consumer_groups)} groups to {filename}")
