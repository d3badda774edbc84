"""
Codec for the "<topic>-<partition>" identifiers found in log directory names
and in the JSON printed by kafka-log-dirs.

Kafka names a partition directory by joining the topic and the partition
number with a hyphen. Topic names may contain hyphens and digits themselves,
so decoding always splits at the LAST hyphen: the trailing digit run is the
partition number and everything before it is the topic.

Known ambiguity: a topic whose own name ends in "-<digits>" (for example
"events-5") cannot be told apart from a shorter topic by text alone. The
split at the last hyphen matches what the broker writes for real partitions,
so "events-5-3" decodes as topic "events-5", partition 3. Any topic matching
``.*-\\d+$`` sits on that boundary.
"""
import re
from typing import Tuple

from .errors import PartitionIdError

# Greedy topic group pins the split to the last hyphen.
_PARTITION_ID_RE = re.compile(r"^(?P<topic>.+)-(?P<partition>0|[1-9]\d*)$")


def format_partition_id(topic: str, partition: int) -> str:
    if not topic:
        raise PartitionIdError("topic name must not be empty")
    if partition < 0:
        raise PartitionIdError(f"partition must be non-negative, got {partition}")
    return f"{topic}-{partition}"


def parse_partition_id(value: str) -> Tuple[str, int]:
    """
    Split "<topic>-<partition>" into (topic, partition).

    Raises PartitionIdError when there is no "-<digits>" suffix, when the
    topic part is empty, or when the partition number has a leading zero.
    """
    match = _PARTITION_ID_RE.match(value or "")
    if match is None:
        raise PartitionIdError(f"cannot parse partition identifier: {value!r}")
    return match.group("topic"), int(match.group("partition"))
