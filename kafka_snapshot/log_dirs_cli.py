"""
Fallback size collection through the kafka-log-dirs tool shipped with Kafka.

Used where per-broker DescribeLogDirs requests cannot be sent directly (for
example KRaft-mode clusters reached through a proxy). The tool prints a few
status lines followed by one JSON line; partitions in that JSON are named
"<topic>-<partition>" and go through the identifier codec.
"""
import contextlib
import json
import logging
import os
import shutil
import subprocess
import tempfile
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .config import ConnectionSettings
from .errors import LogDirsToolError, PartitionIdError
from .identifiers import parse_partition_id
from .models import TopicSizesReport
from .topic_sizes import PartitionSize, SizeAccumulator, reconcile

logger = logging.getLogger(__name__)

TOOL_NAMES = ("kafka-log-dirs.sh", "kafka-log-dirs")


def _candidate_dirs() -> List[str]:
    home = os.path.expanduser("~")
    dirs = [
        "/usr/local/kafka/bin",
        "/opt/kafka/bin",
        "/usr/local/bin",
        "/opt/homebrew/bin",
        os.path.join(home, "kafka", "bin"),
    ]
    kafka_home = os.environ.get("KAFKA_HOME")
    if kafka_home:
        dirs.insert(0, os.path.join(kafka_home, "bin"))
    return dirs


def find_log_dirs_tool() -> str:
    """
    Locate kafka-log-dirs on PATH, then in $KAFKA_HOME/bin and common install dirs.
    """
    for name in TOOL_NAMES:
        path = shutil.which(name)
        if path:
            return path
    for directory in _candidate_dirs():
        for name in TOOL_NAMES:
            path = os.path.join(directory, name)
            if os.path.isfile(path):
                return path
    raise LogDirsToolError(
        "kafka-log-dirs.sh not found in PATH or common locations; "
        "please ensure the Kafka bin directory is in your PATH"
    )


@contextlib.contextmanager
def command_config_file(settings: ConnectionSettings) -> Iterator[Optional[str]]:
    """
    Write the auth properties to a temporary file for --command-config and
    remove it on exit, whatever happened in between. Yields None when the
    connection needs no authentication.
    """
    lines = settings.command_config_lines()
    if not lines:
        yield None
        return

    fd, path = tempfile.mkstemp(prefix="kafka-config-", suffix=".properties")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass


def extract_json_line(output: str) -> str:
    """
    Return the first line of the tool's output that starts with "{".
    """
    for line in output.splitlines():
        if line.strip().startswith("{"):
            return line.strip()
    raise LogDirsToolError(f"no JSON found in kafka-log-dirs output: {output[:500]}")


def partition_sizes_from_response(response: Dict[str, Any]) -> Iterator[PartitionSize]:
    """
    Yield one PartitionSize per replica in a decoded kafka-log-dirs response.

    Log dirs reporting an error and identifiers that do not decode are
    logged and skipped.
    """
    for broker in response.get("brokers") or []:
        broker_id = broker.get("broker")
        for log_dir in broker.get("logDirs") or []:
            if log_dir.get("error"):
                logger.warning(
                    f"Error in log dir {log_dir.get('logDir')} on broker {broker_id}: {log_dir['error']}"
                )
                continue
            for partition in log_dir.get("partitions") or []:
                try:
                    topic, number = parse_partition_id(partition.get("partition", ""))
                except PartitionIdError as e:
                    logger.warning(f"Skipping log dir entry on broker {broker_id}: {e}")
                    continue
                yield PartitionSize(topic, number, int(partition.get("size", 0)))


def build_command(
    tool: str,
    bootstrap_servers: Sequence[str],
    topic_filter: Optional[Sequence[str]] = None,
    config_path: Optional[str] = None,
) -> List[str]:
    args = [tool, "--bootstrap-server", ",".join(bootstrap_servers), "--describe"]
    if topic_filter:
        args += ["--topic-list", ",".join(topic_filter)]
    if config_path:
        args += ["--command-config", config_path]
    return args


def run_log_dirs_tool(
    settings: ConnectionSettings,
    topic_filter: Optional[Sequence[str]] = None,
    tool: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run kafka-log-dirs --describe and return its decoded JSON response.
    """
    tool = tool or find_log_dirs_tool()
    logger.info(f"Using kafka-log-dirs: {tool}")

    with command_config_file(settings) as config_path:
        cmd = build_command(tool, settings.bootstrap_servers, topic_filter, config_path)
        logger.info(f"Executing: {' '.join(cmd)}")
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise LogDirsToolError(f"could not run {tool}: {e}") from e

    if proc.returncode != 0:
        raise LogDirsToolError(
            f"kafka-log-dirs failed with exit code {proc.returncode}\nStderr: {proc.stderr.strip()}"
        )

    json_line = extract_json_line(proc.stdout + "\n" + proc.stderr)
    try:
        return json.loads(json_line)
    except ValueError as e:
        raise LogDirsToolError(
            f"failed to parse kafka-log-dirs output: {e}\nJSON: {json_line[:500]}"
        ) from e


def get_topic_sizes_via_cli(
    settings: ConnectionSettings,
    topic_filter: Optional[Sequence[str]] = None,
    tool: Optional[str] = None,
) -> TopicSizesReport:
    """
    Same report as topic_sizes.get_topic_sizes, collected through kafka-log-dirs.
    """
    logger.info("Using kafka-log-dirs for KRaft compatibility...")
    response = run_log_dirs_tool(settings, topic_filter, tool)

    accumulator = SizeAccumulator(topic_filter)
    accumulator.extend(partition_sizes_from_response(response))
    return reconcile(accumulator, ",".join(settings.bootstrap_servers))
