import sys
import logging
import json
from typing import Optional

from fastmcp import FastMCP

from kafka_snapshot.config import ConnectionSettings
from kafka_snapshot.errors import SnapshotError
from kafka_snapshot.inspector import KafkaInspector
from kafka_snapshot.log_dirs_cli import get_topic_sizes_via_cli
from kafka_snapshot.offsets import render_restore_script, snapshot_consumer_offsets
from kafka_snapshot.models import ConsumerOffsetsBackup
from kafka_snapshot.snapshot import build_cluster_snapshot, collect_consumer_groups
from kafka_snapshot.topic_sizes import get_topic_sizes


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# Initialize MCP server
mcp = FastMCP("Kafka Snapshot MCP Server")

# Global Kafka inspector instance
kafka_inspector: Optional[KafkaInspector] = None
connection_settings: Optional[ConnectionSettings] = None

NOT_INITIALIZED = {"error": "Kafka connection not initialized. Please call initialize_kafka_connection first."}


def _split(value: str) -> Optional[list]:
    items = [s.strip() for s in value.split(",") if s.strip()]
    return items or None

# --- MCP Tools ---

@mcp.tool
def initialize_kafka_connection(
    bootstrap_servers: str,
    client_id: str = "kafka-snapshot-mcp",
    request_timeout_ms: int = 45000,
    api_version_auto_timeout_ms: int = 8000,
    security_protocol: str = "",
    sasl_mechanism: str = "PLAIN",
    sasl_username: str = "",
    sasl_password: str = "",
    tls_ca_cert: str = "",
    tls_client_cert: str = "",
    tls_client_key: str = "",
    tls_skip_verify: bool = False,
) -> str:
    """
    Initialize connection to Kafka cluster.

    Args:
        bootstrap_servers: Comma-separated list of Kafka broker addresses (e.g., "localhost:9092")
        client_id: Client identifier for this connection
        request_timeout_ms: Request timeout in milliseconds
        api_version_auto_timeout_ms: API version auto-detection timeout in milliseconds
        security_protocol: SASL_SSL, SASL_PLAINTEXT, SSL, or empty for PLAINTEXT
        sasl_mechanism: PLAIN, SCRAM-SHA-256 or SCRAM-SHA-512
        sasl_username: SASL username (when SASL is used)
        sasl_password: SASL password (when SASL is used)
        tls_ca_cert: Path to CA certificate file (SSL and SASL_SSL)
        tls_client_cert: Path to client certificate file (mTLS)
        tls_client_key: Path to client key file (mTLS)
        tls_skip_verify: Skip TLS certificate and hostname verification (insecure)

    Returns:
        Status message indicating success or failure
    """
    global kafka_inspector, connection_settings
    try:
        settings = ConnectionSettings(
            bootstrap_servers=bootstrap_servers,
            client_id=client_id,
            request_timeout_ms=request_timeout_ms,
            api_version_auto_timeout_ms=api_version_auto_timeout_ms,
            security_protocol=security_protocol or None,
            sasl_mechanism=sasl_mechanism,
            sasl_username=sasl_username or None,
            sasl_password=sasl_password or None,
            tls_ca_cert=tls_ca_cert or None,
            tls_client_cert=tls_client_cert or None,
            tls_client_key=tls_client_key or None,
            tls_skip_verify=tls_skip_verify,
        )
        inspector = KafkaInspector(settings)
        if kafka_inspector is not None:
            kafka_inspector.close()
        kafka_inspector, connection_settings = inspector, settings
        return f"Successfully connected to Kafka cluster at {bootstrap_servers}"
    except (SnapshotError, OSError) as e:
        return f"Failed to connect to Kafka cluster: {str(e)}"


@mcp.tool
def cluster_snapshot() -> str:
    """
    Take a full snapshot of brokers, topics and consumer groups.

    Returns:
        JSON string with broker rollups (partitions, leaders, under-replicated),
        topics sorted by name, consumer groups and cluster-wide totals
    """
    if kafka_inspector is None:
        return json.dumps(NOT_INITIALIZED)

    try:
        snapshot = build_cluster_snapshot(kafka_inspector, connection_settings.bootstrap_servers)
        return json.dumps(snapshot.to_dict(), indent=2)
    except Exception as e:
        logger.error(f"[CLUSTER_SNAPSHOT] failed: {e}")
        return json.dumps({"error": f"Failed to take cluster snapshot: {str(e)}"})


@mcp.tool
def topic_sizes(topics: str = "", use_cli: bool = False) -> str:
    """
    Get on-disk size per topic across all brokers, largest first.

    Args:
        topics: Optional comma-separated topic names to restrict the report to
        use_cli: Collect through kafka-log-dirs instead of per-broker admin requests

    Returns:
        JSON string with per-topic replica-inclusive sizes and distinct partition counts
    """
    if kafka_inspector is None:
        return json.dumps(NOT_INITIALIZED)

    try:
        if use_cli:
            report = get_topic_sizes_via_cli(connection_settings, _split(topics))
        else:
            report = get_topic_sizes(kafka_inspector, _split(topics))
        return json.dumps(report.to_dict(), indent=2)
    except Exception as e:
        logger.error(f"[TOPIC_SIZES] failed: {e}")
        return json.dumps({"error": f"Failed to get topic sizes: {str(e)}"})


@mcp.tool
def consumer_offsets_snapshot() -> str:
    """
    Capture committed offsets of every consumer group with assigned topics.

    Returns:
        JSON string of the offsets backup; pass it to offsets_restore_script to
        get a shell script that resets the groups to these offsets
    """
    if kafka_inspector is None:
        return json.dumps(NOT_INITIALIZED)

    try:
        groups = collect_consumer_groups(kafka_inspector)
        backup = snapshot_consumer_offsets(
            kafka_inspector, groups, connection_settings.bootstrap_servers[0]
        )
        return json.dumps(backup.to_dict(), indent=2)
    except Exception as e:
        logger.error(f"[CONSUMER_OFFSETS_SNAPSHOT] failed: {e}")
        return json.dumps({"error": f"Failed to snapshot consumer offsets: {str(e)}"})


@mcp.tool
def offsets_restore_script(offsets_backup: str, target_bootstrap: str = "localhost:9092") -> str:
    """
    Render the restore script for an offsets backup.

    Args:
        offsets_backup: JSON returned by consumer_offsets_snapshot
        target_bootstrap: Default bootstrap servers written into the script

    Returns:
        JSON string with the script text
    """
    try:
        backup = ConsumerOffsetsBackup.from_dict(json.loads(offsets_backup))
        script = render_restore_script(backup, target_bootstrap=target_bootstrap)
        return json.dumps({"consumer_groups": len(backup.consumer_groups), "script": script})
    except (ValueError, KeyError, TypeError) as e:
        return json.dumps({"error": f"Invalid offsets backup: {str(e)}"})


# --- Main entrypoint ---
def main():
    try:
        logger.info("Starting Kafka Snapshot MCP server...")
        logger.info("Available tools:")
        logger.info("  - initialize_kafka_connection: Connect to Kafka cluster")
        logger.info("  - cluster_snapshot: Brokers, topics, consumer groups and totals")
        logger.info("  - topic_sizes: Storage footprint per topic")
        logger.info("  - consumer_offsets_snapshot: Committed offsets per group")
        logger.info("  - offsets_restore_script: Restore script for an offsets snapshot")

        mcp.run(transport="streamable-http", host="127.0.0.1", port=8080)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {str(e)}")
        sys.exit(1)
    finally:
        if kafka_inspector is not None:
            kafka_inspector.close()


if __name__ == "__main__":
    main()
