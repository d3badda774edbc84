"""
Command line entry point: kafka-snapshot {snapshot,topic-sizes,restore-script}.
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from kafka.errors import KafkaError

from . import __version__
from .config import ConnectionSettings
from .errors import SnapshotError
from .inspector import KafkaInspector
from .log_dirs_cli import get_topic_sizes_via_cli
from .offsets import (
    load_offsets_backup,
    save_offsets_backup,
    snapshot_consumer_offsets,
    write_restore_script,
)
from .reports import write_dot_graph, write_html_report, write_recreate_script, write_snapshot_json
from .snapshot import build_cluster_snapshot, log_summary
from .topic_sizes import get_topic_sizes, print_topic_sizes, save_topic_sizes_json

logger = logging.getLogger("kafka_snapshot")


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _add_connection_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--brokers", default="localhost:9092", help="Kafka broker addresses (comma-separated)")
    ap.add_argument("--client-id", default="kafka-snapshot")
    ap.add_argument("--security-protocol", default="", help="SASL_SSL, SASL_PLAINTEXT, SSL, or empty for PLAINTEXT")
    ap.add_argument("--sasl-mechanism", default="PLAIN", help="PLAIN, SCRAM-SHA-256, SCRAM-SHA-512")
    ap.add_argument("--sasl-username", default=None)
    ap.add_argument("--sasl-password", default=None)
    ap.add_argument("--tls-ca-cert", default=None, help="Path to CA certificate file")
    ap.add_argument("--tls-client-cert", default=None, help="Path to client certificate file (mTLS)")
    ap.add_argument("--tls-client-key", default=None, help="Path to client key file (mTLS)")
    ap.add_argument("--tls-skip-verify", action="store_true", help="Skip TLS hostname verification (insecure)")


def settings_from_args(args: argparse.Namespace) -> ConnectionSettings:
    return ConnectionSettings(
        bootstrap_servers=args.brokers,
        client_id=args.client_id,
        security_protocol=args.security_protocol or None,
        sasl_mechanism=args.sasl_mechanism,
        sasl_username=args.sasl_username,
        sasl_password=args.sasl_password,
        tls_ca_cert=args.tls_ca_cert,
        tls_client_cert=args.tls_client_cert,
        tls_client_key=args.tls_client_key,
        tls_skip_verify=args.tls_skip_verify,
    ).validate()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="kafka-snapshot", description="Kafka cluster diagnostic snapshot")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    snap = sub.add_parser("snapshot", help="Snapshot brokers, topics and consumer groups")
    _add_connection_args(snap)
    snap.add_argument("--output", default="kafka-cluster-info.json", help="Output JSON file")
    snap.add_argument("--html", default="kafka-cluster-report.html", help="Output HTML report")
    snap.add_argument("--dot", default="", help="Output DOT file for Graphviz (optional)")
    snap.add_argument("--recreate-script", default="", help="Topic recreation script (optional)")
    snap.add_argument("--save-offsets", default="", help="Save consumer group offsets to JSON (optional)")
    snap.add_argument("--restore-offsets-script", default="", help="Offset restore script (optional)")

    sizes = sub.add_parser("topic-sizes", help="Report topic storage size across brokers")
    _add_connection_args(sizes)
    sizes.add_argument("--topics", default="", help="Only these topics (comma-separated)")
    sizes.add_argument("--use-cli", action="store_true", help="Collect through kafka-log-dirs instead of the admin API")
    sizes.add_argument("--json", default="", help="Also save the report as JSON to this file")

    restore = sub.add_parser("restore-script", help="Restore script from a saved offsets file")
    restore.add_argument("--from-offsets", required=True, help="Offsets JSON written by --save-offsets")
    restore.add_argument("--output", default="restore-offsets.sh")
    restore.add_argument("--target", default="localhost:9092", help="Default target bootstrap servers")
    return ap


def run_snapshot(args: argparse.Namespace) -> None:
    settings = settings_from_args(args)
    logger.info(f"Connecting to Kafka brokers: {settings.describe()}")

    with KafkaInspector(settings) as inspector:
        snapshot = build_cluster_snapshot(inspector, settings.bootstrap_servers)

        write_snapshot_json(snapshot, args.output)
        write_html_report(snapshot, args.html)
        if args.dot:
            write_dot_graph(snapshot, args.dot)
        if args.recreate_script:
            write_recreate_script(snapshot, args.recreate_script)

        if args.save_offsets or args.restore_offsets_script:
            logger.info("Fetching consumer group offsets...")
            backup = snapshot_consumer_offsets(
                inspector,
                snapshot.consumer_groups,
                settings.bootstrap_servers[0],
                {t.name: t.partitions for t in snapshot.topics},
            )
            if args.save_offsets:
                save_offsets_backup(backup, args.save_offsets)
            if args.restore_offsets_script:
                write_restore_script(backup, args.restore_offsets_script)

    logger.info("Done!")
    log_summary(snapshot)


def run_topic_sizes(args: argparse.Namespace) -> None:
    settings = settings_from_args(args)
    topic_filter = [t.strip() for t in args.topics.split(",") if t.strip()] or None

    if args.use_cli:
        report = get_topic_sizes_via_cli(settings, topic_filter)
    else:
        with KafkaInspector(settings) as inspector:
            report = get_topic_sizes(inspector, topic_filter)

    print_topic_sizes(report)
    if args.json:
        save_topic_sizes_json(report, args.json)


def run_restore_script(args: argparse.Namespace) -> None:
    backup = load_offsets_backup(args.from_offsets)
    write_restore_script(backup, args.output, args.target)


COMMANDS = {
    "snapshot": run_snapshot,
    "topic-sizes": run_topic_sizes,
    "restore-script": run_restore_script,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    try:
        COMMANDS[args.command](args)
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        return 130
    except (SnapshotError, KafkaError, OSError, json.JSONDecodeError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
