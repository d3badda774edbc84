"""
Report emitters: snapshot JSON, HTML report, Graphviz DOT graph and the
topic recreation script. All of them only read a ClusterSnapshot.
"""
import hashlib
import html
import json
import logging
import os
import re
import shlex
from typing import List

from .models import ClusterSnapshot, TopicInfo

logger = logging.getLogger(__name__)

INTERNAL_TOPIC_PREFIX = "__"


def is_internal_topic(name: str) -> bool:
    return name.startswith(INTERNAL_TOPIC_PREFIX)


def count_internal_topics(topics: List[TopicInfo]) -> int:
    return sum(1 for t in topics if is_internal_topic(t.name))


# ---------- JSON ----------

def snapshot_json(snapshot: ClusterSnapshot) -> str:
    return json.dumps(snapshot.to_dict(), indent=2)


def write_snapshot_json(snapshot: ClusterSnapshot, filename: str) -> None:
    with open(filename, "w", encoding="utf-8") as f:
        f.write(snapshot_json(snapshot))
    logger.info(f"Wrote cluster snapshot to {filename}")


# ---------- HTML ----------

_HTML_STYLE = """
        body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #f4f5fb; padding: 20px; }
        .container { max-width: 1400px; margin: 0 auto; background: white; border-radius: 12px; overflow: hidden; }
        .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 40px; text-align: center; }
        .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr)); gap: 20px; padding: 40px; background: #f8f9fa; }
        .stat-card { background: white; padding: 25px; border-radius: 8px; text-align: center; }
        .stat-card.warning { border: 2px solid #f44336; }
        .stat-number { font-size: 3em; font-weight: bold; color: #667eea; }
        .stat-card.warning .stat-number { color: #f44336; }
        .content { padding: 40px; }
        .section-title { font-size: 1.8em; margin-bottom: 20px; border-bottom: 3px solid #667eea; }
        table { width: 100%; border-collapse: collapse; margin-bottom: 40px; }
        th { background: #667eea; color: white; padding: 15px; text-align: left; }
        td { padding: 12px 15px; border-bottom: 1px solid #eee; }
        .name { font-weight: 600; color: #667eea; }
        .badge { display: inline-block; padding: 4px 12px; border-radius: 12px; font-size: 0.85em; font-weight: 600; }
        .badge-success { background: #d4edda; color: #155724; }
        .badge-info { background: #d1ecf1; color: #0c5460; }
        .badge-warning { background: #fff3cd; color: #856404; }
        .details { font-size: 0.9em; color: #666; }
"""


def _stat_card(number: int, label: str, warning: bool = False) -> str:
    css = "stat-card warning" if warning else "stat-card"
    return (
        f'            <div class="{css}"><div class="stat-number">{number}</div>'
        f"<div>{html.escape(label)}</div></div>"
    )


def _table(headers: List[str], rows: List[str]) -> List[str]:
    out = ["            <table>", "                <thead><tr>"]
    out += [f"                    <th>{html.escape(h)}</th>" for h in headers]
    out += ["                </tr></thead>", "                <tbody>"]
    out += rows
    out += ["                </tbody>", "            </table>"]
    return out


def render_html_report(snapshot: ClusterSnapshot) -> str:
    esc = html.escape
    cards = [
        _stat_card(len(snapshot.brokers), "Brokers"),
        _stat_card(snapshot.total_topics, "Topics"),
        _stat_card(snapshot.total_partitions, "Total Partitions"),
        _stat_card(snapshot.total_consumer_groups, "Consumer Groups"),
    ]
    if snapshot.total_under_replicated > 0:
        cards.append(_stat_card(snapshot.total_under_replicated, "Under-Replicated", warning=True))

    broker_rows = []
    for b in snapshot.brokers:
        urp_badge = "badge-warning" if b.under_replicated > 0 else "badge-success"
        broker_rows.append(
            "                    <tr>"
            f'<td><span class="badge badge-info">{b.id}</span></td>'
            f"<td>{esc(b.address)}</td>"
            f'<td><span class="badge badge-success">{esc(b.version)}</span></td>'
            f'<td><span class="badge badge-info">{b.partitions}</span></td>'
            f'<td><span class="badge badge-info">{b.leaders}</span></td>'
            f'<td><span class="badge {urp_badge}">{b.under_replicated}</span></td>'
            "</tr>"
        )

    topic_rows = []
    for t in snapshot.topics:
        if t.configs:
            configs = esc(", ".join(f"{k}={v}" for k, v in sorted(t.configs.items())))
        else:
            configs = "<em>Default</em>"
        topic_rows.append(
            "                    <tr>"
            f'<td class="name">{esc(t.name)}</td>'
            f'<td><span class="badge badge-info">{t.partitions}</span></td>'
            f'<td><span class="badge badge-success">{t.replication_factor}</span></td>'
            f'<td class="details">{configs}</td>'
            "</tr>"
        )

    group_rows = []
    for g in snapshot.consumer_groups:
        topics = esc(", ".join(g.topics)) if g.topics else "<em>None</em>"
        state_badge = "badge-success" if g.state == "Stable" else "badge-warning"
        group_rows.append(
            "                    <tr>"
            f'<td class="name">{esc(g.name)}</td>'
            f'<td><span class="badge {state_badge}">{esc(g.state)}</span></td>'
            f'<td><span class="badge badge-info">{g.members}</span></td>'
            f'<td class="details">{topics}</td>'
            "</tr>"
        )

    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '    <meta charset="UTF-8">',
        "    <title>Kafka Cluster Report</title>",
        f"    <style>{_HTML_STYLE}    </style>",
        "</head>",
        "<body>",
        '    <div class="container">',
        '        <div class="header">',
        "            <h1>Kafka Cluster Analysis</h1>",
        f"            <p>Generated on {esc(snapshot.timestamp)}</p>",
        "        </div>",
        '        <div class="stats">',
        *cards,
        "        </div>",
        '        <div class="content">',
        '            <h2 class="section-title">Kafka Brokers</h2>',
        *_table(["Broker ID", "Address", "Version", "Partitions", "Leaders", "Under-Replicated"], broker_rows),
        '            <h2 class="section-title">Topics Overview</h2>',
        *_table(["Topic Name", "Partitions", "Replication Factor", "Custom Configurations"], topic_rows),
        '            <h2 class="section-title">Consumer Groups</h2>',
        *_table(["Group Name", "State", "Members", "Subscribed Topics"], group_rows),
        "        </div>",
        "    </div>",
        "</body>",
        "</html>",
    ]
    return "\n".join(lines) + "\n"


def write_html_report(snapshot: ClusterSnapshot, filename: str) -> None:
    with open(filename, "w", encoding="utf-8") as f:
        f.write(render_html_report(snapshot))
    logger.info(f"Wrote HTML report to {filename}")


# ---------- DOT ----------

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_]")


def dot_id(prefix: str, name: str) -> str:
    """
    Graphviz node id. Names that needed sanitising get a short digest of the
    original name so that "a-b", "a.b" and "a_b" stay distinct nodes.
    """
    safe = _UNSAFE_ID_CHARS.sub("_", name)
    if safe != name:
        safe += "_" + hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    return f"{prefix}_{safe}"


def _dot_label(name: str) -> str:
    label = name if len(name) <= 30 else name[:27] + "..."
    return label.replace("\\", "\\\\").replace('"', '\\"')


def render_dot_graph(snapshot: ClusterSnapshot) -> str:
    lines = [
        "digraph KafkaCluster {",
        "  rankdir=LR;",
        "  node [shape=box, style=rounded];",
        "  graph [splines=true, overlap=false];",
        "",
        "  // Topics",
        "  subgraph cluster_topics {",
        '    label="Topics";',
        "    style=filled;",
        "    color=lightgrey;",
        '    node [style=filled, fillcolor="#667eea", fontcolor=white];',
    ]
    for t in snapshot.topics:
        lines.append(
            f'    {dot_id("topic", t.name)} [label="{_dot_label(t.name)}\\n({t.partitions} partitions)"];'
        )
    lines += [
        "  }",
        "",
        "  // Consumer Groups",
        "  subgraph cluster_consumers {",
        '    label="Consumer Groups";',
        "    style=filled;",
        "    color=lightblue;",
        '    node [style=filled, fillcolor="#43e97b", fontcolor=white];',
    ]
    for g in snapshot.consumer_groups:
        lines.append(
            f'    {dot_id("consumer", g.name)} '
            f'[label="{_dot_label(g.name)}\\n({g.members} members, {_dot_label(g.state)})"];'
        )
    lines += ["  }", "", "  // Subscriptions"]
    for g in snapshot.consumer_groups:
        for topic in g.topics:
            lines.append(
                f'  {dot_id("topic", topic)} -> {dot_id("consumer", g.name)} [color="#667eea", penwidth=2.0];'
            )
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_dot_graph(snapshot: ClusterSnapshot, filename: str) -> None:
    with open(filename, "w", encoding="utf-8") as f:
        f.write(render_dot_graph(snapshot))
    logger.info(f"Wrote DOT graph to {filename}")


# ---------- Topic recreation script ----------

def _create_block(index: int, topic: TopicInfo) -> str:
    qtopic = shlex.quote(topic.name)
    cmd = [
        f'echo "[{index}] Creating topic:" {qtopic}',
        'if $KAFKA_TOPICS --bootstrap-server "$BOOTSTRAP_SERVERS" $COMMAND_CONFIG \\',
        "  --create \\",
        f"  --topic {qtopic} \\",
        f"  --partitions {topic.partitions} \\",
        f"  --replication-factor {topic.replication_factor}"
        + (" \\" if topic.configs else ""),
    ]
    configs = [f"{k}={v}" for k, v in sorted(topic.configs.items())]
    for j, config in enumerate(configs):
        cmd.append(f"  --config {shlex.quote(config)}" + (" \\" if j < len(configs) - 1 else ""))
    cmd[-1] += "; then"
    cmd += [
        '  echo "  ✓ Created successfully"',
        "  CREATED=$((CREATED + 1))",
        "else",
        '  echo "  ✗ Failed to create (may already exist)"',
        f"  FAILED_TOPICS+=({shlex.quote('  - ' + topic.name)})",
        "  FAILED=$((FAILED + 1))",
        "fi",
        'echo ""',
        "",
    ]
    return f"# Topic {index}: {topic.name}\n" + "\n".join(cmd) + "\n"


def render_recreate_script(snapshot: ClusterSnapshot, script_name: str = "recreate-topics.sh") -> str:
    """
    Script that recreates every non-internal topic with its partition count,
    replication factor and non-default configs.
    """
    internal = count_internal_topics(list(snapshot.topics))
    out = [
        "#!/bin/bash",
        "# Kafka Topic Recreation Script",
        f"# Generated: {snapshot.timestamp}",
        f"# Source Cluster: {', '.join(snapshot.broker_addresses)}",
        f"# Total Topics: {snapshot.total_topics}",
        "#",
        "# Usage:",
        "#   1. Set BOOTSTRAP_SERVERS to point to your target cluster",
        "#   2. Set COMMAND_CONFIG if authentication is needed, e.g.",
        '#      COMMAND_CONFIG="--command-config client.properties"',
        f"#   3. Run: chmod +x {script_name} && ./{script_name}",
        "#",
        "",
        "# Target cluster configuration (override through the environment)",
        'BOOTSTRAP_SERVERS="${BOOTSTRAP_SERVERS:-localhost:9092}"',
        'COMMAND_CONFIG="${COMMAND_CONFIG:-}"',
        "",
        "# Kafka topics command (adjust path if needed)",
        'KAFKA_TOPICS="${KAFKA_TOPICS:-kafka-topics.sh}"',
        "",
        'echo "========================================"',
        'echo "Recreating topics from source cluster"',
        f'echo "Note: Skipping {internal} internal topics (starting with {INTERNAL_TOPIC_PREFIX})"',
        'echo "Target: $BOOTSTRAP_SERVERS"',
        'echo "========================================"',
        'echo ""',
        "",
        "CREATED=0",
        "FAILED=0",
        f"INTERNAL_SKIPPED={internal}",
        "FAILED_TOPICS=()",
        "",
    ]
    script = "\n".join(out) + "\n"

    index = 0
    for topic in snapshot.topics:
        if is_internal_topic(topic.name):
            continue
        index += 1
        script += _create_block(index, topic)

    summary = [
        'echo "========================================"',
        'echo "Topic Recreation Summary:"',
        'echo "  Successfully created: $CREATED"',
        'echo "  Failed/Skipped: $FAILED"',
        'echo "  Internal topics skipped: $INTERNAL_SKIPPED"',
        "if [ $FAILED -gt 0 ]; then",
        '  echo ""',
        '  echo "Failed/Skipped Topics:"',
        "  printf '%s\\n' \"${FAILED_TOPICS[@]}\"",
        "fi",
        'echo "========================================"',
        "",
        "# Note: To verify topics were created correctly:",
        '# $KAFKA_TOPICS --bootstrap-server "$BOOTSTRAP_SERVERS" $COMMAND_CONFIG --list',
        '# $KAFKA_TOPICS --bootstrap-server "$BOOTSTRAP_SERVERS" $COMMAND_CONFIG --describe --topic <topic-name>',
    ]
    return script + "\n".join(summary) + "\n"


def write_recreate_script(snapshot: ClusterSnapshot, filename: str) -> None:
    with open(filename, "w", encoding="utf-8") as f:
        f.write(render_recreate_script(snapshot, os.path.basename(filename)))
    os.chmod(filename, 0o755)
    logger.info(f"Wrote topic recreation script to {filename}")
