"""Tests for consumer offset snapshots and restore script synthesis."""

import os
import stat

import pytest

from kafka_snapshot.models import (
    ConsumerGroupInfo,
    ConsumerGroupOffsets,
    ConsumerOffsetsBackup,
    PartitionOffset,
)
from kafka_snapshot.offsets import (
    load_offsets_backup,
    render_restore_script,
    restore_block,
    save_offsets_backup,
    snapshot_consumer_offsets,
    write_restore_script,
)
from tests.conftest import FakeInspector


def _groups(inspector):
    return [
        ConsumerGroupInfo(name=name, state=d.state, members=d.members, topics=d.topics)
        for name, d in sorted(inspector.groups.items())
    ]


@pytest.fixture
def backup():
    return ConsumerOffsetsBackup(
        timestamp="2024-05-01T12:00:00Z",
        cluster="b1:9092",
        consumer_groups=(
            ConsumerGroupOffsets(
                group="svc",
                topics={
                    "events": [PartitionOffset(0, 100), PartitionOffset(1, 50)],
                    "audit": [PartitionOffset(0, 7)],
                },
                captured_at="2024-05-01T12:00:00Z",
            ),
            ConsumerGroupOffsets(
                group="billing worker",
                topics={"invoices": [PartitionOffset(2, 9)]},
                captured_at="2024-05-01T12:00:01Z",
            ),
        ),
    )


class TestSnapshotConsumerOffsets:
    def test_sorted_offsets_for_subscribed_group(self, three_broker_cluster):
        result = snapshot_consumer_offsets(three_broker_cluster, _groups(three_broker_cluster), "b1:9092")

        assert [g.group for g in result.consumer_groups] == ["svc"]
        svc = result.consumer_groups[0]
        assert svc.topics == {
            "events": [
                PartitionOffset(0, 100),
                PartitionOffset(1, 50),
                PartitionOffset(2, 75),
                PartitionOffset(3, 0),
            ]
        }
        assert result.cluster == "b1:9092"

    def test_group_without_topics_is_not_queried(self, three_broker_cluster):
        snapshot_consumer_offsets(three_broker_cluster, _groups(three_broker_cluster), "b1:9092")
        assert all(call[0] != "idle" for call in three_broker_cluster.offset_calls)

    def test_failed_topic_skipped_group_kept(self, caplog):
        inspector = FakeInspector(
            group_offsets={("svc", "a"): {0: 1}},
        )
        inspector.failing_group_offsets.add(("svc", "b"))
        groups = [ConsumerGroupInfo(name="svc", topics=("a", "b"))]

        result = snapshot_consumer_offsets(inspector, groups, "c")

        assert list(result.consumer_groups[0].topics) == ["a"]
        assert "svc" in caplog.text and "topic b" in caplog.text

    def test_group_with_only_empty_topics_excluded(self):
        inspector = FakeInspector(group_offsets={("svc", "a"): {}})
        groups = [ConsumerGroupInfo(name="svc", topics=("a",))]
        assert snapshot_consumer_offsets(inspector, groups, "c").consumer_groups == ()

    def test_repeated_snapshots_match_except_timestamps(self, three_broker_cluster):
        groups = _groups(three_broker_cluster)
        first = snapshot_consumer_offsets(three_broker_cluster, groups, "c").to_dict()
        second = snapshot_consumer_offsets(three_broker_cluster, groups, "c").to_dict()

        for data in (first, second):
            data.pop("timestamp")
            for g in data["consumer_groups"]:
                g.pop("captured_at")
        assert first == second


class TestBackupFile:
    def test_save_and_load(self, backup, tmp_path):
        path = tmp_path / "offsets.json"
        save_offsets_backup(backup, str(path))
        loaded = load_offsets_backup(str(path))

        assert loaded.timestamp == backup.timestamp
        assert [g.group for g in loaded.consumer_groups] == ["svc", "billing worker"]
        assert loaded.consumer_groups[0].topics["events"] == [PartitionOffset(0, 100), PartitionOffset(1, 50)]


class TestRestoreScript:
    def test_pure_function(self, backup):
        assert render_restore_script(backup) == render_restore_script(backup)

    def test_header_and_counters(self, backup):
        script = render_restore_script(backup, target_bootstrap="target:9092")

        assert script.startswith("#!/bin/bash\n")
        assert "# Source Cluster: b1:9092" in script
        assert "# Total Consumer Groups: 2" in script
        assert 'BOOTSTRAP_SERVERS="${BOOTSTRAP_SERVERS:-target:9092}"' in script
        assert "trap cleanup EXIT" in script
        assert "RESTORED=0" in script and "FAILED=0" in script

    def test_topics_in_sorted_order(self, backup):
        script = render_restore_script(backup)
        assert script.index("--topic audit") < script.index("--topic events")

    def test_block_stages_resets_and_always_removes(self):
        block = restore_block("svc", "events", [PartitionOffset(0, 100), PartitionOffset(1, 50)])
        lines = block.splitlines()

        assert "events,0,100" in lines
        assert "events,1,50" in lines
        assert "  --reset-offsets \\" in lines
        assert '  --from-file "$OFFSETS_FILE" \\' in lines
        assert "  RESTORED=$((RESTORED + 1))" in lines
        assert "  FAILED=$((FAILED + 1))" in lines
        # removal comes after the if/else, so it runs on both branches
        assert lines.index('rm -f "$OFFSETS_FILE"') > lines.index("fi")

    def test_group_names_are_shell_quoted(self, backup):
        script = render_restore_script(backup)
        assert "--group 'billing worker'" in script

    def test_write_is_executable(self, backup, tmp_path):
        path = tmp_path / "restore.sh"
        write_restore_script(backup, str(path))

        assert os.stat(path).st_mode & stat.S_IXUSR
        assert "./restore.sh" in path.read_text()


class TestOffsetFetchScope:
    def test_partition_counts_from_topic_listing(self, three_broker_cluster):
        snapshot_consumer_offsets(three_broker_cluster, _groups(three_broker_cluster), "c")
        assert three_broker_cluster.offset_calls == [("svc", "events", 4)]

    def test_explicit_partition_counts(self, three_broker_cluster):
        snapshot_consumer_offsets(three_broker_cluster, _groups(three_broker_cluster), "c", {"events": 7})
        assert three_broker_cluster.offset_calls == [("svc", "events", 7)]

    def test_unknown_topic_is_fetched_unscoped(self):
        inspector = FakeInspector(group_offsets={("svc", "gone"): {0: 3}})
        groups = [ConsumerGroupInfo(name="svc", topics=("gone",))]

        result = snapshot_consumer_offsets(inspector, groups, "c")

        assert inspector.offset_calls == [("svc", "gone", None)]
        assert result.consumer_groups[0].topics == {"gone": [PartitionOffset(0, 3)]}
