"""Tests for the kafka-log-dirs fallback path."""

import json
import os
import subprocess

import pytest

from kafka_snapshot import log_dirs_cli
from kafka_snapshot.config import ConnectionSettings
from kafka_snapshot.errors import LogDirsToolError, NoTopicSizeDataError
from kafka_snapshot.log_dirs_cli import (
    build_command,
    command_config_file,
    extract_json_line,
    find_log_dirs_tool,
    get_topic_sizes_via_cli,
    partition_sizes_from_response,
)

RESPONSE = {
    "version": 1,
    "brokers": [
        {
            "broker": 1,
            "logDirs": [
                {
                    "logDir": "/data/kafka",
                    "error": None,
                    "partitions": [
                        {"partition": "orders-0", "size": 1000, "offsetLag": 0, "isFuture": False},
                        {"partition": "orders-1", "size": 3000, "offsetLag": 0, "isFuture": False},
                        {"partition": "click-stream-v2-0", "size": 500, "offsetLag": 0, "isFuture": False},
                        {"partition": "garbage-", "size": 999, "offsetLag": 0, "isFuture": False},
                    ],
                }
            ],
        },
        {
            "broker": 2,
            "logDirs": [
                {
                    "logDir": "/data/kafka",
                    "error": None,
                    "partitions": [
                        {"partition": "orders-0", "size": 1000, "offsetLag": 0, "isFuture": False},
                    ],
                },
                {
                    "logDir": "/data/broken",
                    "error": "KafkaStorageException",
                    "partitions": [
                        {"partition": "orders-1", "size": 77777, "offsetLag": 0, "isFuture": False},
                    ],
                },
            ],
        },
    ],
}

TOOL_OUTPUT = (
    "Querying brokers for log directories information\n"
    "Received log directory information from brokers 1,2\n"
    + json.dumps(RESPONSE)
    + "\n"
)


def _sasl_settings():
    return ConnectionSettings(
        bootstrap_servers="b1:9092,b2:9092",
        security_protocol="SASL_SSL",
        sasl_mechanism="SCRAM-SHA-512",
        sasl_username="admin",
        sasl_password="secret",
    )


class TestExtractJsonLine:
    def test_skips_status_lines(self):
        assert json.loads(extract_json_line(TOOL_OUTPUT)) == RESPONSE

    def test_no_json_raises(self):
        with pytest.raises(LogDirsToolError, match="no JSON found"):
            extract_json_line("Querying brokers\nnothing here\n")


class TestPartitionSizesFromResponse:
    def test_decodes_identifiers_and_skips_bad_entries(self, caplog):
        records = list(partition_sizes_from_response(RESPONSE))

        assert ("click-stream-v2", 0, 500) in records
        assert sum(1 for r in records if r.topic == "orders") == 3
        assert all(r.size != 77777 for r in records)
        assert all(r.size != 999 for r in records)
        assert "garbage-" in caplog.text
        assert "/data/broken" in caplog.text


class TestCommandConfigFile:
    def test_none_without_auth(self):
        with command_config_file(ConnectionSettings()) as path:
            assert path is None

    def test_written_and_removed(self):
        with command_config_file(_sasl_settings()) as path:
            assert os.path.exists(path)
            with open(path) as f:
                content = f.read()
            assert "security.protocol=SASL_SSL" in content
            assert "sasl.mechanism=SCRAM-SHA-512" in content
            assert "ScramLoginModule" in content
        assert not os.path.exists(path)

    def test_removed_on_error(self):
        seen = {}
        with pytest.raises(RuntimeError):
            with command_config_file(_sasl_settings()) as path:
                seen["path"] = path
                raise RuntimeError("tool crashed")
        assert not os.path.exists(seen["path"])


class TestBuildCommand:
    def test_all_options(self):
        cmd = build_command("/opt/kafka/bin/kafka-log-dirs.sh", ["b1:9092", "b2:9092"], ["a", "b"], "/tmp/c.properties")
        assert cmd == [
            "/opt/kafka/bin/kafka-log-dirs.sh",
            "--bootstrap-server", "b1:9092,b2:9092",
            "--describe",
            "--topic-list", "a,b",
            "--command-config", "/tmp/c.properties",
        ]

    def test_minimal(self):
        assert build_command("kafka-log-dirs", ["b1:9092"]) == [
            "kafka-log-dirs", "--bootstrap-server", "b1:9092", "--describe",
        ]


class TestFindLogDirsTool:
    def test_found_on_path(self, monkeypatch):
        monkeypatch.setattr(log_dirs_cli.shutil, "which", lambda name: f"/usr/bin/{name}")
        assert find_log_dirs_tool() == "/usr/bin/kafka-log-dirs.sh"

    def test_kafka_home(self, monkeypatch, tmp_path):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        (bin_dir / "kafka-log-dirs.sh").write_text("#!/bin/sh\n")
        monkeypatch.setattr(log_dirs_cli.shutil, "which", lambda name: None)
        monkeypatch.setenv("KAFKA_HOME", str(tmp_path))
        assert find_log_dirs_tool() == str(bin_dir / "kafka-log-dirs.sh")

    def test_not_found(self, monkeypatch):
        monkeypatch.setattr(log_dirs_cli.shutil, "which", lambda name: None)
        monkeypatch.setattr(log_dirs_cli, "_candidate_dirs", lambda: [])
        with pytest.raises(LogDirsToolError, match="not found"):
            find_log_dirs_tool()


class TestGetTopicSizesViaCli:
    def _fake_run(self, calls, returncode=0, stdout=TOOL_OUTPUT, stderr=""):
        def run(cmd, **kwargs):
            config = cmd[cmd.index("--command-config") + 1] if "--command-config" in cmd else None
            calls.append({"cmd": cmd, "config_existed": config is not None and os.path.exists(config), "config": config})
            return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)
        return run

    def test_report_from_tool_output(self, monkeypatch):
        calls = []
        monkeypatch.setattr(log_dirs_cli.subprocess, "run", self._fake_run(calls))
        report = get_topic_sizes_via_cli(ConnectionSettings("b1:9092,b2:9092"), tool="kafka-log-dirs.sh")

        by_topic = {t.topic: t for t in report.topics}
        assert by_topic["orders"].total_size == 5000
        assert by_topic["orders"].partitions == 2
        assert by_topic["click-stream-v2"].total_size == 500
        assert report.topics[0].topic == "orders"
        assert report.total_size == 5500
        assert report.total_partitions == 3
        assert report.cluster == "b1:9092,b2:9092"
        assert "--command-config" not in calls[0]["cmd"]

    def test_credentials_file_removed_after_success(self, monkeypatch):
        calls = []
        monkeypatch.setattr(log_dirs_cli.subprocess, "run", self._fake_run(calls))
        get_topic_sizes_via_cli(_sasl_settings(), tool="kafka-log-dirs.sh")

        assert calls[0]["config_existed"] is True
        assert not os.path.exists(calls[0]["config"])

    def test_credentials_file_removed_after_failure(self, monkeypatch):
        calls = []
        monkeypatch.setattr(log_dirs_cli.subprocess, "run", self._fake_run(calls, returncode=1, stderr="boom"))
        with pytest.raises(LogDirsToolError, match="boom"):
            get_topic_sizes_via_cli(_sasl_settings(), tool="kafka-log-dirs.sh")

        assert calls[0]["config_existed"] is True
        assert not os.path.exists(calls[0]["config"])

    def test_invalid_json(self, monkeypatch):
        calls = []
        monkeypatch.setattr(log_dirs_cli.subprocess, "run", self._fake_run(calls, stdout="status\n{not json\n"))
        with pytest.raises(LogDirsToolError, match="failed to parse"):
            get_topic_sizes_via_cli(ConnectionSettings(), tool="kafka-log-dirs.sh")

    def test_empty_response_raises(self, monkeypatch):
        calls = []
        stdout = json.dumps({"version": 1, "brokers": []}) + "\n"
        monkeypatch.setattr(log_dirs_cli.subprocess, "run", self._fake_run(calls, stdout=stdout))
        with pytest.raises(NoTopicSizeDataError):
            get_topic_sizes_via_cli(ConnectionSettings(), tool="kafka-log-dirs.sh")
