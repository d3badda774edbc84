"""
Exception types raised by the snapshot engine.

Per-broker, per-topic and per-group failures are not raised; they are logged
as warnings where they happen and the run continues with partial data.
"""


class SnapshotError(Exception):
    """Base class for every error the snapshot tool raises on purpose."""


class ConfigurationError(SnapshotError):
    """Connection settings are inconsistent or incomplete."""


class ClusterConnectionError(SnapshotError):
    """The initial connection to the cluster could not be established."""


class NoTopicSizeDataError(SnapshotError):
    """No broker reported size data for any topic."""

    def __init__(self, message: str = "no topic size data retrieved"):
        super().__init__(message)


class LogDirsToolError(SnapshotError):
    """The external kafka-log-dirs tool could not be found, run or parsed."""


class PartitionIdError(SnapshotError, ValueError):
    """A composite "<topic>-<partition>" identifier could not be decoded."""
