from .engine import SnapshotEngine, SnapshotOutcome, SnapshotState
from .naming import AgnosticOptions, DeviceEnvironment, FileNameKind, SnapshotIdentity
from .storage import FileSystemBaselineStore

__all__ = (
    "AgnosticOptions",
    "DeviceEnvironment",
    "FileNameKind",
    "FileSystemBaselineStore",
    "SnapshotEngine",
    "SnapshotIdentity",
    "SnapshotOutcome",
    "SnapshotState",
)
