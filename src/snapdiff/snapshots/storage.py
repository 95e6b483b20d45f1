from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

from snapdiff.conf import ENV_VARS, SnapshotSettings
from snapdiff.errors import BaselineStoreError, FormatError, SnapshotErrorCode
from snapdiff.image_diff.buffer import PixelBuffer
from snapdiff.image_diff.codec import decode_png, encode_png
from snapdiff.snapshots.naming import (
    AgnosticOptions,
    DeviceEnvironment,
    FileNameKind,
    SnapshotIdentity,
)

logger = logging.getLogger(__name__)


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class FileSystemBaselineStore:
    """Keeps reference snapshots as PNG files on disk.

    References live at ``<reference_dir><suffix>/<test_name>/<file name>``.
    Lookups try each suffix in order and use the first directory holding a
    reference; recording always writes under the first suffix. Failure
    artifacts (the reference, the failed capture, the diff and a JSON report)
    are written under ``failure_dir`` with the same layout, defaulting to
    ``$IMAGE_DIFF_DIR`` or the system temp dir.
    """

    def __init__(
        self,
        reference_dir: str | Path,
        failure_dir: str | Path | None = None,
        scale: float = 1.0,
        agnostic: AgnosticOptions = AgnosticOptions.NONE,
        environment: DeviceEnvironment | None = None,
        suffixes: Sequence[str] = ("",),
    ) -> None:
        if not suffixes:
            raise ValueError("reference directory suffixes cannot be empty")
        if failure_dir is None:
            failure_dir = os.environ.get(ENV_VARS["failure_dir"]) or tempfile.gettempdir()
        self.reference_dir = Path(reference_dir)
        self.failure_dir = Path(failure_dir)
        self.suffixes = tuple(dict.fromkeys(suffixes))
        self.scale = scale
        self.agnostic = agnostic
        self.environment = environment

    @classmethod
    def from_settings(
        cls,
        settings: SnapshotSettings,
        scale: float = 1.0,
        agnostic: AgnosticOptions = AgnosticOptions.NONE,
        environment: DeviceEnvironment | None = None,
    ) -> FileSystemBaselineStore:
        return cls(
            settings.reference_dir,
            settings.failure_dir,
            scale=scale,
            agnostic=agnostic,
            environment=environment,
            suffixes=settings.reference_suffixes,
        )

    @property
    def reference_dirs(self) -> list[Path]:
        return [Path(f"{self.reference_dir}{suffix}") for suffix in self.suffixes]

    def _file_name(self, identity: SnapshotIdentity, kind: FileNameKind) -> str:
        return identity.file_name(
            kind, scale=self.scale, agnostic=self.agnostic, environment=self.environment
        )

    def reference_paths(self, identity: SnapshotIdentity) -> list[Path]:
        file_name = self._file_name(identity, FileNameKind.REFERENCE)
        return [identity.path_in(directory, file_name) for directory in self.reference_dirs]

    def reference_path(self, identity: SnapshotIdentity) -> Path:
        """Where a new reference for ``identity`` is recorded."""
        return self.reference_paths(identity)[0]

    def failure_path(self, identity: SnapshotIdentity, kind: FileNameKind) -> Path:
        return identity.path_in(self.failure_dir, self._file_name(identity, kind))

    def load_baseline(self, identity: SnapshotIdentity) -> PixelBuffer | None:
        paths = self.reference_paths(identity)
        for path in paths:
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise BaselineStoreError(f"unable to load reference image {path}") from e

            try:
                return decode_png(data)
            except FormatError as e:
                raise BaselineStoreError(f"unable to decode reference image {path}") from e

        logger.info(
            "storage: reference image not found, it needs to be recorded",
            extra={"identity": str(identity), "paths": [str(p) for p in paths]},
        )
        return None

    def save_baseline(self, identity: SnapshotIdentity, buffer: PixelBuffer) -> None:
        path = self.reference_path(identity)
        self._write_png(path, buffer)
        logger.info(
            "storage: reference image saved",
            extra={"identity": str(identity), "path": str(path)},
        )

    def save_failure(
        self,
        identity: SnapshotIdentity,
        reference: PixelBuffer,
        candidate: PixelBuffer,
        diff: PixelBuffer | None,
        report: bytes | None = None,
    ) -> dict[str, Path]:
        paths = {
            "reference": self.failure_path(identity, FileNameKind.FAILED_REFERENCE),
            "failed": self.failure_path(identity, FileNameKind.FAILED_TEST),
        }
        self._write_png(paths["reference"], reference)
        self._write_png(paths["failed"], candidate)
        if diff is not None:
            paths["diff"] = self.failure_path(identity, FileNameKind.FAILED_TEST_DIFF)
            self._write_png(paths["diff"], diff)
        if report is not None:
            paths["report"] = paths["failed"].with_suffix(".json")
            self._write_bytes(paths["report"], report)

        logger.info(
            "storage: failure artifacts saved",
            extra={"identity": str(identity), "paths": {k: str(v) for k, v in paths.items()}},
        )
        return paths

    def _write_png(self, path: Path, buffer: PixelBuffer) -> None:
        try:
            data = encode_png(buffer)
        except (OSError, ValueError) as e:
            raise BaselineStoreError(
                f"unable to encode {path.name} as PNG", SnapshotErrorCode.PNG_CREATION_FAILED
            ) from e
        self._write_bytes(path, data)

    def _write_bytes(self, path: Path, data: bytes) -> None:
        try:
            _write_atomic(path, data)
        except OSError as e:
            raise BaselineStoreError(f"unable to write {path}") from e
