from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from snapdiff.image_diff.buffer import PixelBuffer
from snapdiff.snapshots.naming import SnapshotIdentity

# Whatever the host UI toolkit uses to name a renderable surface (a window, a
# view, a layer). The engine never inspects it.
SurfaceHandle = Any


class SurfaceResolver(Protocol):
    def resolve_primary_surface(self) -> SurfaceHandle: ...


class CaptureProvider(Protocol):
    def capture_surface(self, target: SurfaceHandle) -> PixelBuffer: ...


class BaselineStore(Protocol):
    def load_baseline(self, identity: SnapshotIdentity) -> PixelBuffer | None: ...

    def save_baseline(self, identity: SnapshotIdentity, buffer: PixelBuffer) -> None: ...


@runtime_checkable
class FailureArtifactStore(Protocol):
    def save_failure(
        self,
        identity: SnapshotIdentity,
        reference: PixelBuffer,
        candidate: PixelBuffer,
        diff: PixelBuffer | None,
        report: bytes | None = None,
    ) -> dict[str, Path]: ...
