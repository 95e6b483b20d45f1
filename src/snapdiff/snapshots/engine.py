from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from snapdiff.conf import SnapshotSettings
from snapdiff.errors import CaptureError, SnapdiffError, SnapshotErrorCode, SnapshotMismatchError
from snapdiff.image_diff.buffer import PixelBuffer
from snapdiff.image_diff.compare import compare
from snapdiff.image_diff.render import bounding_box, render_diff_with_mask
from snapdiff.image_diff.types import ComparisonResult, ReasonCode, ToleranceConfig
from snapdiff.snapshots.collaborators import (
    BaselineStore,
    CaptureProvider,
    FailureArtifactStore,
    SurfaceHandle,
    SurfaceResolver,
)
from snapdiff.snapshots.naming import SnapshotIdentity
from snapdiff.snapshots.report import BufferInfo, SnapshotReport
from snapdiff.snapshots.storage import FileSystemBaselineStore

logger = logging.getLogger(__name__)


class SnapshotState(StrEnum):
    IDLE = "idle"
    CAPTURING = "capturing"
    COMPARING = "comparing"
    PASSED = "passed"
    FAILED = "failed"
    RECORDED = "recorded"


_ERRORS: dict[ReasonCode, tuple[SnapshotErrorCode, str]] = {
    ReasonCode.SIZES_DIFFER: (SnapshotErrorCode.IMAGES_DIFFERENT_SIZES, "Images different sizes"),
    ReasonCode.SCALES_DIFFER: (SnapshotErrorCode.IMAGES_DIFFERENT_SCALES, "Images different scales"),
    ReasonCode.CONTENT_MISMATCH: (SnapshotErrorCode.IMAGES_DIFFERENT, "Images different"),
}

RECORD_MODE_MESSAGE = (
    "Test ran in record mode. Reference image is now saved. "
    "Disable record mode to perform an actual snapshot comparison!"
)


@dataclass(frozen=True)
class SnapshotOutcome:
    state: SnapshotState
    identity: SnapshotIdentity
    report: SnapshotReport
    result: ComparisonResult | None = None
    diff: PixelBuffer | None = None
    artifact_paths: dict[str, Path] = field(default_factory=dict)
    # set when the reference was rewritten on request rather than on a first run
    record_mode: bool = False

    @property
    def succeeded(self) -> bool:
        if self.state == SnapshotState.RECORDED:
            return not self.record_mode
        return self.state == SnapshotState.PASSED

    @property
    def message(self) -> str:
        return self.report.message

    def raise_for_failure(self) -> None:
        if self.succeeded:
            return
        if self.record_mode:
            raise SnapshotMismatchError(RECORD_MODE_MESSAGE, SnapshotErrorCode.RECORD_MODE)
        assert self.result is not None
        code, description = _ERRORS[self.result.reason_code]
        raise SnapshotMismatchError(description, code, self.report.message)


def _failure_message(
    result: ComparisonResult,
    tolerance: ToleranceConfig,
    reference: PixelBuffer,
    candidate: PixelBuffer,
) -> str:
    match result.reason_code:
        case ReasonCode.SIZES_DIFFER:
            return (
                f"reference image: {reference.width}x{reference.height}, "
                f"image: {candidate.width}x{candidate.height}"
            )
        case ReasonCode.SCALES_DIFFER:
            return f"reference scale: {reference.scale:g}, image scale: {candidate.scale:g}"
        case _:
            return (
                f"{result.pixel_mismatch_count} of {result.total_pixel_count} pixels "
                f"({result.mismatch_percentage:.2f}%) differed by more than "
                f"{tolerance.per_pixel_color_tolerance} per channel; "
                f"at most {tolerance.max_mismatch_ratio * 100:.2f}% may differ"
            )


class SnapshotEngine:
    """Runs one snapshot check: capture, fetch the baseline, compare, report.

    Each call to :meth:`verify` is a single synchronous pass with no retries;
    re-capturing a live surface is not idempotent, so retry policy belongs to
    the caller.
    """

    def __init__(
        self,
        capture: CaptureProvider,
        resolver: SurfaceResolver,
        store: BaselineStore | None = None,
        settings: SnapshotSettings | None = None,
        tolerance: ToleranceConfig | None = None,
    ) -> None:
        self.capture = capture
        self.resolver = resolver
        self.settings = settings or SnapshotSettings.from_env()
        if store is None:
            store = FileSystemBaselineStore.from_settings(self.settings)
        self.store = store
        self.tolerance = tolerance or self.settings.tolerance

    def verify(
        self, identity: SnapshotIdentity, target: SurfaceHandle | None = None
    ) -> SnapshotOutcome:
        state = SnapshotState.IDLE
        log_extra = {"identity": str(identity)}

        state = self._transition(state, SnapshotState.CAPTURING, log_extra)
        candidate = self._capture(target)

        if self.settings.record_mode:
            return self._record(identity, candidate, state, RECORD_MODE_MESSAGE, record_mode=True)

        baseline = self.store.load_baseline(identity)
        if baseline is None:
            return self._record(identity, candidate, state, "no reference image, recorded one")

        state = self._transition(state, SnapshotState.COMPARING, log_extra)
        result = compare(
            candidate,
            baseline,
            self.tolerance,
            rows_per_band=self.settings.rows_per_band,
            workers=self.settings.compare_workers,
        )

        report = SnapshotReport(
            identity=str(identity),
            status="passed" if result.is_equal else "failed",
            reference=BufferInfo.of(baseline),
            candidate=BufferInfo.of(candidate),
        ).with_result(result, self.tolerance)

        if result.is_equal:
            self._transition(state, SnapshotState.PASSED, log_extra)
            return SnapshotOutcome(
                state=SnapshotState.PASSED, identity=identity, report=report, result=result
            )

        diff: PixelBuffer | None = None
        if result.reason_code == ReasonCode.CONTENT_MISMATCH:
            diff, mask = render_diff_with_mask(candidate, baseline, self.tolerance)
            report = report.model_copy(update={"diff_bounding_box": bounding_box(mask)})
        report = report.model_copy(
            update={"message": _failure_message(result, self.tolerance, baseline, candidate)}
        )

        artifact_paths = self._save_failure(identity, baseline, candidate, diff, report)
        if artifact_paths:
            report = report.model_copy(
                update={"artifact_paths": {k: str(v) for k, v in artifact_paths.items()}}
            )

        self._transition(state, SnapshotState.FAILED, log_extra)
        logger.warning(
            "snapshot: %s failed: %s",
            identity,
            report.message,
            extra={**log_extra, "reason_code": result.reason_code.value},
        )
        return SnapshotOutcome(
            state=SnapshotState.FAILED,
            identity=identity,
            report=report,
            result=result,
            diff=diff,
            artifact_paths=artifact_paths,
        )

    def _transition(
        self, current: SnapshotState, new: SnapshotState, log_extra: dict[str, str]
    ) -> SnapshotState:
        logger.debug("snapshot: %s -> %s", current.value, new.value, extra=log_extra)
        return new

    def _capture(self, target: SurfaceHandle | None) -> PixelBuffer:
        try:
            if target is None:
                target = self.resolver.resolve_primary_surface()
            return self.capture.capture_surface(target)
        except SnapdiffError:
            raise
        except Exception as e:
            raise CaptureError(f"failed to capture surface {target!r}") from e

    def _record(
        self,
        identity: SnapshotIdentity,
        candidate: PixelBuffer,
        state: SnapshotState,
        message: str,
        record_mode: bool = False,
    ) -> SnapshotOutcome:
        self.store.save_baseline(identity, candidate)
        self._transition(state, SnapshotState.RECORDED, {"identity": str(identity)})
        logger.info(
            "snapshot: recorded reference for %s",
            identity,
            extra={"identity": str(identity), "size": candidate.size, "scale": candidate.scale},
        )
        return SnapshotOutcome(
            state=SnapshotState.RECORDED,
            identity=identity,
            report=SnapshotReport(
                identity=str(identity),
                status="recorded",
                message=message,
                candidate=BufferInfo.of(candidate),
            ),
            record_mode=record_mode,
        )

    def _save_failure(
        self,
        identity: SnapshotIdentity,
        reference: PixelBuffer,
        candidate: PixelBuffer,
        diff: PixelBuffer | None,
        report: SnapshotReport,
    ) -> dict[str, Path]:
        if not isinstance(self.store, FailureArtifactStore):
            return {}
        try:
            return self.store.save_failure(identity, reference, candidate, diff, report.to_json())
        except Exception:
            logger.exception(
                "snapshot: failed to save failure artifacts",
                extra={"identity": str(identity)},
            )
            return {}
