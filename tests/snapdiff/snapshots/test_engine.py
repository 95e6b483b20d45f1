from __future__ import annotations

from unittest.mock import Mock, patch

import pytest

from snapdiff.conf import SnapshotSettings
from snapdiff.errors import CaptureError, SnapshotErrorCode, SnapshotMismatchError
from snapdiff.image_diff.buffer import PixelBuffer
from snapdiff.image_diff.compare import pixel_deltas
from snapdiff.image_diff.render import HIGHLIGHT_COLOR
from snapdiff.image_diff.types import PixelFormat, ReasonCode, ToleranceConfig
from snapdiff.snapshots.engine import RECORD_MODE_MESSAGE, SnapshotEngine, SnapshotState
from snapdiff.snapshots.naming import SnapshotIdentity
from snapdiff.snapshots.storage import FileSystemBaselineStore

IDENTITY = SnapshotIdentity(test_name="CheckoutTests", selector="testSummary")
RED = (255, 0, 0, 255)


class InMemoryStore:
    def __init__(self, baselines: dict[SnapshotIdentity, PixelBuffer] | None = None) -> None:
        self.baselines = dict(baselines or {})
        self.saved: list[tuple[SnapshotIdentity, PixelBuffer]] = []

    def load_baseline(self, identity):
        return self.baselines.get(identity)

    def save_baseline(self, identity, buffer):
        self.saved.append((identity, buffer))
        self.baselines[identity] = buffer


def _make_solid_buffer(width: int, height: int, color: tuple[int, ...], scale: float = 1.0):
    return PixelBuffer.solid(width, height, color, scale=scale)


def _make_engine(captured: PixelBuffer, store, **kwargs) -> tuple[SnapshotEngine, Mock, Mock]:
    capture = Mock()
    capture.capture_surface.return_value = captured
    resolver = Mock()
    resolver.resolve_primary_surface.return_value = "key-window"
    return SnapshotEngine(capture, resolver, store, **kwargs), capture, resolver


class TestSnapshotEngine:
    def test_first_run_records_baseline(self):
        captured = _make_solid_buffer(2, 2, RED)
        store = InMemoryStore()
        engine, capture, resolver = _make_engine(captured, store)

        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.RECORDED
        assert outcome.succeeded
        assert not outcome.record_mode
        assert outcome.result is None
        assert store.saved == [(IDENTITY, captured)]
        resolver.resolve_primary_surface.assert_called_once_with()
        capture.capture_surface.assert_called_once_with("key-window")
        outcome.raise_for_failure()

    def test_explicit_target_skips_resolver(self):
        captured = _make_solid_buffer(2, 2, RED)
        engine, capture, resolver = _make_engine(captured, InMemoryStore({IDENTITY: captured}))

        engine.verify(IDENTITY, target="settings-sheet")

        resolver.resolve_primary_surface.assert_not_called()
        capture.capture_surface.assert_called_once_with("settings-sheet")

    def test_record_mode_overwrites_baseline(self):
        old = _make_solid_buffer(2, 2, (0, 0, 0, 255))
        captured = _make_solid_buffer(2, 2, RED)
        store = InMemoryStore({IDENTITY: old})
        engine, _, _ = _make_engine(captured, store, settings=SnapshotSettings(record_mode=True))

        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.RECORDED
        assert outcome.record_mode
        assert not outcome.succeeded
        assert store.baselines[IDENTITY] is captured
        assert outcome.message == RECORD_MODE_MESSAGE
        with pytest.raises(SnapshotMismatchError) as excinfo:
            outcome.raise_for_failure()
        assert excinfo.value.code == SnapshotErrorCode.RECORD_MODE

    def test_record_mode_without_baseline_still_fails(self):
        captured = _make_solid_buffer(2, 2, RED)
        store = InMemoryStore()
        engine, _, _ = _make_engine(captured, store, settings=SnapshotSettings(record_mode=True))

        outcome = engine.verify(IDENTITY)

        assert store.saved == [(IDENTITY, captured)]
        with pytest.raises(SnapshotMismatchError):
            outcome.raise_for_failure()

    def test_matching_snapshot_passes(self):
        captured = _make_solid_buffer(2, 2, RED)
        store = InMemoryStore({IDENTITY: _make_solid_buffer(2, 2, RED)})
        engine, _, _ = _make_engine(captured, store)

        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.PASSED
        assert outcome.result is not None
        assert outcome.result.is_equal
        assert outcome.diff is None
        assert outcome.report.status == "passed"
        assert store.saved == []

    def test_content_mismatch_fails_with_diff(self):
        reference = _make_solid_buffer(2, 2, (100, 100, 100, 255))
        pixels = reference.to_rgba().copy()
        pixels[0, 1] = (150, 150, 150, 255)
        captured = PixelBuffer.from_array(pixels, PixelFormat.RGBA8)
        engine, _, _ = _make_engine(
            captured,
            InMemoryStore({IDENTITY: reference}),
            tolerance=ToleranceConfig(per_pixel_color_tolerance=10),
        )

        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.FAILED
        assert not outcome.succeeded
        assert outcome.result.reason_code == ReasonCode.CONTENT_MISMATCH
        assert outcome.result.pixel_mismatch_count == 1
        assert outcome.diff is not None
        assert outcome.diff.pixel(1, 0) == HIGHLIGHT_COLOR
        assert outcome.report.diff_bounding_box == (1, 0, 1, 0)
        assert "25.00%" in outcome.message
        assert outcome.artifact_paths == {}

        with pytest.raises(SnapshotMismatchError) as excinfo:
            outcome.raise_for_failure()
        assert excinfo.value.code == SnapshotErrorCode.IMAGES_DIFFERENT

    def test_size_mismatch_fails_without_diff(self):
        engine, _, _ = _make_engine(
            _make_solid_buffer(4, 4, RED), InMemoryStore({IDENTITY: _make_solid_buffer(2, 2, RED)})
        )

        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.FAILED
        assert outcome.result.reason_code == ReasonCode.SIZES_DIFFER
        assert outcome.diff is None
        assert outcome.message == "reference image: 2x2, image: 4x4"
        with pytest.raises(SnapshotMismatchError) as excinfo:
            outcome.raise_for_failure()
        assert excinfo.value.code == SnapshotErrorCode.IMAGES_DIFFERENT_SIZES

    def test_scale_mismatch_fails_without_diff(self):
        engine, _, _ = _make_engine(
            _make_solid_buffer(2, 2, RED, scale=2.0),
            InMemoryStore({IDENTITY: _make_solid_buffer(2, 2, RED, scale=3.0)}),
        )

        outcome = engine.verify(IDENTITY)

        assert outcome.result.reason_code == ReasonCode.SCALES_DIFFER
        assert outcome.diff is None
        with pytest.raises(SnapshotMismatchError) as excinfo:
            outcome.raise_for_failure()
        assert excinfo.value.code == SnapshotErrorCode.IMAGES_DIFFERENT_SCALES

    def test_tolerance_from_settings(self):
        reference = _make_solid_buffer(2, 2, (100, 100, 100, 255))
        captured = _make_solid_buffer(2, 2, (105, 105, 105, 255))
        settings = SnapshotSettings(per_pixel_color_tolerance=5)
        engine, _, _ = _make_engine(captured, InMemoryStore({IDENTITY: reference}), settings=settings)

        assert engine.verify(IDENTITY).state == SnapshotState.PASSED

    def test_capture_failure(self):
        engine, capture, _ = _make_engine(_make_solid_buffer(1, 1, RED), InMemoryStore())
        capture.capture_surface.side_effect = RuntimeError("surface not ready")

        with pytest.raises(CaptureError):
            engine.verify(IDENTITY)

    def test_failure_artifacts_written(self, tmp_path):
        store = FileSystemBaselineStore(tmp_path / "refs", tmp_path / "failures")
        store.save_baseline(IDENTITY, _make_solid_buffer(3, 3, RED))
        engine, _, _ = _make_engine(_make_solid_buffer(3, 3, (0, 0, 255, 255)), store)

        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.FAILED
        assert set(outcome.artifact_paths) == {"reference", "failed", "diff", "report"}
        assert outcome.report.artifact_paths["diff"] == str(outcome.artifact_paths["diff"])
        assert outcome.artifact_paths["diff"].exists()

    def test_failure_artifact_errors_do_not_change_outcome(self, tmp_path):
        store = FileSystemBaselineStore(tmp_path / "refs", tmp_path / "failures")
        store.save_baseline(IDENTITY, _make_solid_buffer(3, 3, RED))
        store.save_failure = Mock(side_effect=OSError("disk full"))  # type: ignore[method-assign]
        engine, _, _ = _make_engine(_make_solid_buffer(3, 3, (0, 0, 255, 255)), store)

        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.FAILED
        assert outcome.artifact_paths == {}

    def test_mismatch_mask_is_computed_once(self):
        reference = _make_solid_buffer(4, 4, (100, 100, 100, 255))
        pixels = reference.to_rgba().copy()
        pixels[2:4, 1] = (0, 0, 0, 255)
        captured = PixelBuffer.from_array(pixels, PixelFormat.RGBA8)
        engine, _, _ = _make_engine(captured, InMemoryStore({IDENTITY: reference}))

        with patch("snapdiff.image_diff.render.pixel_deltas", wraps=pixel_deltas) as deltas:
            outcome = engine.verify(IDENTITY)

        assert deltas.call_count == 1
        assert outcome.report.diff_bounding_box == (1, 2, 1, 3)

    def test_default_store_follows_settings(self, tmp_path):
        settings = SnapshotSettings(reference_dir=tmp_path / "refs", failure_dir=tmp_path / "diffs")
        engine, _, _ = _make_engine(_make_solid_buffer(2, 2, RED), None, settings=settings)

        assert engine.verify(IDENTITY).state == SnapshotState.RECORDED
        assert (tmp_path / "refs" / "CheckoutTests" / "testSummary.png").exists()

        engine.capture.capture_surface.return_value = _make_solid_buffer(2, 2, (0, 0, 255, 255))
        outcome = engine.verify(IDENTITY)

        assert outcome.state == SnapshotState.FAILED
        assert outcome.artifact_paths["diff"] == (
            tmp_path / "diffs" / "CheckoutTests" / "diff_testSummary.png"
        )
        assert outcome.artifact_paths["diff"].exists()

    def test_default_store_reads_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SNAPDIFF_REFERENCE_DIR", str(tmp_path / "refs"))
        monkeypatch.setenv("SNAPDIFF_REFERENCE_SUFFIXES", "_64,_32")
        engine, _, _ = _make_engine(_make_solid_buffer(2, 2, RED), None)

        engine.verify(IDENTITY)

        assert (tmp_path / "refs_64" / "CheckoutTests" / "testSummary.png").exists()
        assert not (tmp_path / "refs_32").exists()
