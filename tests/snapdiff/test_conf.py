from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from snapdiff.conf import SnapshotSettings
from snapdiff.image_diff.types import ToleranceConfig


class TestSnapshotSettings:
    def test_defaults(self):
        settings = SnapshotSettings.from_env({})
        assert settings.record_mode is False
        assert settings.failure_dir == Path(tempfile.gettempdir())
        assert settings.tolerance == ToleranceConfig.exact()
        assert settings.compare_workers == 1

    def test_from_env(self):
        settings = SnapshotSettings.from_env(
            {
                "SNAPDIFF_RECORD_MODE": "true",
                "SNAPDIFF_REFERENCE_DIR": "/refs",
                "IMAGE_DIFF_DIR": "/tmp/diffs",
                "SNAPDIFF_PIXEL_TOLERANCE": "12",
                "SNAPDIFF_MISMATCH_RATIO": "0.05",
                "SNAPDIFF_COMPARE_WORKERS": "4",
                "SNAPDIFF_ROWS_PER_BAND": "64",
            }
        )
        assert settings.record_mode is True
        assert settings.reference_dir == Path("/refs")
        assert settings.failure_dir == Path("/tmp/diffs")
        assert settings.tolerance == ToleranceConfig(
            per_pixel_color_tolerance=12, max_mismatch_ratio=0.05
        )
        assert settings.compare_workers == 4
        assert settings.rows_per_band == 64

    def test_empty_values_use_defaults(self):
        settings = SnapshotSettings.from_env({"IMAGE_DIFF_DIR": ""})
        assert settings.failure_dir == Path(tempfile.gettempdir())

    @pytest.mark.parametrize(
        "environ",
        [
            {"SNAPDIFF_PIXEL_TOLERANCE": "300"},
            {"SNAPDIFF_MISMATCH_RATIO": "2"},
            {"SNAPDIFF_COMPARE_WORKERS": "0"},
            {"SNAPDIFF_RECORD_MODE": "maybe"},
        ],
    )
    def test_invalid_values(self, environ):
        with pytest.raises(ValidationError):
            SnapshotSettings.from_env(environ)

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("SNAPDIFF_RECORD_MODE", "1")
        assert SnapshotSettings.from_env().record_mode is True

    def test_reference_suffixes(self):
        assert SnapshotSettings.from_env({}).reference_suffixes == ("",)
        settings = SnapshotSettings.from_env({"SNAPDIFF_REFERENCE_SUFFIXES": "_64, _32,"})
        assert settings.reference_suffixes == ("_64", "_32", "")

    def test_empty_reference_suffixes_rejected(self):
        with pytest.raises(ValidationError):
            SnapshotSettings(reference_suffixes=())
