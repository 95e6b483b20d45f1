from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from snapdiff.image_diff.compare import DEFAULT_ROWS_PER_BAND
from snapdiff.image_diff.types import ToleranceConfig

ENV_VARS: dict[str, str] = {
    "record_mode": "SNAPDIFF_RECORD_MODE",
    "reference_dir": "SNAPDIFF_REFERENCE_DIR",
    "reference_suffixes": "SNAPDIFF_REFERENCE_SUFFIXES",
    "failure_dir": "IMAGE_DIFF_DIR",
    "per_pixel_color_tolerance": "SNAPDIFF_PIXEL_TOLERANCE",
    "max_mismatch_ratio": "SNAPDIFF_MISMATCH_RATIO",
    "compare_workers": "SNAPDIFF_COMPARE_WORKERS",
    "rows_per_band": "SNAPDIFF_ROWS_PER_BAND",
}


def _default_failure_dir() -> Path:
    return Path(tempfile.gettempdir())


class SnapshotSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    record_mode: bool = False
    reference_dir: Path = Path("snapshots")
    # ordered; lookups try each in turn, recording uses the first
    reference_suffixes: tuple[str, ...] = Field(default=("",), min_length=1)
    failure_dir: Path = Field(default_factory=_default_failure_dir)
    per_pixel_color_tolerance: int = Field(default=0, ge=0, le=255)
    max_mismatch_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    compare_workers: int = Field(default=1, ge=1)
    rows_per_band: int = Field(default=DEFAULT_ROWS_PER_BAND, ge=1)

    @field_validator("reference_suffixes", mode="before")
    @classmethod
    def _split_suffixes(cls, value: object) -> object:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(","))
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SnapshotSettings:
        environ = os.environ if environ is None else environ
        values = {
            name: environ[var] for name, var in ENV_VARS.items() if environ.get(var, "") != ""
        }
        return cls(**values)

    @property
    def tolerance(self) -> ToleranceConfig:
        return ToleranceConfig(
            per_pixel_color_tolerance=self.per_pixel_color_tolerance,
            max_mismatch_ratio=self.max_mismatch_ratio,
        )
