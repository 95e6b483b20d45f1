from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PixelFormat(StrEnum):
    RGBA8_PREMULTIPLIED = "rgba8_premultiplied"
    RGBA8 = "rgba8"
    BGRA8_PREMULTIPLIED = "bgra8_premultiplied"
    RGB8 = "rgb8"
    GRAY8 = "gray8"
    GRAY_ALPHA8 = "gray_alpha8"

    @property
    def bytes_per_pixel(self) -> int:
        return _BYTES_PER_PIXEL[self]

    @property
    def is_premultiplied(self) -> bool:
        return self in (PixelFormat.RGBA8_PREMULTIPLIED, PixelFormat.BGRA8_PREMULTIPLIED)


_BYTES_PER_PIXEL: dict[PixelFormat, int] = {
    PixelFormat.RGBA8_PREMULTIPLIED: 4,
    PixelFormat.RGBA8: 4,
    PixelFormat.BGRA8_PREMULTIPLIED: 4,
    PixelFormat.RGB8: 3,
    PixelFormat.GRAY8: 1,
    PixelFormat.GRAY_ALPHA8: 2,
}


class ColorSpace(StrEnum):
    SRGB = "srgb"
    DISPLAY_P3 = "display_p3"


class ReasonCode(StrEnum):
    NONE = "none"
    SIZES_DIFFER = "sizes_differ"
    SCALES_DIFFER = "scales_differ"
    CONTENT_MISMATCH = "content_mismatch"


class ToleranceConfig(BaseModel):
    """How far two snapshots may drift apart and still count as equal.

    ``per_pixel_color_tolerance`` is the largest per-channel delta (0-255) a
    pixel may show before it counts as mismatched. ``max_mismatch_ratio`` is
    the fraction of mismatched pixels allowed before the comparison fails.
    """

    model_config = ConfigDict(frozen=True)

    per_pixel_color_tolerance: int = Field(default=0, ge=0, le=255)
    max_mismatch_ratio: float = Field(default=0.0, ge=0.0, le=1.0)

    @classmethod
    def exact(cls) -> ToleranceConfig:
        return cls()

    @classmethod
    def normalized(cls, color: float, ratio: float = 0.0) -> ToleranceConfig:
        if not 0.0 <= color <= 1.0:
            raise ValueError(f"normalized color tolerance must be within [0, 1], got {color}")
        return cls(per_pixel_color_tolerance=round(color * 255), max_mismatch_ratio=ratio)


class ComparisonResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_equal: bool
    pixel_mismatch_count: int = Field(default=0, ge=0)
    total_pixel_count: int = Field(default=0, ge=0)
    mismatch_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    reason_code: ReasonCode = ReasonCode.NONE
    max_channel_delta: int = Field(default=0, ge=0, le=255)

    @model_validator(mode="after")
    def _check_verdict(self) -> ComparisonResult:
        if self.is_equal != (self.reason_code == ReasonCode.NONE):
            raise ValueError(
                f"is_equal={self.is_equal} is inconsistent with reason_code={self.reason_code}"
            )
        if self.pixel_mismatch_count > self.total_pixel_count:
            raise ValueError("pixel_mismatch_count cannot exceed total_pixel_count")
        return self

    @property
    def mismatch_percentage(self) -> float:
        return self.mismatch_ratio * 100.0
