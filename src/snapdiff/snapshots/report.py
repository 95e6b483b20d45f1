from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

import orjson
from pydantic import BaseModel

from snapdiff.image_diff.buffer import PixelBuffer
from snapdiff.image_diff.types import ComparisonResult, ToleranceConfig


class BufferInfo(BaseModel):
    width: int
    height: int
    scale: float
    pixel_format: str
    color_space: str

    @classmethod
    def of(cls, buffer: PixelBuffer) -> BufferInfo:
        return cls(
            width=buffer.width,
            height=buffer.height,
            scale=buffer.scale,
            pixel_format=buffer.pixel_format.value,
            color_space=buffer.color_space.value,
        )


class SnapshotReport(BaseModel):
    identity: str
    status: Literal["passed", "failed", "recorded"]
    message: str = ""
    reason_code: str | None = None
    pixel_mismatch_count: int | None = None
    total_pixel_count: int | None = None
    mismatch_ratio: float | None = None
    max_channel_delta: int | None = None
    per_pixel_color_tolerance: int | None = None
    max_mismatch_ratio: float | None = None
    reference: BufferInfo | None = None
    candidate: BufferInfo | None = None
    diff_bounding_box: tuple[int, int, int, int] | None = None
    artifact_paths: dict[str, str] = {}

    def with_result(
        self, result: ComparisonResult, tolerance: ToleranceConfig
    ) -> SnapshotReport:
        return self.model_copy(
            update={
                "reason_code": result.reason_code.value,
                "pixel_mismatch_count": result.pixel_mismatch_count,
                "total_pixel_count": result.total_pixel_count,
                "mismatch_ratio": result.mismatch_ratio,
                "max_channel_delta": result.max_channel_delta,
                "per_pixel_color_tolerance": tolerance.per_pixel_color_tolerance,
                "max_mismatch_ratio": tolerance.max_mismatch_ratio,
            }
        )

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)


class SnapshotSummary(BaseModel):
    total: int
    passed: int
    failed: int
    recorded: int


def summarize(reports: Iterable[SnapshotReport]) -> SnapshotSummary:
    counts = {"passed": 0, "failed": 0, "recorded": 0}
    for report in reports:
        counts[report.status] += 1
    return SnapshotSummary(total=sum(counts.values()), **counts)
