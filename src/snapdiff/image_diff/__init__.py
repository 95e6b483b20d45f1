from .buffer import PixelBuffer
from .compare import compare, compare_batch
from .render import bounding_box, diff_mask, render_diff, render_diff_with_mask
from .types import ColorSpace, ComparisonResult, PixelFormat, ReasonCode, ToleranceConfig

__all__ = (
    "ColorSpace",
    "ComparisonResult",
    "PixelBuffer",
    "PixelFormat",
    "ReasonCode",
    "ToleranceConfig",
    "bounding_box",
    "compare",
    "compare_batch",
    "diff_mask",
    "render_diff",
    "render_diff_with_mask",
)
