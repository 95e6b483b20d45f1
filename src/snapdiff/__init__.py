from snapdiff.image_diff import (
    ColorSpace,
    ComparisonResult,
    PixelBuffer,
    PixelFormat,
    ReasonCode,
    ToleranceConfig,
    compare,
    render_diff,
)

__all__ = (
    "ColorSpace",
    "ComparisonResult",
    "PixelBuffer",
    "PixelFormat",
    "ReasonCode",
    "ToleranceConfig",
    "compare",
    "render_diff",
)
