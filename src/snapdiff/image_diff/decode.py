from __future__ import annotations

from typing import assert_never

import numpy as np

from snapdiff.errors import FormatError

from .types import ColorSpace, PixelFormat

# Linear Display P3 -> linear sRGB, D65 white point.
P3_TO_SRGB = np.array(
    [
        [1.2249401, -0.2249404, 0.0],
        [-0.0420569, 1.0420571, 0.0],
        [-0.0196376, -0.0786361, 1.0982735],
    ],
    dtype=np.float64,
)
SRGB_TO_P3 = np.linalg.inv(P3_TO_SRGB)

_CONVERSIONS: dict[tuple[ColorSpace, ColorSpace], np.ndarray] = {
    (ColorSpace.DISPLAY_P3, ColorSpace.SRGB): P3_TO_SRGB,
    (ColorSpace.SRGB, ColorSpace.DISPLAY_P3): SRGB_TO_P3,
}


def _strided_pixels(
    data: bytes, width: int, bytes_per_row: int, bpp: int, start: int, stop: int
) -> np.ndarray:
    rows = stop - start
    raw = np.frombuffer(data, dtype=np.uint8, count=rows * bytes_per_row, offset=start * bytes_per_row)
    return raw.reshape(rows, bytes_per_row)[:, : width * bpp].reshape(rows, width, bpp)


def _unpremultiply(rgba: np.ndarray) -> np.ndarray:
    alpha = rgba[..., 3:4].astype(np.uint32)
    color = rgba[..., :3].astype(np.uint32)
    divisor = np.where(alpha == 0, 1, alpha)
    color = np.minimum((color * 255 + divisor // 2) // divisor, 255)
    color = np.where(alpha == 0, 0, color)
    return np.concatenate([color, alpha], axis=-1).astype(np.uint8)


def _clear_transparent(rgba: np.ndarray) -> np.ndarray:
    transparent = rgba[..., 3] == 0
    if transparent.any():
        rgba = rgba.copy()
        rgba[transparent] = 0
    return rgba


def _with_opaque_alpha(color: np.ndarray) -> np.ndarray:
    alpha = np.full(color.shape[:-1] + (1,), 255, dtype=np.uint8)
    return np.concatenate([color, alpha], axis=-1)


def decode_rows(
    data: bytes,
    *,
    width: int,
    bytes_per_row: int,
    pixel_format: PixelFormat,
    start: int,
    stop: int,
) -> np.ndarray:
    """Decode rows ``[start, stop)`` into unpremultiplied RGBA8.

    Returns a ``(stop - start, width, 4)`` uint8 array. Fully transparent
    pixels always decode to ``(0, 0, 0, 0)`` so their undefined color never
    takes part in a comparison.
    """
    if stop <= start:
        return np.zeros((0, width, 4), dtype=np.uint8)

    px = _strided_pixels(data, width, bytes_per_row, pixel_format.bytes_per_pixel, start, stop)

    match pixel_format:
        case PixelFormat.RGBA8_PREMULTIPLIED:
            return _unpremultiply(px)
        case PixelFormat.BGRA8_PREMULTIPLIED:
            return _unpremultiply(px[..., [2, 1, 0, 3]])
        case PixelFormat.RGBA8:
            return _clear_transparent(px)
        case PixelFormat.RGB8:
            return _with_opaque_alpha(px)
        case PixelFormat.GRAY8:
            return _with_opaque_alpha(np.repeat(px, 3, axis=-1))
        case PixelFormat.GRAY_ALPHA8:
            gray = np.repeat(px[..., :1], 3, axis=-1)
            return _clear_transparent(np.concatenate([gray, px[..., 1:2]], axis=-1))
        case _:
            assert_never(pixel_format)


def _srgb_to_linear(values: np.ndarray) -> np.ndarray:
    c = values / 255.0
    return np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)


def _linear_to_srgb(values: np.ndarray) -> np.ndarray:
    c = np.clip(values, 0.0, 1.0)
    encoded = np.where(c <= 0.0031308, c * 12.92, 1.055 * c ** (1 / 2.4) - 0.055)
    return np.rint(encoded * 255.0)


def convert_color_space(rgba: np.ndarray, source: ColorSpace, target: ColorSpace) -> np.ndarray:
    if source == target:
        return rgba
    matrix = _CONVERSIONS.get((source, target))
    if matrix is None:
        raise FormatError(f"no conversion from {source} to {target}")

    # both spaces share the sRGB transfer curve
    linear = _srgb_to_linear(rgba[..., :3].astype(np.float64))
    converted = _linear_to_srgb(linear @ matrix.T).astype(np.uint8)
    out = np.concatenate([converted, rgba[..., 3:4]], axis=-1)
    out[rgba[..., 3] == 0] = 0
    return out


def common_color_space(a: ColorSpace, b: ColorSpace) -> ColorSpace:
    return a if a == b else ColorSpace.SRGB
