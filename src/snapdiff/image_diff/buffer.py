from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from snapdiff.errors import FormatError, InvalidFormatError, ShapeError

from .decode import convert_color_space, decode_rows
from .types import ColorSpace, PixelFormat


@dataclass(frozen=True)
class PixelBuffer:
    """An immutable raster snapshot.

    ``data`` holds ``height`` rows of ``bytes_per_row`` bytes each, encoded
    according to ``pixel_format``. Rows may carry trailing padding. Everything
    is validated here so a constructed buffer is always safe to decode.
    """

    width: int
    height: int
    pixel_format: PixelFormat
    data: bytes = field(repr=False)
    bytes_per_row: int = 0
    scale: float = 1.0
    color_space: ColorSpace = ColorSpace.SRGB

    def __post_init__(self) -> None:
        try:
            pixel_format = PixelFormat(self.pixel_format)
        except ValueError:
            raise InvalidFormatError(f"unsupported pixel format: {self.pixel_format!r}") from None
        try:
            color_space = ColorSpace(self.color_space)
        except ValueError:
            raise InvalidFormatError(f"unsupported color space: {self.color_space!r}") from None
        object.__setattr__(self, "pixel_format", pixel_format)
        object.__setattr__(self, "color_space", color_space)

        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))

        if self.width <= 0 or self.height <= 0:
            raise FormatError(f"dimensions must be positive, got {self.width}x{self.height}")
        if not (self.scale > 0 and math.isfinite(self.scale)):
            raise FormatError(f"scale must be a positive number, got {self.scale}")

        min_stride = self.width * pixel_format.bytes_per_pixel
        if self.bytes_per_row == 0:
            object.__setattr__(self, "bytes_per_row", min_stride)
        elif self.bytes_per_row < min_stride:
            raise FormatError(
                f"bytes_per_row {self.bytes_per_row} is smaller than one row of pixels ({min_stride})"
            )

        expected = self.bytes_per_row * self.height
        if len(self.data) != expected:
            raise FormatError(
                f"buffer holds {len(self.data)} bytes, expected {expected} "
                f"({self.bytes_per_row} bytes per row x {self.height} rows)"
            )

    @classmethod
    def from_array(
        cls,
        pixels: np.ndarray,
        pixel_format: PixelFormat,
        scale: float = 1.0,
        color_space: ColorSpace = ColorSpace.SRGB,
    ) -> PixelBuffer:
        """Build a tightly packed buffer from an ``(height, width[, channels])`` uint8 array."""
        pixel_format = PixelFormat(pixel_format)
        arr = np.asarray(pixels)
        if arr.ndim == 2:
            arr = arr[..., np.newaxis]
        if arr.ndim != 3 or arr.shape[2] != pixel_format.bytes_per_pixel:
            raise FormatError(
                f"array of shape {arr.shape} does not match {pixel_format} "
                f"({pixel_format.bytes_per_pixel} bytes per pixel)"
            )
        if arr.dtype != np.uint8:
            raise FormatError(f"expected uint8 pixels, got {arr.dtype}")
        height, width = arr.shape[:2]
        return cls(
            width=width,
            height=height,
            pixel_format=pixel_format,
            data=np.ascontiguousarray(arr).tobytes(),
            scale=scale,
            color_space=color_space,
        )

    @classmethod
    def solid(
        cls,
        width: int,
        height: int,
        color: Sequence[int],
        pixel_format: PixelFormat = PixelFormat.RGBA8,
        scale: float = 1.0,
        color_space: ColorSpace = ColorSpace.SRGB,
    ) -> PixelBuffer:
        if width <= 0 or height <= 0:
            raise FormatError(f"dimensions must be positive, got {width}x{height}")
        pixel = np.array(color, dtype=np.uint8)
        return cls.from_array(
            np.broadcast_to(pixel, (height, width, len(pixel))),
            pixel_format,
            scale=scale,
            color_space=color_space,
        )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def rows(
        self, start: int, stop: int, color_space: ColorSpace | None = None
    ) -> np.ndarray:
        if not 0 <= start <= stop <= self.height:
            raise ShapeError(f"row range [{start}, {stop}) outside 0..{self.height}")
        rgba = decode_rows(
            self.data,
            width=self.width,
            bytes_per_row=self.bytes_per_row,
            pixel_format=self.pixel_format,
            start=start,
            stop=stop,
        )
        if color_space is not None:
            rgba = convert_color_space(rgba, self.color_space, color_space)
        return rgba

    def to_rgba(self, color_space: ColorSpace | None = None) -> np.ndarray:
        return self.rows(0, self.height, color_space)

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise ShapeError(f"pixel ({x}, {y}) outside {self.width}x{self.height} buffer")
        r, g, b, a = self.rows(y, y + 1)[0, x]
        return int(r), int(g), int(b), int(a)
