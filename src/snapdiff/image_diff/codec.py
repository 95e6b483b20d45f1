from __future__ import annotations

import io

import numpy as np
from PIL import Image
from PIL.PngImagePlugin import PngInfo

from snapdiff.errors import FormatError

from .buffer import PixelBuffer
from .types import ColorSpace, PixelFormat

SCALE_KEY = "snapdiff:scale"
COLOR_SPACE_KEY = "snapdiff:color_space"

_MODE_FORMATS: dict[str, PixelFormat] = {
    "RGBA": PixelFormat.RGBA8,
    "RGB": PixelFormat.RGB8,
    "L": PixelFormat.GRAY8,
    "LA": PixelFormat.GRAY_ALPHA8,
}


def to_image(buffer: PixelBuffer) -> Image.Image:
    return Image.fromarray(buffer.to_rgba())


def from_image(
    img: Image.Image,
    scale: float | None = None,
    color_space: ColorSpace | None = None,
) -> PixelBuffer:
    if scale is None:
        scale = float(img.info.get(SCALE_KEY, 1.0))
    if color_space is None:
        color_space = ColorSpace(img.info.get(COLOR_SPACE_KEY, ColorSpace.SRGB))

    pixel_format = _MODE_FORMATS.get(img.mode)
    if pixel_format is None:
        img = img.convert("RGBA")
        pixel_format = PixelFormat.RGBA8
    return PixelBuffer.from_array(
        np.asarray(img, dtype=np.uint8),
        pixel_format,
        scale=scale,
        color_space=color_space,
    )


def encode_png(buffer: PixelBuffer) -> bytes:
    info = PngInfo()
    info.add_text(SCALE_KEY, repr(buffer.scale))
    info.add_text(COLOR_SPACE_KEY, buffer.color_space.value)
    buf = io.BytesIO()
    with to_image(buffer) as img:
        img.save(buf, format="PNG", pnginfo=info)
    return buf.getvalue()


def decode_png(data: bytes) -> PixelBuffer:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, Image.DecompressionBombError) as e:
        raise FormatError(f"could not decode image: {e}") from e
    with img:
        return from_image(img)
