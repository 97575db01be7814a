from __future__ import annotations

import io
from dataclasses import dataclass, field

from PIL import Image, UnidentifiedImageError

from ..errors import DecodeError, EncodeError, GiminiError
from .buffer import (
    AlphaConvention,
    PixelBuffer,
    PixelBufferError,
    PixelLayout,
    expand_to_rgba,
    to_straight_alpha,
)

MIME_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}

# Modes Pillow can turn into straight RGBA without loss or guesswork.
_PALETTE_AND_GRAY_MODES = {"1", "L", "LA", "P", "PA"}
_WIDE_GRAY_MODES = {"I", "I;16", "I;16L", "I;16B", "I;16N"}


@dataclass(frozen=True)
class EncodedImage:
    data: bytes = field(repr=False)
    format: str = "PNG"

    @property
    def mime_type(self) -> str:
        return MIME_TYPES.get(self.format.upper(), f"image/{self.format.lower()}")

    def __len__(self) -> int:
        return len(self.data)


def format_for_mime_type(mime_type: str) -> str:
    mime_type = mime_type.split(";", 1)[0].strip().lower()
    for fmt, known in MIME_TYPES.items():
        if known == mime_type:
            return fmt
    return mime_type.rsplit("/", 1)[-1].upper()


def _check_encodable(buffer: PixelBuffer) -> None:
    if not isinstance(buffer.layout, PixelLayout):
        raise EncodeError(f"unsupported bytes-per-pixel: {buffer.layout!r}")
    expected = buffer.width * buffer.layout.bpp * buffer.height
    if len(buffer.data) != expected:
        raise EncodeError(
            f"buffer length {len(buffer.data)} does not match "
            f"{buffer.width}x{buffer.height}x{buffer.layout.bpp}"
        )


def encode(buffer: PixelBuffer, fmt: str = "PNG") -> EncodedImage:
    """Encode ``buffer`` for the wire.

    Premultiplied RGBA is converted to straight alpha first since PNG stores
    straight alpha. PNG output is lossless.
    """

    _check_encodable(buffer)
    try:
        if buffer.alpha is AlphaConvention.PREMULTIPLIED:
            buffer = to_straight_alpha(buffer)
        img = Image.frombytes(buffer.layout.mode, (buffer.width, buffer.height), buffer.data)
        out = io.BytesIO()
        img.save(out, fmt)
    except (PixelBufferError, OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"failed to encode {buffer.width}x{buffer.height} buffer as {fmt}: {exc}") from exc
    return EncodedImage(out.getvalue(), fmt.upper())


def _narrow_wide_gray(img: Image.Image) -> bytes:
    """Truncate 16-bit gray samples to 8 bits with ``v >> 8``."""

    samples = memoryview(img.convert("I").tobytes()).cast("i")
    return bytes(min(max(value, 0), 0xFFFF) >> 8 for value in samples)


def image_to_buffer(img: Image.Image) -> PixelBuffer:
    """Convert a decoded Pillow image into an RGBA/STRAIGHT buffer.

    Opaque sources get alpha 255; Pillow's premultiplied ``RGBa`` is
    unpremultiplied; 16-bit gray is truncated to 8 bits.
    """

    width, height = img.size
    mode = img.mode

    if mode == "RGBA":
        return PixelBuffer(width, height, PixelLayout.RGBA, img.tobytes(), AlphaConvention.STRAIGHT)
    if mode == "RGBa":
        premultiplied = PixelBuffer(width, height, PixelLayout.RGBA, img.tobytes(), AlphaConvention.PREMULTIPLIED)
        return to_straight_alpha(premultiplied)
    if mode in ("RGB", "RGBX"):
        rgb = PixelBuffer(width, height, PixelLayout.RGB, img.convert("RGB").tobytes(), AlphaConvention.NONE)
        return expand_to_rgba(rgb)
    if mode in _WIDE_GRAY_MODES:
        gray = _narrow_wide_gray(img)
        rgb = bytearray(len(gray) * 3)
        rgb[0::3] = gray
        rgb[1::3] = gray
        rgb[2::3] = gray
        return expand_to_rgba(PixelBuffer(width, height, PixelLayout.RGB, bytes(rgb), AlphaConvention.NONE))
    if mode in _PALETTE_AND_GRAY_MODES:
        return PixelBuffer(width, height, PixelLayout.RGBA, img.convert("RGBA").tobytes(), AlphaConvention.STRAIGHT)
    raise DecodeError(f"unsupported pixel layout: {mode}")


def decode(image: EncodedImage) -> PixelBuffer:
    """Decode ``image`` into an RGBA/STRAIGHT buffer.

    The bytes must be a complete image of the declared format.
    """

    if not image.data:
        raise DecodeError("no image data")
    try:
        with Image.open(io.BytesIO(image.data), formats=[image.format.upper()]) as img:
            img.load()
            return image_to_buffer(img)
    except GiminiError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError, KeyError) as exc:
        raise DecodeError(f"invalid {image.format} data: {exc}") from exc
