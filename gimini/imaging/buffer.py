from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from PIL import Image, ImageChops

from ..errors import UnsupportedFormatError


class PixelBufferError(ValueError):
    """Raised when a buffer's byte length disagrees with its geometry."""


class PixelLayout(Enum):
    RGB = 3
    RGBA = 4

    @property
    def bpp(self) -> int:
        return self.value

    @property
    def mode(self) -> str:
        # Pillow mode name; RGBA here is always straight (non-premultiplied).
        return self.name

    @classmethod
    def from_bpp(cls, bpp: int) -> "PixelLayout":
        try:
            return cls(bpp)
        except ValueError:
            raise UnsupportedFormatError(f"unsupported bytes-per-pixel: {bpp}") from None


class AlphaConvention(Enum):
    STRAIGHT = "straight"
    PREMULTIPLIED = "premultiplied"
    NONE = "none"


@dataclass(frozen=True)
class PixelBuffer:
    """Row-major 8-bit raster with an explicit layout and alpha convention.

    ``data`` holds exactly ``stride * height`` bytes, ``stride`` being
    ``width * bpp``. RGB buffers carry no alpha; RGBA buffers are either
    straight or premultiplied and say which.
    """

    width: int
    height: int
    layout: PixelLayout
    data: bytes = field(repr=False)
    alpha: Optional[AlphaConvention] = None

    def __post_init__(self) -> None:
        if not isinstance(self.layout, PixelLayout):
            object.__setattr__(self, "layout", PixelLayout.from_bpp(self.layout))
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))

        if self.alpha is None:
            default = AlphaConvention.NONE if self.layout is PixelLayout.RGB else AlphaConvention.STRAIGHT
            object.__setattr__(self, "alpha", default)

        if self.width <= 0 or self.height <= 0:
            raise PixelBufferError(f"invalid dimensions {self.width}x{self.height}")
        expected = self.stride * self.height
        if len(self.data) != expected:
            raise PixelBufferError(
                f"buffer holds {len(self.data)} bytes, {self.width}x{self.height} "
                f"{self.layout.name} needs {expected}"
            )

        if self.layout is PixelLayout.RGB and self.alpha is not AlphaConvention.NONE:
            raise PixelBufferError("RGB buffers cannot carry an alpha convention")
        if self.layout is PixelLayout.RGBA and self.alpha is AlphaConvention.NONE:
            raise PixelBufferError("RGBA buffers must declare straight or premultiplied alpha")

    @property
    def bpp(self) -> int:
        return self.layout.bpp

    @property
    def stride(self) -> int:
        return self.width * self.layout.bpp

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


def expand_to_rgba(buffer: PixelBuffer) -> PixelBuffer:
    """RGB/NONE -> RGBA/STRAIGHT. Colour bytes are copied, alpha is 255.

    RGBA input is returned unchanged.
    """

    if buffer.layout is PixelLayout.RGBA:
        return buffer

    count = buffer.pixel_count
    src = buffer.data
    out = bytearray(count * 4)
    out[0::4] = src[0::3]
    out[1::4] = src[1::3]
    out[2::4] = src[2::3]
    out[3::4] = b"\xff" * count
    return PixelBuffer(buffer.width, buffer.height, PixelLayout.RGBA, bytes(out), AlphaConvention.STRAIGHT)


_UNPREMULTIPLY: List[bytes] = []


def _unpremultiply_table() -> List[bytes]:
    # straight = min(255, c * 255 // a); a == 0 maps every channel to 0
    if not _UNPREMULTIPLY:
        _UNPREMULTIPLY.append(bytes(256))
        _UNPREMULTIPLY.extend(bytes(min(255, c * 255 // a) for c in range(256)) for a in range(1, 256))
    return _UNPREMULTIPLY


def _rescale_colour(buffer: PixelBuffer, tables: List[bytes], target: AlphaConvention) -> PixelBuffer:
    src = buffer.data
    out = bytearray(src)
    for offset in range(0, len(src), 4):
        table = tables[src[offset + 3]]
        out[offset] = table[src[offset]]
        out[offset + 1] = table[src[offset + 1]]
        out[offset + 2] = table[src[offset + 2]]
    return replace(buffer, data=bytes(out), alpha=target)


def to_straight_alpha(buffer: PixelBuffer) -> PixelBuffer:
    """RGBA/PREMULTIPLIED -> RGBA/STRAIGHT using floor division.

    Fully transparent pixels come out as (0, 0, 0, 0). Straight input is
    returned unchanged; RGB input is rejected.
    """

    if buffer.layout is not PixelLayout.RGBA:
        raise PixelBufferError("alpha conversion needs an RGBA buffer")
    if buffer.alpha is AlphaConvention.STRAIGHT:
        return buffer
    return _rescale_colour(buffer, _unpremultiply_table(), AlphaConvention.STRAIGHT)


def to_premultiplied_alpha(buffer: PixelBuffer) -> PixelBuffer:
    """RGBA/STRAIGHT -> RGBA/PREMULTIPLIED using floor division."""

    if buffer.layout is not PixelLayout.RGBA:
        raise PixelBufferError("alpha conversion needs an RGBA buffer")
    if buffer.alpha is AlphaConvention.PREMULTIPLIED:
        return buffer
    # ImageChops.multiply is c * a // 255 per channel
    img = Image.frombytes("RGBA", (buffer.width, buffer.height), buffer.data)
    red, green, blue, alpha = img.split()
    scaled = [ImageChops.multiply(band, alpha) for band in (red, green, blue)]
    out = Image.merge("RGBA", (*scaled, alpha))
    return replace(buffer, data=out.tobytes(), alpha=AlphaConvention.PREMULTIPLIED)


def convert_alpha(buffer: PixelBuffer, target: AlphaConvention) -> PixelBuffer:
    if target is AlphaConvention.STRAIGHT:
        return to_straight_alpha(expand_to_rgba(buffer))
    if target is AlphaConvention.PREMULTIPLIED:
        return to_premultiplied_alpha(expand_to_rgba(buffer))
    if target is AlphaConvention.NONE:
        if buffer.layout is PixelLayout.RGB:
            return buffer
        raise PixelBufferError("refusing to discard alpha from an RGBA buffer")
    raise ValueError(f"unknown alpha convention: {target!r}")
