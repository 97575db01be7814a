"""Raster buffers and the wire codec."""

from .buffer import (
    AlphaConvention,
    PixelBuffer,
    PixelBufferError,
    PixelLayout,
    convert_alpha,
    expand_to_rgba,
    to_premultiplied_alpha,
    to_straight_alpha,
)
from .codec import EncodedImage, decode, encode, format_for_mime_type, image_to_buffer

__all__ = [
    "AlphaConvention",
    "PixelBuffer",
    "PixelBufferError",
    "PixelLayout",
    "convert_alpha",
    "expand_to_rgba",
    "to_premultiplied_alpha",
    "to_straight_alpha",
    "EncodedImage",
    "decode",
    "encode",
    "format_for_mime_type",
    "image_to_buffer",
]
