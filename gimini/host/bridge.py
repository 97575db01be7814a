from __future__ import annotations

import logging
from typing import NamedTuple, Optional

from ..errors import GiminiError, HostReadError, HostWriteError
from ..imaging.buffer import (
    AlphaConvention,
    PixelBuffer,
    PixelBufferError,
    PixelLayout,
    convert_alpha,
)
from .context import ImmediateContext
from .document import HostDocument, Rect

logger = logging.getLogger(__name__)


class LayerRef(NamedTuple):
    document: HostDocument
    id: int


class HostBridge:
    """Moves pixels between a host document and :class:`PixelBuffer` values.

    Every host call runs through ``context``, the execution context the host
    requires for document access. ``write_new_layer`` is the only method that
    mutates the document.
    """

    def __init__(self, document: HostDocument, context=None) -> None:
        self.document = document
        self._context = context or ImmediateContext()

    def layer(self, layer_id: int) -> LayerRef:
        return LayerRef(self.document, layer_id)

    def active_layer(self) -> Optional[LayerRef]:
        layer_id = self._context.call(self.document.active_layer)
        return None if layer_id is None else LayerRef(self.document, layer_id)

    def read_region(self, layer: LayerRef, rect: Optional[Rect] = None) -> PixelBuffer:
        return self._context.call(self._read_region, layer, rect)

    def write_new_layer(self, document: HostDocument, name: str, buffer: PixelBuffer) -> LayerRef:
        return self._context.call(self._write_new_layer, document, name, buffer)

    def set_progress(self, text: str) -> None:
        self._context.call(self.document.progress_set_text, text)

    def end_progress(self) -> None:
        self._context.call(self.document.progress_end)

    def message(self, text: str) -> None:
        self._context.call(self.document.message, text)

    def _read_region(self, layer: LayerRef, rect: Optional[Rect]) -> PixelBuffer:
        document = layer.document
        try:
            if not document.layer_exists(layer.id):
                raise HostReadError(f"invalid layer reference: {layer.id}")
            width = document.layer_width(layer.id)
            height = document.layer_height(layer.id)
            layout = PixelLayout.from_bpp(document.layer_bpp(layer.id))

            region = rect if rect is not None else Rect(0, 0, width, height)
            if not region.fits_within(width, height):
                raise HostReadError(f"region {tuple(region)} outside {width}x{height} layer {layer.id}")

            data = document.read_pixels(layer.id, region)
            alpha = AlphaConvention.NONE if layout is PixelLayout.RGB else document.pixel_alpha
            buffer = PixelBuffer(region.width, region.height, layout, data, alpha)
        except GiminiError:
            raise
        except PixelBufferError as exc:
            raise HostReadError(f"host returned malformed pixels for layer {layer.id}: {exc}") from exc
        except Exception as exc:
            raise HostReadError(f"could not read layer {layer.id}: {exc}") from exc

        logger.info("Read layer %s region %dx%d (%d bpp)", layer.id, buffer.width, buffer.height, buffer.bpp)
        return buffer

    def _write_new_layer(self, document: HostDocument, name: str, buffer: PixelBuffer) -> LayerRef:
        # New layers are always RGBA in the host's own alpha convention.
        try:
            staged = convert_alpha(buffer, document.pixel_alpha)
        except PixelBufferError as exc:
            raise HostWriteError(f"cannot stage pixels for layer {name!r}: {exc}") from exc
        full = Rect(0, 0, staged.width, staged.height)

        try:
            previous = document.active_layer()
            layer_id = document.new_layer(name, staged.width, staged.height, PixelLayout.RGBA.bpp)
        except Exception as exc:
            raise HostWriteError(f"could not create layer {name!r}: {exc}") from exc

        # Pixels are merged while the layer is still detached; insertion is last.
        try:
            shadow = document.get_shadow_buffer(layer_id)
            shadow.set_rect(full, staged.data)
            document.flush(layer_id)
            document.merge_shadow(layer_id)
            document.insert_layer(layer_id)
            document.update(layer_id, full)
        except Exception as exc:
            self._discard(document, layer_id, previous)
            raise HostWriteError(f"could not write layer {name!r}: {exc}") from exc

        logger.info("Created layer %s %r (%dx%d)", layer_id, name, staged.width, staged.height)
        return LayerRef(document, layer_id)

    @staticmethod
    def _discard(document: HostDocument, layer_id: int, previous: Optional[int]) -> None:
        try:
            document.remove_layer(layer_id)
            if previous is not None and document.active_layer() != previous:
                document.set_active_layer(previous)
        except Exception:
            logger.exception("Failed to remove partially written layer %s", layer_id)
