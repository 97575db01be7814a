"""Host document capability set and an in-memory implementation of it."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

from ..imaging.buffer import AlphaConvention

logger = logging.getLogger(__name__)


class Rect(NamedTuple):
    x: int
    y: int
    width: int
    height: int

    def fits_within(self, width: int, height: int) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.width > 0
            and self.height > 0
            and self.x + self.width <= width
            and self.y + self.height <= height
        )


class HostDocument:
    """Operations the pipeline needs from a host raster document.

    Layer ids are opaque integers assigned by the host. Implementations raise
    whatever their host raises; :class:`~gimini.host.bridge.HostBridge`
    classifies those failures.
    """

    # Convention of the pixel bytes the host hands out and accepts for RGBA layers.
    pixel_alpha = AlphaConvention.STRAIGHT

    def __init__(self) -> None:
        self.invocation_lock = threading.Lock()

    def layers(self) -> List[int]:
        raise NotImplementedError

    def active_layer(self) -> Optional[int]:
        raise NotImplementedError

    def set_active_layer(self, layer: int) -> None:
        raise NotImplementedError

    def layer_exists(self, layer: int) -> bool:
        raise NotImplementedError

    def layer_name(self, layer: int) -> str:
        raise NotImplementedError

    def layer_width(self, layer: int) -> int:
        raise NotImplementedError

    def layer_height(self, layer: int) -> int:
        raise NotImplementedError

    def layer_bpp(self, layer: int) -> int:
        raise NotImplementedError

    def read_pixels(self, layer: int, rect: Rect) -> bytes:
        raise NotImplementedError

    def new_layer(self, name: str, width: int, height: int, bpp: int) -> int:
        raise NotImplementedError

    def insert_layer(self, layer: int) -> None:
        raise NotImplementedError

    def remove_layer(self, layer: int) -> None:
        raise NotImplementedError

    def get_shadow_buffer(self, layer: int) -> "ShadowBuffer":
        raise NotImplementedError

    def flush(self, layer: int) -> None:
        raise NotImplementedError

    def merge_shadow(self, layer: int) -> None:
        raise NotImplementedError

    def update(self, layer: int, rect: Rect) -> None:
        raise NotImplementedError

    def progress_set_text(self, text: str) -> None:
        raise NotImplementedError

    def progress_end(self) -> None:
        raise NotImplementedError

    def message(self, text: str) -> None:
        raise NotImplementedError


class ShadowBuffer:
    """Staging surface of one layer; invisible until merged."""

    def __init__(self, width: int, height: int, bpp: int) -> None:
        self.width = width
        self.height = height
        self.bpp = bpp
        self.data = bytearray(width * height * bpp)
        self.dirty = False

    def set_rect(self, rect: Rect, data: bytes) -> None:
        if not rect.fits_within(self.width, self.height):
            raise ValueError(f"rect {tuple(rect)} outside {self.width}x{self.height} shadow")
        row_bytes = rect.width * self.bpp
        if len(data) != row_bytes * rect.height:
            raise ValueError(f"expected {row_bytes * rect.height} bytes, got {len(data)}")
        stride = self.width * self.bpp
        for row in range(rect.height):
            start = (rect.y + row) * stride + rect.x * self.bpp
            self.data[start:start + row_bytes] = data[row * row_bytes:(row + 1) * row_bytes]
        self.dirty = True


@dataclass
class _Layer:
    id: int
    name: str
    width: int
    height: int
    bpp: int
    pixels: bytearray
    shadow: Optional[ShadowBuffer] = None
    flushed: bool = False
    updates: List[Rect] = field(default_factory=list)


class InMemoryDocument(HostDocument):
    """Pure-Python host document: a stack of byte-backed layers.

    Layers created with :meth:`new_layer` are detached until inserted, like
    freshly created layers in a raster editor. Progress text and messages are
    recorded so callers can show or inspect them.
    """

    def __init__(self, pixel_alpha: AlphaConvention = AlphaConvention.STRAIGHT) -> None:
        super().__init__()
        self.pixel_alpha = pixel_alpha
        self._ids = itertools.count(1)
        self._layers: Dict[int, _Layer] = {}
        self._stack: List[int] = []
        self._active: Optional[int] = None
        self.progress_text: Optional[str] = None
        self.progress_history: List[str] = []
        self.messages: List[str] = []

    def _layer(self, layer: int) -> _Layer:
        try:
            return self._layers[layer]
        except KeyError:
            raise KeyError(f"no such layer: {layer}") from None

    def layers(self) -> List[int]:
        return list(self._stack)

    def active_layer(self) -> Optional[int]:
        return self._active

    def set_active_layer(self, layer: int) -> None:
        if layer not in self._stack:
            raise KeyError(f"layer {layer} is not in the document")
        self._active = layer

    def layer_exists(self, layer: int) -> bool:
        return layer in self._stack

    def layer_name(self, layer: int) -> str:
        return self._layer(layer).name

    def layer_width(self, layer: int) -> int:
        return self._layer(layer).width

    def layer_height(self, layer: int) -> int:
        return self._layer(layer).height

    def layer_bpp(self, layer: int) -> int:
        return self._layer(layer).bpp

    def read_pixels(self, layer: int, rect: Rect) -> bytes:
        entry = self._layer(layer)
        if not rect.fits_within(entry.width, entry.height):
            raise ValueError(f"rect {tuple(rect)} outside {entry.width}x{entry.height} layer")
        stride = entry.width * entry.bpp
        row_bytes = rect.width * entry.bpp
        rows = []
        for row in range(rect.y, rect.y + rect.height):
            start = row * stride + rect.x * entry.bpp
            rows.append(bytes(entry.pixels[start:start + row_bytes]))
        return b"".join(rows)

    def new_layer(self, name: str, width: int, height: int, bpp: int) -> int:
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid layer size {width}x{height}")
        layer = next(self._ids)
        self._layers[layer] = _Layer(layer, name, width, height, bpp, bytearray(width * height * bpp))
        return layer

    def add_layer(self, name: str, width: int, height: int, bpp: int, pixels: bytes) -> int:
        """Create, fill and insert a layer in one step."""

        layer = self.new_layer(name, width, height, bpp)
        entry = self._layers[layer]
        if len(pixels) != len(entry.pixels):
            del self._layers[layer]
            raise ValueError(f"expected {len(entry.pixels)} bytes, got {len(pixels)}")
        entry.pixels[:] = pixels
        self.insert_layer(layer)
        return layer

    def insert_layer(self, layer: int) -> None:
        self._layer(layer)
        if layer in self._stack:
            raise ValueError(f"layer {layer} is already in the document")
        self._stack.append(layer)
        self._active = layer

    def remove_layer(self, layer: int) -> None:
        self._layer(layer)
        del self._layers[layer]
        if layer in self._stack:
            self._stack.remove(layer)
        if self._active == layer:
            self._active = self._stack[-1] if self._stack else None

    def get_shadow_buffer(self, layer: int) -> ShadowBuffer:
        entry = self._layer(layer)
        if entry.shadow is None:
            entry.shadow = ShadowBuffer(entry.width, entry.height, entry.bpp)
        return entry.shadow

    def flush(self, layer: int) -> None:
        self._layer(layer).flushed = True

    def merge_shadow(self, layer: int) -> None:
        entry = self._layer(layer)
        if entry.shadow is None or not entry.shadow.dirty:
            raise RuntimeError(f"layer {layer} has no pending shadow data")
        if not entry.flushed:
            raise RuntimeError(f"layer {layer} shadow merged before flush")
        entry.pixels[:] = entry.shadow.data
        entry.shadow = None
        entry.flushed = False

    def update(self, layer: int, rect: Rect) -> None:
        entry = self._layer(layer)
        if not rect.fits_within(entry.width, entry.height):
            raise ValueError(f"update rect {tuple(rect)} outside layer")
        entry.updates.append(rect)

    def progress_set_text(self, text: str) -> None:
        self.progress_text = text
        self.progress_history.append(text)

    def progress_end(self) -> None:
        self.progress_text = None

    def message(self, text: str) -> None:
        logger.warning("%s", text)
        self.messages.append(text)
