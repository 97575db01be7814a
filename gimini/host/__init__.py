"""Host document access: capability set, in-memory host and the bridge."""

from .bridge import HostBridge, LayerRef
from .context import ExecutorContext, ImmediateContext
from .document import HostDocument, InMemoryDocument, Rect, ShadowBuffer

__all__ = [
    "HostBridge",
    "LayerRef",
    "ExecutorContext",
    "ImmediateContext",
    "HostDocument",
    "InMemoryDocument",
    "Rect",
    "ShadowBuffer",
]
