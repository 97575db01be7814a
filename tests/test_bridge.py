import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from gimini.errors import HostReadError, HostWriteError, UnsupportedFormatError
from gimini.host.bridge import HostBridge, LayerRef
from gimini.host.context import ExecutorContext
from gimini.host.document import InMemoryDocument, Rect
from gimini.imaging.buffer import AlphaConvention, PixelBuffer, PixelLayout


def _rgba_pixels(width, height):
    return bytes(index % 256 for index in range(width * height * 4))


class FailingMergeDocument(InMemoryDocument):
    def merge_shadow(self, layer):
        raise RuntimeError("merge exploded")


class FailingCreateDocument(InMemoryDocument):
    def new_layer(self, name, width, height, bpp):
        raise RuntimeError("out of memory")


def test_read_region_reads_whole_layer_by_default():
    document = InMemoryDocument()
    pixels = _rgba_pixels(3, 2)
    layer = document.add_layer("base", 3, 2, 4, pixels)
    bridge = HostBridge(document)

    buffer = bridge.read_region(bridge.layer(layer))

    assert (buffer.width, buffer.height, buffer.bpp) == (3, 2, 4)
    assert buffer.alpha is AlphaConvention.STRAIGHT
    assert buffer.data == pixels


def test_read_region_reads_sub_rectangle():
    document = InMemoryDocument()
    rows = [bytes([row] * 3 * 4) for row in range(4)]
    layer = document.add_layer("rgb", 4, 4, 3, b"".join(rows))
    bridge = HostBridge(document)

    buffer = bridge.read_region(bridge.layer(layer), Rect(1, 2, 2, 2))

    assert buffer.layout is PixelLayout.RGB
    assert buffer.alpha is AlphaConvention.NONE
    assert buffer.data == bytes([2] * 6 + [3] * 6)


def test_read_region_reports_host_alpha_convention():
    document = InMemoryDocument(pixel_alpha=AlphaConvention.PREMULTIPLIED)
    layer = document.add_layer("pre", 1, 1, 4, bytes([10, 10, 10, 20]))

    buffer = HostBridge(document).read_region(LayerRef(document, layer))

    assert buffer.alpha is AlphaConvention.PREMULTIPLIED


def test_read_region_rejects_unknown_layer():
    document = InMemoryDocument()
    with pytest.raises(HostReadError):
        HostBridge(document).read_region(LayerRef(document, 99))


def test_read_region_rejects_out_of_bounds_rect():
    document = InMemoryDocument()
    layer = document.add_layer("base", 2, 2, 4, bytes(16))
    with pytest.raises(HostReadError):
        HostBridge(document).read_region(LayerRef(document, layer), Rect(1, 1, 2, 2))


def test_read_region_fails_fast_on_unsupported_bpp():
    document = InMemoryDocument()
    layer = document.add_layer("gray-alpha", 2, 2, 2, bytes(8))
    with pytest.raises(UnsupportedFormatError):
        HostBridge(document).read_region(LayerRef(document, layer))


def test_write_new_layer_commits_a_populated_layer():
    document = InMemoryDocument()
    bridge = HostBridge(document)
    pixels = _rgba_pixels(4, 3)

    layer = bridge.write_new_layer(document, "generated", PixelBuffer(4, 3, PixelLayout.RGBA, pixels))

    assert document.layers() == [layer.id]
    assert document.active_layer() == layer.id
    assert document.layer_name(layer.id) == "generated"
    assert document.layer_bpp(layer.id) == 4
    assert document.read_pixels(layer.id, Rect(0, 0, 4, 3)) == pixels


def test_write_new_layer_expands_rgb_to_opaque_rgba():
    document = InMemoryDocument()
    bridge = HostBridge(document)

    layer = bridge.write_new_layer(document, "rgb", PixelBuffer(1, 2, PixelLayout.RGB, bytes([1, 2, 3, 4, 5, 6])))

    assert document.read_pixels(layer.id, Rect(0, 0, 1, 2)) == bytes([1, 2, 3, 255, 4, 5, 6, 255])


def test_write_new_layer_converts_to_host_alpha_convention():
    document = InMemoryDocument(pixel_alpha=AlphaConvention.PREMULTIPLIED)
    bridge = HostBridge(document)

    layer = bridge.write_new_layer(document, "half", PixelBuffer(1, 1, PixelLayout.RGBA, bytes([200, 100, 255, 128])))

    assert document.read_pixels(layer.id, Rect(0, 0, 1, 1)) == bytes([100, 50, 128, 128])


def test_failed_commit_leaves_no_layer_behind():
    document = FailingMergeDocument()
    first = document.add_layer("base", 2, 2, 4, bytes(16))
    second = document.add_layer("top", 2, 2, 4, bytes(16))
    document.set_active_layer(first)
    bridge = HostBridge(document)

    with pytest.raises(HostWriteError):
        bridge.write_new_layer(document, "doomed", PixelBuffer(2, 2, PixelLayout.RGBA, bytes(16)))

    assert document.layers() == [first, second]
    assert document.active_layer() == first
    assert not document.layer_exists(second + 1)


def test_layer_is_inserted_only_after_pixels_are_merged():
    class RecordingDocument(InMemoryDocument):
        def __init__(self):
            super().__init__()
            self.seen_on_insert = None

        def insert_layer(self, layer):
            self.seen_on_insert = bytes(self._layers[layer].pixels)
            super().insert_layer(layer)

    document = RecordingDocument()
    pixels = _rgba_pixels(2, 2)

    HostBridge(document).write_new_layer(document, "ready", PixelBuffer(2, 2, PixelLayout.RGBA, pixels))

    assert document.seen_on_insert == pixels


def test_failed_update_restores_active_layer():
    class FailingUpdateDocument(InMemoryDocument):
        def update(self, layer, rect):
            raise RuntimeError("display gone")

    document = FailingUpdateDocument()
    first = document.add_layer("base", 1, 1, 4, bytes(4))
    document.add_layer("top", 1, 1, 4, bytes(4))
    document.set_active_layer(first)

    with pytest.raises(HostWriteError):
        HostBridge(document).write_new_layer(document, "doomed", PixelBuffer(1, 1, PixelLayout.RGBA, bytes(4)))

    assert len(document.layers()) == 2
    assert document.active_layer() == first


def test_failed_layer_creation_is_a_write_error():
    document = FailingCreateDocument()
    with pytest.raises(HostWriteError):
        HostBridge(document).write_new_layer(document, "x", PixelBuffer(1, 1, PixelLayout.RGB, bytes(3)))
    assert document.layers() == []


def test_host_calls_run_on_the_given_context():
    class ThreadRecordingDocument(InMemoryDocument):
        def __init__(self):
            super().__init__()
            self.threads = []

        def progress_set_text(self, text):
            self.threads.append(threading.current_thread().name)
            super().progress_set_text(text)

        def insert_layer(self, layer):
            self.threads.append(threading.current_thread().name)
            super().insert_layer(layer)

    document = ThreadRecordingDocument()
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="host-ui") as pool:
        bridge = HostBridge(document, ExecutorContext(pool))
        bridge.set_progress("working")
        bridge.write_new_layer(document, "ctx", PixelBuffer(1, 1, PixelLayout.RGB, bytes(3)))
        bridge.end_progress()

    assert len(document.threads) == 2
    assert all(name.startswith("host-ui") for name in document.threads)
    assert document.progress_history == ["working"]
    assert document.progress_text is None
