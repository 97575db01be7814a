import io
import threading
from dataclasses import replace

import pytest
from PIL import Image

from gimini.config import SETTINGS
from gimini.imaging.codec import EncodedImage

API_KEY = "sk-test-0123456789"


class StubClient:
    """Stands in for ``GenerationClient``; returns a canned image or raises."""

    def __init__(self, api_key, result=None, error=None):
        self.api_key = api_key
        self.result = result
        self.error = error
        self.calls = []
        self.threads = []

    def generate(self, prompt, reference_image=None):
        self.calls.append((prompt, reference_image))
        self.threads.append(threading.current_thread().name)
        if self.error is not None:
            raise self.error
        return self.result


class StubClientFactory:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.clients = []

    def __call__(self, api_key):
        client = StubClient(api_key, self.result, self.error)
        self.clients.append(client)
        return client

    @property
    def calls(self):
        return [call for client in self.clients for call in client.calls]


def encode_image(img: Image.Image, fmt: str = "PNG", **params) -> bytes:
    out = io.BytesIO()
    img.save(out, fmt, **params)
    return out.getvalue()


@pytest.fixture
def settings():
    return replace(
        SETTINGS,
        api_base="https://generation.example/v1beta",
        model="test-image-model",
        timeout=5.0,
        layer_name_template="Gemini Gen: {words}...",
        layer_name_words=5,
    )


@pytest.fixture
def opaque_png():
    return EncodedImage(encode_image(Image.new("RGB", (512, 512), (10, 20, 30))), "PNG")


@pytest.fixture
def stub_factory(opaque_png):
    return StubClientFactory(result=opaque_png)
