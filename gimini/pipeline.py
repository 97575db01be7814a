"""Per-invocation generation pipeline.

``Idle -> Validating -> [CapturingInput] -> Requesting -> Decoding ->
Materializing -> Done``. Only the last working state writes to the host
document, so every failure before it leaves the document untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Union

from .config import SETTINGS, GiminiSettings
from .errors import ErrorKind, GiminiError, HostReadError, ValidationError, sanitize
from .host.bridge import HostBridge, LayerRef
from .host.context import ImmediateContext
from .imaging.codec import EncodedImage, decode, encode
from .infrastructure.network import GenerationClient

logger = logging.getLogger(__name__)


class GenerationMode(Enum):
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_TO_IMAGE = "image-to-image"


@dataclass(frozen=True)
class UserInput:
    prompt: str
    api_key: str = field(repr=False)
    mode: GenerationMode = GenerationMode.TEXT_TO_IMAGE


class PipelineState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CAPTURING_INPUT = "capturing-input"
    REQUESTING = "requesting"
    DECODING = "decoding"
    MATERIALIZING = "materializing"
    DONE = "done"


@dataclass(frozen=True)
class Success:
    layer: LayerRef


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class Failed:
    kind: ErrorKind
    message: str


PipelineResult = Union[Success, Cancelled, Failed]

ClientFactory = Callable[[str], GenerationClient]


def validate_input(user_input: UserInput) -> None:
    if not user_input.prompt or not user_input.prompt.strip():
        raise ValidationError("prompt cannot be empty")
    if not user_input.api_key:
        raise ValidationError("API key cannot be empty")
    if not isinstance(user_input.mode, GenerationMode):
        raise ValidationError(f"unknown mode selected: {user_input.mode!r}")


def layer_name(prompt: str, settings: GiminiSettings = SETTINGS) -> str:
    words = prompt.split()[: settings.layer_name_words]
    return settings.layer_name_template.format(words=" ".join(words))


class PipelineOrchestrator:
    """Drives one invocation from user input to a new layer.

    Single-shot: construct, call :meth:`run` once, discard. ``worker`` is the
    execution context for the network call; host access goes through the
    bridge's own context.
    """

    def __init__(
        self,
        bridge: HostBridge,
        client_factory: ClientFactory = GenerationClient,
        *,
        active_layer: Optional[LayerRef] = None,
        worker=None,
        settings: GiminiSettings = SETTINGS,
    ) -> None:
        self._bridge = bridge
        self._client_factory = client_factory
        self._active_layer = active_layer
        self._worker = worker or ImmediateContext()
        self._settings = settings
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]
        self.result: Optional[PipelineResult] = None

    def _enter(self, state: PipelineState) -> None:
        logger.debug("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _finish(self, result: PipelineResult) -> PipelineResult:
        self._enter(PipelineState.DONE)
        self.result = result
        return result

    def run(self, user_input: Optional[UserInput]) -> PipelineResult:
        if self.state is not PipelineState.IDLE:
            raise RuntimeError("pipeline orchestrator has already run")

        if user_input is None:
            logger.info("Invocation cancelled before validation")
            return self._finish(Cancelled())

        try:
            layer = self._execute(user_input)
        except GiminiError as exc:
            message = sanitize(str(exc), user_input.api_key)
            logger.warning("Pipeline failed in %s: %s (%s)", self.state.value, message, exc.kind.value)
            return self._finish(Failed(exc.kind, message))

        return self._finish(Success(layer))

    def _execute(self, user_input: UserInput) -> LayerRef:
        self._enter(PipelineState.VALIDATING)
        validate_input(user_input)
        logger.info("Mode=%s, prompt=%r", user_input.mode.value, user_input.prompt)

        reference = self._reference_for(user_input.mode)

        self._enter(PipelineState.REQUESTING)
        self._bridge.set_progress("Contacting Gemini API...")
        client = self._client_factory(user_input.api_key)
        generated = self._worker.call(client.generate, user_input.prompt, reference)

        self._enter(PipelineState.DECODING)
        self._bridge.set_progress("Decoding generated image...")
        buffer = decode(generated)

        self._enter(PipelineState.MATERIALIZING)
        self._bridge.set_progress("Creating layer...")
        name = layer_name(user_input.prompt, self._settings)
        return self._bridge.write_new_layer(self._bridge.document, name, buffer)

    def _reference_for(self, mode: GenerationMode) -> Optional[EncodedImage]:
        if mode is GenerationMode.TEXT_TO_IMAGE:
            return None
        if mode is GenerationMode.IMAGE_TO_IMAGE:
            self._enter(PipelineState.CAPTURING_INPUT)
            self._bridge.set_progress("Reading layer data...")
            layer = self._active_layer or self._bridge.active_layer()
            if layer is None:
                raise HostReadError("no active layer to edit")
            buffer = self._bridge.read_region(layer)
            reference = encode(buffer)
            logger.info("Encoded layer %s (%dx%d, %d bpp) to PNG", layer.id, buffer.width, buffer.height, buffer.bpp)
            return reference
        raise ValueError(f"unhandled generation mode: {mode!r}")
