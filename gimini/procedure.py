"""Host-facing entry point: one call per menu invocation.

Translates the pipeline outcome into the host's three-way status
(success, cancelled, execution error) and shows execution errors through the
host's message surface.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import SETTINGS, GiminiSettings
from .errors import ErrorKind, sanitize
from .host.bridge import HostBridge, LayerRef
from .host.context import ExecutorContext
from .host.document import HostDocument
from .infrastructure.network import GenerationClient
from .infrastructure.secrets import SecretStore
from .pipeline import (
    Cancelled,
    ClientFactory,
    Failed,
    PipelineOrchestrator,
    PipelineResult,
    Success,
    UserInput,
)

logger = logging.getLogger(__name__)

ERROR_PREFIX = "GIMini Error"


class StatusCode(Enum):
    SUCCESS = "success"
    CANCEL = "cancel"
    EXECUTION_ERROR = "execution-error"


@dataclass(frozen=True)
class HostStatus:
    code: StatusCode
    message: str = ""
    kind: Optional[ErrorKind] = None
    layer: Optional[LayerRef] = None


def to_status(result: PipelineResult, *secrets: Optional[str]) -> HostStatus:
    if isinstance(result, Success):
        return HostStatus(StatusCode.SUCCESS, layer=result.layer)
    if isinstance(result, Cancelled):
        return HostStatus(StatusCode.CANCEL)
    if isinstance(result, Failed):
        message = f"{ERROR_PREFIX}: {sanitize(result.message, *secrets)}"
        return HostStatus(StatusCode.EXECUTION_ERROR, message, kind=result.kind)
    raise TypeError(f"unknown pipeline result: {result!r}")


def prefill_api_key(secrets: Optional[SecretStore]) -> str:
    """Key to prefill the dialog with; empty when nothing usable is stored."""

    if secrets is None:
        return ""
    try:
        return secrets.load_secret() or ""
    except Exception:
        logger.exception("Secret store failed while loading the API key")
        return ""


def _remember_key(secrets: Optional[SecretStore], api_key: str) -> None:
    if secrets is None:
        return
    try:
        secrets.save_secret(api_key)
    except Exception:
        logger.exception("Secret store failed while saving the API key")


def run_procedure(
    document: HostDocument,
    user_input: Optional[UserInput],
    *,
    active_layer: Optional[int] = None,
    secrets: Optional[SecretStore] = None,
    client_factory: ClientFactory = GenerationClient,
    host_context=None,
    settings: GiminiSettings = SETTINGS,
) -> HostStatus:
    """Run one invocation against ``document``.

    ``user_input`` is ``None`` when the dialog was dismissed. Only one
    invocation per document may run at a time; a concurrent call is refused
    without touching the document.
    """

    if user_input is None:
        return to_status(PipelineOrchestrator(HostBridge(document, host_context)).run(None))

    if not document.invocation_lock.acquire(blocking=False):
        logger.warning("Refusing concurrent invocation on the same document")
        return to_status(Failed(ErrorKind.BUSY, "another generation is already running on this document"))

    bridge = HostBridge(document, host_context)
    try:
        layer = bridge.layer(active_layer) if active_layer is not None else None
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="gimini-request") as pool:
            orchestrator = PipelineOrchestrator(
                bridge,
                client_factory,
                active_layer=layer,
                worker=ExecutorContext(pool),
                settings=settings,
            )
            result = orchestrator.run(user_input)

        if not (isinstance(result, Failed) and result.kind is ErrorKind.VALIDATION):
            _remember_key(secrets, user_input.api_key)

        status = to_status(result, user_input.api_key)
        if status.code is StatusCode.EXECUTION_ERROR:
            bridge.message(status.message)
        return status
    finally:
        try:
            bridge.end_progress()
        finally:
            document.invocation_lock.release()
