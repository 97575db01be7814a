"""Failure taxonomy shared by every pipeline component.

Each component raises one of these; the orchestrator converts them into a
``Failed`` result by reading :attr:`GiminiError.kind`. Anything that is not a
``GiminiError`` is a programming error and propagates unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    VALIDATION = "validation"
    HOST_READ = "host-read"
    HOST_WRITE = "host-write"
    ENCODE = "encode"
    DECODE = "decode"
    TRANSPORT = "transport"
    SERVICE = "service"
    EMPTY_RESULT = "empty-result"
    UNSUPPORTED_FORMAT = "unsupported-format"
    BUSY = "busy"


class GiminiError(Exception):
    kind: ErrorKind


class ValidationError(GiminiError):
    kind = ErrorKind.VALIDATION


class HostReadError(GiminiError):
    kind = ErrorKind.HOST_READ


class HostWriteError(GiminiError):
    kind = ErrorKind.HOST_WRITE


class EncodeError(GiminiError):
    kind = ErrorKind.ENCODE


class DecodeError(GiminiError):
    kind = ErrorKind.DECODE


class UnsupportedFormatError(GiminiError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class BusyError(GiminiError):
    kind = ErrorKind.BUSY


class GenerationError(GiminiError):
    """Base class for failures of the remote generation call."""


class TransportError(GenerationError):
    kind = ErrorKind.TRANSPORT


class ServiceError(GenerationError):
    kind = ErrorKind.SERVICE

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class EmptyResultError(GenerationError):
    kind = ErrorKind.EMPTY_RESULT


REDACTED = "***"


def sanitize(message: str, *secrets: Optional[str]) -> str:
    """Replace every non-empty secret in ``message`` with ``***``."""

    for secret in secrets:
        if secret:
            message = message.replace(secret, REDACTED)
    return message
