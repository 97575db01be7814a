from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Callable

import requests

from ..config import SETTINGS, GiminiSettings
from ..errors import EmptyResultError, ServiceError, TransportError, sanitize
from ..imaging.codec import EncodedImage, format_for_mime_type

logger = logging.getLogger(__name__)


SessionFactory = Callable[[], requests.Session]

USER_AGENT = "gimini/1.0"

MALFORMED = "MALFORMED_RESPONSE"


def _build_parts(prompt: str, reference_image: EncodedImage | None) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    if reference_image is not None:
        parts.append(
            {
                "inline_data": {
                    "mime_type": reference_image.mime_type,
                    "data": base64.b64encode(reference_image.data).decode("ascii"),
                }
            }
        )
    parts.append({"text": prompt})
    return parts


def _service_error(response: requests.Response) -> ServiceError:
    """Build a ``ServiceError`` from a non-success response.

    The service reports ``{"error": {"code", "message", "status"}}``; anything
    else falls back to the HTTP status line.
    """

    try:
        error = response.json().get("error") or {}
    except (ValueError, AttributeError):
        error = {}
    if not isinstance(error, dict):
        error = {}
    code = str(error.get("status") or error.get("code") or response.status_code)
    message = str(error.get("message") or response.reason or "request failed")
    return ServiceError(code, message)


def _inline_image(part: dict[str, Any]) -> dict[str, Any] | None:
    inline = part.get("inlineData") or part.get("inline_data")
    if inline is None:
        return None
    if not isinstance(inline, dict):
        raise ServiceError(MALFORMED, "inline data part is not an object")
    mime_type = inline.get("mimeType") or inline.get("mime_type") or ""
    if not isinstance(mime_type, str):
        raise ServiceError(MALFORMED, "inline data mime type is not a string")
    if not mime_type.startswith("image/"):
        return None
    return inline


def _decode_data(inline: dict[str, Any]) -> bytes:
    data = inline.get("data") or ""
    if not isinstance(data, str):
        raise ServiceError(MALFORMED, "image part data is not a string")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, TypeError, ValueError):
        raise ServiceError(MALFORMED, "image part is not valid base64") from None


class GenerationClient:
    """One blocking ``generateContent`` call per :meth:`generate`.

    There is no retry loop: repeating a generation is a caller decision.
    """

    def __init__(
        self,
        api_key: str,
        settings: GiminiSettings = SETTINGS,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._api_key = api_key
        self._settings = settings
        self._session_factory = session_factory or requests.Session
        self._session = self._create_session()

    def __repr__(self) -> str:
        return f"GenerationClient(model={self._settings.model!r})"

    def _create_session(self) -> requests.Session:
        session = self._session_factory()
        session.headers.update({"User-Agent": USER_AGENT})
        return session

    @property
    def endpoint(self) -> str:
        base = self._settings.api_base.rstrip("/")
        return f"{base}/models/{self._settings.model}:generateContent"

    def generate(self, prompt: str, reference_image: EncodedImage | None = None) -> EncodedImage:
        payload = {
            "contents": [{"parts": _build_parts(prompt, reference_image)}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        logger.info(
            "Requesting %s (reference image: %s)",
            self._settings.model,
            f"{len(reference_image)} bytes" if reference_image is not None else "none",
        )
        try:
            response = self._session.post(
                self.endpoint,
                json=payload,
                headers=headers,
                timeout=self._settings.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(sanitize(f"request to generation service failed: {exc}", self._api_key)) from exc

        if not response.ok:
            error = _service_error(response)
            code = sanitize(error.code, self._api_key)
            logger.warning("Generation service returned %s: %s", response.status_code, code)
            raise ServiceError(code, sanitize(error.message, self._api_key))

        try:
            body = response.json()
        except ValueError:
            raise ServiceError(str(response.status_code), "response is not valid JSON") from None
        if not isinstance(body, dict):
            raise ServiceError(str(response.status_code), "unexpected response structure")

        return self._extract_image(body)

    def _extract_image(self, body: dict[str, Any]) -> EncodedImage:
        candidates = body.get("candidates") or []
        if not isinstance(candidates, list):
            raise ServiceError(MALFORMED, "candidates is not a list")
        if not candidates:
            feedback = body.get("promptFeedback") or {}
            reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            if reason:
                raise EmptyResultError(f"prompt blocked: {reason}")
            raise EmptyResultError("service returned no candidates")

        first = candidates[0]
        if not isinstance(first, dict):
            raise ServiceError(MALFORMED, "candidate is not an object")
        content = first.get("content") or {}
        if not isinstance(content, dict):
            raise ServiceError(MALFORMED, "candidate content is not an object")
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise ServiceError(MALFORMED, "content parts is not a list")

        for part in parts:
            if not isinstance(part, dict):
                continue
            if "text" in part:
                logger.debug("Service text part: %s", part["text"])
                continue
            inline = _inline_image(part)
            if inline is None:
                continue
            data = _decode_data(inline)
            if not data:
                raise EmptyResultError("service returned an empty image")
            mime_type = inline.get("mimeType") or inline.get("mime_type")
            logger.info("Received %s image (%d bytes)", mime_type, len(data))
            return EncodedImage(data, format_for_mime_type(mime_type))

        finish_reason = first.get("finishReason")
        if finish_reason and finish_reason != "STOP":
            raise EmptyResultError(f"no image returned (finish reason: {finish_reason})")
        raise EmptyResultError("service returned no image")
