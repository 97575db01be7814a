from __future__ import annotations

import io
import logging
from typing import Optional

from flask import Flask, jsonify, request, send_file

from .config import SETTINGS, GiminiSettings, configure_logging
from .errors import DecodeError, ErrorKind, GiminiError
from .host.bridge import HostBridge, LayerRef
from .host.document import InMemoryDocument
from .imaging.codec import EncodedImage, decode, encode
from .infrastructure.network import GenerationClient
from .infrastructure.secrets import FileSecretStore, SecretStore
from .pipeline import ClientFactory, GenerationMode, UserInput
from .procedure import StatusCode, prefill_api_key, run_procedure

APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)

_FAILURE_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.BUSY: 409,
    ErrorKind.TRANSPORT: 502,
    ErrorKind.SERVICE: 502,
    ErrorKind.EMPTY_RESULT: 502,
    ErrorKind.DECODE: 502,
}


def _layer_json(layer: LayerRef) -> dict:
    document = layer.document
    return {
        "id": layer.id,
        "name": document.layer_name(layer.id),
        "width": document.layer_width(layer.id),
        "height": document.layer_height(layer.id),
        "bpp": document.layer_bpp(layer.id),
    }


def send_png(image: EncodedImage):
    return send_file(io.BytesIO(image.data), mimetype=image.mime_type)


def create_app(
    document: Optional[InMemoryDocument] = None,
    secrets: Optional[SecretStore] = None,
    client_factory: Optional[ClientFactory] = None,
    settings: GiminiSettings = SETTINGS,
) -> Flask:
    """Headless host: one in-memory document per process, driven over HTTP."""

    configure_logging()
    app = Flask(__name__)

    document = document if document is not None else InMemoryDocument()
    secrets = secrets if secrets is not None else FileSecretStore(settings=settings)
    if client_factory is None:
        def client_factory(api_key: str) -> GenerationClient:
            return GenerationClient(api_key, settings=settings)

    bridge = HostBridge(document)

    @app.route("/health")
    def health():
        return jsonify(ok=True, version=APP_VERSION, layers=len(document.layers()))

    @app.route("/layers", methods=["GET"])
    def list_layers():
        return jsonify(layers=[_layer_json(bridge.layer(layer_id)) for layer_id in document.layers()])

    @app.route("/layers", methods=["POST"])
    def upload_layer():
        name = request.args.get("name", "Uploaded layer")
        fmt = request.args.get("format", "PNG").upper()
        try:
            buffer = decode(EncodedImage(request.get_data(), fmt))
            layer = bridge.write_new_layer(document, name, buffer)
        except DecodeError as exc:
            return jsonify(error=str(exc)), 400
        except GiminiError as exc:
            logger.warning("Upload failed: %s", exc)
            return jsonify(error=str(exc)), 500
        return jsonify(layer=_layer_json(layer)), 201

    @app.route("/layers/<int:layer_id>.png")
    def layer_png(layer_id: int):
        try:
            buffer = bridge.read_region(bridge.layer(layer_id))
        except GiminiError as exc:
            return jsonify(error=str(exc)), 404
        return send_png(encode(buffer))

    @app.route("/generate", methods=["POST"])
    def generate():
        payload = request.get_json(silent=True) or {}

        if payload.get("cancel"):
            user_input = None
        else:
            try:
                mode = GenerationMode(payload.get("mode", GenerationMode.TEXT_TO_IMAGE.value))
            except ValueError:
                return jsonify(status="execution-error", message=f"unknown mode: {payload.get('mode')}"), 400
            api_key = str(payload.get("api_key") or prefill_api_key(secrets))
            user_input = UserInput(str(payload.get("prompt") or ""), api_key, mode)

        active = payload.get("layer")
        try:
            active_layer = int(active) if active is not None else None
        except (TypeError, ValueError):
            return jsonify(status="execution-error", message=f"invalid layer id: {active}"), 400

        status = run_procedure(
            document,
            user_input,
            active_layer=active_layer,
            secrets=secrets,
            client_factory=client_factory,
            settings=settings,
        )

        body = {"status": status.code.value, "message": status.message}
        if status.code is StatusCode.SUCCESS:
            body["layer"] = _layer_json(status.layer)
            return jsonify(body), 201
        if status.code is StatusCode.CANCEL:
            return jsonify(body), 200
        body["kind"] = status.kind.value
        return jsonify(body), _FAILURE_STATUS.get(status.kind, 500)

    return app
