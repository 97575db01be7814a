import pytest

from conftest import API_KEY, StubClientFactory
from gimini.errors import ErrorKind, TransportError
from gimini.host.document import InMemoryDocument
from gimini.imaging.codec import decode
from gimini.infrastructure.secrets import FileSecretStore, SecretStore
from gimini.pipeline import Cancelled, Failed, GenerationMode, UserInput
from gimini.procedure import StatusCode, prefill_api_key, run_procedure, to_status


def test_dismissed_dialog_is_a_cancel(stub_factory):
    document = InMemoryDocument()

    status = run_procedure(document, None, client_factory=stub_factory)

    assert status.code is StatusCode.CANCEL
    assert status.message == ""
    assert document.messages == []
    assert stub_factory.clients == []


def test_success_creates_layer_and_remembers_key(tmp_path, settings, stub_factory):
    document = InMemoryDocument()
    secrets = FileSecretStore(tmp_path / "secrets.json")

    status = run_procedure(document, UserInput("a fox", API_KEY), secrets=secrets, client_factory=stub_factory, settings=settings)

    assert status.code is StatusCode.SUCCESS
    assert document.layers() == [status.layer.id]
    assert secrets.load_secret() == API_KEY
    assert "Contacting Gemini API..." in document.progress_history
    assert document.progress_text is None
    assert document.messages == []


def test_request_runs_on_a_worker_thread(settings, stub_factory):
    run_procedure(InMemoryDocument(), UserInput("fox", API_KEY), client_factory=stub_factory, settings=settings)

    assert stub_factory.clients[0].threads[0].startswith("gimini-request")


def test_execution_error_is_shown_sanitized(tmp_path, settings):
    document = InMemoryDocument()
    factory = StubClientFactory(error=TransportError(f"proxy refused {API_KEY}"))

    status = run_procedure(document, UserInput("fox", API_KEY), client_factory=factory, settings=settings)

    assert status.code is StatusCode.EXECUTION_ERROR
    assert status.kind is ErrorKind.TRANSPORT
    assert status.message.startswith("GIMini Error: ")
    assert API_KEY not in status.message
    assert document.messages == [status.message]
    assert document.layers() == []
    assert document.progress_text is None


def test_validation_failure_does_not_store_key(tmp_path, stub_factory):
    secrets = FileSecretStore(tmp_path / "secrets.json")

    status = run_procedure(InMemoryDocument(), UserInput("", API_KEY), secrets=secrets, client_factory=stub_factory)

    assert status.code is StatusCode.EXECUTION_ERROR
    assert status.kind is ErrorKind.VALIDATION
    assert secrets.load_secret() is None
    assert stub_factory.clients == []


def test_active_layer_is_used_for_image_to_image(settings, stub_factory):
    document = InMemoryDocument()
    first = document.add_layer("first", 2, 2, 3, bytes(12))
    document.add_layer("second", 3, 3, 4, bytes(36))

    status = run_procedure(
        document,
        UserInput("edit", API_KEY, GenerationMode.IMAGE_TO_IMAGE),
        active_layer=first,
        client_factory=stub_factory,
        settings=settings,
    )

    assert status.code is StatusCode.SUCCESS
    reference = decode(stub_factory.calls[0][1])
    assert (reference.width, reference.height) == (2, 2)


def test_concurrent_invocation_is_refused(stub_factory):
    document = InMemoryDocument()
    document.invocation_lock.acquire()
    try:
        status = run_procedure(document, UserInput("fox", API_KEY), client_factory=stub_factory)
    finally:
        document.invocation_lock.release()

    assert status.code is StatusCode.EXECUTION_ERROR
    assert status.kind is ErrorKind.BUSY
    assert stub_factory.clients == []
    assert document.layers() == []


def test_lock_is_released_after_each_run(settings, stub_factory):
    document = InMemoryDocument()
    run_procedure(document, UserInput("fox", API_KEY), client_factory=stub_factory, settings=settings)

    assert document.invocation_lock.acquire(blocking=False)
    document.invocation_lock.release()


def test_to_status_translation():
    assert to_status(Cancelled()).code is StatusCode.CANCEL
    failed = to_status(Failed(ErrorKind.SERVICE, f"bad {API_KEY}"), API_KEY)
    assert failed.code is StatusCode.EXECUTION_ERROR
    assert failed.message == "GIMini Error: bad ***"
    with pytest.raises(TypeError):
        to_status("not a result")


def test_prefill_degrades_to_empty_key(tmp_path):
    class BrokenStore(SecretStore):
        def load_secret(self):
            raise RuntimeError("keyring locked")

    assert prefill_api_key(BrokenStore()) == ""
    assert prefill_api_key(None) == ""
    assert prefill_api_key(FileSecretStore(tmp_path / "missing.json")) == ""
