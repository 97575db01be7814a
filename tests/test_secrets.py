import json
import os
import stat
from dataclasses import replace

import pytest

from gimini.config import SECRET_KEY_NAME
from gimini.infrastructure.secrets import FileSecretStore


def test_missing_file_means_no_secret(tmp_path):
    assert FileSecretStore(tmp_path / "secrets.json").load_secret() is None


def test_save_then_load(tmp_path):
    store = FileSecretStore(tmp_path / "nested" / "secrets.json")

    store.save_secret("abc123")

    assert store.load_secret() == "abc123"
    assert json.loads(store.path.read_text()) == {SECRET_KEY_NAME: "abc123"}


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
def test_saved_file_is_private(tmp_path):
    store = FileSecretStore(tmp_path / "secrets.json")

    store.save_secret("abc123")

    assert stat.S_IMODE(store.path.stat().st_mode) == 0o600


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", json.dumps({SECRET_KEY_NAME: 42}), "{}"])
def test_unusable_file_degrades_to_none(tmp_path, content):
    path = tmp_path / "secrets.json"
    path.write_text(content)

    assert FileSecretStore(path).load_secret() is None


def test_save_failure_does_not_raise(tmp_path):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    store = FileSecretStore(blocker / "secrets.json")

    store.save_secret("abc123")

    assert store.load_secret() is None


def test_default_path_lives_in_config_dir(settings, tmp_path):
    store = FileSecretStore(settings=replace(settings, config_dir=str(tmp_path)))

    assert store.path == tmp_path / "secrets.json"
