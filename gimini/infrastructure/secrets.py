from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from ..config import SECRET_KEY_NAME, SETTINGS, GiminiSettings

logger = logging.getLogger(__name__)


class SecretStore:
    """Persists the API key between invocations."""

    def load_secret(self) -> Optional[str]:
        raise NotImplementedError

    def save_secret(self, secret: str) -> None:
        raise NotImplementedError


class FileSecretStore(SecretStore):
    """Keeps the key in a user-only JSON file under the config directory.

    Loading never raises: a missing, unreadable or malformed file means no
    saved key. Saving failures are logged and otherwise ignored.
    """

    FILENAME = "secrets.json"

    def __init__(self, path: Optional[Path] = None, settings: GiminiSettings = SETTINGS) -> None:
        self.path = Path(path) if path is not None else Path(settings.config_dir) / self.FILENAME

    def load_secret(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable secret store %s: %s", self.path, exc)
            return None

        value = payload.get(SECRET_KEY_NAME) if isinstance(payload, dict) else None
        if not isinstance(value, str) or not value:
            return None
        return value

    def save_secret(self, secret: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump({SECRET_KEY_NAME: secret}, handle)
            os.chmod(self.path, 0o600)
        except OSError as exc:
            logger.warning("Could not save API key to %s: %s", self.path, exc)
