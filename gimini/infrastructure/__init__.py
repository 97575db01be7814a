"""Infrastructure helpers for the generation service and key storage."""

from .network import GenerationClient
from .secrets import FileSecretStore, SecretStore

__all__ = [
    "GenerationClient",
    "FileSecretStore",
    "SecretStore",
]
