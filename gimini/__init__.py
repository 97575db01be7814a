"""Prompt-driven image generation into host raster documents."""

from .app import APP_VERSION, create_app
from .pipeline import GenerationMode, PipelineOrchestrator, UserInput
from .procedure import run_procedure
from . import host, imaging, infrastructure

__version__ = APP_VERSION

__all__ = [
    "APP_VERSION",
    "__version__",
    "create_app",
    "GenerationMode",
    "PipelineOrchestrator",
    "UserInput",
    "run_procedure",
    "host",
    "imaging",
    "infrastructure",
]
