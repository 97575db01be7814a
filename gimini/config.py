import logging
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class GiminiSettings:
    api_base: str
    model: str
    timeout: float
    config_dir: str
    layer_name_template: str
    layer_name_words: int
    host: str
    port: int
    log_level: str

    @classmethod
    def from_env(cls) -> "GiminiSettings":
        return cls(
            api_base=os.getenv(
                "GEMINI_API_BASE",
                "https://generativelanguage.googleapis.com/v1beta",
            ),
            model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash-image"),
            timeout=float(os.getenv("GEMINI_TIMEOUT", "120.0")),
            config_dir=os.getenv(
                "GIMINI_CONFIG_DIR",
                str(Path.home() / ".config" / "gimini"),
            ),
            layer_name_template=os.getenv("LAYER_NAME_TEMPLATE", "Gemini Gen: {words}..."),
            layer_name_words=int(os.getenv("LAYER_NAME_WORDS", "5")),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "5600")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


SETTINGS = GiminiSettings.from_env()


PLUGIN_NAME = "gimini-generate"
SECRET_KEY_NAME = "gimini-api-key"


def configure_logging() -> logging.Logger:
    logging.basicConfig(level=SETTINGS.log_level)
    return logging.getLogger("gimini")
