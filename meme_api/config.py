import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    host: str = field(default_factory=lambda: _env("MEME_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(_env("MEME_PORT", "3030")))
    output_filename: str = field(default_factory=lambda: _env("MEME_OUTPUT_FILENAME", "meme.png"))
    png_compression: int = field(default_factory=lambda: int(_env("MEME_PNG_COMPRESSION", "9")))
    caption_from_title: bool = field(default_factory=lambda: _env_bool("MEME_CAPTION_FROM_TITLE", "false"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: _env_bool("LOG_JSON", "true"))
    enable_metrics: bool = field(default_factory=lambda: _env_bool("ENABLE_METRICS", "true"))

    def __post_init__(self) -> None:
        if not 0 <= self.png_compression <= 9:
            raise ValueError(f"png_compression must be within 0..9, got {self.png_compression}")
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be within 0..65535, got {self.port}")


settings = Settings()
