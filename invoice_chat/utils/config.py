"""Configuration management for the invoice chat service.

Loads and validates YAML configuration with sensible defaults for the
database, upload storage, OCR, language model, authentication and
report layout. The resulting ``AppConfig`` is built once at process start
and handed to the components that need it.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "INVOICE_CHAT_DATABASE_URL": ("database", "url"),
    "INVOICE_CHAT_LLM_API_KEY": ("llm", "api_key"),
    "INVOICE_CHAT_AUTH_SECRET_KEY": ("auth", "secret_key"),
}


class DatabaseConfig(BaseModel):
    """Configuration for the relational store."""

    url: str = "sqlite:///./invoice_chat.db"
    echo: bool = False


class StorageConfig(BaseModel):
    """Configuration for uploaded file storage."""

    upload_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: ["image/png", "image/jpeg", "image/jpg"]
    )


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR engine."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3
    preprocess: bool = False
    denoise_method: str = "bilateral"
    binarize_method: str = "adaptive"


class LLMConfig(BaseModel):
    """Configuration for the question-answering language model."""

    api_key: str | None = None
    base_url: str | None = None
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 30.0
    max_ocr_chars: int = 12000
    max_history_turns: int = 6


class AuthConfig(BaseModel):
    """Configuration for password hashing and token issuance."""

    secret_key: str | None = None
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    bcrypt_rounds: int = 12


class ReportConfig(BaseModel):
    """Page geometry and typography for exported PDF reports (points)."""

    page_width: float = 595.28
    page_height: float = 841.89
    margin: float = 40.0
    font_name: str = "helv"
    fallback_font_name: str = "cjk"
    font_size: float = 11.0
    line_height: float = 14.0


class AppConfig(BaseModel):
    """Top-level application configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    cors_origins: list[str] = Field(default_factory=list)
    log_level: str = "INFO"


def _apply_env_overrides(raw: dict) -> dict:
    """Overlay secrets and connection strings taken from the environment.

    Args:
        raw: Parsed YAML mapping.

    Returns:
        The same mapping with any environment overrides applied.
    """
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw.setdefault(section, {})[key] = value
            logger.debug("Applied %s from environment", env_name)
    return raw


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    raw: dict = {}
    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found at %s, using defaults", path)

    return AppConfig(**_apply_env_overrides(raw))
