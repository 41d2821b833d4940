# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: platform
credentials, storage backend, trigger phrases, server and logging options.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pdfdigest.config.messages import DEFAULT_TRIGGER_PHRASES
from pdfdigest.core.errors import ConfigurationError

__all__ = ["ConfigurationError", "Settings", "load_settings"]


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === FEISHU ===
    feishu_app_id: str = ""
    feishu_app_secret: str = ""
    feishu_verification_token: str = ""
    feishu_base_url: str = "https://open.feishu.cn/open-apis"
    feishu_doc_url_base: str = "https://feishu.cn/docx"

    # === DASHSCOPE (document understanding) ===
    dashscope_api_key: str = ""
    dashscope_base_url: str = "https://dashscope.aliyuncs.com/compatible-mode/v1"
    dashscope_model: str = "qwen-long"
    dashscope_timeout_seconds: float = 120.0

    # === Staging storage ===
    storage_backend: Literal["local", "s3"] = "local"
    storage_local_root: Path = Path("~/.pdfdigest/storage")
    storage_s3_bucket: str = ""
    storage_s3_region: str = ""
    storage_s3_endpoint_url: str = ""
    staging_prefix: str = "chat_data"
    document_extension: str = ".pdf"

    # === Behaviour ===
    trigger_phrases: str = ",".join(DEFAULT_TRIGGER_PHRASES)
    http_timeout_seconds: float = 30.0
    doc_title_max_chars: int = 50
    event_dedup_size: int = 1024

    # === Server ===
    server_host: str = "0.0.0.0"
    server_port: int = 8080

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("staging_prefix")
    @classmethod
    def strip_staging_prefix(cls, v: str) -> str:  # noqa: N805
        """Keys are joined with '/', so surrounding slashes are dropped."""
        return v.strip("/")

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.storage_backend == "s3" and not self.storage_s3_bucket:
            errors.append("STORAGE_S3_BUCKET must be set when STORAGE_BACKEND=s3")

        if not self.document_extension.startswith("."):
            errors.append("DOCUMENT_EXTENSION must start with '.'")

        if self.http_timeout_seconds <= 0:
            errors.append("HTTP_TIMEOUT_SECONDS must be > 0")

        if self.dashscope_timeout_seconds <= 0:
            errors.append("DASHSCOPE_TIMEOUT_SECONDS must be > 0")

        if self.event_dedup_size <= 0:
            errors.append("EVENT_DEDUP_SIZE must be > 0")

        if self.doc_title_max_chars <= 0:
            errors.append("DOC_TITLE_MAX_CHARS must be > 0")

        if not self.trigger_phrases_list:
            errors.append("TRIGGER_PHRASES must contain at least one phrase")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def trigger_phrases_list(self) -> list[str]:
        """Parse comma-separated trigger phrases."""
        return [p.strip() for p in self.trigger_phrases.split(",") if p.strip()]

    @property
    def has_app_credentials(self) -> bool:
        """Whether the Feishu app id and secret are both configured."""
        return bool(self.feishu_app_id and self.feishu_app_secret)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or the CLI).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
