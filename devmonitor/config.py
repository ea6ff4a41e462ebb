"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Monitor settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    devmonitor_env: str = "development"
    devmonitor_log_level: str = "INFO"
    devmonitor_log_stream: str = "stderr"
    project_path: Path = Field(default_factory=Path.cwd)

    # ── Dev Server ───────────────────────────────────────────────────
    dev_command: str = "npm run dev"
    dev_server_port: Optional[int] = 3000
    dev_server_hostname: str = ""
    dev_server_debug: bool = True
    startup_timeout: float = 30.0
    stop_grace_period: float = 10.0
    output_buffer_chunks: int = 2000

    # ── Remediation ──────────────────────────────────────────────────
    auto_fix: bool = True
    safe_mode: bool = True
    backup_enabled: bool = True
    backup_dir_name: str = ".devmonitor-backups"
    backup_retention_days: int = 7
    validate_fixes: bool = True
    max_file_size_after_fix: int = 1024 * 1024
    max_fix_file_size: int = 50 * 1024

    # ── Lint Delegate ────────────────────────────────────────────────
    lint_command: str = "npx eslint"
    lint_timeout: float = 60.0

    @field_validator("devmonitor_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "test"}
        if v not in allowed:
            raise ValueError(f"devmonitor_env must be one of {allowed}")
        return v

    @field_validator("devmonitor_log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("devmonitor_log_stream")
    @classmethod
    def validate_log_stream(cls, v: str) -> str:
        if v.lower() not in {"stderr", "stdout"}:
            raise ValueError("devmonitor_log_stream must be 'stderr' or 'stdout'")
        return v.lower()

    @property
    def backup_dir(self) -> Path:
        return Path(self.project_path) / self.backup_dir_name

    def with_overrides(self, **overrides: Any) -> Settings:
        """Return a copy with the non-None overrides applied."""
        update = {k: v for k, v in overrides.items() if v is not None}
        if "project_path" in update:
            update["project_path"] = Path(update["project_path"]).resolve()
        return self.model_copy(update=update)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the cached settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
