from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file, hourly sweep, log sink).
    - Every field can be overridden with a `DEBTCASES_` env var.
    """

    model_config = SettingsConfigDict(env_prefix="DEBTCASES_", extra="ignore")

    db_url: str | None = None
    security_config_path: str | None = None
    log_level: str = "INFO"

    jwt_secret: str = "change-me-in-production-please-32b"
    jwt_algorithm: str = "HS256"
    token_ttl_minutes: int = 1440

    sweep_enabled: bool = True
    sweep_interval_seconds: int = 3600
    notification_webhook_url: str | None = None

    allowlist_backend: str = "db"
    allowlist_path: str | None = None
    report_export_allowed_roles: list[str] = ["manager", "director", "administrator"]
    report_export_allowed_employees: list[str] = []

    seed_demo_data: bool = True

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "debtcases.db"
        return f"sqlite:///{db_path}"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"

    def resolved_allowlist_path(self) -> Path:
        if self.allowlist_path:
            return Path(self.allowlist_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "uploads" / "report-export-allowlist.json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
