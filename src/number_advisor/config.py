from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator

# Local dev convenience: pick up a .env file from the working directory.
load_dotenv()

_REPO_ROOT = Path(__file__).resolve().parents[2]
_FALSY = {"0", "false", "no", "off"}


def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_flag(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() not in _FALSY


class Settings(BaseModel):
    # Project root (repo root in local dev, /app in Docker)
    project_root: Path = Field(
        default_factory=lambda: Path(os.getenv("PROJECT_ROOT", str(_REPO_ROOT)))
    )

    # --- Upstream question-answering service ---
    qa_api_url: str | None = Field(default_factory=lambda: _env("QA_API_URL"))
    qa_api_url_fallback: str | None = Field(default_factory=lambda: _env("QA_API_URL_FALLBACK"))
    qa_api_bearer: SecretStr | None = Field(
        default_factory=lambda: _env("QA_API_BEARER"), validate_default=True
    )

    # Per-phase httpx timeout (connect/read/write/pool) for each upstream attempt
    qa_timeout_seconds: float = Field(
        default_factory=lambda: float(_env("QA_API_TIMEOUT") or 10.0), gt=0, validate_default=True
    )
    # Some deployments of the upstream expect the raw token instead of "Bearer <token>".
    qa_retry_without_bearer: bool = Field(
        default_factory=lambda: _env_flag("QA_API_RETRY_WITHOUT_BEARER", True)
    )

    # Country catalogue CSV. If None, we default to data/countries.csv under project root.
    countries_csv: Path | None = None

    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL") or "INFO")
    log_json: bool = Field(default_factory=lambda: _env_flag("LOG_JSON", True))

    @field_validator("qa_api_bearer", mode="before")
    @classmethod
    def _strip_bearer(cls, value: object) -> object:
        # Blank credentials count as missing.
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("qa_api_url", "qa_api_url_fallback", mode="before")
    @classmethod
    def _blank_url_is_none(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    def model_post_init(self, __context: object) -> None:  # type: ignore[override]
        env_path = os.getenv("COUNTRIES_CSV_PATH")
        if env_path:
            object.__setattr__(self, "countries_csv", Path(env_path))
        elif self.countries_csv is None:
            object.__setattr__(self, "countries_csv", self.project_root / "data" / "countries.csv")

    @property
    def bearer_token(self) -> str | None:
        if self.qa_api_bearer is None:
            return None
        return self.qa_api_bearer.get_secret_value()


@lru_cache
def get_settings() -> Settings:
    return Settings()
