"""Endpoint settings for the external demand-signal and transfer services."""

import re

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from perishable_alloc.constants import DEFAULT_SERVICE_TIMEOUT_S, DEFAULT_SERVICE_URL


def resolve_base_url(raw: str, fallback: str = DEFAULT_SERVICE_URL) -> str:
    """Normalize a base URL: blank falls back, bare hosts get ``http://``, no trailing slash."""
    candidate = (raw or "").strip() or fallback
    if not re.match(r"^https?://", candidate, re.IGNORECASE):
        candidate = f"http://{candidate}"
    return candidate.rstrip("/")


class ServiceSettings(BaseSettings):
    """Read from ``ALLOC_*`` environment variables or a local ``.env`` file."""

    demand_signal_url: str = DEFAULT_SERVICE_URL
    transfer_planner_url: str = DEFAULT_SERVICE_URL
    demand_signal_timeout_s: float = DEFAULT_SERVICE_TIMEOUT_S
    transfer_planner_timeout_s: float = DEFAULT_SERVICE_TIMEOUT_S

    model_config = SettingsConfigDict(env_prefix="ALLOC_", env_file=".env", extra="ignore")

    @field_validator("demand_signal_url", "transfer_planner_url")
    @classmethod
    def _normalize_url(cls, v: str) -> str:
        return resolve_base_url(v)
