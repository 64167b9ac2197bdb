"""Bridge configuration, read from the environment and validated once at startup."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.models import EventPolicy, ResponseShape

DEFAULT_MODEL = "gemini-2.5-flash-preview-05-20"
DEFAULT_GRAPH_API_VERSION = "v16.0"

# Environment variable -> BridgeConfig field
_ENV_FIELDS = {
    "VERIFY_TOKEN": "verify_token",
    "PAGE_ACCESS_TOKEN": "page_access_token",
    "API_KEY": "api_key",
    "RESPONSE_MODE": "response_mode",
    "GEMINI_MODEL": "model",
    "GRAPH_API_VERSION": "graph_api_version",
    "MESSAGING_EVENT_POLICY": "event_policy",
    "SYSTEM_INSTRUCTION": "system_instruction",
    "UPSTREAM_MAX_ATTEMPTS": "max_attempts",
    "UPSTREAM_BACKOFF_SECONDS": "backoff_base",
    "UPSTREAM_TIMEOUT_SECONDS": "upstream_timeout",
    "AUDIT_LOG_PATH": "audit_log_path",
    "AUDIT_LOG_MAX_BYTES": "audit_log_max_bytes",
    "AUDIT_LOG_BACKUP_COUNT": "audit_log_backup_count",
    "LOG_LEVEL": "log_level",
}

_REQUIRED = ("VERIFY_TOKEN", "PAGE_ACCESS_TOKEN", "API_KEY")
_SECRETS = ("verify_token", "page_access_token", "api_key")


class ConfigError(ValueError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


class BridgeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    verify_token: str = Field(min_length=1)
    page_access_token: str = Field(min_length=1)
    api_key: str = Field(min_length=1)
    response_mode: ResponseShape = ResponseShape.STRUCTURED
    model: str = DEFAULT_MODEL
    graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    event_policy: EventPolicy = EventPolicy.FIRST_ONLY
    system_instruction: str | None = None
    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=1.0, ge=0)
    upstream_timeout: float = Field(default=30.0, gt=0)
    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=10_485_760, gt=0)
    audit_log_backup_count: int = Field(default=5, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build config from environment variables.

        Every missing required variable and every invalid value is collected
        into a single ConfigError so startup fails with the full picture.
        """
        env = os.environ if environ is None else environ
        missing = [name for name in _REQUIRED if not env.get(name, "").strip()]
        if missing:
            raise ConfigError([f"{name} is required" for name in missing])

        values: dict[str, Any] = {}
        for env_name, field_name in _ENV_FIELDS.items():
            raw = env.get(env_name)
            if raw is None or raw == "":
                continue
            if field_name in ("response_mode", "event_policy"):
                raw = raw.strip().lower()
            values[field_name] = raw

        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            field_to_env = {v: k for k, v in _ENV_FIELDS.items()}
            problems = []
            for err in exc.errors():
                field_name = str(err["loc"][0]) if err["loc"] else "?"
                problems.append(f"{field_to_env.get(field_name, field_name)}: {err['msg']}")
            raise ConfigError(problems) from exc

    def redacted(self) -> dict[str, Any]:
        """Config as a dict with secrets masked, for printing."""
        data = self.model_dump(mode="json")
        for name in _SECRETS:
            value = data[name]
            data[name] = f"{value[:2]}***" if len(value) > 4 else "***"
        return data
