"""Trading engine connection and store behaviour configuration."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

ENV_BASE_URL = "TRADING_ENGINE_URL"
ENV_TIMEOUT = "TRADING_ENGINE_TIMEOUT_SECONDS"
ENV_MAX_ATTEMPTS = "TRADING_ENGINE_MAX_ATTEMPTS"


class EngineConfig(BaseModel):
    """Structured configuration for the engine client and the stores."""

    base_url: str = Field("http://localhost:8000", min_length=1)
    timeout_seconds: float = Field(10.0, gt=0)

    # Bounded retry policy for fetch operations. Mutations are never retried automatically.
    fetch_max_attempts: int = Field(3, ge=1)
    login_max_attempts: int = Field(2, ge=1)
    backoff_base_seconds: float = Field(1.0, ge=0)
    backoff_max_seconds: float = Field(8.0, ge=0)

    order_page_size: int = Field(20, ge=1, le=100)
    strategy_page_size: int = Field(20, ge=1, le=100)

    # When set, every successful mutation is followed by a confirming refetch.
    confirm_mutations_with_refetch: bool = False

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def validate_consistency(self) -> EngineConfig:
        """Validate internal consistency of the configuration."""
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        return self

    @property
    def normalized_base_url(self) -> str:
        return self.base_url.strip().rstrip("/")

    @classmethod
    def from_json_obj(cls, obj: dict[str, Any]) -> EngineConfig:
        """Create an EngineConfig from a JSON-compatible object."""
        return cls.model_validate(obj)

    @classmethod
    def from_json_file(cls, path: str | Path) -> EngineConfig:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        engine_block = data.get("engine", data) if isinstance(data, dict) else data
        return cls.from_json_obj(engine_block)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EngineConfig:
        """Build a config from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        if env.get(ENV_BASE_URL):
            overrides["base_url"] = env[ENV_BASE_URL]
        if env.get(ENV_TIMEOUT):
            overrides["timeout_seconds"] = env[ENV_TIMEOUT]
        if env.get(ENV_MAX_ATTEMPTS):
            overrides["fetch_max_attempts"] = env[ENV_MAX_ATTEMPTS]
        return cls.model_validate(overrides)
