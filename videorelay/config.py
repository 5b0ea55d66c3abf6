"""Configuration loader — reads config.yaml, validates with Pydantic.

Holds the static prompt/generation defaults and the fal.ai settings.
The backend credential itself is never stored here; it is read from the
environment variable named by ``fal.credentials_env`` at request time.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, field_validator, model_validator

from videorelay.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "VIDEORELAY_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"


class Dimensions(BaseModel):
    """Explicit frame size in pixels."""

    width: int
    height: int

    @field_validator("width", "height")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("image dimensions must be positive")
        return v


class PromptConfig(BaseModel):
    """Text wrapped around the user's last message."""

    prefix: str = ""
    suffix: str = ""


class GenerationDefaults(BaseModel):
    """Job parameters used when the request does not supply its own."""

    negative_prompt: str = ""
    image_size: Dimensions | str = Dimensions(width=512, height=512)
    num_inference_steps: int = 50
    fps: int = 30

    @field_validator("num_inference_steps", "fps")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


class FalConfig(BaseModel):
    """fal.ai model and credential settings."""

    model_id: str
    credentials_env: str = "FAL_KEY"
    with_logs: bool = True

    @field_validator("model_id")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("fal.model_id must not be empty")
        return v


class RelayConfig(BaseModel):
    """Top-level service configuration."""

    prompt: PromptConfig = PromptConfig()
    generation: GenerationDefaults = GenerationDefaults()
    fal: FalConfig

    # Auth & CORS
    api_key: str | None = None
    allowed_origins: list[str] = ["*"]

    @model_validator(mode="after")
    def validate_credentials_env(self) -> RelayConfig:
        if not self.fal.credentials_env.strip():
            raise ValueError("fal.credentials_env must name an environment variable")
        return self

    def public_view(self) -> dict:
        """Config as JSON-safe dict with the inbound api_key redacted."""
        data = self.model_dump()
        data["api_key"] = "***" if self.api_key else None
        return data


def require_credentials(config: RelayConfig) -> str:
    """Return the fal.ai credential from the environment.

    Raises ConfigError when the variable is unset or empty.
    """
    name = config.fal.credentials_env
    key = os.environ.get(name, "")
    if not key:
        raise ConfigError(f"Missing API key: {name} is not set")
    return key


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: RelayConfig | None = None
_config_path: str = DEFAULT_CONFIG_PATH


def default_config_path() -> str:
    return os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def load_config(path: str | None = None) -> RelayConfig:
    """Read the YAML config from disk, validate, and cache."""
    global _config, _config_path
    _config_path = path or default_config_path()

    config_file = Path(_config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file.resolve()}")

    raw = yaml.safe_load(config_file.read_text()) or {}
    _config = RelayConfig(**raw)

    logger.info(
        f"Loaded config: model={_config.fal.model_id}, "
        f"steps={_config.generation.num_inference_steps}, fps={_config.generation.fps}"
    )
    return _config


def get_config() -> RelayConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded — call load_config() first")
    return _config


def reload_config() -> RelayConfig:
    """Re-read config from disk. Called by /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)
