"""Configuration management for vaultbridge.

Loads settings from a YAML configuration file with environment variable
overrides (``VAULTBRIDGE_`` prefix, ``__`` for nested sections).
Supports .env files.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/vaultbridge.yaml")

DEFAULT_RELEASE_BASE_URL = "https://github.com/cloudflare/cloudflared/releases/latest/download"


class ServerConfig(BaseModel):
    port: int = Field(default=3000, ge=0, le=65535, description="Loopback port (0 = any free port)")


class TunnelConfig(BaseModel):
    acquisition_timeout: float = Field(default=30.0, gt=0)
    diagnostic_buffer_size: int = Field(default=500, gt=0)
    hostname_suffix: str = Field(default="trycloudflare.com", min_length=1)
    prefer_managed_only: bool = Field(
        default=False, description="Ignore system cloudflared and use only the managed copy"
    )


class ProvisionerConfig(BaseModel):
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".vaultbridge")
    release_base_url: str = Field(default=DEFAULT_RELEASE_BASE_URL)
    verify_timeout: float = Field(default=10.0, gt=0)
    download_timeout: float = Field(default=60.0, gt=0)
    max_redirects: int = Field(default=10, ge=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for vaultbridge.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "VAULTBRIDGE_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    tunnel: TunnelConfig = Field(default_factory=TunnelConfig)
    provisioner: ProvisionerConfig = Field(default_factory=ProvisionerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):  # type: ignore[no-untyped-def]
        # YAML values arrive as init kwargs and must lose to the environment
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    return Settings(**yaml_data)
