"""Agent Fleet configuration: reads from agentfleet.toml and env vars."""

import logging
import os
import tomllib
from pathlib import Path
from typing import Dict, Any

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("agentfleet.config")


class FleetSettings(BaseSettings):
    """Daemon settings."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8410
    log_level: str = "info"

    # Auth
    api_key: str = Field(default="agentfleet_dev_key", alias="AGENTFLEET_API_KEY")

    # Provider
    compute_api_url: str = "https://compute.googleapis.com/compute/v1"
    access_token: str | None = Field(default=None, alias="AGENTFLEET_ACCESS_TOKEN")
    provider_timeout_seconds: float = 30.0

    # Maintenance
    reconcile_interval_seconds: int = 3600
    operation_poll_interval_seconds: int = 30
    operation_max_age_seconds: int | None = None  # None: never expire

    # Instance labels
    config_label_key: str = "agentfleet_config_name"
    cloud_id_label_key: str = "agentfleet_cloud_id"

    # Clouds (loaded from agentfleet.toml [clouds] section)
    clouds: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    model_config = {"env_prefix": "AGENTFLEET_", "env_file": ".env", "populate_by_name": True}


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}


def _load_toml_config() -> Dict[str, Any]:
    """Load configuration from agentfleet.toml files.

    Searches for agentfleet.toml in:
    1. AGENTFLEET_HOME (~/.agentfleet/agentfleet.toml by default)
    2. Current directory (./agentfleet.toml)

    Returns:
        Combined configuration dict from found files
    """
    config: Dict[str, Any] = {}

    home = Path(os.environ.get("AGENTFLEET_HOME", "~/.agentfleet")).expanduser()
    global_config_path = home / "agentfleet.toml"
    if global_config_path.exists():
        config.update(_read_toml(global_config_path))

    # Local file takes precedence; clouds merge by name
    local_config_path = Path("agentfleet.toml")
    if local_config_path.exists():
        local_config = _read_toml(local_config_path)
        if "clouds" in local_config:
            config.setdefault("clouds", {}).update(local_config["clouds"])
        for key, value in local_config.items():
            if key != "clouds":
                config[key] = value

    return config


def get_settings() -> FleetSettings:
    toml_config = _load_toml_config()

    # Env vars win over file values for scalar settings
    values = {
        key: value
        for key, value in toml_config.items()
        if key in FleetSettings.model_fields
        and key != "clouds"
        and f"AGENTFLEET_{key.upper()}" not in os.environ
    }
    if "clouds" in toml_config:
        values["clouds"] = toml_config["clouds"]

    return FleetSettings(**values)
