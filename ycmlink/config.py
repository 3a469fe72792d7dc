import os
import sys
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings

from ycmlink.errors import ConfigError

ENV_PREFIX = "YCMLINK_"
DEFAULT_CONFIG_PATH = "~/.config/ycmlink/config.yml"


class Settings(BaseSettings):
    # Daemon launch
    server_directory: str = ""
    python_executable: str = sys.executable
    server_args: list[str] = []
    options_file: str = ""
    extra_conf_path: str | None = None
    host: str = "127.0.0.1"

    # Editor modes that get completion and parse notifications
    eligible_modes: list[str] = [
        "c++-mode",
        "python-mode",
        "js-mode",
        "js2-mode",
        "js3-mode",
    ]

    # Port discovery
    port_timeout_seconds: float = 10.0
    port_poll_interval_seconds: float = 0.05
    port_poll_max_interval_seconds: float = 1.0

    # HTTP client
    request_timeout_seconds: float = 30.0
    rpc_workers: int = 4
    verify_response_hmac: bool = True

    # Parse notifications
    idle_interval_seconds: float = 2.0

    stop_timeout_seconds: float = 5.0

    model_config = {"env_prefix": ENV_PREFIX}


def load_settings(path: str | None = None) -> Settings:
    """Load settings from a YAML file, then let env vars override it."""
    config_path = path or os.environ.get(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_PATH)
    p = Path(config_path).expanduser()

    data = {}
    if p.exists():
        try:
            with open(p) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {p}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {p} must contain a mapping")
    elif path is not None:
        raise ConfigError(f"Config file not found: {p}")

    known = {
        key: val
        for key, val in data.items()
        if key in Settings.model_fields
        and f"{ENV_PREFIX}{key.upper()}" not in os.environ
    }
    try:
        return Settings(**known)
    except ValueError as e:
        raise ConfigError(f"Invalid config file {p}: {e}")
