"""Daemon options file: the user's JSON template plus the session secret."""

import json
import os
import tempfile
from pathlib import Path

from ycmlink.errors import ConfigError

SECRET_KEY = "hmac_secret"


def load_options(path: str | Path) -> dict:
    """Read the JSON options template. Raises ConfigError on any problem."""
    p = Path(path).expanduser()
    if not p.is_file():
        raise ConfigError(f"Options file not found: {p}")
    try:
        with open(p) as f:
            options = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read options file {p}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Options file {p} is not valid JSON: {e}")
    if not isinstance(options, dict):
        raise ConfigError(f"Options file {p} must contain a JSON object")
    return options


def write_options_file(
    options: dict, secret_b64: str, directory: str | None = None
) -> Path:
    """Write options with the session secret to a private temp file."""
    data = dict(options)
    data[SECRET_KEY] = secret_b64
    fd, name = tempfile.mkstemp(
        prefix="ycmlink-options-", suffix=".json", dir=directory
    )
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f)
    except OSError as e:
        Path(name).unlink(missing_ok=True)
        raise ConfigError(f"Cannot write options file: {e}")
    return Path(name)
