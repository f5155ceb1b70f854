"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for tether:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.tether/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Config file** -- a single :class:`~tether.models.TetherConfig` JSON
  file. Managed via :func:`load_config`, :func:`save_config` and
  :func:`set_config_value`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables and the config file into the effective
  configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from tether.exceptions import ConfigError, InvalidUsageError
from tether.models import TetherConfig

_APP_NAME = "tether"
_CONFIG_FILENAME = "config.json"

ENV_ENDPOINT = "TETHER_ENDPOINT"
ENV_PROFILE = "TETHER_PROFILE"
ENV_CALLBACK_PORT = "TETHER_CALLBACK_PORT"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform uses the XDG Base Directory layout (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/tether/`` (default ``~/.config/tether/``).
    On macOS/Windows: ``~/.tether/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credentials, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/tether/`` (default ``~/.local/share/tether/``).
    On macOS/Windows: ``~/.tether/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is
    given it is applied to the temp file before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Config file ---


def config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> TetherConfig:
    """Load the configuration file.

    Returns:
        The deserialised :class:`~tether.models.TetherConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = config_path()
    if not path.is_file():
        return TetherConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return TetherConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: TetherConfig) -> None:
    """Persist the configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


def set_config_value(config: TetherConfig, key: str, value: str) -> TetherConfig:
    """Return a copy of *config* with the dotted *key* set to *value*.

    *value* is parsed as JSON when possible (``8080``, ``true``), and used as
    a plain string otherwise. The result is re-validated.

    Raises:
        InvalidUsageError: If *key* does not name a config field.
        ConfigError: If the new value fails validation.
    """
    data = config.model_dump(mode="json")
    parts = key.split(".")
    target: Any = data
    for part in parts[:-1]:
        if not isinstance(target, dict) or not isinstance(target.get(part), dict):
            raise InvalidUsageError(f"Unknown config key: {key}")
        target = target[part]
    if not isinstance(target, dict) or parts[-1] not in target:
        raise InvalidUsageError(f"Unknown config key: {key}")

    try:
        parsed: Any = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    target[parts[-1]] = parsed

    try:
        return TetherConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for '{key}': {exc}") from exc


# --- Precedence resolution ---


def resolve_config(
    cli_endpoint: Optional[str] = None,
    cli_profile: Optional[str] = None,
    cli_port: Optional[int] = None,
) -> TetherConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_endpoint``, ``cli_profile``, ``cli_port``)
        2. Environment variables (``TETHER_ENDPOINT``, ``TETHER_PROFILE``,
           ``TETHER_CALLBACK_PORT``)
        3. User config (``~/.config/tether/config.json``)
        4. Defaults

    Raises:
        ConfigError: If the config file or an environment value is invalid.
    """
    config = load_config()

    env_endpoint = os.environ.get(ENV_ENDPOINT)
    if env_endpoint:
        config.endpoint = env_endpoint
    env_profile = os.environ.get(ENV_PROFILE)
    if env_profile:
        config.profile = env_profile
    env_port = os.environ.get(ENV_CALLBACK_PORT)
    if env_port:
        try:
            config.callback.port = int(env_port)
        except ValueError as exc:
            raise ConfigError(f"{ENV_CALLBACK_PORT} must be an integer, got '{env_port}'") from exc

    if cli_endpoint is not None:
        config.endpoint = cli_endpoint
    if cli_profile is not None:
        config.profile = cli_profile
    if cli_port is not None:
        config.callback.port = cli_port

    return config
