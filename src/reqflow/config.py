"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for reqflow:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.reqflow/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~reqflow.models.GlobalConfig`
  JSON file storing pipeline, transport, output and extension settings.
* **Project config** -- An optional ``reqflow.json`` at the project root
  whose keys are layered over the global config.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  ``REQFLOW_*`` environment variables, project config and global config
  into the effective configuration.

All file writes go through :func:`atomic_write` (temp file then rename).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from reqflow.exceptions import ConfigurationError
from reqflow.models import GlobalConfig

_APP_NAME = "reqflow"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "reqflow.json"

PROJECT_STATE_DIRNAME = ".reqflow"
"""Per-project directory holding pipeline state such as process variables."""


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/reqflow/`` (default ``~/.config/reqflow/``).
    On macOS/Windows: ``~/.reqflow/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/reqflow/`` (default ``~/.local/share/reqflow/``).
    On macOS/Windows: ``~/.reqflow/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* atomically using a temp file and ``os.replace``.

    The temp file lives next to *path* so the rename stays on one
    filesystem. On any failure the temp file is removed and the original
    file is left untouched.
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
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
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


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~reqflow.models.GlobalConfig`, or a default
        instance when no file exists.

    Raises:
        ConfigurationError: If the file contains invalid JSON or fails
            validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config(project_dir: Union[str, Path, None] = None) -> Optional[dict[str, Any]]:
    """Load ``reqflow.json`` from *project_dir* (default: the working directory).

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigurationError: If the file is not a valid JSON object.
    """
    root = Path(project_dir) if project_dir is not None else Path.cwd()
    path = root / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Project config at {path} must be a JSON object")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_config(
    cli_environment: Optional[str] = None,
    cli_timeout: Optional[float] = None,
    cli_format: Optional[str] = None,
    project_dir: Union[str, Path, None] = None,
) -> GlobalConfig:
    """Resolve config with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_environment``, ``cli_timeout``, ``cli_format``)
        2. Environment variables (``REQFLOW_ENV``, ``REQFLOW_TIMEOUT``,
           ``REQFLOW_ENV_HIERARCHY``)
        3. Project config (``<project_dir>/reqflow.json``)
        4. User config (``~/.config/reqflow/config.json``)
        5. Defaults

    Raises:
        ConfigurationError: On invalid config files or environment values.
    """
    global_cfg = load_global_config()

    project = load_project_config(project_dir)
    if project is not None:
        merged = _deep_merge(global_cfg.model_dump(mode="json"), project)
        try:
            global_cfg = GlobalConfig.model_validate(merged)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid project config: {exc}") from exc

    env_name = os.environ.get("REQFLOW_ENV")
    if env_name:
        global_cfg.pipeline.active_environment = env_name
    env_timeout = os.environ.get("REQFLOW_TIMEOUT")
    if env_timeout:
        try:
            global_cfg.request.timeout = float(env_timeout)
        except ValueError as exc:
            raise ConfigurationError(
                f"REQFLOW_TIMEOUT must be a number, got '{env_timeout}'"
            ) from exc
    env_hierarchy = os.environ.get("REQFLOW_ENV_HIERARCHY")
    if env_hierarchy:
        global_cfg.pipeline.use_env_hierarchy = env_hierarchy.lower() in ("1", "true", "yes")

    if cli_environment is not None:
        global_cfg.pipeline.active_environment = cli_environment
    if cli_timeout is not None:
        global_cfg.request.timeout = cli_timeout
    if cli_format is not None:
        global_cfg.output.format = cli_format

    return global_cfg
