"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for starfetch:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.starfetch/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`.
* **Global config** -- A single :class:`~starfetch.models.GlobalConfig`
  JSON file storing defaults (token source, cache, request and backoff
  settings).
* **Precedence resolution** -- :func:`resolve_config` merges explicit
  arguments, environment variables, project-local config, and global config.
* **Credential resolution** -- :func:`resolve_credential` reads the access
  token from an environment variable or a file.
* **Fetch contexts** -- :func:`build_context` turns all of the above into a
  ready :class:`~starfetch.models.FetchContext` for one tracked repository.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from starfetch.exceptions import ConfigError
from starfetch.models import FetchContext, GlobalConfig

_APP_NAME = "starfetch"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "starfetch.json"

ENV_TOKEN = "STARFETCH_TOKEN"
ENV_CACHE_DIR = "STARFETCH_CACHE_DIR"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    return Path.home().joinpath(*default_segments)


def _app_dir(env_var: str, default_segments: tuple[str, ...], fallback: Optional[str]) -> Path:
    if _is_xdg_platform():
        path = _xdg_base(env_var, default_segments) / _APP_NAME
    else:
        path = _fallback_base_dir()
        if fallback:
            path = path / fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/starfetch/`` (default ``~/.config/starfetch/``).
    On macOS/Windows: ``~/.starfetch/``.
    """
    return _app_dir("XDG_CONFIG_HOME", (".config",), None)


def get_cache_dir() -> Path:
    """Return the default response cache root, creating it if necessary.

    Cached responses can be safely deleted at any time; they are refetched
    on the next run.

    On Linux/BSD: ``$XDG_CACHE_HOME/starfetch/`` (default ``~/.cache/starfetch/``).
    On macOS/Windows: ``~/.starfetch/cache/``.
    """
    return _app_dir("XDG_CACHE_HOME", (".cache",), "cache")


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  On any failure the
    temp file is removed and the original file is left untouched.
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


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~starfetch.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./starfetch.json``.

    The file holds a partial :class:`~starfetch.models.GlobalConfig`, e.g.
    ``{"cache": {"root": "./stargazer_cache"}}``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
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


def resolve_config(cache_dir: Optional[str] = None) -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. Explicit arguments (``cache_dir``)
        2. Environment variables (``STARFETCH_CACHE_DIR``)
        3. Project config (``./starfetch.json``), deep-merged
        4. User config (``~/.config/starfetch/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is invalid.
    """
    global_cfg = load_global_config()

    project = load_project_config()
    if project:
        merged = _deep_merge(global_cfg.model_dump(mode="json"), project)
        try:
            global_cfg = GlobalConfig.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    env_cache_dir = os.environ.get(ENV_CACHE_DIR)
    if cache_dir is not None:
        global_cfg.cache.root = cache_dir
    elif env_cache_dir:
        global_cfg.cache.root = env_cache_dir

    return global_cfg


def cache_root(config: GlobalConfig) -> Path:
    """Return the configured cache root, or the XDG cache directory."""
    if config.cache.root:
        return Path(config.cache.root).expanduser()
    return get_cache_dir()


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    raise ConfigError(f"Unknown credential source format: {source}")


def resolve_token(config: GlobalConfig, token: Optional[str] = None) -> str:
    """Return the access token: explicit argument, ``STARFETCH_TOKEN``, then ``token_source``."""
    if token:
        return token
    env_token = os.environ.get(ENV_TOKEN)
    if env_token:
        return env_token
    return resolve_credential(config.token_source)


# --- Fetch contexts ---


def build_context(
    scope: str,
    token: Optional[str] = None,
    cache_dir: Optional[str] = None,
    accept: Optional[str] = None,
    config: Optional[GlobalConfig] = None,
    require_token: bool = True,
) -> FetchContext:
    """Build a :class:`~starfetch.models.FetchContext` for one tracked repository.

    Args:
        scope: Tracked repository as ``owner/repo``.
        token: Explicit access token (highest precedence).
        cache_dir: Explicit cache root (highest precedence).
        accept: Optional ``Accept`` override for this call site.
        config: Pre-resolved configuration; resolved from disk when omitted.
        require_token: When ``False`` a missing token yields an empty one,
            which is enough for cache management.

    Raises:
        ConfigError: If the token cannot be resolved (and is required) or
            the scope is invalid.
    """
    cfg = config if config is not None else resolve_config(cache_dir=cache_dir)
    root = Path(cache_dir).expanduser() if cache_dir else cache_root(cfg)
    try:
        resolved_token = resolve_token(cfg, token)
    except ConfigError:
        if require_token:
            raise
        resolved_token = ""
    try:
        return FetchContext(token=resolved_token, cache_root=root, scope=scope, accept=accept)
    except ValidationError as exc:
        raise ConfigError(f"Invalid fetch context for {scope!r}: {exc}") from exc
