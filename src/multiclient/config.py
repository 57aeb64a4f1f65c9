"""Configuration management with XDG paths, atomic writes, and pool resolution.

This module handles all persistent configuration for multiclient:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.multiclient/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_pools_dir`.
* **Global config** -- A single :class:`~multiclient.models.GlobalConfig`
  JSON file storing defaults (default pool, output format).
* **Pools** -- One JSON file per endpoint pool, each deserialised into a
  :class:`~multiclient.models.PoolConfig`. Managed via :func:`load_pool`,
  :func:`save_pool`, :func:`delete_pool`.
* **Pool files** -- :func:`load_pool_file` reads an ad-hoc pool definition
  in JSON or YAML.
* **Precedence resolution** -- :func:`resolve_pool` merges CLI flags,
  environment variables and the global config into the effective pool.

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

import yaml
from pydantic import ValidationError

from multiclient.exceptions import ConfigError
from multiclient.models import GlobalConfig, PoolConfig

_APP_NAME = "multiclient"
_CONFIG_FILENAME = "config.json"

ENV_POOL = "MULTICLIENT_POOL"
"""Environment variable naming the saved pool to use."""

ENV_ADDRESSES = "MULTICLIENT_ADDRESSES"
"""Environment variable with a comma-separated ad-hoc address list."""


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
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

    On Linux/BSD: ``$XDG_CONFIG_HOME/multiclient/`` (default
    ``~/.config/multiclient/``). On macOS/Windows: ``~/.multiclient/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/multiclient/`` (default
    ``~/.local/share/multiclient/``). On macOS/Windows: ``~/.multiclient/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_pools_dir() -> Path:
    """Return the pools directory (``<config_dir>/pools/``), creating it if necessary."""
    path = get_config_dir() / "pools"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed.
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
    """Load the global configuration, or defaults if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Saved pools ---


def _pool_path(name: str) -> Path:
    return get_pools_dir() / f"{name}.json"


def list_pools() -> list[str]:
    """Return all saved pool names, sorted alphabetically."""
    return sorted(p.stem for p in get_pools_dir().glob("*.json") if p.is_file())


def load_pool(name: str) -> PoolConfig:
    """Load and validate a saved pool.

    Raises:
        ConfigError: If the pool does not exist, contains invalid JSON, or
            fails Pydantic validation.
    """
    path = _pool_path(name)
    if not path.is_file():
        raise ConfigError(f"Pool '{name}' not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return PoolConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid pool '{name}' at {path}: {exc}") from exc


def save_pool(pool: PoolConfig) -> None:
    """Persist a pool atomically; the file name is derived from ``pool.name``."""
    data = pool.model_dump(mode="json")
    _atomic_write(_pool_path(pool.name), json.dumps(data, indent=2) + "\n")


def delete_pool(name: str) -> None:
    """Delete a saved pool.

    Raises:
        ConfigError: If the pool does not exist.
    """
    path = _pool_path(name)
    if not path.is_file():
        raise ConfigError(f"Pool '{name}' not found at {path}")
    path.unlink()


def pool_exists(name: str) -> bool:
    return _pool_path(name).is_file()


# --- Pool files ---


def load_pool_file(path: str) -> PoolConfig:
    """Load a pool definition from a JSON or YAML file.

    The format is picked from the extension (``.json``, ``.yaml``,
    ``.yml``); other extensions try JSON first, then YAML. When the
    document has no ``name`` the file stem is used.

    Raises:
        ConfigError: If the file cannot be read, parsed, or validated.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigError(f"Pool file not found: {path}")
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read pool file {path}: {exc}") from exc

    suffix = file_path.suffix.lower()
    hint = "json" if suffix == ".json" else "yaml" if suffix in (".yaml", ".yml") else ""
    data = _parse_content(content, hint)
    data.setdefault("name", file_path.stem)
    try:
        return PoolConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid pool file {path}: {exc}") from exc


def _parse_content(content: str, hint: str = "") -> dict[str, Any]:
    """Parse content as JSON or YAML, trying JSON first unless hinted YAML."""
    json_error: Exception | None = None

    if hint != "yaml":
        try:
            result = json.loads(content)
        except json.JSONDecodeError as exc:
            if hint == "json":
                raise ConfigError(f"Invalid JSON: {exc}") from exc
            json_error = exc
        else:
            return _require_mapping(result)

    try:
        result = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        msg = "Failed to parse pool file as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise ConfigError(msg) from exc
    return _require_mapping(result)


def _require_mapping(result: Any) -> dict[str, Any]:
    if not isinstance(result, dict):
        kind = type(result).__name__ if result is not None else "empty document"
        raise ConfigError(f"Pool file must be a JSON/YAML object (got {kind})")
    return result


# --- Precedence resolution ---


def resolve_pool(
    cli_pool: Optional[str] = None,
    cli_pool_file: Optional[str] = None,
    cli_addresses: Optional[list[str]] = None,
) -> Optional[PoolConfig]:
    """Resolve the effective pool with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_pool_file``, ``cli_pool``)
        2. Environment variable ``MULTICLIENT_POOL``
        3. Global config ``default_pool``
        4. The only saved pool, when ``auto_select_single_pool`` is set

    Addresses from ``cli_addresses`` (or, failing that,
    ``MULTICLIENT_ADDRESSES``) replace the resolved pool's addresses. With
    no pool resolved they form an ad-hoc pool with default settings.

    Returns:
        The resolved pool, or ``None`` when nothing is configured.
    """
    global_cfg = load_global_config()

    pool: Optional[PoolConfig] = None
    if cli_pool_file is not None:
        pool = load_pool_file(cli_pool_file)
    else:
        name: Optional[str] = global_cfg.default_pool
        env_pool = os.environ.get(ENV_POOL)
        if env_pool:
            name = env_pool
        if cli_pool is not None:
            name = cli_pool
        if name is None and global_cfg.auto_select_single_pool:
            pools = list_pools()
            if len(pools) == 1:
                name = pools[0]
        if name is not None:
            pool = load_pool(name)

    addresses = cli_addresses or _env_addresses()
    if addresses:
        if pool is None:
            pool = PoolConfig(name="adhoc")
        pool.addresses = list(addresses)
    return pool


def _env_addresses() -> list[str]:
    raw = os.environ.get(ENV_ADDRESSES, "")
    return [part.strip() for part in raw.split(",") if part.strip()]
