"""Configuration loader for mailforge.

Loads YAML, JSON, TOML and INI files into a :class:`box.Box` so settings can
be read with attribute access (``config.mail.session.host``).

Supports:
- Cascading search for ``mailforge.conf.yml`` (``~/.config``, home, cwd;
  later locations override earlier ones)
- Explicit file paths and a path taken from an environment variable
- ``include:`` directives (relative or absolute, single or list)
- Deep merge of included and including files
- ``${VAR}`` and ``${VAR:-default}`` expansion in string values
"""

from __future__ import annotations

import configparser
import json
import logging
import os
import re
import time
import tomllib
from pathlib import Path
from typing import Any

import yaml
from box import Box

from mailforge.config.exceptions import (
    ConfigCircularIncludeError,
    ConfigError,
    ConfigFileNotFoundError,
    ConfigFormatError,
    ConfigNotLoadedError,
)

log = logging.getLogger(__name__)

#: Default configuration filename searched by the cascading loader.
DEFAULT_CONFIG_FILENAME = "mailforge.conf.yml"

#: Environment variable naming an explicit configuration file.
DEFAULT_ENV_VAR = "MAILFORGE_CONFIG"

_SUPPORTED_SUFFIXES = {
    ".yml": "yaml",
    ".yaml": "yaml",
    ".json": "json",
    ".toml": "toml",
    ".ini": "ini",
}

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([a-zA-Z_][a-zA-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(value: str, source: str | None = None) -> str:
    """Expand environment variables in a string value.

    Args:
        value: String potentially containing ``${VAR}`` patterns.
        source: Source file for error messages.

    Returns:
        String with environment variables expanded.

    Raises:
        ConfigError: If a required variable is not set.

    Examples:
        >>> import os
        >>> os.environ["MAILFORGE_TEST_HOST"] = "smtp.example.com"
        >>> _expand_env_vars("${MAILFORGE_TEST_HOST}:25")
        'smtp.example.com:25'
        >>> _expand_env_vars("${MAILFORGE_MISSING:-localhost}")
        'localhost'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default_value = match.group(2)

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if default_value is not None:
            return default_value

        where = f" (in {source})" if source else ""
        raise ConfigError(f"Environment variable '{var_name}' is not set{where}")

    return _ENV_VAR_PATTERN.sub(replacer, value)


def _expand_env_vars_recursive(data: Any, source: str | None = None) -> Any:
    """Apply :func:`_expand_env_vars` to every string in nested dicts and lists."""
    if isinstance(data, dict):
        return {k: _expand_env_vars_recursive(v, source) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars_recursive(item, source) for item in data]
    if isinstance(data, str):
        return _expand_env_vars(data, source)
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, recursing into nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _format_of(path: Path) -> str:
    fmt = _SUPPORTED_SUFFIXES.get(path.suffix.lower())
    if fmt is None:
        raise ConfigFormatError(f"Unsupported config format: {path.suffix or path.name}")
    return fmt


def _load_yaml_file(path: Path, encoding: str = "utf-8") -> dict[str, Any]:
    if not path.is_file():
        raise ConfigFileNotFoundError(f"Config file not found: {path}")
    try:
        with path.open(encoding=encoding) as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as e:
        raise ConfigFormatError(f"Invalid YAML in {path}: {e}") from e
    return data or {}


def _load_json_file(path: Path, encoding: str = "utf-8") -> dict[str, Any]:
    if not path.is_file():
        raise ConfigFileNotFoundError(f"Config file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding=encoding))
    except json.JSONDecodeError as e:
        raise ConfigFormatError(f"Invalid JSON in {path}: {e}") from e
    return data or {}


def _load_toml_file(path: Path, encoding: str = "utf-8") -> dict[str, Any]:
    if not path.is_file():
        raise ConfigFileNotFoundError(f"Config file not found: {path}")
    try:
        return tomllib.loads(path.read_text(encoding=encoding))
    except tomllib.TOMLDecodeError as e:
        raise ConfigFormatError(f"Invalid TOML in {path}: {e}") from e


def _load_ini_file(path: Path, encoding: str = "utf-8") -> dict[str, Any]:
    if not path.is_file():
        raise ConfigFileNotFoundError(f"Config file not found: {path}")
    parser = configparser.ConfigParser()
    try:
        parser.read(path, encoding=encoding)
    except configparser.Error as e:
        raise ConfigFormatError(f"Invalid INI in {path}: {e}") from e
    return {section: dict(parser.items(section)) for section in parser.sections()}


_LOADERS = {
    "yaml": _load_yaml_file,
    "json": _load_json_file,
    "toml": _load_toml_file,
    "ini": _load_ini_file,
}


class ConfigLoader:
    """Load configuration files into a :class:`Box`.

    Args:
        filename: Name searched by the cascading loader.
        encoding: Text encoding used to read every file.
        strict_format: If True, included files must share the format of
            the file including them.
        env_var: Environment variable read by :meth:`load_from_env`.

    Examples:
        >>> loader = ConfigLoader()
        >>> config = loader.load_from_file("mailforge.conf.yml")  # doctest: +SKIP
        >>> config.mail.session.host  # doctest: +SKIP
        'smtp.example.com'
    """

    def __init__(
        self,
        *,
        filename: str = DEFAULT_CONFIG_FILENAME,
        encoding: str = "utf-8",
        strict_format: bool = False,
        env_var: str = DEFAULT_ENV_VAR,
    ) -> None:
        self.filename = filename
        self.encoding = encoding
        self.strict_format = strict_format
        self.env_var = env_var
        self._cache: Box | None = None
        self._cache_time: float = 0.0

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> Box:
        """Load a single file with a throwaway loader."""
        return cls(**kwargs).load_from_file(path)

    @classmethod
    def from_env(cls, env_var: str = DEFAULT_ENV_VAR, **kwargs: Any) -> Box:
        """Load the file named by ``env_var`` with a throwaway loader."""
        return cls(env_var=env_var, **kwargs).load_from_env()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def search_paths(self) -> list[Path]:
        """Return candidate locations, lowest priority first."""
        home = Path.home()
        return [
            home / ".config" / self.filename,
            home / self.filename,
            Path.cwd() / self.filename,
        ]

    def load(self) -> Box:
        """Merge every configuration file found by the cascading search.

        Raises:
            ConfigFileNotFoundError: If no candidate file exists.
        """
        merged: dict[str, Any] = {}
        found = False
        seen: set[Path] = set()
        for candidate in self.search_paths():
            resolved = candidate.resolve()
            if resolved in seen or not candidate.is_file():
                continue
            seen.add(resolved)
            log.debug("Loading config layer: %s", candidate)
            merged = _deep_merge(merged, self._load_with_includes(candidate, []))
            found = True

        if not found:
            raise ConfigFileNotFoundError(f"No '{self.filename}' found in: {', '.join(map(str, self.search_paths()))}")

        self._store(merged)
        return Box(merged)

    def load_from_file(self, path: str | Path) -> Box:
        """Load one file (and its includes).

        Raises:
            ConfigFileNotFoundError: If the file does not exist.
            ConfigFormatError: If its format is unsupported or invalid.
        """
        file_path = Path(path).expanduser()
        if not file_path.is_file():
            raise ConfigFileNotFoundError(f"Config file not found: {file_path}")
        data = self._load_with_includes(file_path, [])
        self._store(data)
        return Box(data)

    def load_from_env(self, env_var: str | None = None) -> Box:
        """Load the file whose path is stored in an environment variable.

        Raises:
            ConfigError: If the variable is unset or empty.
        """
        name = env_var or self.env_var
        value = os.environ.get(name, "").strip()
        if not value:
            raise ConfigError(f"Environment variable '{name}' is not set")
        return self.load_from_file(value)

    def get(self, *, force_reload: bool = False, max_age: float | None = None) -> Box:
        """Return the cached configuration, loading it when needed."""
        expired = max_age is not None and (time.monotonic() - self._cache_time) > max_age
        if self._cache is None or force_reload or expired:
            return self.load()
        return self._cache

    def clear(self) -> None:
        """Drop the cached configuration."""
        self._cache = None
        self._cache_time = 0.0

    @property
    def cached(self) -> Box | None:
        """Return the cached configuration without loading."""
        return self._cache

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _store(self, data: dict[str, Any]) -> None:
        self._cache = Box(data)
        self._cache_time = time.monotonic()

    def _load_with_includes(self, path: Path, chain: list[str]) -> dict[str, Any]:
        resolved = path.resolve()
        if str(resolved) in chain:
            raise ConfigCircularIncludeError([*chain, str(resolved)])

        fmt = _format_of(path)
        raw = _LOADERS[fmt](path, self.encoding)
        if not isinstance(raw, dict):
            raise ConfigFormatError(f"Config root must be a mapping: {path}")
        data = _expand_env_vars_recursive(raw, source=str(path))

        includes = data.pop("include", None)
        if not includes:
            return data

        if isinstance(includes, str):
            includes = [includes]

        merged: dict[str, Any] = {}
        for include in includes:
            include_path = Path(include).expanduser()
            if not include_path.is_absolute():
                include_path = path.parent / include_path
            if not include_path.is_file():
                raise ConfigFileNotFoundError(f"Included config file not found: {include_path}")
            if self.strict_format and _format_of(include_path) != fmt:
                raise ConfigFormatError(f"Include format mismatch: {include_path.name} included from {path.name}")
            log.debug("Including config file: %s", include_path)
            merged = _deep_merge(merged, self._load_with_includes(include_path, [*chain, str(resolved)]))

        # The including file wins over its includes.
        return _deep_merge(merged, data)


_default_loader = ConfigLoader()


def load_config(filename: str | None = None, *, path: str | Path | None = None) -> Box:
    """Load configuration with the shared loader.

    Args:
        filename: Alternate name for the cascading search.
        path: Explicit file path; disables the cascading search.
    """
    if path is not None:
        return _default_loader.load_from_file(path)
    if filename is not None:
        _default_loader.filename = filename
    return _default_loader.load()


def get_config(*, force_reload: bool = False, max_age: float | None = None) -> Box:
    """Return the shared configuration, loading it on first use."""
    return _default_loader.get(force_reload=force_reload, max_age=max_age)


def require_config() -> Box:
    """Return the shared configuration or fail if nothing has been loaded.

    Raises:
        ConfigNotLoadedError: If no configuration has been loaded yet.
    """
    cached = _default_loader.cached
    if cached is None:
        raise ConfigNotLoadedError("Configuration not loaded; call load_config() first")
    return cached


def clear_config() -> None:
    """Forget the shared configuration."""
    _default_loader.clear()


def load_from_file(path: str | Path, *, strict_format: bool = False) -> Box:
    """Load one file without touching the shared cache."""
    return ConfigLoader.from_file(path, strict_format=strict_format)


def load_from_env(env_var: str = DEFAULT_ENV_VAR) -> Box:
    """Load the file named by ``env_var`` without touching the shared cache."""
    return ConfigLoader.from_env(env_var)


def get_section(config: Any, *keys: str) -> dict[str, Any]:
    """Return a nested mapping from ``config``, or an empty dict.

    Examples:
        >>> get_section({"mail": {"session": {"host": "h"}}}, "mail", "session")
        {'host': 'h'}
        >>> get_section(None, "mail")
        {}
    """
    current: Any = config
    for key in keys:
        if not isinstance(current, dict):
            return {}
        current = current.get(key)
    return dict(current) if isinstance(current, dict) else {}


__all__ = [
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_ENV_VAR",
    "ConfigLoader",
    "clear_config",
    "get_config",
    "get_section",
    "load_config",
    "load_from_env",
    "load_from_file",
    "require_config",
]
