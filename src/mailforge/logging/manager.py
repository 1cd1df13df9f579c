"""Logging manager for mailforge.

Provides :class:`LogManager`, a :class:`logging.Logger` subclass wired to a
Rich console handler and/or a rotating file handler, plus two extra levels:

- ``TRACE`` (5): protocol-level diagnostics (SMTP dialogue, TLS details)
- ``SUCCESS`` (25): positive outcomes worth surfacing above INFO

Configuration is resolved in this order (later wins):

1. ``FALLBACK_DEFAULTS``
2. ``logger.defaults`` from the global config file
3. the selected preset (``logger.presets`` from config, else ``FALLBACK_PRESETS``)
4. the explicit ``config`` mapping passed to the constructor
"""

from __future__ import annotations

import logging
import traceback as traceback_module
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import SimpleNamespace
from typing import Any

from box import Box
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from mailforge.config import ConfigError, get_config

TRACE_LEVEL = 5
SUCCESS_LEVEL = 25

LOGGING_LEVEL = SimpleNamespace(
    TRACE=TRACE_LEVEL,
    DEBUG=logging.DEBUG,
    INFO=logging.INFO,
    SUCCESS=SUCCESS_LEVEL,
    WARNING=logging.WARNING,
    ERROR=logging.ERROR,
    CRITICAL=logging.CRITICAL,
)

logging.addLevelName(TRACE_LEVEL, "TRACE")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

FALLBACK_DEFAULTS: dict[str, Any] = {
    "output": "console",
    "console": {
        "level": "INFO",
        "show_path": False,
        "show_time": True,
    },
    "file": {
        "log_path": ".",
        "log_dir": "logs",
        "log_name": "mailforge.log",
        "level": "DEBUG",
        "max_bytes": 5 * 1024 * 1024,
        "backup_count": 3,
        "format": "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    },
    "icons": {
        "show": True,
        "trace": "🔬",
        "debug": "🔎",
        "info": "📨",
        "success": "✅",
        "warning": "⚠️",
        "error": "❌",
        "critical": "🔥",
    },
    "theme": {
        "trace": "medium_purple4 on dark_olive_green1",
        "debug": "dim cyan",
        "info": "cyan",
        "success": "bold green",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold white on red",
    },
}

FALLBACK_PRESETS: dict[str, dict[str, Any]] = {
    "dev": {
        "output": "console",
        "console": {"level": "DEBUG", "show_path": True},
    },
    "prod": {
        "output": "file",
        "file": {"level": "INFO"},
        "icons": {"show": False},
    },
    "debug": {
        "output": "both",
        "console": {"level": "TRACE", "show_path": True},
        "file": {"level": "TRACE"},
    },
}

_ALLOWED_LOG_SUFFIXES = frozenset({"", ".log", ".txt", ".json"})
_RESERVED_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def _deep_update(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_update(merged[key], value)
        else:
            merged[key] = value
    return merged


def _validate_log_file_path(path: Path) -> Path:
    """Resolve a log file path and check its extension.

    Raises:
        ValueError: If the suffix is not a plain log/text/json extension.
    """
    resolved = path.expanduser().resolve()
    if resolved.suffix.lower() not in _ALLOWED_LOG_SUFFIXES:
        raise ValueError(f"Refusing to log into '{resolved.name}': unsupported extension")
    return resolved


def _level_value(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def _global_logger_section() -> dict[str, Any]:
    try:
        config = get_config()
    except (ConfigError, FileNotFoundError):
        return {}
    section = config.get("logger") if config else None
    return section.to_dict() if isinstance(section, Box) else dict(section or {})


class LogManager(logging.Logger):
    """Logger preconfigured with Rich console and rotating file output.

    Args:
        name: Logger name.
        preset: One of ``dev``, ``prod``, ``debug`` (or a preset declared in
            the config file). Unknown presets are ignored.
        config: Explicit overrides, merged last.

    Examples:
        >>> log = LogManager(name="mailforge.demo", preset="dev")
        >>> log.success("Message queued", recipients=2)  # doctest: +SKIP
    """

    def __init__(
        self,
        name: str = "mailforge",
        *,
        preset: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(name, level=TRACE_LEVEL)
        self.propagate = False
        self._config = Box(self._resolve_config(preset, config), default_box=True)
        self._setup_handlers()

    @staticmethod
    def _resolve_config(preset: str | None, config: dict[str, Any] | None) -> dict[str, Any]:
        section = _global_logger_section()
        resolved = _deep_update(FALLBACK_DEFAULTS, section.get("defaults") or {})

        if preset:
            presets = {**FALLBACK_PRESETS, **(section.get("presets") or {})}
            if preset in presets:
                resolved = _deep_update(resolved, presets[preset])

        if config:
            resolved = _deep_update(resolved, dict(config))
        return resolved

    def _setup_handlers(self) -> None:
        output = self._config.output
        if output in ("console", "both"):
            self.addHandler(self._console_handler())
        if output in ("file", "both"):
            self.addHandler(self._file_handler())

    def _console_handler(self) -> logging.Handler:
        console_cfg = self._config.console
        theme = Theme({f"logging.level.{lvl}": style for lvl, style in self._config.theme.items()})
        handler = RichHandler(
            console=Console(theme=theme, stderr=True),
            show_path=bool(console_cfg.show_path),
            show_time=bool(console_cfg.show_time),
            rich_tracebacks=True,
            markup=False,
        )
        handler.setLevel(_level_value(console_cfg.level))
        return handler

    def _file_handler(self) -> logging.Handler:
        file_cfg = self._config.file
        directory = Path(file_cfg.log_path) / file_cfg.log_dir
        directory.mkdir(parents=True, exist_ok=True)
        log_file = _validate_log_file_path(directory / file_cfg.log_name)
        handler = RotatingFileHandler(
            log_file,
            maxBytes=int(file_cfg.max_bytes),
            backupCount=int(file_cfg.backup_count),
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(file_cfg.format))
        handler.setLevel(_level_value(file_cfg.level))
        return handler

    def _format_with_icon(self, level_name: str, message: str) -> str:
        icons = self._config.icons
        if not icons.show:
            return message
        icon = icons.get(level_name.lower())
        return f"{icon} {message}" if icon else message

    def _emit(self, level: int, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        reserved = {k: kwargs.pop(k) for k in list(kwargs) if k in _RESERVED_KWARGS}
        if kwargs:
            context = " ".join(f"{key}={value!r}" for key, value in kwargs.items())
            msg = f"{msg} | {context}"
        msg = self._format_with_icon(logging.getLevelName(level), msg)
        reserved.setdefault("stacklevel", 3)
        self._log(level, msg, args, **reserved)

    def trace(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log at TRACE level."""
        self._emit(TRACE_LEVEL, msg, args, kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        self._emit(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        self._emit(logging.INFO, msg, args, kwargs)

    def success(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log at SUCCESS level."""
        self._emit(SUCCESS_LEVEL, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        self._emit(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        self._emit(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        self._emit(logging.CRITICAL, msg, args, kwargs)

    def traceback(self, exc: BaseException, level: int = logging.ERROR) -> None:
        """Log an exception with its formatted traceback."""
        formatted = "".join(traceback_module.format_exception(type(exc), exc, exc.__traceback__))
        self._emit(level, "%s", (formatted.rstrip(),), {})


__all__ = [
    "FALLBACK_DEFAULTS",
    "FALLBACK_PRESETS",
    "LOGGING_LEVEL",
    "SUCCESS_LEVEL",
    "TRACE_LEVEL",
    "LogManager",
]
