"""
Logging configuration for the mesh_analysis package.

Library modules only create module loggers (logging.getLogger(__name__))
and log through them; handlers are installed by the application, normally
the CLI, through setup_logging().

Provides:
- JSONFormatter: one JSON object per line, numpy values converted
- ConsoleFormatter: short human-readable lines with optional colours
- log_timing / timed: elapsed-time records around an operation
- LogContext: fields added to every record inside a with-block

Usage:
    from mesh_analysis.logging_config import setup_logging, log_timing

    setup_logging(level=logging.INFO, json_file="analysis.log.json")
    with log_timing(logger, "Voxelizing", resolution=64):
        grid = voxelize(mesh, 64)
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar, Union

import numpy as np

F = TypeVar('F', bound=Callable[..., Any])

PACKAGE_LOGGER = "mesh_analysis"

# Attributes every LogRecord carries; anything else came from extra={}
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {'message', 'asctime'}


def _extra_fields(record: logging.LogRecord) -> List[Tuple[str, Any]]:
    return [(k, v) for k, v in record.__dict__.items() if k not in _RECORD_ATTRIBUTES]


def _jsonable(value: Any) -> Any:
    """numpy scalars and arrays as plain Python, anything unknown as str."""
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JSONFormatter(logging.Formatter):
    """Machine-readable formatter: one JSON object per record.

    Keys: timestamp, level, logger, message, plus location for DEBUG and
    WARNING+ records, exception when present, and every extra field.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.levelno >= logging.WARNING or record.levelno <= logging.DEBUG:
            entry["location"] = {"file": record.filename, "line": record.lineno, "function": record.funcName}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if self.include_extra:
            for key, value in _extra_fields(record):
                entry[key] = _jsonable(value)
        return json.dumps(entry, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Format: [HH:MM:SS] LEVEL module: message [key=value, ...]

    The package prefix is dropped from logger names.
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, show_extra: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.show_extra = show_extra

    @staticmethod
    def _compact(value: Any) -> str:
        if isinstance(value, (float, np.floating)):
            return f"{value:.3g}"
        if isinstance(value, np.ndarray):
            return f"array{value.shape}" if value.size > 3 else str(value.tolist())
        if isinstance(value, (list, tuple)) and len(value) > 3:
            return f"[...{len(value)} items]"
        return str(value)

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:8}"
        if self.use_colors and record.levelname in self.COLORS:
            level = f"{self.COLORS[record.levelname]}{level}{self.RESET}"

        name = record.name
        if name.startswith(PACKAGE_LOGGER + "."):
            name = name[len(PACKAGE_LOGGER) + 1:]

        line = f"[{stamp}] {level} {name}: {record.getMessage()}"
        if self.show_extra:
            extras = [f"{k}={self._compact(v)}" for k, v in _extra_fields(record)]
            if extras:
                line += " [" + ", ".join(extras) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: int = logging.INFO,
    json_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    use_colors: bool = True,
    root_logger: bool = False,
) -> logging.Logger:
    """Install console and/or JSON file handlers.

    Args:
        level: minimum level for the logger and its handlers
        json_file: write JSON lines to this file as well
        console: log to stderr
        use_colors: ANSI colours on the console
        root_logger: configure the root logger instead of the package logger

    Returns:
        The configured logger
    """
    logger = logging.getLogger("" if root_logger else PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(level)
        stream.setFormatter(ConsoleFormatter(use_colors=use_colors))
        logger.addHandler(stream)

    if json_file:
        file_handler = logging.FileHandler(Path(json_file), encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    if not root_logger:
        logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_timing(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    **extra_fields: Any
) -> Iterator[Dict[str, Any]]:
    """Log the start, completion (with elapsed seconds) or failure of a block.

    The yielded dict may be filled with extra fields for the completion record.
    Exceptions are logged at ERROR and re-raised.
    """
    timing: Dict[str, Any] = {}
    start = time.perf_counter()
    logger.log(level, "Starting: %s", operation, extra={"event": "start", "operation": operation, **extra_fields})
    try:
        yield timing
    except Exception as exc:
        elapsed = time.perf_counter() - start
        logger.error("Failed: %s (%.3fs) - %s", operation, elapsed, exc, extra={
            "event": "error", "operation": operation, "elapsed_seconds": elapsed,
            "error": str(exc), **extra_fields,
        })
        raise
    elapsed = time.perf_counter() - start
    timing['elapsed_seconds'] = elapsed
    logger.log(level, "Completed: %s (%.3fs)", operation, elapsed, extra={
        "event": "complete", "operation": operation, **extra_fields, **timing,
    })


def timed(
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
    operation: Optional[str] = None,
) -> Callable[[F], F]:
    """Decorator form of log_timing; defaults to the function's module logger and name."""
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with log_timing(logger or logging.getLogger(func.__module__), operation or func.__name__, level):
                return func(*args, **kwargs)
        return wrapper  # type: ignore
    return decorator


class _ContextFilter(logging.Filter):
    def __init__(self, fields: Dict[str, Any]):
        super().__init__()
        self.fields = fields

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.fields.items():
            setattr(record, key, value)
        return True


class LogContext:
    """Add fields to every record emitted through the package handlers.

    The filter is attached to the handlers rather than the logger so records
    from child module loggers are tagged too.

    Example:
        with LogContext(mesh="part.stl"):
            describe_mesh(mesh)
    """

    _current: Optional['LogContext'] = None

    def __init__(self, **fields: Any):
        self.fields = fields
        self._previous: Optional['LogContext'] = None
        self._filter = _ContextFilter(fields)
        self._handlers: List[logging.Handler] = []

    def __enter__(self) -> 'LogContext':
        self._previous = LogContext._current
        LogContext._current = self
        self._handlers = list(logging.getLogger(PACKAGE_LOGGER).handlers)
        for handler in self._handlers:
            handler.addFilter(self._filter)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for handler in self._handlers:
            handler.removeFilter(self._filter)
        self._handlers = []
        LogContext._current = self._previous

    @classmethod
    def current(cls) -> Optional['LogContext']:
        return cls._current


def configure_default_logging(verbose: bool = False) -> logging.Logger:
    """Console logging at DEBUG (verbose) or INFO."""
    return setup_logging(level=logging.DEBUG if verbose else logging.INFO, console=True, use_colors=True)
