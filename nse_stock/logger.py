"""Loguru setup for check runs.

Two sinks are installed by ``configure_logging``:
- stderr, colourised, one line per event, prefixed with the worker thread
  and (inside a check) the test id
- ``nse_stock_<date>.json`` under ``config.log_dir``: JSON lines for CI
  artefacts, rotated, retained and gz-compressed per configuration

Components never add sinks. They call ``get_logger(__name__)`` and pass
structured keyword context (symbol, browser, selector) with each message.
``check_context`` tags everything logged while one check runs, so the
interleaved output of parallel browser workers can be untangled afterwards.

Design Rationale:
    Parallel workers share the sinks, so the thread name and the test id go
    into every record rather than into per-thread files. ``contextualize``
    is backed by contextvars and therefore never leaks between workers.
"""

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig
from nse_stock.exceptions import LoggingInitializationError

LOG_FILE_PATTERN = "nse_stock_{time:YYYY-MM-DD}.json"

_JSON_KEY = "_json_line"


def _record_to_json(record: dict[str, Any]) -> str:
    """One JSON object per log event.

    ``context`` holds everything bound or passed as keyword arguments;
    ``exception`` is present only for ``log.exception`` calls.
    """
    extra = {k: v for k, v in record["extra"].items() if k != _JSON_KEY}
    entry: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "function": record["function"],
        "line": record["line"],
        "thread": record["thread"].name,
    }
    if extra:
        entry["context"] = extra

    exception = record["exception"]
    if exception is not None:
        entry["exception"] = {
            "type": exception.type.__name__ if exception.type else None,
            "value": str(exception.value) if exception.value else None,
        }

    return json.dumps(entry, default=str, ensure_ascii=False)


def _json_format(record: dict[str, Any]) -> str:
    # Loguru formats the returned template against the record, so the JSON
    # text itself is passed through extra rather than returned directly.
    record["extra"][_JSON_KEY] = _record_to_json(record)
    return "{extra[" + _JSON_KEY + "]}\n"


def _console_format(record: dict[str, Any]) -> str:
    check = " | <yellow>{extra[test_id]}</yellow>" if "test_id" in record["extra"] else ""
    return (
        "<green>{time:HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<magenta>{thread.name}</magenta>"
        f"{check} | "
        "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>\n{exception}"
    )


def _ensure_writable(log_dir: Path) -> None:
    """Create ``log_dir`` and prove a file can be written there.

    Raises:
        LoggingInitializationError: If either step fails.
    """
    probe = log_dir / ".nse_stock_probe"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        probe.write_text("ok", encoding="utf-8")
        probe.unlink()
    except PermissionError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir), reason=f"Permission denied: {exc}"
        ) from exc
    except OSError as exc:
        raise LoggingInitializationError(log_dir=str(log_dir), reason=str(exc)) from exc


def configure_logging(config: GlobalConfig) -> None:
    """Replace loguru's default sink with the console and JSON-lines sinks.

    Called once by ``main.py`` or by the live suite's ``pytest_configure``.

    Args:
        config: Supplies level, directory, rotation and retention.

    Raises:
        LoggingInitializationError: If the log directory is not writable.
    """
    _ensure_writable(config.log_dir)
    logger.remove()

    logger.add(
        sys.stderr,
        format=_console_format,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )
    logger.add(
        str(config.log_dir / LOG_FILE_PATTERN),
        format=_json_format,
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        encoding="utf-8",
    )

    logger.info(
        "Logging configured",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Logger bound with the calling module's name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Quote page loaded", symbol="INFY")
    """
    return logger.bind(module=name)


@contextmanager
def check_context(test_id: str, browser: str, symbol: str) -> Iterator[None]:
    """Tag every record logged inside the block with the running check."""
    with logger.contextualize(test_id=test_id, browser=browser, symbol=symbol):
        yield
