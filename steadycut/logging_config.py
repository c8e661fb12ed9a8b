from __future__ import annotations

import logging

from steadycut.config import LoggingSettings

PACKAGE_LOGGER = "steadycut"
DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"

_tuned_loggers: set[str] = set()


def configure_logging(settings: LoggingSettings) -> None:
    """Configure process-wide logging once at startup.

    The root handler gets ``settings.level``. Entries in ``settings.loggers``
    then tune single modules, e.g. ``{"session.store": "DEBUG"}`` to trace
    every recompute without the rest of the pipeline's debug output.
    """

    logging.basicConfig(
        level=logging.getLevelName(settings.level),
        format=DEFAULT_LOG_FORMAT,
        force=True,
    )
    # reconfiguring must not leave levels from an earlier call behind
    for name in _tuned_loggers:
        logging.getLogger(name).setLevel(logging.NOTSET)
    _tuned_loggers.clear()

    for name, level in settings.loggers.items():
        qualified = qualified_logger_name(name)
        logging.getLogger(qualified).setLevel(logging.getLevelName(level))
        _tuned_loggers.add(qualified)


def qualified_logger_name(name: str) -> str:
    if name == PACKAGE_LOGGER or name.startswith(f"{PACKAGE_LOGGER}."):
        return name
    return f"{PACKAGE_LOGGER}.{name}"
