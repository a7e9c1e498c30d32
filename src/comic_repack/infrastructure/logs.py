"""Log configuration and verbosity tiers."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

PACKAGE_LOGGER = "comic_repack"

_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG, TRACE)


def level_for(verbosity: int) -> int:
    """Map the ``-v`` count to a log level.

    0 warnings, 1 info, 2 debug, 3 and more trace.
    """
    return _LEVELS[min(max(verbosity, 0), len(_LEVELS) - 1)]


def includes_dependencies(verbosity: int) -> bool:
    """Whether third-party library records are shown as well."""
    return verbosity >= len(_LEVELS)


def configure_logging(verbosity: int, console: Console | None = None) -> logging.Handler:
    """Install one handler rendering records through ``console``.

    The handler is attached to the package logger, and to the root logger
    too once verbosity reveals dependency-library records. Calling again
    replaces the previously installed handler.

    Returns
    -------
    logging.Handler
        The installed handler.
    """
    level = level_for(verbosity)
    handler = RichHandler(
        console=console or Console(stderr=True),
        level=level,
        show_time=False,
        show_path=verbosity >= 2,
        markup=False,
        rich_tracebacks=False,
    )
    handler.set_name("comic-repack")

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    root_logger = logging.getLogger()
    for target in (package_logger, root_logger):
        for existing in list(target.handlers):
            if existing.get_name() == handler.get_name():
                target.removeHandler(existing)

    package_logger.setLevel(level)
    if includes_dependencies(verbosity):
        package_logger.propagate = True
        root_logger.setLevel(level)
        root_logger.addHandler(handler)
    else:
        package_logger.propagate = False
        package_logger.addHandler(handler)
    return handler
