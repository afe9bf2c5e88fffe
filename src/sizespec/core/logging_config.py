# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Logging setup for SIZESPEC.

Library modules only call ``logging.getLogger(__name__)``; handlers are
attached here, once, by the entry point that owns the process.
"""

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] - %(message)s'
ROOT_LOGGER_NAME = 'sizespec'


def configure_logging(
    level: Union[str, int] = 'INFO',
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """Attach stream (and optionally file) handlers to the ``sizespec`` logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        level: Logging level name or number.
        log_file: Optional path of a log file to append to.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, '_sizespec_handler', False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._sizespec_handler = True
        logger.addHandler(handler)

    logger.propagate = False
    return logger
