# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging helpers for the WhatsApp dispatch proxy."""

import logging
import os

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "WaProxy") -> logging.Logger:
    """Return the named logger used by the proxy.

    Handlers are installed once by :func:`configure_logging` in the entry
    point (server.py / cli.py), never here.
    """
    return logging.getLogger(name)


def configure_logging(level: str | None = None) -> int:
    """Configure root logging from ``level`` or ``WAP_LOG_LEVEL`` (default INFO).

    Returns the numeric level applied.
    """
    name = (level or os.getenv("WAP_LOG_LEVEL", "INFO")).upper()
    numeric = getattr(logging, name, logging.INFO)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,  # replace handlers installed by earlier imports
    )
    return numeric
