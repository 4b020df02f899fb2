"""Logging setup shared by the MCP server and the web app."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str | int | None = None) -> None:
    """Configure root logging once.

    The level defaults to ``NETSHELL_LOG_LEVEL`` or INFO.
    """
    if level is None:
        level = os.environ.get("NETSHELL_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
