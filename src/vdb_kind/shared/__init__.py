"""Shared modules for vdb-kind.

Logging setup and the well-known filesystem locations used by every command.
"""

from .logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
