# kbflow/logging/__init__.py
"""Logging helpers shared by every kbflow module."""

from kbflow.logging.logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
