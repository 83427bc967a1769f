# kbflow/cli/__init__.py
"""kbflow command line interface."""

from kbflow.cli.app import app

__all__ = ["app"]
