# kbflow/core/__init__.py
"""Shared building blocks: paths, config loading, exceptions."""
