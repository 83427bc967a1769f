# kbflow/logging/tags.py
"""
Central place for defining logging subsystem tags.

These tags prefix log messages so output stays searchable across the
scheduler, the sync engine and the storage layer.

Changing a tag here updates it project-wide.
"""

INGEST = "[INGEST]"
SYNC = "[SYNC]"
SCHEDULER = "[SCHEDULER]"
STORAGE = "[STORAGE]"
BACKEND = "[BACKEND]"
CLI = "[CLI]"
