# kbflow/ingestion/__init__.py
"""
Ingestion core: hashing, metadata store, incremental sync, task building
and the admission-controlled scheduler.
"""
