# tests/test_metadata_store.py
"""
Tests for kbflow.ingestion.state.store.MetadataStore.

Key tests verify that:
1. Upsert keeps exactly one record per (knowledge_base_id, file_path)
2. created_at survives replacement, updated_at is maintained by the trigger
3. Prefix queries never match sibling directories sharing a name prefix
4. Records are scoped per knowledge base
"""

import os
import sqlite3

import pytest

from kbflow.core.exceptions import MetadataStoreError
from kbflow.ingestion.state import FileRecord, MetadataStore, directory_prefix


def make_record(
    file_path: str,
    unique_id: str = "file-1",
    content_hash: str = "sha256:abc",
    size: int = 10,
    mtime: int = 1_700_000_000_000,
    kb_id: str = "test-base",
) -> FileRecord:
    """Helper to create a FileRecord."""
    return FileRecord(
        knowledge_base_id=kb_id,
        file_path=file_path,
        content_hash=content_hash,
        size=size,
        last_modified_timestamp=mtime,
        external_unique_id=unique_id,
        loader_type="LocalPathLoader",
    )


def p(*parts: str) -> str:
    """Absolute path under a fake root, using the platform separator."""
    return os.sep + os.sep.join(("data",) + parts)


class TestDirectoryPrefix:
    def test_appends_separator(self):
        assert directory_prefix(p("a", "b")) == p("a", "b") + os.sep

    def test_keeps_existing_separator(self):
        assert directory_prefix(p("a") + os.sep) == p("a") + os.sep


class TestSchema:
    def test_creates_database_lazily(self, tmp_path):
        db = tmp_path / "kb" / "metadata.db"
        store = MetadataStore("kb", db)
        assert not db.exists()

        store.initialize()
        assert db.exists()
        store.close()

    def test_table_and_trigger_exist(self, store):
        store.initialize()
        conn = sqlite3.connect(str(store.db_path))
        names = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master").fetchall()
        }
        conn.close()

        assert "file_metadata" in names
        assert "update_file_metadata_updated_at" in names


class TestUpsert:
    def test_insert_and_get(self, store):
        store.upsert(make_record(p("a.txt")))

        record = store.get_by_path(p("a.txt"))
        assert record is not None
        assert record.content_hash == "sha256:abc"
        assert record.external_unique_id == "file-1"
        assert record.created_at is not None
        assert record.updated_at is not None

    def test_upsert_replaces_all_fields(self, store):
        store.upsert(make_record(p("a.txt")))
        created_at = store.get_by_path(p("a.txt")).created_at

        store.upsert(
            make_record(p("a.txt"), unique_id="file-2", content_hash="sha256:def", size=20, mtime=5)
        )

        record = store.get_by_path(p("a.txt"))
        assert len(store) == 1
        assert record.content_hash == "sha256:def"
        assert record.size == 20
        assert record.last_modified_timestamp == 5
        assert record.external_unique_id == "file-2"
        assert record.created_at == created_at
        assert record.updated_at >= created_at

    def test_handle_moved_to_another_path_drops_stale_row(self, store):
        store.upsert(make_record(p("old.txt"), unique_id="file-1"))
        store.upsert(make_record(p("new.txt"), unique_id="file-1"))

        assert store.get_by_path(p("old.txt")) is None
        assert store.get_by_unique_id("file-1").file_path == p("new.txt")
        assert len(store) == 1

    def test_negative_size_rejected_by_model(self):
        with pytest.raises(ValueError):
            make_record(p("a.txt"), size=-1)


class TestLookupAndDelete:
    def test_get_missing(self, store):
        assert store.get_by_path(p("missing.txt")) is None
        assert store.get_by_unique_id("nope") is None

    def test_get_by_unique_id(self, store):
        store.upsert(make_record(p("a.txt"), unique_id="file-7"))

        assert store.get_by_unique_id("file-7").file_path == p("a.txt")

    def test_delete_by_path(self, store):
        store.upsert(make_record(p("a.txt")))

        assert store.delete_by_path(p("a.txt")) is True
        assert store.delete_by_path(p("a.txt")) is False
        assert store.get_by_path(p("a.txt")) is None

    def test_delete_by_unique_id(self, store):
        store.upsert(make_record(p("a.txt"), unique_id="file-1"))

        assert store.delete_by_unique_id("file-1") is True
        assert store.delete_by_unique_id("file-1") is False
        assert len(store) == 0

    def test_clear(self, store):
        store.upsert(make_record(p("a.txt"), unique_id="file-1"))
        store.upsert(make_record(p("b.txt"), unique_id="file-2"))

        assert store.clear() == 2
        assert len(store) == 0


class TestPrefixQueries:
    @pytest.fixture
    def populated(self, store):
        store.upsert(make_record(p("a", "b", "one.txt"), unique_id="u1"))
        store.upsert(make_record(p("a", "b", "deep", "two.txt"), unique_id="u2"))
        store.upsert(make_record(p("a", "bc", "three.txt"), unique_id="u3"))
        store.upsert(make_record(p("a", "four.txt"), unique_id="u4"))
        return store

    def test_list_under_excludes_sibling_prefix(self, populated):
        paths = [r.file_path for r in populated.list_under(p("a", "b"))]

        assert paths == sorted([p("a", "b", "one.txt"), p("a", "b", "deep", "two.txt")])

    def test_list_under_with_trailing_separator(self, populated):
        assert len(populated.list_under(p("a", "b") + os.sep)) == 2

    def test_list_under_parent(self, populated):
        assert len(populated.list_under(p("a"))) == 4

    def test_delete_under(self, populated):
        assert populated.delete_under(p("a", "b")) == 2

        remaining = {r.file_path for r in populated.list_all()}
        assert remaining == {p("a", "bc", "three.txt"), p("a", "four.txt")}

    def test_iteration(self, populated):
        assert {r.external_unique_id for r in populated} == {"u1", "u2", "u3", "u4"}


class TestKnowledgeBaseScoping:
    def test_records_scoped_by_base(self, tmp_path):
        db = tmp_path / "shared.db"
        first = MetadataStore("first", db)
        second = MetadataStore("second", db)

        first.upsert(make_record(p("a.txt"), unique_id="u1", kb_id="first"))
        second.upsert(make_record(p("a.txt"), unique_id="u2", kb_id="second"))

        assert first.get_by_path(p("a.txt")).external_unique_id == "u1"
        assert second.get_by_path(p("a.txt")).external_unique_id == "u2"
        assert len(first) == 1
        assert len(second) == 1
        first.close()
        second.close()


class TestErrors:
    def test_unopenable_database_raises_store_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        store = MetadataStore("kb", blocker / "metadata.db")

        with pytest.raises(MetadataStoreError):
            store.initialize()

    def test_context_manager_closes(self, tmp_path):
        with MetadataStore("kb", tmp_path / "metadata.db") as store:
            store.upsert(make_record(p("a.txt"), kb_id="kb"))
        assert store._conn is None
