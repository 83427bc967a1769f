# tests/test_scanner.py
"""
Tests for kbflow.ingestion.diff.scanner.
"""

import os

import pytest

from kbflow.ingestion.diff.scanner import FileScanner
from kbflow.ingestion.hashing import compute_content_hash


class TestScan:
    def test_recursive_scan(self, docs, write_file):
        write_file(docs / "a.txt", "a" * 50)
        write_file(docs / "sub" / "b.md", "b" * 60)

        result = FileScanner().scan(docs)

        assert result.root == str(docs)
        assert [f.relative_path for f in result.files] == ["a.txt", os.path.join("sub", "b.md")]
        assert result.total_bytes == 110
        assert result.total_errors == 0

    def test_fingerprint_fields(self, docs, write_file):
        path = write_file(docs / "a.txt", "hello", mtime_ms=1_700_000_000_123)

        scanned = FileScanner().scan(docs).files[0]

        assert scanned.path == str(path)
        assert scanned.size_bytes == 5
        assert scanned.mtime_ms == 1_700_000_000_123
        assert scanned.content_hash == compute_content_hash(path)

    def test_all_extensions_included(self, docs, write_file):
        for name in ("a.pdf", "b.py", "c.unknownext", "Makefile"):
            write_file(docs / name, "x")

        assert FileScanner().scan(docs).total_scanned == 4

    def test_skips_hidden_by_default(self, docs, write_file):
        write_file(docs / "visible.txt", "x")
        write_file(docs / ".hidden.txt", "x")
        write_file(docs / ".git" / "config", "x")

        paths = [f.relative_path for f in FileScanner().scan(docs).files]

        assert paths == ["visible.txt"]

    def test_hidden_included_when_disabled(self, docs, write_file):
        write_file(docs / "visible.txt", "x")
        write_file(docs / ".hidden.txt", "x")

        assert FileScanner(skip_hidden=False).scan(docs).total_scanned == 2

    def test_hidden_root_is_still_scanned(self, tmp_path, write_file):
        """Only entries below the root count as hidden."""
        root = (tmp_path / ".notes").resolve()
        write_file(root / "a.txt", "x")

        assert FileScanner().scan(root).total_scanned == 1

    def test_empty_directory(self, docs):
        result = FileScanner().scan(docs)

        assert result.files == []
        assert result.total_bytes == 0

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FileScanner().scan(tmp_path / "missing")

    def test_file_root_raises(self, docs, write_file):
        path = write_file(docs / "a.txt", "x")

        with pytest.raises(NotADirectoryError):
            FileScanner().scan(path)


class TestScanFile:
    def test_scan_single_file(self, docs, write_file):
        path = write_file(docs / "a.txt", "abc")

        scanned = FileScanner().scan_file(path)

        assert scanned.path == str(path)
        assert scanned.root == str(docs)
        assert scanned.size_bytes == 3

    def test_missing_file_raises(self, docs):
        with pytest.raises(FileNotFoundError):
            FileScanner().scan_file(docs / "missing.txt")


class TestScanAsync:
    @pytest.mark.asyncio
    async def test_matches_sync_scan(self, docs, write_file):
        write_file(docs / "a.txt", "x")
        write_file(docs / "b.txt", "y")

        result = await FileScanner().scan_async(docs)

        assert result.total_scanned == 2
        assert [f.path for f in result.files] == [f.path for f in FileScanner().scan(docs).files]


class TestSymlinks:
    def test_link_to_outside_file_keeps_its_own_path(self, tmp_path, docs, write_file):
        target = write_file(tmp_path / "shared" / "b.txt", "shared")
        link = docs / "b.txt"
        link.symlink_to(target)

        scanned = FileScanner().scan(docs).files

        assert [f.path for f in scanned] == [str(link)]
        assert scanned[0].root == str(docs)
        assert scanned[0].content_hash == compute_content_hash(target)
        assert scanned[0].size_bytes == 6

    def test_link_to_sibling_is_a_separate_entry(self, docs, write_file):
        real = write_file(docs / "a.txt", "same")
        (docs / "alias.txt").symlink_to(real)

        paths = [f.path for f in FileScanner().scan(docs).files]

        assert paths == [str(real), str(docs / "alias.txt")]

    def test_dangling_link_skipped(self, docs, write_file):
        write_file(docs / "a.txt", "x")
        (docs / "gone.txt").symlink_to(docs / "never-written.txt")

        result = FileScanner().scan(docs)

        assert [f.relative_path for f in result.files] == ["a.txt"]
        assert result.errors == []

    def test_linked_directory_not_descended(self, tmp_path, docs, write_file):
        write_file(tmp_path / "elsewhere" / "c.txt", "x")
        (docs / "linked").symlink_to(tmp_path / "elsewhere", target_is_directory=True)

        assert FileScanner().scan(docs).files == []

    def test_scan_file_does_not_resolve_link(self, tmp_path, docs, write_file):
        target = write_file(tmp_path / "shared" / "b.txt", "shared")
        link = docs / "b.txt"
        link.symlink_to(target)

        scanned = FileScanner().scan_file(link)

        assert scanned.path == str(link)
        assert scanned.root == str(docs)
