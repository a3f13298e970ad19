"""Tests for snapshot storage backends."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from memory_graph.backends import (
    JSONBackend, Link, Memory, StorageBackend, get_backend, parse_timestamp,
)


def sample() -> dict[str, Memory]:
    return {
        "a": Memory("a", "cats are great", tags=["pets"], created_at="t0", updated_at="t1",
                    links=[Link("b", "related_to")]),
        "b": Memory("b", "cats are wonderful", expires_at="2030-01-01T00:00:00+00:00"),
    }


class TestJSONBackend:
    def test_initializes_empty_file(self, tmp_path: Path):
        backend = JSONBackend(tmp_path / "mem")
        assert backend.memory_file.read_text() == "{}"
        assert backend.load() == {}

    def test_save_and_load(self, tmp_path: Path):
        backend = JSONBackend(tmp_path)
        backend.save(sample())
        assert JSONBackend(tmp_path).load() == sample()

    def test_save_replaces_snapshot(self, tmp_path: Path):
        backend = JSONBackend(tmp_path)
        backend.save(sample())
        backend.save({"c": Memory("c", "only")})
        assert list(backend.load()) == ["c"]

    def test_corrupt_file(self, tmp_path: Path, caplog):
        backend = JSONBackend(tmp_path)
        backend.memory_file.write_text("{not json")
        with caplog.at_level(logging.WARNING):
            assert backend.load() == {}
        assert "Failed to parse" in caplog.text

    def test_non_mapping_file(self, tmp_path: Path):
        backend = JSONBackend(tmp_path)
        backend.memory_file.write_text("[]")
        assert backend.load() == {}

    def test_is_storage_backend(self, tmp_path: Path):
        assert isinstance(JSONBackend(tmp_path), StorageBackend)


class TestGetBackend:
    def test_json(self, tmp_path: Path):
        assert isinstance(get_backend("json", memory_dir=tmp_path), JSONBackend)

    def test_unknown(self, tmp_path: Path):
        with pytest.raises(ValueError, match="Unknown backend type"):
            get_backend("sqlite", memory_dir=tmp_path)


class TestGraphBackend:
    def test_save_load_and_drop(self, tmp_path: Path):
        pytest.importorskip("cog")
        from memory_graph.backends import GraphBackend

        backend = GraphBackend(tmp_path)
        backend.save(sample())
        assert backend.load() == sample()

        remaining = {"a": Memory("a", "cats", tags=["pets"])}
        backend.save(remaining)
        assert backend.load() == remaining


class TestAtomicSave:
    def test_no_temp_files_left(self, tmp_path: Path):
        backend = JSONBackend(tmp_path)
        backend.save(sample())
        backend.save(sample())
        assert sorted(p.name for p in tmp_path.iterdir()) == ["memory.json", "memory.lock"]


class TestExpiresAtParsing:
    NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_z_suffix(self):
        assert Memory("a", "v", expires_at="2025-12-31T23:59:59Z").is_expired(self.NOW)
        assert not Memory("a", "v", expires_at="2026-01-02T00:00:00Z").is_expired(self.NOW)

    def test_naive_read_as_utc(self):
        assert Memory("a", "v", expires_at="2025-12-31T23:59:59").is_expired(self.NOW)

    def test_unreadable_never_expires(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert not Memory("a", "v", expires_at="next tuesday").is_expired(self.NOW)
        assert "unreadable expires_at" in caplog.text

    def test_parse_timestamp(self):
        assert parse_timestamp("2026-01-01T00:00:00+00:00") == self.NOW
        assert parse_timestamp("garbage") is None
