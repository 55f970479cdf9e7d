"""Tests for the legacy library.json migration"""

import json

import pytest

from api.exceptions import StorageError
from catalog.library_db import LibraryCatalog
from catalog.migration import migrate_legacy_library

from .conftest import make_record


@pytest.fixture
def user_dir(temp_dir):
    path = temp_dir / "alice"
    path.mkdir()
    return path


def write_legacy(user_dir, records):
    (user_dir / "library.json").write_text(json.dumps(records), encoding="utf-8")


class TestMigrateLegacyLibrary:
    """Legacy migration behavior"""

    def test_no_legacy_file_is_noop(self, user_dir):
        result = migrate_legacy_library(user_dir, "alice")

        assert result.migrated_count == 0
        assert result.backup_path is None
        assert not (user_dir / "library.db").exists()

    def test_migrates_and_backs_up(self, user_dir):
        write_legacy(user_dir, [make_record("a1"), make_record("a2"), make_record("a3")])

        result = migrate_legacy_library(user_dir, "alice")

        assert result.migrated_count == 3
        assert result.backup_path == user_dir / "library.json.backup"
        assert result.backup_path.exists()
        assert not (user_dir / "library.json").exists()

        with LibraryCatalog(user_dir / "library.db") as catalog:
            assert catalog.all_ids() == {"a1", "a2", "a3"}

    def test_second_run_finds_nothing(self, user_dir):
        write_legacy(user_dir, [make_record("a1")])
        migrate_legacy_library(user_dir, "alice")

        again = migrate_legacy_library(user_dir, "alice")

        assert again.migrated_count == 0
        with LibraryCatalog(user_dir / "library.db") as catalog:
            assert catalog.count() == 1

    def test_payload_preserved(self, user_dir):
        record = make_record("a1", title="Keep Me")
        record["metadata"] = {"prompt": "lofi"}
        write_legacy(user_dir, [record])

        migrate_legacy_library(user_dir, "alice")

        with LibraryCatalog(user_dir / "library.db") as catalog:
            assert catalog.all()[0].payload == record

    def test_records_without_id_are_dropped(self, user_dir):
        write_legacy(user_dir, [make_record("a1"), {"title": "no id"}, "garbage"])

        result = migrate_legacy_library(user_dir, "alice")

        assert result.migrated_count == 1

    def test_invalid_json_raises(self, user_dir):
        (user_dir / "library.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError):
            migrate_legacy_library(user_dir, "alice")
        assert (user_dir / "library.json").exists()

    def test_non_array_raises(self, user_dir):
        (user_dir / "library.json").write_text('{"clips": []}', encoding="utf-8")

        with pytest.raises(StorageError, match="not a JSON array"):
            migrate_legacy_library(user_dir, "alice")

    def test_empty_array_still_backed_up(self, user_dir):
        write_legacy(user_dir, [])

        result = migrate_legacy_library(user_dir, "alice")

        assert result.migrated_count == 0
        assert result.backup_path.exists()
