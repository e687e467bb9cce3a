"""Tests for metadata_splitter.db module."""

import json

import pytest

from metadata_splitter.balancer import balance_splits
from metadata_splitter.db import SplitPlanStore
from metadata_splitter.errors import ConversionError
from metadata_splitter.models import UnreadableEntry
from metadata_splitter.reader import SplitReader


class TestSplitPlanStoreInit:
    """Tests for SplitPlanStore initialization."""

    def test_create_new_db(self, db_path):
        store = SplitPlanStore(db_path)
        assert db_path.exists()
        store.close()

    def test_schema_created(self, plan_store):
        cursor = plan_store.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )
        tables = {row[0] for row in cursor.fetchall()}
        assert "metadata" in tables
        assert "splits" in tables
        assert "entries" in tables

    def test_no_plan_initially(self, plan_store):
        assert plan_store.has_plan() is False
        assert plan_store.num_splits == 0


class TestMetadata:
    """Tests for metadata operations."""

    def test_set_and_get_metadata(self, plan_store):
        plan_store.set_metadata("test_key", "test_value")
        assert plan_store.get_metadata("test_key") == "test_value"

    def test_get_missing_metadata_with_default(self, plan_store):
        assert plan_store.get_metadata("nonexistent") is None
        assert plan_store.get_metadata("nonexistent", "default_value") == "default_value"


class TestSavePlan:
    """Tests for plan persistence."""

    def test_save_and_count(self, plan_store, make_entry):
        plan = balance_splits([make_entry(f"f{i}", size=i) for i in range(10)], 3)
        plan_store.save_plan(plan, 3)

        assert plan_store.has_plan() is True
        assert plan_store.num_splits == 4
        assert plan_store.get_metadata("max_per_split") == "3"

    def test_get_split_matches_plan(self, plan_store, make_entry, s3_credentials):
        entries = [make_entry(f"f{i}", size=i, credentials=s3_credentials) for i in range(7)]
        plan = balance_splits(entries, 3)
        plan_store.save_plan(plan, 3)

        for i in range(plan.num_splits):
            stored = plan_store.get_split(i)
            assert stored.finalized is True
            assert list(stored.entries) == list(plan.get_split(i).entries)
            assert stored.fingerprint() == plan.get_split(i).fingerprint()
            assert plan_store.get_fingerprint(i) == stored.fingerprint()

    def test_loaded_entries_share_credentials(self, plan_store, make_entry, s3_credentials):
        plan = balance_splits([make_entry(f"f{i}", credentials=s3_credentials) for i in range(4)], 4)
        plan_store.save_plan(plan, 4)

        split = plan_store.get_split(0)
        first = split.entries[0].credentials
        assert first == s3_credentials
        assert all(entry.credentials is first for entry in split.entries)

    def test_save_replaces_previous_plan(self, plan_store, make_entry):
        plan_store.save_plan(balance_splits([make_entry(f"a{i}") for i in range(9)], 3), 3)
        plan_store.save_plan(balance_splits([make_entry("only")], 3), 3)

        assert plan_store.num_splits == 1
        assert [e.file_name for e in plan_store.get_split(0).entries] == ["only"]

    def test_stored_split_is_readable(self, plan_store, make_entry):
        plan_store.save_plan(balance_splits([make_entry("x"), make_entry("y")], 5), 5)
        records = list(SplitReader(plan_store.get_split(0)))
        assert [r["fileName"] for r in records] == ["x", "y"]

    def test_get_split_out_of_range(self, plan_store):
        with pytest.raises(IndexError):
            plan_store.get_split(0)

    def test_unreadable_record_reported_by_reader(self, plan_store, make_entry):
        plan_store.save_plan(balance_splits([make_entry(n) for n in ("x", "y", "z")], 5), 5)
        record = make_entry("y").to_record()
        record["backendType"] = "unknown"
        plan_store.conn.execute(
            "UPDATE entries SET record = ? WHERE split_index = 0 AND position = 1",
            (json.dumps(record),)
        )

        split = plan_store.get_split(0)
        assert split.load == 3
        assert isinstance(split.entries[1], UnreadableEntry)

        reader = SplitReader(split)
        records = list(reader)
        assert [r["fileName"] for r in records] == ["x", "z"]
        assert len(reader.errors) == 1
        assert reader.errors[0].position == 1
        assert reader.errors[0].full_path == "/data/y"

    def test_record_missing_fields_is_unreadable(self, plan_store, make_entry):
        plan_store.save_plan(balance_splits([make_entry("x"), make_entry("y")], 5), 5)
        plan_store.conn.execute(
            "UPDATE entries SET record = ? WHERE position = 0",
            (json.dumps({"fullPath": "/data/x", "backendType": "local", "fsUri": "file:///"}),)
        )

        reader = SplitReader(plan_store.get_split(0))
        assert [r["fileName"] for r in reader] == ["y"]
        assert "missing fields" in reader.errors[0].error

    def test_missing_position_raises(self, plan_store, make_entry):
        plan_store.save_plan(balance_splits([make_entry(n) for n in ("x", "y", "z")], 5), 5)
        plan_store.conn.execute("DELETE FROM entries WHERE position = 1")

        with pytest.raises(ConversionError, match="missing entry at position 1") as exc_info:
            plan_store.get_split(0)
        assert exc_info.value.split_index == 0

    def test_truncated_split_raises(self, plan_store, make_entry):
        plan_store.save_plan(balance_splits([make_entry(n) for n in ("x", "y", "z")], 5), 5)
        plan_store.conn.execute("DELETE FROM entries WHERE position = 2")

        with pytest.raises(ConversionError, match="expected 3 entries"):
            plan_store.get_split(0)

    def test_invalid_json_raises(self, plan_store, make_entry):
        plan_store.save_plan(balance_splits([make_entry("x")], 5), 5)
        plan_store.conn.execute("UPDATE entries SET record = '{not json'")

        with pytest.raises(ConversionError, match="not valid JSON"):
            plan_store.get_split(0)

    def test_persists_across_connections(self, db_path, make_entry):
        store = SplitPlanStore(db_path)
        store.save_plan(balance_splits([make_entry("x")], 5), 5)
        store.close()

        reopened = SplitPlanStore(db_path)
        assert reopened.num_splits == 1
        reopened.close()

    def test_clear_deletes_file(self, db_path):
        store = SplitPlanStore(db_path)
        store.clear()
        assert not db_path.exists()
