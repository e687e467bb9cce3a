"""Tests for metadata_splitter.models module."""

import pytest

from metadata_splitter.errors import SchemaMismatch
from metadata_splitter.models import FIXED_SCHEMA, FileMetadata, Split, record_schema


class TestFileMetadata:
    """Tests for FileMetadata dataclass."""

    def test_create_entry(self, make_entry):
        entry = make_entry("report.csv", size=2048)
        assert entry.file_name == "report.csv"
        assert entry.file_size == 2048
        assert entry.is_folder is False
        assert entry.backend_type == "local"

    def test_entry_is_immutable(self, make_entry):
        entry = make_entry()
        with pytest.raises(AttributeError):
            entry.file_size = 10

    def test_negative_size_rejected(self, make_entry):
        with pytest.raises(ValueError):
            make_entry(size=-1)

    def test_permission_must_fit_16_bits(self, make_entry):
        with pytest.raises(ValueError):
            make_entry(permission=0x10000)

    def test_absolute_base_path_rejected(self, make_entry):
        with pytest.raises(ValueError):
            make_entry(base_path="/abs/path")

    def test_to_record_field_order(self, make_entry, s3_credentials):
        record = make_entry(credentials=s3_credentials).to_record()
        assert list(record) == [name for name, _ in record_schema("amazons3")]

    def test_to_record_values(self, make_entry, s3_credentials):
        entry = make_entry("b.txt", size=3, credentials=s3_credentials, base_path="a/b.txt")
        record = entry.to_record()
        assert record["fileName"] == "b.txt"
        assert record["fullPath"] == "/data/b.txt"
        assert record["fileSize"] == 3
        assert record["timeStamp"] == 1700000000000
        assert record["basePath"] == "a/b.txt"
        assert record["permission"] == 0o644
        assert record["backendType"] == "amazons3"
        assert record["bucketName"] == "my-bucket"

    def test_roundtrip_record(self, make_entry, s3_credentials):
        entry = make_entry(credentials=s3_credentials)
        assert FileMetadata.from_record(entry.to_record()) == entry

    def test_from_record_reuses_credentials(self, make_entry, s3_credentials):
        record = make_entry(credentials=s3_credentials).to_record()
        restored = FileMetadata.from_record(record, s3_credentials)
        assert restored.credentials is s3_credentials

    def test_from_record_missing_fixed_field(self, make_entry):
        record = make_entry().to_record()
        del record["owner"]
        with pytest.raises(SchemaMismatch, match="owner"):
            FileMetadata.from_record(record)

    def test_from_record_unknown_backend(self, make_entry):
        record = make_entry().to_record()
        record["backendType"] = "unknown"
        with pytest.raises(SchemaMismatch):
            FileMetadata.from_record(record)


class TestRecordSchema:
    """Tests for record_schema function."""

    def test_fixed_fields_come_first(self):
        schema = record_schema("local")
        assert schema[:len(FIXED_SCHEMA)] == FIXED_SCHEMA
        assert schema[len(FIXED_SCHEMA)] == ("backendType", "string")

    def test_fixed_field_types(self):
        types = dict(FIXED_SCHEMA)
        assert types["fileSize"] == "long"
        assert types["timeStamp"] == "long"
        assert types["isFolder"] == "boolean"
        assert types["permission"] == "short"


class TestSplit:
    """Tests for Split dataclass."""

    def test_add_tracks_load_and_bytes(self, make_entry):
        split = Split(index=0)
        split.add(make_entry("a", size=10))
        split.add(make_entry("b", size=5))
        assert split.load == 2
        assert split.total_bytes == 15
        assert len(split) == 2

    def test_finalize_freezes_entries(self, make_entry):
        split = Split(index=0)
        split.add(make_entry("a"))
        split.finalize()
        assert split.finalized is True
        assert isinstance(split.entries, tuple)
        with pytest.raises(RuntimeError):
            split.add(make_entry("b"))

    def test_finalize_is_idempotent(self):
        split = Split(index=3)
        assert split.finalize() is split
        assert split.finalize() is split

    def test_fingerprint_depends_on_members(self, make_entry):
        first = Split(index=0)
        first.add(make_entry("a"))
        second = Split(index=1)
        second.add(make_entry("a"))
        third = Split(index=0)
        third.add(make_entry("b"))

        assert first.fingerprint() == second.fingerprint()
        assert first.fingerprint() != third.fingerprint()
        assert len(first.fingerprint()) == 16  # xxhash64 produces 16 hex chars
