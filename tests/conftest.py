"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest

from metadata_splitter.backends import LocalConnection
from metadata_splitter.credentials import LocalCredentials, S3Credentials
from metadata_splitter.db import SplitPlanStore
from metadata_splitter.models import FileMetadata


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def sample_tree(temp_dir):
    """
    Create a small tree:

        data/
          a/
            b.txt
            c/
              deep.txt
          top.txt
    """
    data = temp_dir / "data"
    (data / "a" / "c").mkdir(parents=True)
    (data / "a" / "b.txt").write_text("bee")
    (data / "a" / "c" / "deep.txt").write_text("deep content")
    (data / "top.txt").write_text("top level file")
    return data


@pytest.fixture
def local_connection():
    return LocalConnection()


@pytest.fixture
def local_credentials():
    return LocalCredentials()


@pytest.fixture
def s3_credentials():
    return S3Credentials(
        access_key_id="AKIAEXAMPLE",
        secret_key_id="secret/example/key",
        region="us-east-1",
        bucket_name="my-bucket"
    )


@pytest.fixture
def make_entry(local_credentials):
    """Factory for FileMetadata entries with sensible defaults."""
    def _make(name="file.txt", size=1, credentials=None, **kwargs):
        values = dict(
            file_name=name,
            full_path=f"/data/{name}",
            file_size=size,
            timestamp=1700000000000,
            owner="alice",
            is_folder=False,
            base_path=name,
            permission=0o644,
            credentials=credentials or local_credentials
        )
        values.update(kwargs)
        return FileMetadata(**values)
    return _make


@pytest.fixture
def db_path(temp_dir):
    """Create a temporary database path."""
    return temp_dir / "test_plan.db"


@pytest.fixture
def plan_store(db_path):
    """Create a SplitPlanStore instance."""
    store = SplitPlanStore(db_path)
    yield store
    try:
        store.close()
    except Exception:
        pass
