"""Data models for metadata harvesting and split assignment."""

from dataclasses import dataclass, field
from typing import Optional

import xxhash

from .credentials import Credentials, from_fields, schema_fields, to_fields
from .errors import SchemaMismatch

FILE_NAME = "fileName"
FULL_PATH = "fullPath"
FILE_SIZE = "fileSize"
TIMESTAMP = "timeStamp"
OWNER = "owner"
IS_FOLDER = "isFolder"
BASE_PATH = "basePath"
PERMISSION = "permission"

FIXED_SCHEMA = [
    (FILE_NAME, "string"),
    (FULL_PATH, "string"),
    (FILE_SIZE, "long"),
    (TIMESTAMP, "long"),
    (OWNER, "string"),
    (IS_FOLDER, "boolean"),
    (BASE_PATH, "string"),
    (PERMISSION, "short"),
]


def record_schema(backend_type: str) -> list[tuple[str, str]]:
    """Return the full output schema for records of one backend type."""
    return FIXED_SCHEMA + schema_fields(backend_type)


@dataclass(frozen=True)
class FileMetadata:
    """Normalized metadata of one file or folder."""
    file_name: str
    full_path: str
    file_size: int
    timestamp: int
    owner: str
    is_folder: bool
    base_path: str
    permission: int
    credentials: Credentials

    def __post_init__(self):
        if self.file_size < 0:
            raise ValueError(f"Negative file size for {self.full_path}: {self.file_size}")
        if not 0 <= self.permission <= 0xFFFF:
            raise ValueError(f"Permission does not fit in 16 bits: {self.permission}")
        if self.base_path.startswith("/"):
            raise ValueError(f"Base path must be relative: {self.base_path}")

    @property
    def backend_type(self) -> str:
        return self.credentials.backend_type

    def to_record(self) -> dict:
        record = {
            FILE_NAME: self.file_name,
            FULL_PATH: self.full_path,
            FILE_SIZE: self.file_size,
            TIMESTAMP: self.timestamp,
            OWNER: self.owner,
            IS_FOLDER: self.is_folder,
            BASE_PATH: self.base_path,
            PERMISSION: self.permission,
        }
        record.update(to_fields(self.credentials))
        return record

    @classmethod
    def from_record(cls, data: dict, credentials: Optional[Credentials] = None) -> "FileMetadata":
        """Rebuild an entry from a record; reuse ``credentials`` when given."""
        missing = [name for name, _ in FIXED_SCHEMA if name not in data]
        if missing:
            raise SchemaMismatch(f"Record is missing fields: {', '.join(missing)}")
        if credentials is None:
            credentials = from_fields(data)
        return cls(
            file_name=data[FILE_NAME],
            full_path=data[FULL_PATH],
            file_size=data[FILE_SIZE],
            timestamp=data[TIMESTAMP],
            owner=data[OWNER],
            is_folder=data[IS_FOLDER],
            base_path=data[BASE_PATH],
            permission=data[PERMISSION],
            credentials=credentials
        )


class UnreadableEntry:
    """Stand-in for a stored record that could not be rebuilt into an entry."""

    file_size = 0

    def __init__(self, full_path: Optional[str], error: str):
        self.full_path = full_path or ""
        self.error = error

    def __repr__(self) -> str:
        return f"UnreadableEntry({self.full_path!r}, {self.error!r})"


@dataclass
class Split:
    """A disjoint group of entries handed to one parallel worker."""
    index: int
    entries: list = field(default_factory=list)
    load: int = 0
    total_bytes: int = 0
    finalized: bool = False

    def add(self, entry: FileMetadata) -> None:
        if self.finalized:
            raise RuntimeError(f"Split {self.index} is finalized")
        self.entries.append(entry)
        self.load += 1
        self.total_bytes += entry.file_size

    def finalize(self) -> "Split":
        """Freeze the split; it cannot receive more entries afterwards."""
        if not self.finalized:
            self.entries = tuple(self.entries)
            self.finalized = True
        return self

    def fingerprint(self) -> str:
        """Hash of the member paths, stable for the same assignment."""
        hasher = xxhash.xxh64()
        for entry in self.entries:
            hasher.update(entry.full_path.encode("utf-8"))
            hasher.update(b"\0")
        return hasher.hexdigest()

    def __len__(self) -> int:
        return len(self.entries)
