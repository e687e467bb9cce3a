"""SQLite-backed store for split plans, readable from any worker process."""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .credentials import BACKEND_TYPE, from_fields, schema_fields
from .errors import ConversionError, SchemaMismatch
from .models import FULL_PATH, FileMetadata, Split, UnreadableEntry

logger = logging.getLogger(__name__)


class SplitPlanStore:
    """Persists finalized splits so workers can fetch them by index."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), isolation_level=None)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS splits (
                split_index INTEGER PRIMARY KEY,
                load INTEGER NOT NULL,
                total_bytes INTEGER NOT NULL,
                fingerprint TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS entries (
                split_index INTEGER NOT NULL,
                position INTEGER NOT NULL,
                record TEXT NOT NULL,
                PRIMARY KEY (split_index, position)
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def get_metadata(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a metadata value."""
        cursor = self.conn.execute(
            "SELECT value FROM metadata WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return row[0] if row else default

    def set_metadata(self, key: str, value: str) -> None:
        """Set a metadata value."""
        self.conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            (key, value)
        )

    def has_plan(self) -> bool:
        return self.get_metadata("plan_saved") == "true"

    def save_plan(self, splits, max_per_split: int) -> None:
        """Replace any stored plan with ``splits`` in a single transaction."""
        self.conn.execute("BEGIN")
        try:
            self.conn.execute("DELETE FROM entries")
            self.conn.execute("DELETE FROM splits")
            for split_index, split in enumerate(splits):
                self.conn.execute(
                    """INSERT INTO splits (split_index, load, total_bytes, fingerprint)
                       VALUES (?, ?, ?, ?)""",
                    (split_index, split.load, split.total_bytes, split.fingerprint())
                )
                self.conn.executemany(
                    "INSERT INTO entries (split_index, position, record) VALUES (?, ?, ?)",
                    (
                        (split_index, position, json.dumps(entry.to_record()))
                        for position, entry in enumerate(split.entries)
                    )
                )
            self.conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                ("max_per_split", str(max_per_split))
            )
            self.conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                ("plan_saved", "true")
            )
            self.conn.execute("COMMIT")
        except Exception:
            self.conn.execute("ROLLBACK")
            raise

    @property
    def num_splits(self) -> int:
        cursor = self.conn.execute("SELECT COUNT(*) FROM splits")
        return cursor.fetchone()[0]

    def get_fingerprint(self, split_index: int) -> Optional[str]:
        cursor = self.conn.execute(
            "SELECT fingerprint FROM splits WHERE split_index = ?", (split_index,)
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def get_split(self, split_index: int) -> Split:
        """
        Load one split; entries with identical credentials share one object.

        A record that cannot be rebuilt is kept as an UnreadableEntry so the
        reader reports it on its own. Gaps in positions, a count that differs
        from the stored load, or unparseable JSON fail the whole split.
        """
        if not 0 <= split_index < self.num_splits:
            raise IndexError(f"Split index {split_index} out of range")

        expected_load = self.conn.execute(
            "SELECT load FROM splits WHERE split_index = ?", (split_index,)
        ).fetchone()[0]

        split = Split(index=split_index)
        shared = {}
        cursor = self.conn.execute(
            "SELECT position, record FROM entries WHERE split_index = ? ORDER BY position",
            (split_index,)
        )
        for expected_position, (position, raw) in enumerate(cursor):
            if position != expected_position:
                raise ConversionError(
                    f"Split {split_index} is corrupted: missing entry at position {expected_position}",
                    split_index
                )
            try:
                record = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ConversionError(
                    f"Split {split_index} is corrupted: entry {position} is not valid JSON ({e})",
                    split_index
                ) from e
            if not isinstance(record, dict):
                raise ConversionError(
                    f"Split {split_index} is corrupted: entry {position} is not a record",
                    split_index
                )
            split.add(self._rebuild_entry(record, shared))

        if split.load != expected_load:
            raise ConversionError(
                f"Split {split_index} is corrupted: expected {expected_load} entries, found {split.load}",
                split_index
            )
        return split.finalize()

    def _rebuild_entry(self, record: dict, shared: dict):
        try:
            credential_fields = tuple(
                (name, record.get(name)) for name, _ in schema_fields(record.get(BACKEND_TYPE))
            )
            credentials = shared.get(credential_fields)
            if credentials is None:
                credentials = shared[credential_fields] = from_fields(record)
            return FileMetadata.from_record(record, credentials)
        except (SchemaMismatch, ValueError, TypeError) as e:
            full_path = record.get(FULL_PATH)
            logger.warning("Cannot rebuild stored entry %s: %s", full_path, e)
            return UnreadableEntry(full_path if isinstance(full_path, str) else None, str(e))

    def clear(self) -> None:
        """Delete the database file."""
        self.conn.close()
        if self.db_path.exists():
            self.db_path.unlink()
