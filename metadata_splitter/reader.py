"""Sequential conversion of one split into output records."""

import logging
from typing import Optional

from .errors import ConversionError, SchemaMismatch
from .models import FileMetadata, Split, UnreadableEntry

logger = logging.getLogger(__name__)


class RecordError:
    """Record of an entry that could not be converted."""

    def __init__(self, position: int, full_path: Optional[str], error: str):
        self.position = position
        self.full_path = full_path
        self.error = error

    def __repr__(self) -> str:
        return f"RecordError({self.position}, {self.full_path!r}, {self.error!r})"


def _check_split(split: Split) -> None:
    """Reject a split whose structure cannot be trusted."""
    if not split.finalized:
        raise ConversionError(f"Split {split.index} is not finalized", split.index)
    if split.load != len(split.entries):
        raise ConversionError(
            f"Split {split.index} is corrupted: load {split.load} but {len(split.entries)} entries",
            split.index
        )
    for position, entry in enumerate(split.entries):
        if not isinstance(entry, (FileMetadata, UnreadableEntry)):
            raise ConversionError(
                f"Split {split.index} is corrupted: entry {position} is a {type(entry).__name__}",
                split.index
            )


class SplitReader:
    """
    Lazy, one-shot iterator over the records of a single split.

    Each record holds the fixed metadata fields followed by the credential
    fields of the entry's backend. Entries that fail to convert are skipped
    and reported in ``errors``; the rest of the split is still produced.
    """

    def __init__(self, split: Split):
        _check_split(split)
        self.split = split
        self.errors: list[RecordError] = []
        self.records_read = 0
        self._entries = iter(enumerate(split.entries))

    def __iter__(self) -> "SplitReader":
        return self

    def __next__(self) -> dict:
        for position, entry in self._entries:
            if isinstance(entry, UnreadableEntry):
                logger.warning("Skipping unreadable entry %s in split %d", entry.full_path, self.split.index)
                self.errors.append(RecordError(position, entry.full_path, entry.error))
                continue
            try:
                record = entry.to_record()
            except (SchemaMismatch, ValueError, TypeError) as e:
                logger.warning("Cannot convert %s in split %d: %s", entry.full_path, self.split.index, e)
                self.errors.append(RecordError(position, entry.full_path, str(e)))
                continue
            self.records_read += 1
            return record
        raise StopIteration
