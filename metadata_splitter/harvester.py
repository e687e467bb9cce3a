"""Metadata harvesting over one or more source roots."""

import logging
import threading
from typing import Iterable, Optional, Union

from tqdm import tqdm

from .backends import Backend, FileStatus, LocalConnection, S3Connection
from .credentials import Credentials
from .errors import BackendIOError, HarvestCancelled
from .models import FileMetadata

logger = logging.getLogger(__name__)

MISSING_ROOT = "missing_root"
READ_ERROR = "read_error"

Connection = Union[LocalConnection, S3Connection]


class HarvestWarning:
    """Record of a root, directory or entry that could not be harvested."""

    def __init__(self, kind: str, path: str, error: str):
        self.kind = kind
        self.path = path
        self.error = error

    def __repr__(self) -> str:
        return f"HarvestWarning({self.kind!r}, {self.path!r})"


class HarvestResult:
    """Entries in discovery order plus the warnings collected on the way."""

    def __init__(self, entries: Optional[list] = None, warnings: Optional[list] = None):
        self.entries: list[FileMetadata] = entries if entries is not None else []
        self.warnings: list[HarvestWarning] = warnings if warnings is not None else []

    @property
    def missing_roots(self) -> list[HarvestWarning]:
        return [w for w in self.warnings if w.kind == MISSING_ROOT]

    @property
    def read_errors(self) -> list[HarvestWarning]:
        return [w for w in self.warnings if w.kind == READ_ERROR]

    @property
    def total_bytes(self) -> int:
        return sum(entry.file_size for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def _strip_authority(full_path: str) -> str:
    """Drop ``scheme://authority`` so only the path part is searched."""
    marker = full_path.find("://")
    if marker < 0:
        return full_path
    slash = full_path.find("/", marker + 3)
    return full_path[slash:] if slash >= 0 else "/"


def compute_base_path(full_path: str, source_root: str, file_name: str) -> str:
    """
    Compute the path of an entry relative to its declared source root.

    A root with a trailing separator is stripped entirely; without one, the
    root's last segment is kept so the root folder itself is mirrored. An
    empty root (used for single-file roots) yields just the file name.
    """
    if source_root == "":
        return file_name

    trimmed = source_root.rstrip("/")
    num_segments = len(trimmed.split("/"))
    num_strip = num_segments if source_root.endswith("/") else num_segments - 1

    path = _strip_authority(full_path)
    start = path.find(trimmed)
    if start < 0:
        raise ValueError(f"{full_path} is not under source root {source_root}")

    segments = path[start:].split("/")
    return "/".join(segments[num_strip:]).strip("/")


def _to_metadata(status: FileStatus, source_root: str, credentials: Credentials) -> FileMetadata:
    return FileMetadata(
        file_name=status.name,
        full_path=status.path,
        file_size=status.size,
        timestamp=status.modification_time,
        owner=status.owner or "",
        is_folder=status.is_directory,
        base_path=compute_base_path(status.path, source_root, status.name),
        permission=status.permission,
        credentials=credentials
    )


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise HarvestCancelled("Harvest cancelled")


def _harvest_root(
    backend: Backend,
    root: str,
    recursive: bool,
    credentials: Credentials,
    result: HarvestResult,
    cancel_event: Optional[threading.Event],
    pbar: tqdm
) -> None:
    """Walk one root depth-first, appending to ``result``."""
    normalized = backend.normalize_root(root)
    try:
        root_status = backend.stat(normalized)
    except FileNotFoundError as e:
        logger.warning("Source root does not exist, skipping: %s", root)
        result.warnings.append(HarvestWarning(MISSING_ROOT, root, str(e)))
        return
    except OSError as e:
        logger.warning("Cannot stat source root %s: %s", root, e)
        result.warnings.append(HarvestWarning(READ_ERROR, root, str(e)))
        return

    # A single-file root keeps only its file name as base path
    prefix = normalized if root_status.is_directory else ""

    def child_error(path: str, error: OSError) -> None:
        result.warnings.append(HarvestWarning(READ_ERROR, path, str(error)))

    # (status, depth) pairs; children are pushed in reverse to pop in name order
    stack = [(root_status, 0)]
    while stack:
        _check_cancelled(cancel_event)
        status, depth = stack.pop()
        result.entries.append(_to_metadata(status, prefix, credentials))
        pbar.update(1)

        if not status.is_directory or (depth > 0 and not recursive):
            continue

        try:
            children = backend.list_status(status.path, on_error=child_error)
        except BackendIOError:
            raise
        except OSError as e:
            logger.warning("Cannot read %s: %s", status.path, e)
            result.warnings.append(HarvestWarning(READ_ERROR, status.path, str(e)))
            continue

        for child in reversed(children):
            stack.append((child, depth + 1))


def harvest(
    source_paths: Iterable[str],
    recursive: bool,
    connection: Connection,
    credentials: Optional[Credentials] = None,
    cancel_event: Optional[threading.Event] = None,
    progress: bool = False
) -> HarvestResult:
    """
    Harvest metadata for every entry under the given source roots.

    Args:
        source_paths: Roots to walk, in order
        recursive: Descend into subdirectories; otherwise only the direct
            children of a directory root are listed
        connection: Descriptor used to open the backend
        credentials: Variant attached to every entry; defaults to the
            connection's own credentials
        cancel_event: Checked between roots and between entries
        progress: Show a progress bar

    Returns:
        HarvestResult with entries in discovery order and collected warnings

    Raises:
        BackendConnectionError: the backend could not be opened
        BackendIOError: the backend handle became unusable
        HarvestCancelled: cancel_event was set
    """
    source_paths = list(source_paths)
    if credentials is None:
        credentials = connection.credentials()
    if credentials.backend_type != connection.backend_type:
        raise ValueError(
            f"Credentials for {credentials.backend_type!r} cannot be attached "
            f"to a {connection.backend_type!r} harvest"
        )

    result = HarvestResult()
    backend = connection.open()
    try:
        with tqdm(desc="Harvesting", unit="entry", disable=not progress) as pbar:
            for root in source_paths:
                _check_cancelled(cancel_event)
                try:
                    _harvest_root(backend, root, recursive, credentials, result, cancel_event, pbar)
                except BackendIOError as e:
                    e.root = e.root or root
                    e.backend_type = e.backend_type or connection.backend_type
                    e.partial_entries = list(result.entries)
                    raise
    finally:
        backend.close()

    logger.info(
        "Harvested %d entries from %d roots (%d warnings)",
        len(result.entries), len(source_paths), len(result.warnings)
    )
    return result
