"""Exception types raised while harvesting, balancing and reading splits."""

from typing import Optional


class MetadataSplitterError(Exception):
    """Base class for all errors raised by metadata_splitter."""


class BackendConnectionError(MetadataSplitterError):
    """The storage backend could not be opened."""

    def __init__(self, message: str, backend_type: Optional[str] = None):
        super().__init__(message)
        self.backend_type = backend_type


class BackendIOError(MetadataSplitterError):
    """The backend handle became unusable in the middle of a harvest."""

    def __init__(
        self,
        message: str,
        root: Optional[str] = None,
        backend_type: Optional[str] = None,
        partial_entries: Optional[list] = None
    ):
        super().__init__(message)
        self.root = root
        self.backend_type = backend_type
        self.partial_entries = partial_entries if partial_entries is not None else []

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.backend_type:
            context.append(f"backend={self.backend_type}")
        if self.root:
            context.append(f"root={self.root}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message


class SchemaMismatch(MetadataSplitterError):
    """A record does not match any known credential variant."""


class ConversionError(MetadataSplitterError):
    """A split cannot be rendered to records."""

    def __init__(self, message: str, split_index: Optional[int] = None):
        super().__init__(message)
        self.split_index = split_index


class HarvestCancelled(MetadataSplitterError):
    """The harvest was abandoned through its cancel event."""
