"""Harvest configuration and the legacy property-map wire form."""

from dataclasses import dataclass, field
from typing import Optional, Union

from .backends import LocalConnection, S3Connection
from .balancer import DEFAULT_MAX_PER_SPLIT
from .credentials import Credentials

SOURCE_PATHS = "source.paths"
MAX_SPLIT_SIZE = "max.split.size"
FS_URI = "filesystem.uri"
RECURSIVE_COPY = "recursive.copy"

S3_ACCESS_KEY_ID = "s3.access.key.id"
S3_SECRET_KEY_ID = "s3.secret.key.id"
S3_REGION = "s3.region"
S3_BUCKET_NAME = "s3.bucket.name"
S3_ENDPOINT_URL = "s3.endpoint.url"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def parse_source_paths(value: str) -> list[str]:
    """Split the comma-delimited wire form, dropping blank items."""
    paths = [p.strip() for p in value.split(",")]
    return [p for p in paths if p]


def _parse_bool(value, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


@dataclass
class HarvestConfig:
    """Everything needed to harvest and balance one set of source roots."""
    source_paths: list[str]
    connection: Union[LocalConnection, S3Connection] = field(default_factory=LocalConnection)
    recursive: bool = True
    max_per_split: int = DEFAULT_MAX_PER_SPLIT

    def __post_init__(self):
        if not self.source_paths:
            raise ValueError("At least one source path is required")
        for path in self.source_paths:
            if not isinstance(path, str) or not path:
                raise ValueError(f"Source paths must be non-empty strings, got {path!r}")
        if isinstance(self.max_per_split, bool) or not isinstance(self.max_per_split, int) \
                or self.max_per_split < 1:
            raise ValueError(f"max_per_split must be a positive integer, got {self.max_per_split!r}")

    def credentials(self) -> Credentials:
        return self.connection.credentials()

    @classmethod
    def from_properties(cls, props: dict) -> "HarvestConfig":
        """
        Build a config from the legacy key/value form.

        ``filesystem.uri`` selects the backend: ``s3a://bucket`` (or any
        config carrying ``s3.bucket.name``) means S3, anything else local.
        """
        if SOURCE_PATHS not in props:
            raise ValueError(f"Missing required property: {SOURCE_PATHS}")
        source_paths = parse_source_paths(props[SOURCE_PATHS])

        recursive = _parse_bool(props.get(RECURSIVE_COPY, True), RECURSIVE_COPY)

        raw_max = props.get(MAX_SPLIT_SIZE)
        if raw_max is None or raw_max == "":
            max_per_split = DEFAULT_MAX_PER_SPLIT
        else:
            try:
                max_per_split = int(raw_max)
            except (TypeError, ValueError):
                raise ValueError(f"{MAX_SPLIT_SIZE} must be an integer, got {raw_max!r}")

        uri = props.get(FS_URI, "file:///")
        if uri.startswith(("s3a://", "s3://")) or S3_BUCKET_NAME in props:
            connection = _s3_connection(props, uri)
        else:
            connection = LocalConnection(uri=uri)

        return cls(
            source_paths=source_paths,
            connection=connection,
            recursive=recursive,
            max_per_split=max_per_split
        )


def _s3_connection(props: dict, uri: str) -> S3Connection:
    bucket_name: Optional[str] = props.get(S3_BUCKET_NAME)
    if not bucket_name and "://" in uri:
        bucket_name = uri.split("://", 1)[1].split("/", 1)[0]
    missing = [
        key for key, value in (
            (S3_ACCESS_KEY_ID, props.get(S3_ACCESS_KEY_ID)),
            (S3_SECRET_KEY_ID, props.get(S3_SECRET_KEY_ID)),
            (S3_BUCKET_NAME, bucket_name),
        ) if not value
    ]
    if missing:
        raise ValueError(f"Missing required S3 properties: {', '.join(missing)}")

    return S3Connection(
        access_key_id=props[S3_ACCESS_KEY_ID],
        secret_key_id=props[S3_SECRET_KEY_ID],
        bucket_name=bucket_name,
        region=props.get(S3_REGION) or None,
        endpoint_url=props.get(S3_ENDPOINT_URL) or None
    )
