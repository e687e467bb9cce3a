"""Storage backends the harvester can walk.

A backend is opened from a connection descriptor and exposes two calls:
``stat`` for a single path and ``list_status`` for the direct children of a
directory. Both return ``FileStatus`` values with paths as the backend reports
them (plain absolute paths locally, ``s3a://bucket/key`` for S3).
"""

import logging
import os
import stat as stat_module
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlparse

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .credentials import AMAZON_S3, LOCAL, LocalCredentials, S3Credentials
from .errors import BackendConnectionError, BackendIOError

logger = logging.getLogger(__name__)

# Permission bits s3a reports for objects and prefixes.
S3_FILE_PERMISSION = 0o666
S3_DIR_PERMISSION = 0o777

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True)
class FileStatus:
    """What a backend knows about one path."""
    path: str
    name: str
    size: int
    modification_time: int
    owner: str
    is_directory: bool
    permission: int


class Backend:
    """Base class for an open backend handle."""

    backend_type: Optional[str] = None

    def __init__(self):
        self._closed = False

    def __enter__(self) -> "Backend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise BackendIOError("Backend handle is closed", backend_type=self.backend_type)

    def normalize_root(self, root: str) -> str:
        raise NotImplementedError

    def stat(self, path: str) -> FileStatus:
        raise NotImplementedError

    def list_status(self, path: str, on_error: Optional[Callable[[str, OSError], None]] = None) -> list[FileStatus]:
        """
        List the direct children of ``path``, sorted by name.

        A child that cannot be stat'ed is left out and passed to ``on_error``
        with its path; the remaining children are still returned.
        """
        raise NotImplementedError

    def close(self) -> None:
        self._closed = True


def _local_owner(st: os.stat_result) -> str:
    """Resolve the owning user name, falling back to the numeric uid."""
    if os.name == 'nt':
        return ""
    import pwd
    try:
        return pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        return str(st.st_uid)


class LocalBackend(Backend):
    """Backend over the local filesystem."""

    backend_type = LOCAL

    def normalize_root(self, root: str) -> str:
        normalized = os.path.abspath(root)
        if root.endswith(("/", os.sep)) and not normalized.endswith(os.sep):
            normalized += os.sep
        return normalized

    def _to_status(self, path: str, st: os.stat_result) -> FileStatus:
        is_dir = stat_module.S_ISDIR(st.st_mode)
        return FileStatus(
            path=path,
            name=os.path.basename(path.rstrip(os.sep)) or path,
            size=0 if is_dir else st.st_size,
            modification_time=int(st.st_mtime * 1000),
            owner=_local_owner(st),
            is_directory=is_dir,
            permission=stat_module.S_IMODE(st.st_mode)
        )

    def stat(self, path: str) -> FileStatus:
        self._check_open()
        path = os.path.abspath(path)
        return self._to_status(path, os.stat(path))

    def list_status(self, path: str, on_error: Optional[Callable[[str, OSError], None]] = None) -> list[FileStatus]:
        self._check_open()
        path = os.path.abspath(path)
        statuses = []
        with os.scandir(path) as it:
            for entry in it:
                try:
                    # Symlinks are reported but never followed
                    st = entry.stat(follow_symlinks=False)
                except OSError as e:
                    logger.warning("Cannot stat %s: %s", entry.path, e)
                    if on_error is not None:
                        on_error(entry.path, e)
                    continue
                statuses.append(self._to_status(entry.path, st))
        statuses.sort(key=lambda s: s.name)
        return statuses


class S3Backend(Backend):
    """Backend over one S3 bucket; prefixes ending in '/' act as directories."""

    backend_type = AMAZON_S3

    def __init__(self, client, bucket_name: str):
        super().__init__()
        self.client = client
        self.bucket_name = bucket_name

    def _key(self, path: str) -> str:
        if "://" in path:
            parsed = urlparse(path)
            path = parsed.path
        return path.lstrip("/")

    def _full_path(self, key: str) -> str:
        return f"s3a://{self.bucket_name}/{key}"

    def normalize_root(self, root: str) -> str:
        return "/" + self._key(root)

    def _dir_status(self, key: str) -> FileStatus:
        name = key.rstrip("/").rsplit("/", 1)[-1]
        return FileStatus(
            path=self._full_path(key),
            name=name or self.bucket_name,
            size=0,
            modification_time=0,
            owner="",
            is_directory=True,
            permission=S3_DIR_PERMISSION
        )

    def _file_status(self, key: str, size: int, last_modified, owner: str = "") -> FileStatus:
        return FileStatus(
            path=self._full_path(key),
            name=key.rsplit("/", 1)[-1],
            size=size,
            modification_time=int(last_modified.timestamp() * 1000) if last_modified else 0,
            owner=owner,
            is_directory=False,
            permission=S3_FILE_PERMISSION
        )

    def stat(self, path: str) -> FileStatus:
        self._check_open()
        key = self._key(path)
        if not key:
            return self._dir_status("")

        try:
            if not key.endswith("/"):
                try:
                    response = self.client.head_object(Bucket=self.bucket_name, Key=key)
                    return self._file_status(key, response["ContentLength"], response.get("LastModified"))
                except ClientError as e:
                    if e.response.get("Error", {}).get("Code") not in _NOT_FOUND_CODES:
                        raise

            prefix = key.rstrip("/") + "/"
            response = self.client.list_objects_v2(
                Bucket=self.bucket_name,
                Prefix=prefix,
                MaxKeys=1
            )
        except ClientError as e:
            raise OSError(f"Cannot stat {self._full_path(key)}: {e}") from e
        except BotoCoreError as e:
            raise BackendIOError(f"S3 request failed for {self._full_path(key)}: {e}",
                                 backend_type=self.backend_type) from e

        if response.get("KeyCount", 0) or response.get("Contents") or response.get("CommonPrefixes"):
            return self._dir_status(prefix)
        raise FileNotFoundError(f"No such key or prefix: {self._full_path(key)}")

    def list_status(self, path: str, on_error: Optional[Callable[[str, OSError], None]] = None) -> list[FileStatus]:
        # Listings carry every child's metadata, so there is no per-child failure
        self._check_open()
        key = self._key(path)
        prefix = key.rstrip("/") + "/" if key else ""

        statuses = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=self.bucket_name,
                Prefix=prefix,
                Delimiter="/",
                FetchOwner=True
            ):
                for common in page.get("CommonPrefixes", []):
                    statuses.append(self._dir_status(common["Prefix"]))
                for obj in page.get("Contents", []):
                    if obj["Key"] == prefix:
                        continue  # folder marker
                    owner = obj.get("Owner", {}).get("DisplayName", "")
                    statuses.append(
                        self._file_status(obj["Key"], obj.get("Size", 0), obj.get("LastModified"), owner)
                    )
        except ClientError as e:
            raise OSError(f"Cannot list {self._full_path(prefix)}: {e}") from e
        except BotoCoreError as e:
            raise BackendIOError(f"S3 listing failed for {self._full_path(prefix)}: {e}",
                                 backend_type=self.backend_type) from e

        statuses.sort(key=lambda s: s.name)
        return statuses

    def close(self) -> None:
        if not self._closed:
            self.client.close()
        super().close()


@dataclass(frozen=True)
class LocalConnection:
    """Connection descriptor for the local filesystem."""
    uri: str = "file:///"

    backend_type = LOCAL

    def credentials(self) -> LocalCredentials:
        return LocalCredentials(fs_uri=self.uri)

    def open(self) -> LocalBackend:
        parsed = urlparse(self.uri)
        if parsed.scheme != "file":
            raise BackendConnectionError(f"Not a local filesystem URI: {self.uri}", backend_type=LOCAL)
        mount = parsed.path or "/"
        if not os.path.isdir(mount):
            raise BackendConnectionError(f"Local filesystem root does not exist: {mount}", backend_type=LOCAL)
        logger.debug("Opened local filesystem at %s", mount)
        return LocalBackend()


@dataclass(frozen=True)
class S3Connection:
    """Connection descriptor for an S3 bucket."""
    access_key_id: str
    secret_key_id: str
    bucket_name: str
    region: Optional[str] = None
    endpoint_url: Optional[str] = None

    backend_type = AMAZON_S3

    def __repr__(self) -> str:
        return f"S3Connection(bucket_name={self.bucket_name!r}, region={self.region!r})"

    def credentials(self) -> S3Credentials:
        return S3Credentials(
            access_key_id=self.access_key_id,
            secret_key_id=self.secret_key_id,
            region=self.region,
            bucket_name=self.bucket_name
        )

    def open(self) -> S3Backend:
        try:
            client = boto3.client(
                's3',
                endpoint_url=self.endpoint_url,
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_key_id,
                config=Config(signature_version='s3v4'),
                region_name=self.region
            )
            client.head_bucket(Bucket=self.bucket_name)
        except (BotoCoreError, ClientError) as e:
            raise BackendConnectionError(
                f"Cannot connect to bucket {self.bucket_name}: {e}", backend_type=AMAZON_S3
            ) from e

        logger.info("Connected to S3 bucket: %s", self.bucket_name)
        return S3Backend(client, self.bucket_name)
