"""Per-backend credential variants and their record encoding.

Every output record carries a ``backendType`` discriminator followed by the
fields of one credential variant. The variant tells a downstream worker how
to reconnect to the storage the entry came from.
"""

from dataclasses import dataclass, field, fields
from typing import Optional, Union

from .errors import SchemaMismatch

BACKEND_TYPE = "backendType"

LOCAL = "local"
AMAZON_S3 = "amazons3"


@dataclass(frozen=True)
class LocalCredentials:
    """Reconnection info for a local (or locally mounted) filesystem."""
    fs_uri: str = field(default="file:///", metadata={"record_field": "fsUri"})

    backend_type = LOCAL


@dataclass(frozen=True)
class S3Credentials:
    """Access key, secret key, region and bucket of an S3 bucket."""
    access_key_id: str = field(metadata={"record_field": "accessKeyId"})
    secret_key_id: str = field(repr=False, metadata={"record_field": "secretKeyId"})
    region: Optional[str] = field(default=None, metadata={"record_field": "region"})
    bucket_name: str = field(default="", metadata={"record_field": "bucketName"})

    backend_type = AMAZON_S3


Credentials = Union[LocalCredentials, S3Credentials]

_VARIANTS = {
    LOCAL: LocalCredentials,
    AMAZON_S3: S3Credentials,
}

# All variant fields are strings; region is the only nullable one.
_FIELD_TYPE = "string"


def credential_types() -> list[str]:
    """Return the known backend tags."""
    return list(_VARIANTS)


def _variant_for(tag) -> type:
    variant = _VARIANTS.get(tag)
    if variant is None:
        raise SchemaMismatch(f"Unknown backend type: {tag!r}")
    return variant


def _record_fields(variant: type) -> list[tuple[str, str]]:
    """Map each dataclass attribute to its record field name."""
    return [(f.metadata["record_field"], f.name) for f in fields(variant)]


def schema_fields(tag: str) -> list[tuple[str, str]]:
    """Return the ordered (name, type) pairs a variant adds to a record."""
    variant = _variant_for(tag)
    return [(BACKEND_TYPE, "string")] + [
        (record_field, _FIELD_TYPE) for record_field, _ in _record_fields(variant)
    ]


def to_fields(credentials: Credentials) -> dict:
    """Serialize a credential variant into record fields."""
    tag = getattr(credentials, "backend_type", None)
    variant = _variant_for(tag)
    if not isinstance(credentials, variant):
        raise SchemaMismatch(
            f"Credentials of type {type(credentials).__name__} do not match backend type {tag!r}"
        )

    result = {BACKEND_TYPE: tag}
    for record_field, attr in _record_fields(variant):
        result[record_field] = getattr(credentials, attr)
    return result


def from_fields(record: dict) -> Credentials:
    """Rebuild the credential variant embedded in a record."""
    if BACKEND_TYPE not in record:
        raise SchemaMismatch(f"Record has no {BACKEND_TYPE} field")

    variant = _variant_for(record[BACKEND_TYPE])
    mapping = _record_fields(variant)

    missing = [record_field for record_field, _ in mapping if record_field not in record]
    if missing:
        raise SchemaMismatch(
            f"Record for backend type {record[BACKEND_TYPE]!r} is missing fields: {', '.join(missing)}"
        )

    return variant(**{attr: record[record_field] for record_field, attr in mapping})
