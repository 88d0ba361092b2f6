# Vault - Data Models
#
# Record      - one credential entry; only ``secret`` is encrypted
# Snapshot    - every record held by one backend, plus metadata
# BackendTarget - which backend a snapshot belongs to
#
# Persisted shape (identical for every backend):
#   {"metadata": {"version", "last_sync", "password_count"},
#    "records": {id: {..., "encrypted_password": {ciphertext, nonce, salt}}}}

import base64
import binascii
import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Set

from ..core.errors import SerializationFailure

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise SerializationFailure(f"expected RFC3339 timestamp, got {value!r}")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise SerializationFailure(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _string(value: Any, name: str, nullable: bool = False) -> Optional[str]:
    if value is None and nullable:
        return None
    if not isinstance(value, str):
        raise SerializationFailure(f"{name} must be a string, got {value!r}")
    return value


def _encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _decode_bytes(value: Any, name: str) -> bytes:
    """Accept base64 text or a JSON array of byte values."""
    if isinstance(value, str):
        try:
            return base64.b64decode(value.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise SerializationFailure(f"{name}: invalid base64") from exc
    if isinstance(value, list):
        try:
            return bytes(value)
        except (TypeError, ValueError) as exc:
            raise SerializationFailure(f"{name}: invalid byte array") from exc
    raise SerializationFailure(f"{name}: expected base64 string or byte array")


class BackendTarget(str, Enum):
    """Identifies which backend's snapshot a cache entry belongs to.

    Declaration order is the union order used by searches: when the same
    id appears in several backends the later one wins.
    """

    LOCAL = "local"
    REMOTE = "remote"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: str) -> "BackendTarget":
        try:
            return cls(value.lower())
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise ValueError(f"unknown backend {value!r} (expected one of: {choices})") from None


@dataclass(frozen=True)
class EncryptedBlob:
    """AES-256-GCM ciphertext with the nonce and KDF salt used to produce it."""

    ciphertext: bytes
    nonce: bytes
    salt: bytes

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": _encode_bytes(self.ciphertext),
            "nonce": _encode_bytes(self.nonce),
            "salt": _encode_bytes(self.salt),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "EncryptedBlob":
        if not isinstance(data, dict):
            raise SerializationFailure("encrypted_password must be an object")
        try:
            return cls(
                ciphertext=_decode_bytes(data["ciphertext"], "ciphertext"),
                nonce=_decode_bytes(data["nonce"], "nonce"),
                salt=_decode_bytes(data["salt"], "salt"),
            )
        except KeyError as exc:
            raise SerializationFailure(f"encrypted_password missing {exc.args[0]!r}") from exc

    def __repr__(self) -> str:
        return (
            f"EncryptedBlob(ciphertext_len={len(self.ciphertext)}, "
            f"nonce_len={len(self.nonce)}, salt_len={len(self.salt)})"
        )


@dataclass
class RecordRequest:
    """Input to VaultManager.add(); ``password`` is plaintext."""

    title: str
    username: str
    password: str
    description: str = ""
    tags: Set[str] = field(default_factory=set)
    url: Optional[str] = None

    def __repr__(self) -> str:
        return f"RecordRequest(title={self.title!r}, username={self.username!r})"


@dataclass
class RecordUpdate:
    """Input to VaultManager.update(); ``None`` leaves a field unchanged."""

    title: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[Set[str]] = None
    url: Optional[str] = None

    def __repr__(self) -> str:
        changed = [
            name for name in ("title", "username", "password", "description", "tags", "url")
            if getattr(self, name) is not None
        ]
        return f"RecordUpdate(fields={changed})"


@dataclass
class Record:
    """One credential entry. Everything but ``secret`` is plaintext so it can be searched."""

    id: str
    title: str
    description: str
    tags: Set[str]
    username: str
    secret: EncryptedBlob
    url: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def create(cls, request: RecordRequest, secret: EncryptedBlob) -> "Record":
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            title=request.title,
            description=request.description,
            tags=set(request.tags),
            username=request.username,
            secret=secret,
            url=request.url,
            created_at=now,
            updated_at=now,
        )

    def apply(self, changes: RecordUpdate, secret: Optional[EncryptedBlob] = None) -> None:
        """Apply an update in place. ``id`` and ``created_at`` never change."""
        if changes.title is not None:
            self.title = changes.title
        if changes.description is not None:
            self.description = changes.description
        if changes.tags is not None:
            self.tags = set(changes.tags)
        if changes.username is not None:
            self.username = changes.username
        if changes.url is not None:
            self.url = changes.url or None
        if secret is not None:
            self.secret = secret
        self.updated_at = utcnow()

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on title and description."""
        needle = query.lower()
        return needle in self.title.lower() or needle in self.description.lower()

    def copy(self) -> "Record":
        return replace(self, tags=set(self.tags))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "tags": sorted(self.tags),
            "username": self.username,
            "encrypted_password": self.secret.to_dict(),
            "url": self.url,
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Record":
        if not isinstance(data, dict):
            raise SerializationFailure("record must be an object")
        try:
            tags = data.get("tags") or []
            if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
                raise SerializationFailure("tags must be an array of strings")
            return cls(
                id=_string(data["id"], "id"),
                title=_string(data["title"], "title"),
                description=_string(data.get("description", ""), "description"),
                tags=set(tags),
                username=_string(data.get("username", ""), "username"),
                secret=EncryptedBlob.from_dict(data["encrypted_password"]),
                url=_string(data.get("url"), "url", nullable=True),
                created_at=_parse_time(data["created_at"]),
                updated_at=_parse_time(data["updated_at"]),
            )
        except KeyError as exc:
            raise SerializationFailure(f"record missing {exc.args[0]!r}") from exc


@dataclass
class SnapshotMetadata:
    schema_version: str = SCHEMA_VERSION
    last_sync_time: datetime = field(default_factory=utcnow)
    record_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.schema_version,
            "last_sync": _format_time(self.last_sync_time),
            "password_count": self.record_count,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SnapshotMetadata":
        if not isinstance(data, dict):
            raise SerializationFailure("metadata must be an object")
        try:
            count = data["password_count"]
            if not isinstance(count, int) or isinstance(count, bool):
                raise SerializationFailure("password_count must be an integer")
            return cls(
                schema_version=_string(data["version"], "version"),
                last_sync_time=_parse_time(data["last_sync"]),
                record_count=count,
            )
        except KeyError as exc:
            raise SerializationFailure(f"metadata missing {exc.args[0]!r}") from exc


@dataclass
class Snapshot:
    """The complete set of records held by one backend.

    ``put`` and ``remove`` keep ``metadata.record_count == len(records)``
    and bump ``metadata.last_sync_time``.
    """

    metadata: SnapshotMetadata = field(default_factory=SnapshotMetadata)
    records: Dict[str, Record] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self.records

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records.values())

    def touch(self) -> None:
        self.metadata.record_count = len(self.records)
        self.metadata.last_sync_time = utcnow()

    def put(self, record: Record) -> None:
        self.records[record.id] = record
        self.touch()

    def remove(self, record_id: str) -> Record:
        record = self.records.pop(record_id)
        self.touch()
        return record

    def copy(self) -> "Snapshot":
        return Snapshot(
            metadata=replace(self.metadata),
            records={rid: rec.copy() for rid, rec in self.records.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "records": {rid: rec.to_dict() for rid, rec in self.records.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        if not isinstance(data, dict):
            raise SerializationFailure("snapshot must be a JSON object")
        if "metadata" not in data or "records" not in data:
            raise SerializationFailure("snapshot requires 'metadata' and 'records'")
        raw_records = data["records"]
        if not isinstance(raw_records, dict):
            raise SerializationFailure("records must be an object keyed by id")

        metadata = SnapshotMetadata.from_dict(data["metadata"])
        records: Dict[str, Record] = {}
        for key, raw in raw_records.items():
            record = Record.from_dict(raw)
            if record.id != key:
                raise SerializationFailure(f"record key {key!r} does not match id {record.id!r}")
            records[key] = record

        if metadata.record_count != len(records):
            logger.warning(
                "Snapshot metadata claims %d records but holds %d; correcting",
                metadata.record_count, len(records),
            )
            metadata.record_count = len(records)
        return cls(metadata=metadata, records=records)

    @classmethod
    def from_json(cls, text: str) -> "Snapshot":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SerializationFailure(f"snapshot is not valid JSON: {exc}") from exc
        return cls.from_dict(data)
