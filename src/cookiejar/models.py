from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


# Expiry used for session cookies so they never look expired in memory.
END_OF_TIME = datetime(9999, 12, 31, 23, 59, 59, tzinfo=UTC)
ZERO_TIME = datetime(1, 1, 1, tzinfo=UTC)


def as_utc(dt: datetime) -> datetime:
    """Treat a naive datetime as UTC; aware ones are returned unchanged."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Entry(BaseModel):
    """
    One cookie as stored in the jar and in the cookie file.

    Fields
    - name/value/domain/path: the cookie itself; `value` is plaintext.
    - encrypted_value: `codec.encrypt(value)` text when a key is configured.
      A serialized entry never carries both a non-empty `value` and a
      non-empty `encrypted_value`.
    - persistent: only persistent entries are written to disk.
    - expires/creation/last_access/updated: timezone-aware timestamps.
      `updated` decides which copy wins when on-disk and in-memory entries
      are merged.
    - canonical_host: normalized host used as the jar key and primary sort key.

    Notes
    - On disk the JSON keys keep the capitalised names (`Name`, `Value`, ...,
      `EncryptedValue`) so files written by other implementations load as is.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default="", alias="Name")
    value: str = Field(default="", alias="Value")
    domain: str = Field(default="", alias="Domain")
    path: str = Field(default="", alias="Path")
    secure: bool = Field(default=False, alias="Secure")
    http_only: bool = Field(default=False, alias="HttpOnly")
    persistent: bool = Field(default=False, alias="Persistent")
    host_only: bool = Field(default=False, alias="HostOnly")
    expires: datetime = Field(default=END_OF_TIME, alias="Expires")
    creation: datetime = Field(default=ZERO_TIME, alias="Creation")
    last_access: datetime = Field(default=ZERO_TIME, alias="LastAccess")
    updated: datetime = Field(default=ZERO_TIME, alias="Updated")
    canonical_host: str = Field(default="", alias="CanonicalHost")
    encrypted_value: str = Field(default="", alias="EncryptedValue")

    @field_validator("expires", "creation", "last_access", "updated")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def id(self) -> str:
        return f"{self.domain};{self.path};{self.name}"

    def is_expired(self, now: datetime) -> bool:
        return self.expires <= as_utc(now)

    def to_record(self) -> Dict[str, Any]:
        """JSON-ready dict using the on-disk field names."""
        return self.model_dump(mode="json", by_alias=True)


EntryList = TypeAdapter(List[Entry])


def parse_entries(data: Any) -> List[Entry]:
    """Validate an already-decoded JSON value as a list of entries.

    Raises pydantic.ValidationError when `data` is not an array of entry objects.
    """
    return EntryList.validate_python(data)


__all__ = ["Entry", "EntryList", "END_OF_TIME", "ZERO_TIME", "as_utc", "parse_entries"]
