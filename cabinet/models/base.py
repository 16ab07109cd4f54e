"""Clock helpers and the base class for persisted cabinet entities."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(UTC)


def coerce_datetime(value: Any) -> datetime | None:
    """Read a timestamp from a datetime or an ISO-8601 string.

    Naive values are taken to be UTC so they compare with ``utc_now()``.
    Anything unparseable yields None.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class BaseEntity(BaseModel):
    """Identity and bookkeeping timestamps shared by meetings."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def touch(self) -> None:
        self.updated_at = utc_now()
