from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel


class AppBaseModel(PydanticBaseModel):
    """Base model for locally constructed values."""

    model_config = ConfigDict(
        from_attributes=True,
        extra="forbid",
        populate_by_name=True,
    )


class RemoteModel(AppBaseModel):
    """Base model for records owned by the remote store.

    Accepts both the wire's camelCase names and snake_case column names, and
    ignores fields the client does not track.
    """

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
    )


class TimestampedModel(RemoteModel):
    """Remote record with server-assigned timestamps."""

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None
