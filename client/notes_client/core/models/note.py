from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from notes_client.config import settings
from notes_client.core.paths import normalize_path

from .base import AppBaseModel, TimestampedModel


def _normalize_tags(values: list[str] | None) -> list[str]:
    """Trim tags, drop blanks and duplicates while keeping first-seen order."""
    normalized: list[str] = []
    for tag in values or []:
        if tag and len(tag.strip()) > 0:
            stripped = tag.strip()
            if stripped not in normalized:
                normalized.append(stripped)
    return normalized


def _require_text(value: str | None, field: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValueError(f"{field.capitalize()} is required")
    return stripped


class Note(TimestampedModel):
    """Note record as held by the remote store."""

    id: str = Field(alias="_id", description="Opaque note identifier")

    title: str = Field(description="Note title")
    content: str = Field(default="", description="Serialized rich document, owned by the editor")

    tags: list[str] = Field(default_factory=list, description="Unique tags, compared as a set")
    category: str = Field(default=settings.default_category, description="Category from the shared vocabulary")
    folder: str = Field(default="/", description="Folder path the note lives in")
    images: list[str] = Field(default_factory=list, description="Image locations, in insertion order")

    is_favorite: bool = False
    is_archived: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if v is None:
            raise ValueError("Note id is required")
        return str(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _require_text(v, "title")

    @field_validator("content", mode="before")
    @classmethod
    def default_content(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str]:
        return _normalize_tags(v)

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: str | None) -> str:
        stripped = (v or "").strip()
        return stripped or settings.default_category

    @field_validator("folder", mode="before")
    @classmethod
    def validate_folder(cls, v: str | None) -> str:
        return normalize_path(v)

    @field_validator("images", mode="before")
    @classmethod
    def default_images(cls, v: list[str] | None) -> list[str]:
        return list(v or [])

    @property
    def tag_set(self) -> frozenset[str]:
        return frozenset(self.tags)


class NoteDraft(AppBaseModel):
    """Fields for a note that does not exist remotely yet."""

    model_config = ConfigDict(alias_generator=to_camel)

    title: str
    content: str
    category: str
    tags: list[str] = Field(default_factory=list)
    folder: str = "/"
    images: list[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _require_text(v, "title")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        return _require_text(v, "content")

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        return _require_text(v, "category")

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str]:
        return _normalize_tags(v)

    @field_validator("folder", mode="before")
    @classmethod
    def validate_folder(cls, v: str | None) -> str:
        return normalize_path(v)


class NoteChanges(AppBaseModel):
    """Partial update. Only the fields that were set are sent."""

    model_config = ConfigDict(alias_generator=to_camel)

    title: str | None = None
    content: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    folder: str | None = None
    images: list[str] | None = None
    is_favorite: bool | None = None
    is_archived: bool | None = None

    @model_validator(mode="after")
    def validate_required_text(self) -> NoteChanges:
        # A field that is sent must not blank the note out
        for field in ("title", "content", "category"):
            if field in self.model_fields_set:
                setattr(self, field, _require_text(getattr(self, field), field))
        if self.tags is not None:
            self.tags = _normalize_tags(self.tags)
        if "folder" in self.model_fields_set:
            self.folder = normalize_path(self.folder)
        return self

    def to_payload(self, *, by_alias: bool = False) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, by_alias=by_alias)

    def apply_to(self, note: Note) -> Note:
        """Return a copy of ``note`` with these changes applied locally."""
        return note.model_copy(update=self.to_payload())
