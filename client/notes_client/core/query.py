"""Canonical note queries.

``compose`` turns loose view/filter/sort/search intents into a frozen
``QueryDescriptor``. Two descriptors built from the same intents compare and
hash equal, which is what the scheduler keys single-flight on.
"""
from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ConfigDict, Field, field_validator

from notes_client.core.models.base import AppBaseModel
from notes_client.core.paths import is_within, normalize_path

if TYPE_CHECKING:
    from notes_client.core.models.note import Note


class ViewKind(str, Enum):
    ALL = "all"
    FAVORITES = "favorites"
    ARCHIVED = "archived"
    BY_CATEGORY = "byCategory"
    BY_FOLDER = "byFolder"


class SortField(str, Enum):
    UPDATED_AT = "updatedAt"
    CREATED_AT = "createdAt"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def default_order(sort_field: SortField) -> SortOrder:
    """Titles read A→Z; timestamps newest first."""
    if sort_field is SortField.TITLE:
        return SortOrder.ASC
    return SortOrder.DESC


class QueryInputs(AppBaseModel):
    """Raw intents collected from the UI. Every field is optional."""

    view_kind: ViewKind | None = None
    sort_field: SortField | None = None
    sort_order: SortOrder | None = None
    tags: frozenset[str] | None = None
    search_text: str | None = None
    category: str | None = None
    folder_path: str | None = None


class QueryDescriptor(AppBaseModel):
    """Immutable, comparable description of a note query."""

    model_config = ConfigDict(frozen=True)

    view_kind: ViewKind = ViewKind.ALL
    sort_field: SortField = SortField.UPDATED_AT
    sort_order: SortOrder = SortOrder.DESC
    tag_filter: frozenset[str] = Field(default_factory=frozenset)
    search_text: str = ""
    category: str | None = None
    folder_path: str | None = None

    @field_validator("tag_filter", mode="before")
    @classmethod
    def validate_tags(cls, v: Iterable[str] | None) -> frozenset[str]:
        return frozenset(t.strip() for t in (v or ()) if t and t.strip())

    def to_params(self) -> dict[str, str]:
        """Query-string parameters understood by the remote store."""
        params: dict[str, str] = {
            "sort": self.sort_field.value,
            "order": self.sort_order.value,
        }
        if self.tag_filter:
            params["tags"] = ",".join(sorted(self.tag_filter))
        if self.search_text:
            params["search"] = self.search_text
        if self.category is not None:
            params["category"] = self.category
        if self.folder_path is not None:
            params["folder"] = self.folder_path
        return params

    def admits(self, note: Note) -> bool:
        """Whether ``note`` belongs in the result set this descriptor asks for.

        Archived notes only show up in the archive view.
        """
        if self.view_kind is ViewKind.ARCHIVED:
            if not note.is_archived:
                return False
        elif note.is_archived:
            return False
        if self.view_kind is ViewKind.FAVORITES and not note.is_favorite:
            return False
        if self.view_kind is ViewKind.BY_CATEGORY and note.category != self.category:
            return False
        if self.view_kind is ViewKind.BY_FOLDER and normalize_path(note.folder) != self.folder_path:
            return False
        if not self.tag_filter <= note.tag_set:
            return False
        if self.search_text:
            needle = self.search_text.casefold()
            if needle not in note.title.casefold() and needle not in note.content.casefold():
                return False
        return True

    def sort_key(self, note: Note) -> Any:
        if self.sort_field is SortField.TITLE:
            return note.title.casefold()
        if self.sort_field is SortField.CREATED_AT:
            return note.created_at
        return note.updated_at or note.created_at

    def order(self, notes: Iterable[Note]) -> list[Note]:
        return sorted(notes, key=self.sort_key, reverse=self.sort_order is SortOrder.DESC)

    def touches_folder(self, path: str) -> bool:
        """True for folder views at or below ``path``."""
        return (
            self.view_kind is ViewKind.BY_FOLDER
            and self.folder_path is not None
            and is_within(self.folder_path, path)
        )


def compose(inputs: QueryInputs | None = None, **intents: Any) -> QueryDescriptor:
    """Build the canonical descriptor for a set of intents.

    Accepts either a ``QueryInputs`` or the same fields as keywords.
    """
    if inputs is None:
        inputs = QueryInputs(**intents)
    elif intents:
        inputs = QueryInputs(**{**inputs.model_dump(), **intents})

    sort_field = inputs.sort_field or SortField.UPDATED_AT
    sort_order = inputs.sort_order or default_order(sort_field)

    view_kind = inputs.view_kind or ViewKind.ALL
    category = (inputs.category or "").strip() or None
    folder_path = normalize_path(inputs.folder_path) if inputs.folder_path is not None else None

    # Only the active view kind keeps its selection
    if view_kind is ViewKind.BY_CATEGORY and category is None:
        view_kind = ViewKind.ALL
    if view_kind is ViewKind.BY_FOLDER and folder_path is None:
        view_kind = ViewKind.ALL
    if view_kind is not ViewKind.BY_CATEGORY:
        category = None
    if view_kind is not ViewKind.BY_FOLDER:
        folder_path = None

    return QueryDescriptor(
        view_kind=view_kind,
        sort_field=sort_field,
        sort_order=sort_order,
        tag_filter=inputs.tags,
        search_text=(inputs.search_text or "").strip(),
        category=category,
        folder_path=folder_path,
    )


def recompose(descriptor: QueryDescriptor, **changes: Any) -> QueryDescriptor:
    """Apply UI intents to an existing descriptor.

    A new sort field without an explicit order takes that field's default
    order. Switching view kind drops selections that no longer apply.
    """
    current: dict[str, Any] = {
        "view_kind": descriptor.view_kind,
        "sort_field": descriptor.sort_field,
        "sort_order": descriptor.sort_order,
        "tags": descriptor.tag_filter,
        "search_text": descriptor.search_text,
        "category": descriptor.category,
        "folder_path": descriptor.folder_path,
    }
    if "sort_field" in changes and "sort_order" not in changes:
        current["sort_order"] = None
    current.update(changes)
    return compose(QueryInputs(**current))
