from __future__ import annotations

from pydantic import Field

from notes_client.core.models.base import AppBaseModel


class NoteTaxonomy(AppBaseModel):
    """Vocabularies observed across the user's notes.

    - tag_vocab: unique tags, sorted
    - category_vocab: unique categories, sorted
    """

    tag_vocab: list[str] = Field(default_factory=list)
    category_vocab: list[str] = Field(default_factory=list)
