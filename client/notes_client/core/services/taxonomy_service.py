from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from notes_client.core.schemas.taxonomy import NoteTaxonomy
from notes_client.utils.logging import get_logger

if TYPE_CHECKING:
    from notes_client.core.repositories.note_store import NoteStore
    from notes_client.core.schemas.session import Session


logger = get_logger(__name__)


class TaxonomyService:
    """Read-mostly cache of the tag and category vocabularies.

    The remote store owns both vocabularies; this only remembers the last
    answer until someone invalidates it. Concurrent refreshes share one fetch.
    """

    def __init__(self, store: NoteStore, session: Session) -> None:
        self._store = store
        self._session = session
        self._taxonomy: NoteTaxonomy | None = None
        self._refreshing: asyncio.Task[NoteTaxonomy] | None = None

    @property
    def cached(self) -> NoteTaxonomy | None:
        return self._taxonomy

    def invalidate(self) -> None:
        self._taxonomy = None

    async def get(self) -> NoteTaxonomy:
        if self._taxonomy is not None:
            return self._taxonomy
        return await self.refresh()

    async def refresh(self) -> NoteTaxonomy:
        if self._refreshing is None or self._refreshing.done():
            self._refreshing = asyncio.get_running_loop().create_task(self._build())
        return await asyncio.shield(self._refreshing)

    async def tags(self) -> list[str]:
        return (await self.get()).tag_vocab

    async def categories(self) -> list[str]:
        return (await self.get()).category_vocab

    async def _build(self) -> NoteTaxonomy:
        tags, categories = await asyncio.gather(
            self._store.list_tags(session=self._session),
            self._store.list_categories(session=self._session),
        )
        taxonomy = NoteTaxonomy(tag_vocab=sorted(tags), category_vocab=sorted(categories))
        self._taxonomy = taxonomy
        logger.debug("Vocabulary refreshed: %d tags, %d categories", len(tags), len(categories))
        return taxonomy
