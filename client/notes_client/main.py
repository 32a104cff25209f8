from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from .config import settings
from .core.query import compose
from .core.services.sync_scheduler import loop_timer
from .dependencies import (
    get_folder_tree,
    get_mutation_coordinator,
    get_note_store,
    get_sync_scheduler,
    get_taxonomy_service,
)
from .utils.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from .config import Settings
    from .core.query import QueryDescriptor
    from .core.repositories.note_store import NoteStore
    from .core.schemas.session import Session
    from .core.services.sync_scheduler import TimerFactory
    from .core.state.view_state import ViewState

logger = get_logger(__name__)


class Workspace:
    """Everything one signed-in user's client state needs, wired together."""

    def __init__(
        self,
        session: Session,
        store: NoteStore,
        *,
        config: Settings | None = None,
        timers: TimerFactory = loop_timer,
    ) -> None:
        config = config or settings
        self.session = session
        self.store = store
        self.folders = get_folder_tree(store, session, config)
        self.scheduler = get_sync_scheduler(store, session, config, timers)
        self.taxonomy = get_taxonomy_service(store, session)
        self.mutations = get_mutation_coordinator(
            store, session, self.scheduler, self.folders, self.taxonomy, config
        )

    def mount(self, view_id: str, descriptor: QueryDescriptor | None = None, **intents) -> ViewState:
        """Mount a view for ``descriptor``, or for a descriptor composed from ``intents``."""
        return self.scheduler.register(view_id, descriptor or compose(**intents))

    def unmount(self, view_id: str) -> None:
        self.scheduler.unregister(view_id)

    async def refresh(self) -> list[ViewState]:
        """Re-fetch every mounted view, e.g. when the app regains focus or connectivity."""
        return list(await asyncio.gather(*self.scheduler.refresh_all()))

    async def aclose(self) -> None:
        self.scheduler.stop()
        await self.store.aclose()

    async def __aenter__(self) -> Workspace:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def create_workspace(
    session: Session,
    *,
    store: NoteStore | None = None,
    config: Settings | None = None,
    timers: TimerFactory = loop_timer,
) -> Workspace:
    setup_logging()
    config = config or settings
    workspace = Workspace(session, store or get_note_store(config), config=config, timers=timers)
    logger.info("Workspace ready", extra={"backend": config.backend, "user_id": session.user_id})
    return workspace
