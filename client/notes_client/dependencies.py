from __future__ import annotations

from typing import TYPE_CHECKING

from notes_client.config import Settings, settings
from notes_client.core.repositories.implementations.http.note_store import HttpNoteStore
from notes_client.core.repositories.implementations.supabase.note_store import SupabaseNoteStore
from notes_client.core.services.mutation_coordinator import MutationCoordinator
from notes_client.core.services.sync_scheduler import SyncScheduler, loop_timer
from notes_client.core.services.taxonomy_service import TaxonomyService
from notes_client.core.state.folder_tree import FolderTree
from notes_client.utils.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from notes_client.core.repositories.note_store import NoteStore
    from notes_client.core.schemas.session import Session
    from notes_client.core.services.sync_scheduler import TimerFactory


def get_note_store(config: Settings | None = None) -> NoteStore:
    """Build the remote store selected by ``backend``."""
    config = config or settings
    if config.backend == "supabase":
        logger.debug("Using Supabase note store")
        return SupabaseNoteStore()
    logger.debug("Using HTTP note store at %s", config.api_base_url)
    return HttpNoteStore(config.api_base_url, timeout=config.request_timeout_seconds)


def get_folder_tree(store: NoteStore, session: Session, config: Settings | None = None) -> FolderTree:
    config = config or settings
    return FolderTree(store, session, root_label=config.root_label)


def get_sync_scheduler(
    store: NoteStore,
    session: Session,
    config: Settings | None = None,
    timers: TimerFactory = loop_timer,
) -> SyncScheduler:
    config = config or settings
    return SyncScheduler(store, session, interval=config.poll_interval_seconds, timers=timers)


def get_taxonomy_service(store: NoteStore, session: Session) -> TaxonomyService:
    return TaxonomyService(store, session)


def get_mutation_coordinator(
    store: NoteStore,
    session: Session,
    scheduler: SyncScheduler,
    tree: FolderTree,
    taxonomy: TaxonomyService | None = None,
    config: Settings | None = None,
) -> MutationCoordinator:
    config = config or settings
    return MutationCoordinator(
        store,
        session,
        scheduler,
        tree,
        taxonomy=taxonomy,
        refresh_after_mutation=config.refresh_after_mutation,
    )
