"""Common test fixtures for the notes client state layer."""
import pytest

from notes_client.core.schemas.session import Session
from notes_client.core.services.mutation_coordinator import MutationCoordinator
from notes_client.core.services.sync_scheduler import SyncScheduler
from notes_client.core.services.taxonomy_service import TaxonomyService
from notes_client.core.state.folder_tree import FolderTree
from tests.fakes import FakeTimers, InMemoryNoteStore


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def auth_failures():
    """Errors delivered to the session's auth callback."""
    return []


@pytest.fixture
def session(auth_failures):
    return Session(access_token="token-1", user_id="user-1", on_auth_error=auth_failures.append)


@pytest.fixture
def store():
    return InMemoryNoteStore()


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
async def scheduler(store, session, timers):
    scheduler = SyncScheduler(store, session, interval=30.0, timers=timers)
    yield scheduler
    scheduler.stop()


@pytest.fixture
def tree(store, session):
    return FolderTree(store, session, root_label="Root")


@pytest.fixture
def taxonomy(store, session):
    return TaxonomyService(store, session)


@pytest.fixture
def coordinator(store, session, scheduler, tree, taxonomy):
    """Coordinator without post-mutation refreshes, so store calls stay predictable."""
    return MutationCoordinator(
        store, session, scheduler, tree, taxonomy=taxonomy, refresh_after_mutation=False
    )
