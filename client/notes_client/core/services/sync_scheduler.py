"""Fetching and polling for mounted views.

Each view gets a ``ViewPoller`` that owns one cancellable poll timer and at
most one outstanding fetch. A fetch result is applied only if its descriptor
is still the view's live descriptor, so the last composed query wins no
matter in which order responses arrive.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from notes_client.config import settings
from notes_client.core.errors import NotesError, ValidationError
from notes_client.core.state.view_state import ViewState
from notes_client.utils.logging import get_logger

if TYPE_CHECKING:
    from notes_client.core.query import QueryDescriptor
    from notes_client.core.repositories.note_store import NoteStore
    from notes_client.core.schemas.session import Session

logger = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def loop_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Default timer factory: the running loop's ``call_later``."""
    return asyncio.get_running_loop().call_later(delay, callback)


class ViewPoller:
    """Fetch/poll driver for a single view.

    ``refresh_now`` and the poll timer share one single-flight path. The
    futures it hands out resolve once the view has settled on its live
    descriptor (result or error applied), or when the poller stops.
    """

    def __init__(
        self,
        state: ViewState,
        store: NoteStore,
        session: Session,
        *,
        interval: float,
        timers: TimerFactory = loop_timer,
    ) -> None:
        self.state = state
        self._store = store
        self._session = session
        self._interval = interval
        self._timers = timers
        self._task: asyncio.Task[None] | None = None
        self._task_descriptor: QueryDescriptor | None = None
        self._timer: TimerHandle | None = None
        self._waiters: list[asyncio.Future[ViewState]] = []
        self._started = False
        self._stopped = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Future[ViewState]:
        """Issue the first fetch and arm polling. Calling it again just refreshes."""
        if self._stopped:
            raise RuntimeError(f"View '{self.state.view_id}' has been stopped")
        self._started = True
        return self.refresh_now()

    def refresh_now(self) -> asyncio.Future[ViewState]:
        """Fetch with the live descriptor now and re-arm the poll timer.

        Joins an outstanding fetch for the same descriptor; supersedes one for
        a different descriptor.
        """
        waiter: asyncio.Future[ViewState] = asyncio.get_running_loop().create_future()
        if self._stopped:
            waiter.set_result(self.state)
            return waiter
        self._waiters.append(waiter)

        descriptor = self.state.descriptor
        if self.in_flight and self._task_descriptor == descriptor:
            self._arm()
            return waiter
        if self.in_flight:
            logger.debug("Superseding in-flight fetch for view %s", self.state.view_id)
            self._task.cancel()

        self.state.begin_fetch()
        self._task_descriptor = descriptor
        self._task = asyncio.get_running_loop().create_task(self._fetch(descriptor))
        self._task.add_done_callback(self._fetch_done)
        self._arm()
        return waiter

    def set_descriptor(self, descriptor: QueryDescriptor) -> asyncio.Future[ViewState]:
        """Switch the view to a new query and fetch it immediately."""
        if not self._stopped and descriptor != self.state.descriptor:
            self.state.set_descriptor(descriptor)
        return self.refresh_now()

    def stop(self) -> None:
        """Stop polling and drop any outstanding fetch. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.in_flight:
            self._task.cancel()
        self.state.unmount()
        self._release_waiters()
        logger.debug("Stopped view %s", self.state.view_id)

    def _arm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._timers(self._interval, self._on_tick)

    def _on_tick(self) -> None:
        self._timer = None
        if self._stopped:
            return
        self.refresh_now()

    def _accepts(self, descriptor: QueryDescriptor) -> bool:
        return not self._stopped and descriptor == self.state.descriptor

    async def _fetch(self, descriptor: QueryDescriptor) -> None:
        try:
            notes = await self._store.list_notes(descriptor, session=self._session)
        except NotesError as err:
            if not self._accepts(descriptor):
                logger.debug("Dropping failure of stale fetch for view %s", self.state.view_id)
                return
            logger.warning("Fetch failed for view %s: %s", self.state.view_id, err)
            self.state.apply_failure(descriptor, err)
            self._release_waiters()
            return

        if not self._accepts(descriptor):
            logger.debug("Dropping stale result for view %s", self.state.view_id)
            return
        self.state.apply_result(descriptor, notes)
        self._release_waiters()

    def _fetch_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            logger.error("Unexpected failure while fetching view %s", self.state.view_id, exc_info=err)
            waiters, self._waiters = self._waiters, []
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(err)

    def _release_waiters(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(self.state)


class SyncScheduler:
    """Registry of mounted views and their pollers."""

    def __init__(
        self,
        store: NoteStore,
        session: Session,
        *,
        interval: float | None = None,
        timers: TimerFactory = loop_timer,
    ) -> None:
        self._store = store
        self._session = session
        self._interval = interval if interval is not None else settings.poll_interval_seconds
        self._timers = timers
        self._pollers: dict[str, ViewPoller] = {}

    def __contains__(self, view_id: object) -> bool:
        return view_id in self._pollers

    def register(self, view_id: str, descriptor: QueryDescriptor) -> ViewState:
        """Mount a view: create its cache, fetch immediately and start polling."""
        if view_id in self._pollers:
            raise ValidationError(f"View '{view_id}' is already registered", field="view_id")
        state = ViewState(view_id, descriptor)
        poller = ViewPoller(state, self._store, self._session, interval=self._interval, timers=self._timers)
        self._pollers[view_id] = poller
        poller.start()
        logger.debug("Registered view %s", view_id)
        return state

    def unregister(self, view_id: str) -> None:
        """Unmount a view. Polling stops before this returns; unknown ids are ignored."""
        poller = self._pollers.pop(view_id, None)
        if poller is not None:
            poller.stop()

    def get(self, view_id: str) -> ViewState | None:
        poller = self._pollers.get(view_id)
        return poller.state if poller is not None else None

    def poller(self, view_id: str) -> ViewPoller | None:
        return self._pollers.get(view_id)

    def views(self) -> list[ViewState]:
        return [p.state for p in self._pollers.values()]

    def set_descriptor(self, view_id: str, descriptor: QueryDescriptor) -> asyncio.Future[ViewState]:
        return self._require(view_id).set_descriptor(descriptor)

    def refresh_now(self, view_id: str) -> asyncio.Future[ViewState]:
        return self._require(view_id).refresh_now()

    def refresh_where(self, predicate: Callable[[ViewState], bool]) -> list[asyncio.Future[ViewState]]:
        """Refresh every mounted view whose state satisfies ``predicate``."""
        return [p.refresh_now() for p in list(self._pollers.values()) if predicate(p.state)]

    def refresh_all(self) -> list[asyncio.Future[ViewState]]:
        return self.refresh_where(lambda _state: True)

    def stop(self) -> None:
        """Unregister every view."""
        for view_id in list(self._pollers):
            self.unregister(view_id)

    def _require(self, view_id: str) -> ViewPoller:
        poller = self._pollers.get(view_id)
        if poller is None:
            raise ValidationError(f"View '{view_id}' is not registered", field="view_id")
        return poller
