from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from notes_client.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from notes_client.core.errors import NotesError
    from notes_client.core.models.note import Note
    from notes_client.core.query import QueryDescriptor

logger = get_logger(__name__)


class ViewStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ViewState:
    """Result cache for one mounted view.

    ``descriptor`` is the live query; ``last_descriptor`` is the one that
    produced ``notes``. A failed fetch keeps the previous notes so they can be
    shown next to the error. Once unmounted the state no longer changes.
    """

    def __init__(self, view_id: str, descriptor: QueryDescriptor) -> None:
        self.view_id = view_id
        self.descriptor = descriptor
        self.last_descriptor: QueryDescriptor | None = None
        self.notes: list[Note] = []
        self.status = ViewStatus.IDLE
        self.error: NotesError | None = None
        self.pending: set[str] = set()
        self.mounted = True
        # Counts authoritative result sets applied; optimistic rollbacks check it
        self.fetch_revision = 0
        self._listeners: list[Callable[[ViewState], None]] = []

    def __repr__(self) -> str:
        return f"ViewState({self.view_id!r}, status={self.status.value}, notes={len(self.notes)})"

    @property
    def is_stale(self) -> bool:
        """True while ``notes`` were produced by a different query than the live one."""
        return self.last_descriptor != self.descriptor

    def find(self, note_id: str) -> Note | None:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None

    def index_of(self, note_id: str) -> int:
        for i, note in enumerate(self.notes):
            if note.id == note_id:
                return i
        return -1

    def is_pending(self, key: str) -> bool:
        return key in self.pending

    def subscribe(self, listener: Callable[[ViewState], None]) -> Callable[[], None]:
        """Call ``listener`` after every change; returns the unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # Transitions driven by the scheduler

    def set_descriptor(self, descriptor: QueryDescriptor) -> None:
        if not self.mounted:
            return
        self.descriptor = descriptor
        self._notify()

    def begin_fetch(self) -> None:
        if not self.mounted:
            return
        self.status = ViewStatus.LOADING
        self._notify()

    def apply_result(self, descriptor: QueryDescriptor, notes: Iterable[Note]) -> None:
        if not self.mounted:
            return
        self.notes = list(notes)
        self.last_descriptor = descriptor
        self.status = ViewStatus.READY
        self.error = None
        self.fetch_revision += 1
        self._notify()

    def apply_failure(self, descriptor: QueryDescriptor, error: NotesError) -> None:
        if not self.mounted:
            return
        self.status = ViewStatus.ERROR
        self.error = error
        self._notify()

    def unmount(self) -> None:
        self.mounted = False
        self._listeners.clear()

    # Transitions driven by the mutation coordinator

    def replace_notes(self, notes: Iterable[Note]) -> None:
        if not self.mounted:
            return
        self.notes = list(notes)
        self._notify()

    def upsert(self, note: Note) -> None:
        """Swap in the authoritative record, or place it if the live query admits it."""
        if not self.mounted:
            return
        index = self.index_of(note.id)
        admitted = self.descriptor.admits(note)
        if index >= 0 and admitted:
            self.notes = [*self.notes[:index], note, *self.notes[index + 1 :]]
        elif index >= 0:
            self.notes = [*self.notes[:index], *self.notes[index + 1 :]]
        elif admitted:
            self.notes = self.descriptor.order([*self.notes, note])
        else:
            return
        self._notify()

    def remove(self, note_id: str) -> None:
        if not self.mounted:
            return
        self.notes = [n for n in self.notes if n.id != note_id]
        self._notify()

    def mark_pending(self, key: str) -> None:
        if not self.mounted:
            return
        self.pending.add(key)
        self._notify()

    def clear_pending(self, key: str) -> None:
        if not self.mounted:
            return
        self.pending.discard(key)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
