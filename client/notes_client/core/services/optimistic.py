"""Optimistic local changes with uniform commit/rollback.

Every optimistic mutation goes through :func:`apply_optimistic`: the change
is applied to the view immediately and the returned handle is either
committed once the remote store confirms or rolled back if it refuses.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from notes_client.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from notes_client.core.models.note import Note
    from notes_client.core.state.view_state import ViewState

logger = get_logger(__name__)


class OptimisticUpdate:
    """Handle for one applied optimistic change."""

    def __init__(self, state: ViewState, note_ids: Iterable[str], mutate: Callable[[list[Note]], list[Note]]) -> None:
        self._state = state
        self._note_ids = set(note_ids)
        # Original positions of the notes this change touches
        self._originals = [(i, n) for i, n in enumerate(state.notes) if n.id in self._note_ids]
        self._fetch_revision = state.fetch_revision
        self._settled = False
        state.replace_notes(mutate(list(state.notes)))

    @property
    def settled(self) -> bool:
        return self._settled

    def commit(self, authoritative: Note | None = None) -> None:
        """Keep the change, optionally swapping in the record the store returned."""
        if self._settled:
            return
        self._settled = True
        if authoritative is not None and self._fetch_revision == self._state.fetch_revision:
            self._state.upsert(authoritative)

    def rollback(self) -> None:
        """Put the touched notes back exactly where they were.

        If a fetch has replaced the notes in the meantime, that result is
        already authoritative and is left alone.
        """
        if self._settled:
            return
        self._settled = True
        if self._fetch_revision != self._state.fetch_revision:
            logger.debug("Skipping rollback on %s; a newer result set has landed", self._state.view_id)
            return
        restored = [n for n in self._state.notes if n.id not in self._note_ids]
        for index, note in self._originals:
            restored.insert(min(index, len(restored)), note)
        self._state.replace_notes(restored)


def apply_optimistic(
    state: ViewState,
    note_ids: Iterable[str],
    mutate: Callable[[list[Note]], list[Note]],
) -> OptimisticUpdate:
    """Apply ``mutate`` to ``state.notes`` now and return the commit/rollback handle.

    ``note_ids`` names the notes the mutation touches; rollback restores only
    those, so concurrent optimistic changes to other notes survive it.
    """
    return OptimisticUpdate(state, note_ids, mutate)
