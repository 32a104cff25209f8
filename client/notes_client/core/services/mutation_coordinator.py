from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from notes_client.config import settings
from notes_client.core.errors import NotesError, NotFoundError, ValidationError
from notes_client.core.models.note import Note, NoteChanges, NoteDraft
from notes_client.core.paths import ROOT, is_within, normalize_path, notes_in_folder, rebase_path
from notes_client.core.query import recompose
from notes_client.core.services.optimistic import apply_optimistic
from notes_client.utils.logging import get_logger

if TYPE_CHECKING:
    import asyncio

    from notes_client.core.models.base import AppBaseModel
    from notes_client.core.repositories.note_store import NoteStore
    from notes_client.core.schemas.session import Session
    from notes_client.core.services.sync_scheduler import SyncScheduler
    from notes_client.core.services.taxonomy_service import TaxonomyService
    from notes_client.core.state.folder_tree import FolderTree
    from notes_client.core.state.view_state import ViewState

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound="AppBaseModel")


class MutationCoordinator:
    """Applies note and folder mutations against the remote store.

    Deletes and favorite/archive toggles are optimistic on the active view.
    Creates and updates wait for the stored record, with the affected item
    marked pending meanwhile. Other mounted views catch up on their own next
    refresh; only folder changes push a re-fetch to the views they affect.
    """

    def __init__(
        self,
        store: NoteStore,
        session: Session,
        scheduler: SyncScheduler,
        tree: FolderTree,
        *,
        taxonomy: TaxonomyService | None = None,
        refresh_after_mutation: bool | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._scheduler = scheduler
        self._tree = tree
        self._taxonomy = taxonomy
        self._refresh_after_mutation = (
            settings.refresh_after_mutation if refresh_after_mutation is None else refresh_after_mutation
        )

    # Notes

    async def get_note(self, note_id: str) -> Note:
        return await self._store.get_note(note_id, session=self._session)

    async def create_note(self, fields: NoteDraft | Mapping[str, Any], *, view_id: str | None = None) -> Note:
        draft = self._validated(NoteDraft, fields)
        state = self._view(view_id)
        token = f"draft:{uuid4().hex}"
        if state is not None:
            state.mark_pending(token)
        try:
            note = await self._store.create_note(draft, session=self._session)
        except NotesError as err:
            logger.warning("Creating note failed: %s", err)
            raise
        finally:
            if state is not None:
                state.clear_pending(token)

        if state is not None:
            state.upsert(note)
        self._after_success(view_id, vocabulary_changed=True)
        return note

    async def update_note(
        self,
        note_id: str,
        changes: NoteChanges | Mapping[str, Any],
        *,
        view_id: str | None = None,
    ) -> Note:
        changes = self._validated(NoteChanges, changes)
        state = self._view(view_id)
        if state is not None:
            state.mark_pending(note_id)
        try:
            note = await self._store.update_note(note_id, changes, session=self._session)
        except NotesError as err:
            logger.warning("Updating note %s failed: %s", note_id, err)
            raise
        finally:
            if state is not None:
                state.clear_pending(note_id)

        if state is not None:
            state.upsert(note)
        self._after_success(
            view_id,
            vocabulary_changed=bool({"tags", "category"} & changes.model_fields_set),
        )
        return note

    async def move_note(self, note_id: str, folder_path: str, *, view_id: str | None = None) -> Note:
        """Reassign a note to another folder."""
        return await self.update_note(note_id, NoteChanges(folder=normalize_path(folder_path)), view_id=view_id)

    async def change_category(self, note_id: str, category: str, *, view_id: str | None = None) -> Note:
        return await self.update_note(note_id, {"category": category}, view_id=view_id)

    async def delete_note(self, note_id: str, *, view_id: str | None = None) -> None:
        state = self._view(view_id)
        update = None
        if state is not None:
            update = apply_optimistic(state, [note_id], lambda notes: [n for n in notes if n.id != note_id])
            state.mark_pending(note_id)
        try:
            await self._store.delete_note(note_id, session=self._session)
        except NotesError as err:
            logger.warning("Deleting note %s failed, rolling back: %s", note_id, err)
            if update is not None:
                update.rollback()
            raise
        finally:
            if state is not None:
                state.clear_pending(note_id)

        if update is not None:
            update.commit()
        self._after_success(view_id)

    async def toggle_favorite(self, note_id: str, *, view_id: str | None = None) -> Note:
        return await self._toggle(note_id, "is_favorite", view_id)

    async def toggle_archive(self, note_id: str, *, view_id: str | None = None) -> Note:
        return await self._toggle(note_id, "is_archived", view_id)

    async def _toggle(self, note_id: str, flag: str, view_id: str | None) -> Note:
        state = self._view(view_id)
        current = state.find(note_id) if state is not None else None
        if current is None:
            current = await self._store.get_note(note_id, session=self._session)
        value = not getattr(current, flag)

        update = None
        if state is not None:
            def _flip(notes: list[Note]) -> list[Note]:
                flipped: list[Note] = []
                for n in notes:
                    if n.id != note_id:
                        flipped.append(n)
                        continue
                    changed = n.model_copy(update={flag: value})
                    # Drop it if the view no longer asks for it (e.g. unfavorited in Favorites)
                    if state.descriptor.admits(changed):
                        flipped.append(changed)
                return flipped

            update = apply_optimistic(state, [note_id], _flip)
            state.mark_pending(note_id)
        try:
            note = await self._store.update_note(note_id, NoteChanges(**{flag: value}), session=self._session)
        except NotesError as err:
            logger.warning("Setting %s on note %s failed, rolling back: %s", flag, note_id, err)
            if update is not None:
                update.rollback()
            raise
        finally:
            if state is not None:
                state.clear_pending(note_id)

        if update is not None:
            update.commit(note)
        self._after_success(view_id)
        return note

    # Folders

    async def create_folder(self, parent_path: str, name: str) -> str:
        return await self._tree.create(parent_path, name)

    async def rename_folder(self, path: str, new_name: str) -> str:
        old_path = normalize_path(path)
        new_path = await self._tree.rename(old_path, new_name)
        self._reconcile_folder(old_path, new_path)
        return new_path

    async def move_folder(self, path: str, new_parent_path: str) -> str:
        old_path = normalize_path(path)
        new_path = await self._tree.move(old_path, new_parent_path)
        self._reconcile_folder(old_path, new_path)
        return new_path

    async def delete_folder(self, path: str) -> None:
        """Delete a folder. Notes filed directly in it move to the root."""
        target = normalize_path(path)
        await self._tree.delete(target)

        for state in self._scheduler.views():
            direct = {n.id for n in notes_in_folder(state.notes, target)}
            if direct:
                state.replace_notes(
                    [n.model_copy(update={"folder": ROOT}) if n.id in direct else n for n in state.notes]
                )
        self._reconcile_folder(target, None)

    def _reconcile_folder(self, old_path: str, new_path: str | None) -> None:
        """Re-fetch every view that shows or holds notes from ``old_path``.

        Note folder fields are rewritten by the remote store, not here. Folder
        views pointed at the moved subtree follow it to ``new_path``.
        """
        for state in self._scheduler.views():
            descriptor = state.descriptor
            if new_path is not None and descriptor.touches_folder(old_path):
                moved = rebase_path(descriptor.folder_path, old_path, new_path)
                self._in_background(
                    self._scheduler.set_descriptor(state.view_id, recompose(descriptor, folder_path=moved))
                )
            elif descriptor.touches_folder(old_path) or any(is_within(n.folder, old_path) for n in state.notes):
                self._in_background(self._scheduler.refresh_now(state.view_id))
        if new_path is None:
            logger.info("Reconciling views after deleting %s", old_path)
        else:
            logger.info("Reconciling views after moving %s to %s", old_path, new_path)

    # Internals

    def _view(self, view_id: str | None) -> ViewState | None:
        if view_id is None:
            return None
        state = self._scheduler.get(view_id)
        if state is None:
            raise NotFoundError(f"View '{view_id}' is not registered", details={"view_id": view_id})
        return state

    def _after_success(self, view_id: str | None, *, vocabulary_changed: bool = False) -> None:
        if vocabulary_changed and self._taxonomy is not None:
            self._taxonomy.invalidate()
        if self._refresh_after_mutation and view_id is not None and view_id in self._scheduler:
            self._in_background(self._scheduler.refresh_now(view_id))

    @staticmethod
    def _in_background(waiter: asyncio.Future[ViewState]) -> None:
        waiter.add_done_callback(_log_refresh_failure)

    @staticmethod
    def _validated(model: type[ModelT], payload: ModelT | Mapping[str, Any]) -> ModelT:
        """Validate locally; nothing reaches the store if this raises."""
        if isinstance(payload, model):
            return payload
        try:
            return model.model_validate(payload)
        except PydanticValidationError as err:
            first = err.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            message = str(first.get("msg", "Invalid input")).removeprefix("Value error, ")
            raise ValidationError(message, field=field, details={"error_count": err.error_count()}) from err


def _log_refresh_failure(waiter: asyncio.Future[ViewState]) -> None:
    # Nobody awaits these; retrieve the failure so it is not reported as unhandled
    if waiter.cancelled():
        return
    err = waiter.exception()
    if err is not None:
        logger.warning("Background view refresh failed: %s", err)
