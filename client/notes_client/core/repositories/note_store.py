from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from notes_client.core.models.folder import Folder
    from notes_client.core.models.note import Note, NoteChanges, NoteDraft
    from notes_client.core.query import QueryDescriptor
    from notes_client.core.schemas.session import Session


class NoteStore(ABC):
    """Abstract interface to the remote note/folder service.

    The remote store is the server of record. Implementations perform I/O and
    therefore expose async methods; each call carries the caller's session.
    Failures surface as ``notes_client.core.errors`` types, never as raw
    transport exceptions.
    """

    @abstractmethod
    async def list_notes(self, descriptor: QueryDescriptor, *, session: Session) -> Sequence[Note]:  # pragma: no cover
        """Return notes matching ``descriptor`` in the order it asks for."""

    @abstractmethod
    async def get_note(self, note_id: str, *, session: Session) -> Note:  # pragma: no cover
        """Fetch a single note or raise ``NotFoundError``."""

    @abstractmethod
    async def create_note(self, draft: NoteDraft, *, session: Session) -> Note:  # pragma: no cover
        """Persist a new note. The store assigns id and timestamps."""

    @abstractmethod
    async def update_note(self, note_id: str, changes: NoteChanges, *, session: Session) -> Note:  # pragma: no cover
        """Apply a partial update and return the stored record."""

    @abstractmethod
    async def delete_note(self, note_id: str, *, session: Session) -> None:  # pragma: no cover
        """Delete a note or raise ``NotFoundError``."""

    @abstractmethod
    async def list_folder_contents(self, path: str, *, session: Session) -> Sequence[Folder]:  # pragma: no cover
        """Direct child folders of ``path``. Notes are listed separately."""

    @abstractmethod
    async def create_folder(self, parent_path: str, name: str, *, session: Session) -> Folder:  # pragma: no cover
        """Create ``name`` under ``parent_path``."""

    @abstractmethod
    async def rename_folder(self, path: str, new_name: str, *, session: Session) -> Folder:  # pragma: no cover
        """Rename the folder at ``path``; descendants and their notes move with it."""

    @abstractmethod
    async def move_folder(self, path: str, new_parent_path: str, *, session: Session) -> Folder:  # pragma: no cover
        """Re-parent the folder at ``path``; descendants and their notes move with it."""

    @abstractmethod
    async def delete_folder(self, path: str, *, session: Session) -> None:  # pragma: no cover
        """Delete the folder at ``path``. Its direct notes go to the root."""

    @abstractmethod
    async def list_tags(self, *, session: Session) -> set[str]:  # pragma: no cover
        ...

    @abstractmethod
    async def list_categories(self, *, session: Session) -> set[str]:  # pragma: no cover
        ...

    async def aclose(self) -> None:
        """Release transport resources. Safe to call more than once."""
