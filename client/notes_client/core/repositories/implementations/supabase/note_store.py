from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError as PydanticValidationError

from notes_client.core.errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    RemoteError,
    TransportError,
    ValidationError,
)
from notes_client.core.models.folder import Folder
from notes_client.core.models.note import Note
from notes_client.core.paths import (
    ROOT,
    is_descendant,
    is_within,
    join_path,
    name_of,
    normalize_path,
    parent_of,
    rebase_path,
)
from notes_client.core.query import SortField, SortOrder, ViewKind
from notes_client.core.repositories.note_store import NoteStore
from notes_client.db.base import create_request_supabase_client
from notes_client.utils.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from supabase import Client

    from notes_client.core.models.note import NoteChanges, NoteDraft
    from notes_client.core.query import QueryDescriptor
    from notes_client.core.schemas.session import Session

# PostgREST codes for a missing/expired/invalid JWT
_AUTH_ERROR_CODES = {"PGRST301", "PGRST302", "PGRST303", "401", "42501"}
_UNIQUE_VIOLATION = "23505"

_SORT_COLUMNS = {
    SortField.UPDATED_AT: "updated_at",
    SortField.CREATED_AT: "created_at",
    SortField.TITLE: "title",
}


class SupabaseNoteStore(NoteStore):
    """Supabase implementation of the NoteStore.

    Uses Supabase's PostgREST client. Assumes a ``notes`` table with columns
    matching the ``Note`` model fields and a ``folders`` table with
    ``path``, ``name`` and ``parent_path`` columns.

    As owner of these tables the store also carries the server-side folder
    semantics: rename/move rewrite descendant folders and note folders, and
    delete removes descendant folders and sends their notes to the root. Those
    are multi-statement sequences without a surrounding transaction.
    """

    NOTES_TABLE = "notes"
    FOLDERS_TABLE = "folders"
    PAGE_SIZE = 1000

    def __init__(self, client_factory: Callable[[str | None], Client] = create_request_supabase_client) -> None:
        self._client_factory = client_factory
        self._clients: dict[str | None, Client] = {}

    def _client_for(self, session: Session) -> Client:
        client = self._clients.get(session.access_token)
        if client is None:
            client = self._client_factory(session.access_token)
            self._clients[session.access_token] = client
        return client

    async def aclose(self) -> None:
        self._clients.clear()

    # Notes

    async def list_notes(self, descriptor: QueryDescriptor, *, session: Session) -> Sequence[Note]:
        client = self._client_for(session)

        def _query():
            q = client.table(self.NOTES_TABLE).select("*")
            q = q.eq("is_archived", descriptor.view_kind is ViewKind.ARCHIVED)
            if descriptor.view_kind is ViewKind.FAVORITES:
                q = q.eq("is_favorite", True)
            if descriptor.view_kind is ViewKind.BY_CATEGORY and descriptor.category:
                q = q.eq("category", descriptor.category)
            if descriptor.view_kind is ViewKind.BY_FOLDER and descriptor.folder_path:
                q = q.eq("folder", descriptor.folder_path)
            if descriptor.tag_filter:
                # Array containment gives AND semantics across tags
                q = q.contains("tags", sorted(descriptor.tag_filter))
            if descriptor.search_text:
                pattern = self._ilike_value(descriptor.search_text)
                q = q.or_(f"title.ilike.{pattern},content.ilike.{pattern}")
            return (
                q
                .order(_SORT_COLUMNS[descriptor.sort_field], desc=descriptor.sort_order is SortOrder.DESC)
                .execute()
            )

        resp = await self._run(_query, session)
        return [self._row_to_note(i) for i in resp.data or []]

    async def get_note(self, note_id: str, *, session: Session) -> Note:
        client = self._client_for(session)
        resp = await self._run(
            lambda: client.table(self.NOTES_TABLE)
            .select("*")
            .eq("id", note_id)
            .limit(1)
            .execute(),
            session,
        )
        items = resp.data or []
        if not items:
            raise NotFoundError(f"Note '{note_id}' not found", details={"note_id": note_id})
        return self._row_to_note(items[0])

    async def create_note(self, draft: NoteDraft, *, session: Session) -> Note:
        client = self._client_for(session)
        row: dict[str, Any] = draft.model_dump()
        row["is_favorite"] = False
        row["is_archived"] = False
        if session.user_id:
            row["user_id"] = session.user_id
        resp = await self._run(
            lambda: client.table(self.NOTES_TABLE)
            .insert(row)
            .execute(),
            session,
        )
        return self._row_to_note(self._first(resp.data))

    async def update_note(self, note_id: str, changes: NoteChanges, *, session: Session) -> Note:
        client = self._client_for(session)
        sanitized = changes.to_payload()
        if not sanitized:
            # No-op; return current row
            return await self.get_note(note_id, session=session)
        sanitized["updated_at"] = datetime.now(UTC).isoformat()

        resp = await self._run(
            lambda: client.table(self.NOTES_TABLE)
            .update(sanitized)
            .eq("id", note_id)
            .execute(),
            session,
        )
        items = resp.data or []
        if not items:
            raise NotFoundError(f"Note '{note_id}' not found", details={"note_id": note_id})
        return self._row_to_note(items[0])

    async def delete_note(self, note_id: str, *, session: Session) -> None:
        client = self._client_for(session)
        resp = await self._run(
            lambda: client.table(self.NOTES_TABLE)
            .delete()
            .eq("id", note_id)
            .execute(),
            session,
        )
        if not resp.data:
            raise NotFoundError(f"Note '{note_id}' not found", details={"note_id": note_id})

    # Folders

    async def list_folder_contents(self, path: str, *, session: Session) -> Sequence[Folder]:
        client = self._client_for(session)
        parent = normalize_path(path)
        resp = await self._run(
            lambda: client.table(self.FOLDERS_TABLE)
            .select("path, name")
            .eq("parent_path", parent)
            .order("name")
            .execute(),
            session,
        )
        return [self._row_to_folder(r) for r in resp.data or []]

    async def create_folder(self, parent_path: str, name: str, *, session: Session) -> Folder:
        client = self._client_for(session)
        parent = normalize_path(parent_path)
        path = join_path(parent, name)

        def _insert():
            if parent != ROOT and not self._folder_exists(client, parent):
                raise NotFoundError(f"Folder '{parent}' not found", details={"path": parent})
            row: dict[str, Any] = {"path": path, "name": name_of(path), "parent_path": parent}
            if session.user_id:
                row["user_id"] = session.user_id
            return client.table(self.FOLDERS_TABLE).insert(row).execute()

        resp = await self._run(_insert, session)
        return self._row_to_folder(self._first(resp.data) or {"path": path})

    async def rename_folder(self, path: str, new_name: str, *, session: Session) -> Folder:
        old_path = normalize_path(path)
        new_path = join_path(parent_of(old_path) or ROOT, new_name)
        return await self._relocate(old_path, new_path, session=session)

    async def move_folder(self, path: str, new_parent_path: str, *, session: Session) -> Folder:
        old_path = normalize_path(path)
        new_parent = normalize_path(new_parent_path)
        if is_within(new_parent, old_path):
            raise ValidationError("A folder cannot be moved into itself", field="parent_path")
        return await self._relocate(old_path, join_path(new_parent, name_of(old_path)), session=session)

    async def delete_folder(self, path: str, *, session: Session) -> None:
        client = self._client_for(session)
        target = normalize_path(path)

        def _delete():
            all_paths = self._all_folder_paths(client)
            if target not in all_paths:
                raise NotFoundError(f"Folder '{target}' not found", details={"path": target})
            doomed = [p for p in all_paths if is_within(p, target)]
            client.table(self.NOTES_TABLE).update({"folder": ROOT}).in_("folder", doomed).execute()
            return client.table(self.FOLDERS_TABLE).delete().in_("path", doomed).execute()

        await self._run(_delete, session)

    async def _relocate(self, old_path: str, new_path: str, *, session: Session) -> Folder:
        client = self._client_for(session)

        def _rewrite():
            all_paths = self._all_folder_paths(client)
            if old_path not in all_paths:
                raise NotFoundError(f"Folder '{old_path}' not found", details={"path": old_path})
            if new_path == old_path:
                return
            if new_path in all_paths:
                raise ConflictError(f"Folder '{new_path}' already exists", field="path", details={"path": new_path})
            new_parent = parent_of(new_path) or ROOT
            if new_parent != ROOT and new_parent not in all_paths:
                raise NotFoundError(f"Folder '{new_parent}' not found", details={"path": new_parent})

            for folder_path in sorted(p for p in all_paths if is_within(p, old_path)):
                moved = rebase_path(folder_path, old_path, new_path)
                (
                    client.table(self.FOLDERS_TABLE)
                    .update({"path": moved, "name": name_of(moved), "parent_path": parent_of(moved) or ROOT})
                    .eq("path", folder_path)
                    .execute()
                )

            for row in self._select_all(client, self.NOTES_TABLE, "id, folder"):
                folder = normalize_path(row.get("folder"))
                if folder == old_path or is_descendant(folder, old_path):
                    (
                        client.table(self.NOTES_TABLE)
                        .update({"folder": rebase_path(folder, old_path, new_path)})
                        .eq("id", row["id"])
                        .execute()
                    )

        await self._run(_rewrite, session)
        logger.info("Moved folder %s to %s", old_path, new_path)
        return Folder.at(new_path)

    # Vocabularies

    async def list_tags(self, *, session: Session) -> set[str]:
        client = self._client_for(session)
        rows = await self._run(lambda: self._select_all(client, self.NOTES_TABLE, "tags"), session)
        tag_set: set[str] = set()
        for row in rows:
            tags = row.get("tags") or []
            if isinstance(tags, list):
                for t in tags:
                    if isinstance(t, str) and t.strip():
                        tag_set.add(t.strip())
        return tag_set

    async def list_categories(self, *, session: Session) -> set[str]:
        client = self._client_for(session)
        rows = await self._run(lambda: self._select_all(client, self.NOTES_TABLE, "category"), session)
        return {
            row["category"].strip()
            for row in rows
            if isinstance(row.get("category"), str) and row["category"].strip()
        }

    # Plumbing

    @classmethod
    def _select_all(cls, client: Client, table: str, columns: str) -> list[dict[str, Any]]:
        """Page through a whole table. Runs inside the worker thread."""
        offset = 0
        rows: list[dict[str, Any]] = []
        while True:
            resp = (
                client.table(table)
                .select(columns)
                .range(offset, offset + cls.PAGE_SIZE - 1)
                .execute()
            )
            page: list[dict[str, Any]] = resp.data or []
            rows.extend(page)
            if len(page) < cls.PAGE_SIZE:
                return rows
            offset += cls.PAGE_SIZE

    @classmethod
    def _all_folder_paths(cls, client: Client) -> set[str]:
        return {normalize_path(r["path"]) for r in cls._select_all(client, cls.FOLDERS_TABLE, "path")}

    @classmethod
    def _folder_exists(cls, client: Client, path: str) -> bool:
        resp = client.table(cls.FOLDERS_TABLE).select("path").eq("path", path).limit(1).execute()
        return bool(resp.data)

    @staticmethod
    def _ilike_value(term: str) -> str:
        # Quoted so commas and parentheses in the term don't break the or() filter
        escaped = term.replace("\\", "\\\\").replace('"', '\\"')
        return f'"%{escaped}%"'

    @staticmethod
    async def _run(func: Callable[[], Any], session: Session) -> Any:
        """Run a blocking PostgREST call in a worker thread and translate its failures."""
        try:
            return await asyncio.to_thread(func)
        except APIError as err:
            code = str(err.code or "")
            message = err.message or "Supabase request failed"
            if code in _AUTH_ERROR_CODES or "jwt" in message.lower():
                auth_err = AuthError(message, details={"code": code})
                session.report_auth_error(auth_err)
                raise auth_err from err
            if code == _UNIQUE_VIOLATION:
                raise ConflictError(message, details={"code": code}) from err
            raise RemoteError(message, errors=[err.details] if err.details else None) from err
        except httpx.HTTPError as err:
            logger.warning("Supabase request failed without a response: %s", err)
            raise TransportError(
                "Network error - please check your internet connection",
                details={"error_type": type(err).__name__},
            ) from err

    @staticmethod
    def _first(data: Any) -> dict[str, Any]:
        if isinstance(data, list) and data:
            return data[0]
        if isinstance(data, dict):
            return data
        return {}

    @staticmethod
    def _row_to_note(row: dict[str, Any]) -> Note:
        # Filter out database-specific fields; the model ignores the rest
        normalized = dict(row)
        normalized.pop("user_id", None)
        if normalized.get("tags") is None:
            normalized["tags"] = []
        try:
            return Note.model_validate(normalized)
        except PydanticValidationError as err:
            raise RemoteError(f"Malformed note row: {err.error_count()} invalid field(s)") from err

    @staticmethod
    def _row_to_folder(row: dict[str, Any]) -> Folder:
        try:
            return Folder.model_validate(row)
        except PydanticValidationError as err:
            raise RemoteError(f"Malformed folder row: {err.error_count()} invalid field(s)") from err
