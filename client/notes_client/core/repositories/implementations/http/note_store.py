from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from notes_client.core.errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    RemoteError,
    TransportError,
)
from notes_client.core.models.folder import Folder
from notes_client.core.models.note import Note
from notes_client.core.paths import normalize_path
from notes_client.core.query import ViewKind
from notes_client.core.repositories.note_store import NoteStore
from notes_client.utils.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from notes_client.core.models.note import NoteChanges, NoteDraft
    from notes_client.core.query import QueryDescriptor
    from notes_client.core.schemas.session import Session


class HttpNoteStore(NoteStore):
    """REST implementation of the NoteStore.

    Talks to the notes API (``/notes``, ``/folders``). Successful responses
    may come wrapped in a ``{"success", "data", "message", "errors"}``
    envelope; ``success: false`` is treated as a failure even on a 2xx.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpNoteStore:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    # Notes

    async def list_notes(self, descriptor: QueryDescriptor, *, session: Session) -> Sequence[Note]:
        params = descriptor.to_params()
        params.pop("category", None)
        params.pop("folder", None)
        data = await self._request("GET", self._notes_route(descriptor), session=session, params=params)
        if isinstance(data, dict):
            data = data.get("notes", [])
        return [self._to_note(item) for item in data or []]

    async def get_note(self, note_id: str, *, session: Session) -> Note:
        data = await self._request("GET", f"/notes/{quote(note_id, safe='')}", session=session)
        return self._to_note(data)

    async def create_note(self, draft: NoteDraft, *, session: Session) -> Note:
        data = await self._request("POST", "/notes", session=session, json=draft.model_dump(by_alias=True))
        return self._to_note(data)

    async def update_note(self, note_id: str, changes: NoteChanges, *, session: Session) -> Note:
        data = await self._request(
            "PUT",
            f"/notes/{quote(note_id, safe='')}",
            session=session,
            json=changes.to_payload(by_alias=True),
        )
        return self._to_note(data)

    async def delete_note(self, note_id: str, *, session: Session) -> None:
        await self._request("DELETE", f"/notes/{quote(note_id, safe='')}", session=session)

    # Folders

    async def list_folder_contents(self, path: str, *, session: Session) -> Sequence[Folder]:
        data = await self._request(
            "GET", "/folders/contents", session=session, params={"path": normalize_path(path)}
        )
        if isinstance(data, dict):
            data = data.get("folders", [])
        return [self._to_folder(item) for item in data or []]

    async def create_folder(self, parent_path: str, name: str, *, session: Session) -> Folder:
        data = await self._request(
            "POST",
            "/folders",
            session=session,
            json={"parentPath": normalize_path(parent_path), "name": name},
        )
        return self._to_folder(data)

    async def rename_folder(self, path: str, new_name: str, *, session: Session) -> Folder:
        data = await self._request(
            "PATCH",
            "/folders/rename",
            session=session,
            json={"path": normalize_path(path), "newName": new_name},
        )
        return self._to_folder(data)

    async def move_folder(self, path: str, new_parent_path: str, *, session: Session) -> Folder:
        data = await self._request(
            "PATCH",
            "/folders/move",
            session=session,
            json={"path": normalize_path(path), "parentPath": normalize_path(new_parent_path)},
        )
        return self._to_folder(data)

    async def delete_folder(self, path: str, *, session: Session) -> None:
        await self._request("DELETE", "/folders", session=session, params={"path": normalize_path(path)})

    # Vocabularies

    async def list_tags(self, *, session: Session) -> set[str]:
        data = await self._request("GET", "/notes/tags", session=session)
        return {t for t in data or [] if isinstance(t, str) and t.strip()}

    async def list_categories(self, *, session: Session) -> set[str]:
        data = await self._request("GET", "/notes/categories", session=session)
        return {c for c in data or [] if isinstance(c, str) and c.strip()}

    # Plumbing

    @staticmethod
    def _notes_route(descriptor: QueryDescriptor) -> str:
        if descriptor.view_kind is ViewKind.FAVORITES:
            return "/notes/favorites"
        if descriptor.view_kind is ViewKind.ARCHIVED:
            return "/notes/archived"
        if descriptor.view_kind is ViewKind.BY_CATEGORY and descriptor.category:
            return f"/notes/category/{quote(descriptor.category, safe='')}"
        if descriptor.view_kind is ViewKind.BY_FOLDER and descriptor.folder_path:
            return f"/notes/folder/{quote(descriptor.folder_path.lstrip('/'), safe='/')}"
        return "/notes"

    async def _request(self, method: str, url: str, *, session: Session, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, url, headers=session.auth_headers(), **kwargs)
        except httpx.HTTPError as err:
            logger.warning("%s %s failed without a response: %s", method, url, err)
            raise TransportError(
                "Network error - please check your internet connection",
                details={"method": method, "url": url, "error_type": type(err).__name__},
            ) from err
        try:
            return self._handle_response(response)
        except AuthError as err:
            session.report_auth_error(err)
            raise

    @staticmethod
    def _handle_response(response: httpx.Response) -> Any:
        """Unwrap the payload or raise the matching typed error."""
        body: Any = None
        if response.content:
            try:
                body = response.json()
            except json.JSONDecodeError:
                body = None
        envelope = body if isinstance(body, dict) else {}
        message = envelope.get("message") or None
        errors = envelope.get("errors") or []

        if response.status_code == 401:
            raise AuthError(message or "Session expired - please login again")
        if response.status_code == 404:
            raise NotFoundError(message or "Resource not found", details={"url": str(response.request.url)})
        if response.status_code == 409:
            raise ConflictError(message or "Resource already exists")
        if response.status_code >= 400:
            raise RemoteError(message or "Something went wrong", status_code=response.status_code, errors=errors)
        if envelope.get("success") is False:
            raise RemoteError(message or "Operation failed", status_code=response.status_code, errors=errors)

        if body is None and response.content:
            raise RemoteError("Invalid response format from API", status_code=response.status_code)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    @staticmethod
    def _to_note(data: Any) -> Note:
        try:
            return Note.model_validate(data)
        except PydanticValidationError as err:
            raise RemoteError(f"Malformed note record: {err.error_count()} invalid field(s)") from err

    @staticmethod
    def _to_folder(data: Any) -> Folder:
        try:
            return Folder.model_validate(data)
        except PydanticValidationError as err:
            raise RemoteError(f"Malformed folder record: {err.error_count()} invalid field(s)") from err
