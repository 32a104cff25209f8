"""Lazily populated folder hierarchy.

Nodes live in a flat map keyed by path. Children are whatever nodes have
``parent_of(node.path) == parent``, so a rename is a prefix substitution over
the keys rather than a walk over linked nodes.
"""
from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from notes_client.config import settings
from notes_client.core.errors import ConflictError, NotesError, NotFoundError, ValidationError
from notes_client.core.models.folder import Folder
from notes_client.core.paths import (
    ROOT,
    ancestors_of,
    is_within,
    join_path,
    name_of,
    normalize_path,
    parent_of,
    rebase_path,
    split_path,
    validate_name,
)
from notes_client.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from notes_client.core.repositories.note_store import NoteStore
    from notes_client.core.schemas.session import Session

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChildListing:
    """Direct children of ``path`` as currently known.

    ``loading`` is set while the first fetch for ``path`` is outstanding;
    ``error`` holds the last failed fetch, if any.
    """

    path: str
    folders: list[Folder] = field(default_factory=list)
    loading: bool = False
    error: NotesError | None = None


class FolderTree:
    """In-memory folder tree, reconciled against the remote store on demand."""

    def __init__(self, store: NoteStore, session: Session, *, root_label: str | None = None) -> None:
        self._store = store
        self._session = session
        self._root_label = root_label or settings.root_label
        self._nodes: dict[str, Folder] = {}
        self._loaded: set[str] = set()
        self._loading: dict[str, asyncio.Task[list[Folder]]] = {}
        self._errors: dict[str, NotesError] = {}
        # Local child additions (Folder) and removals (None) made while a path was loading
        self._edits: dict[str, dict[str, Folder | None]] = {}
        # Where a load cancelled by a rename or move should continue
        self._relocated: weakref.WeakKeyDictionary[asyncio.Task[list[Folder]], str] = weakref.WeakKeyDictionary()

    # Reads

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.contains(path)

    def contains(self, path: str) -> bool:
        path = normalize_path(path)
        return path == ROOT or path in self._nodes

    def get(self, path: str) -> Folder | None:
        return self._nodes.get(normalize_path(path))

    def paths(self) -> list[str]:
        return sorted(self._nodes)

    def is_loaded(self, path: str) -> bool:
        return normalize_path(path) in self._loaded

    def get_children(self, path: str = ROOT) -> ChildListing:
        """Known children of ``path``, starting a fetch the first time it is asked for.

        Must be called from inside the event loop. Calls made while the fetch
        is outstanding share it.

        Children keep the order the store listed them in; folders created or
        moved here locally come after them until the next fetch.
        """
        path = normalize_path(path)
        if path not in self._loaded:
            self._ensure_load(path)
        return ChildListing(
            path=path,
            folders=self._children_of(path),
            loading=path in self._loading,
            error=self._errors.get(path),
        )

    async def load_children(self, path: str = ROOT) -> list[Folder]:
        """Awaitable form of :meth:`get_children`; same single-flight fetch."""
        path = normalize_path(path)
        if path in self._loaded and path not in self._loading:
            return self._children_of(path)
        return await self._await_load(path)

    async def refresh(self, path: str = ROOT) -> list[Folder]:
        """Re-fetch the children of ``path`` even if already loaded."""
        path = normalize_path(path)
        self._loaded.discard(path)
        return await self._await_load(path)

    def breadcrumbs(self, path: str) -> Iterator[tuple[str, str]]:
        """Yield ``(display_name, path)`` pairs from the root down to ``path``."""
        yield self._root_label, ROOT
        for crumb in ancestors_of(path)[1:]:
            yield name_of(crumb), crumb

    # Mutations

    async def create(self, parent_path: str, name: str) -> str:
        parent = normalize_path(parent_path)
        name = validate_name(name)
        path = join_path(parent, name)
        if not self.contains(parent):
            raise NotFoundError(f"Folder '{parent}' not found", details={"path": parent})
        if path in self._nodes:
            raise ConflictError(
                f"A folder named '{name}' already exists here", field="name", details={"path": path}
            )

        folder = await self._store.create_folder(parent, name, session=self._session)
        self._record_edit(folder.path, folder)
        self._nodes[folder.path] = folder
        # A brand-new folder has no children to fetch
        self._loaded.add(folder.path)
        logger.info("Created folder %s", folder.path)
        return folder.path

    async def rename(self, path: str, new_name: str) -> str:
        new_name = validate_name(new_name)
        path = self._require_existing(path)
        new_path = join_path(parent_of(path) or ROOT, new_name)
        if new_path == path:
            return path
        if new_path in self._nodes:
            raise ConflictError(
                f"A folder named '{new_name}' already exists here", field="name", details={"path": new_path}
            )

        folder = await self._store.rename_folder(path, new_name, session=self._session)
        self._rebase(path, folder.path)
        logger.info("Renamed folder %s to %s", path, folder.path)
        return folder.path

    async def move(self, path: str, new_parent_path: str) -> str:
        path = self._require_existing(path)
        new_parent = normalize_path(new_parent_path)
        if is_within(new_parent, path):
            raise ValidationError("A folder cannot be moved into itself", field="parent_path")
        if not self.contains(new_parent):
            raise NotFoundError(f"Folder '{new_parent}' not found", details={"path": new_parent})
        new_path = join_path(new_parent, name_of(path))
        if new_path == path:
            return path
        if new_path in self._nodes:
            raise ConflictError(
                f"A folder named '{name_of(path)}' already exists there", field="parent_path", details={"path": new_path}
            )

        folder = await self._store.move_folder(path, new_parent, session=self._session)
        self._rebase(path, folder.path)
        logger.info("Moved folder %s to %s", path, folder.path)
        return folder.path

    async def delete(self, path: str) -> None:
        """Delete ``path`` remotely, then re-read its parent.

        Subfolders are not removed locally; whatever the remote store did with
        them shows up in the parent's refetch, and anything left without a
        parent is pruned.
        """
        path = self._require_existing(path)
        await self._store.delete_folder(path, session=self._session)

        self._record_edit(path, None)
        self._cancel_load(path)
        self._nodes.pop(path, None)
        self._loaded.discard(path)
        self._errors.pop(path, None)
        logger.info("Deleted folder %s", path)

        parent = parent_of(path) or ROOT
        try:
            await self.refresh(parent)
        except NotesError as err:
            # Delete itself succeeded; the failed refetch is reported on the parent's listing
            logger.warning("Refetch of %s after deleting %s failed: %s", parent, path, err)
        self._prune_orphans()

    # Internals

    def _require_existing(self, path: str) -> str:
        path = normalize_path(path)
        if path == ROOT:
            raise ValidationError("The root folder cannot be changed", field="path")
        if path not in self._nodes:
            raise NotFoundError(f"Folder '{path}' not found", details={"path": path})
        return path

    def _children_of(self, path: str) -> list[Folder]:
        return [f for p, f in self._nodes.items() if parent_of(p) == path]

    def _record_edit(self, path: str, folder: Folder | None) -> None:
        parent = parent_of(path) or ROOT
        if parent in self._loading:
            self._edits.setdefault(parent, {})[path] = folder

    def _ensure_load(self, path: str) -> asyncio.Task[list[Folder]]:
        task = self._loading.get(path)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._load(path))
            task.add_done_callback(self._load_finished)
            self._loading[path] = task
        return task

    async def _await_load(self, path: str) -> list[Folder]:
        while True:
            task = self._ensure_load(path)
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if asyncio.current_task().cancelling() or not task.cancelled():
                    raise
            # The load was cancelled by a local change, not by our caller
            path = self._relocated.get(task, path)
            if path != ROOT and path not in self._nodes:
                logger.debug("Folder %s went away while its children were loading", path)
                return []
            if path in self._loaded and path not in self._loading:
                return self._children_of(path)

    async def _load(self, path: str) -> list[Folder]:
        edits: dict[str, Folder | None] = {}
        try:
            folders = await self._store.list_folder_contents(path, session=self._session)
        except NotesError as err:
            logger.warning("Failed to load folders under %s: %s", path, err)
            self._errors[path] = err
            raise
        finally:
            if self._loading.get(path) is asyncio.current_task():
                self._loading.pop(path, None)
                edits = self._edits.pop(path, {})

        self._errors.pop(path, None)
        fetched = {f.path: f for f in folders if parent_of(f.path) == path}
        if edits:
            logger.debug("Applying %d local change(s) to the listing of %s", len(edits), path)
        for child, folder in edits.items():
            if folder is None:
                fetched.pop(child, None)
            else:
                fetched[child] = folder
        for stale in [p for p in self._nodes if parent_of(p) == path and p not in fetched]:
            self._drop_subtree(stale)
        # Re-insert so siblings follow the listing's order
        for child in fetched:
            self._nodes.pop(child, None)
        self._nodes.update(fetched)
        self._loaded.add(path)
        return self._children_of(path)

    @staticmethod
    def _load_finished(task: asyncio.Task[list[Folder]]) -> None:
        # Failures are already recorded on the listing; mark them retrieved
        if not task.cancelled():
            task.exception()

    def _cancel_load(self, path: str) -> asyncio.Task[list[Folder]] | None:
        task = self._loading.pop(path, None)
        self._edits.pop(path, None)
        if task is not None and not task.done():
            task.cancel()
        return task

    def _drop_subtree(self, path: str) -> None:
        for p in [p for p in self._nodes if is_within(p, path)]:
            self._nodes.pop(p, None)
        for p in [p for p in self._loaded if is_within(p, path)]:
            self._loaded.discard(p)
        for p in [p for p in self._loading if is_within(p, path)]:
            self._cancel_load(p)

    def _rebase(self, old_path: str, new_path: str) -> None:
        self._record_edit(old_path, None)
        self._record_edit(new_path, Folder.at(new_path))
        for p in [p for p in self._loading if is_within(p, old_path)]:
            task = self._cancel_load(p)
            if task is not None:
                self._relocated[task] = rebase_path(p, old_path, new_path)
        nodes: dict[str, Folder] = {}
        for p, f in self._nodes.items():
            if is_within(p, old_path):
                moved = rebase_path(p, old_path, new_path)
                nodes[moved] = Folder.at(moved)
            else:
                nodes[p] = f
        self._nodes = nodes
        self._loaded = {rebase_path(p, old_path, new_path) for p in self._loaded}
        self._errors = {p: e for p, e in self._errors.items() if not is_within(p, old_path)}

    def _prune_orphans(self) -> None:
        for path in sorted(self._nodes, key=lambda p: len(split_path(p))):
            parent = parent_of(path) or ROOT
            if parent != ROOT and parent not in self._nodes:
                self._drop_subtree(path)
