"""Folder path arithmetic.

Paths are ``/``-separated strings rooted at ``/``. Parent/child relations are
derived purely from the string, so no node ever holds a reference to another.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from notes_client.core.errors import ErrorCode, ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from notes_client.core.models.note import Note

ROOT = "/"
SEPARATOR = "/"


def normalize_path(raw: str | None) -> str:
    """Return the canonical form of ``raw``.

    Repeated separators collapse, a trailing separator is dropped and a
    leading one is forced. ``None`` and the empty string mean the root.
    """
    if raw is None:
        return ROOT
    segments = [s.strip() for s in raw.split(SEPARATOR)]
    segments = [s for s in segments if s]
    for segment in segments:
        if segment in {".", ".."}:
            raise ValidationError(
                f"Relative segment '{segment}' is not allowed in a folder path",
                field="path",
                code=ErrorCode.INVALID_PATH,
                details={"path": raw},
            )
    if not segments:
        return ROOT
    return SEPARATOR + SEPARATOR.join(segments)


def split_path(path: str) -> list[str]:
    """Segments of ``path`` from the root down. The root has none."""
    normalized = normalize_path(path)
    if normalized == ROOT:
        return []
    return normalized[1:].split(SEPARATOR)


def parent_of(path: str) -> str | None:
    """Strip the last segment. Depth-1 paths answer the root; the root has no parent."""
    normalized = normalize_path(path)
    if normalized == ROOT:
        return None
    return normalized[: normalized.rfind(SEPARATOR)] or ROOT


def name_of(path: str) -> str:
    normalized = normalize_path(path)
    if normalized == ROOT:
        return ""
    return normalized[normalized.rfind(SEPARATOR) + 1 :]


def validate_name(name: str | None) -> str:
    """Check a single folder name and return it trimmed."""
    stripped = (name or "").strip()
    if not stripped:
        raise ValidationError("Folder name is required", field="name")
    if SEPARATOR in stripped:
        raise ValidationError(
            f"Folder name may not contain '{SEPARATOR}'",
            field="name",
            code=ErrorCode.INVALID_PATH,
            details={"name": stripped},
        )
    if stripped in {".", ".."}:
        raise ValidationError(
            "Folder name may not be a relative segment",
            field="name",
            code=ErrorCode.INVALID_PATH,
            details={"name": stripped},
        )
    return stripped


def join_path(parent: str, name: str) -> str:
    parent = normalize_path(parent)
    name = validate_name(name)
    if parent == ROOT:
        return ROOT + name
    return parent + SEPARATOR + name


def is_descendant(path: str, ancestor: str) -> bool:
    """True if ``path`` lies strictly below ``ancestor``."""
    path = normalize_path(path)
    ancestor = normalize_path(ancestor)
    if path == ancestor:
        return False
    if ancestor == ROOT:
        return True
    return path.startswith(ancestor + SEPARATOR)


def is_within(path: str, ancestor: str) -> bool:
    """Like :func:`is_descendant` but also true for ``ancestor`` itself."""
    return normalize_path(path) == normalize_path(ancestor) or is_descendant(path, ancestor)


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """Substitute ``old_prefix`` with ``new_prefix`` at the head of ``path``.

    Paths outside ``old_prefix`` come back unchanged.
    """
    path = normalize_path(path)
    old_prefix = normalize_path(old_prefix)
    new_prefix = normalize_path(new_prefix)
    if path == old_prefix:
        return new_prefix
    if not is_descendant(path, old_prefix):
        return path
    remainder = path[len(old_prefix) :] if old_prefix != ROOT else path
    if new_prefix == ROOT:
        return remainder
    return new_prefix + remainder


def ancestors_of(path: str) -> list[str]:
    """Every path from the root down to and including ``path``."""
    chain = [ROOT]
    current = ""
    for segment in split_path(path):
        current = f"{current}{SEPARATOR}{segment}"
        chain.append(current)
    return chain


def folder_of(note: Note) -> str:
    """The single folder a note is assigned to."""
    return normalize_path(note.folder)


def notes_in_folder(notes: Iterable[Note], path: str) -> list[Note]:
    """Notes directly assigned to ``path`` (not to its subfolders)."""
    target = normalize_path(path)
    return [note for note in notes if folder_of(note) == target]
