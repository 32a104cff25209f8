"""Tests for records, errors and settings."""
import pytest
from pydantic import ValidationError as PydanticValidationError

from notes_client.config import Settings
from notes_client.core.errors import (
    AuthError,
    ConflictError,
    ErrorCode,
    NotesError,
    RemoteError,
    ValidationError,
)
from notes_client.core.models.folder import Folder
from notes_client.core.models.note import Note, NoteChanges, NoteDraft
from notes_client.core.repositories.implementations.http.note_store import HttpNoteStore
from notes_client.core.repositories.implementations.supabase.note_store import SupabaseNoteStore
from notes_client.core.schemas.session import Session
from notes_client.dependencies import get_note_store


class TestNote:
    def test_wire_record(self):
        note = Note.model_validate(
            {"_id": 42, "title": " Plan ", "content": None, "tags": ["a", " a", "b", ""], "category": "", "folder": "work//"}
        )
        assert note.id == "42"
        assert note.title == "Plan"
        assert note.content == ""
        assert note.tags == ["a", "b"]
        assert note.category == "Uncategorized"
        assert note.folder == "/work"
        assert note.tag_set == frozenset({"a", "b"})

    def test_title_required(self):
        with pytest.raises(PydanticValidationError):
            Note(id="1", title="   ")

    def test_changes_only_dump_set_fields(self):
        changes = NoteChanges(is_favorite=False, folder="")
        assert changes.to_payload() == {"is_favorite": False, "folder": "/"}
        assert changes.to_payload(by_alias=True) == {"isFavorite": False, "folder": "/"}

    def test_changes_apply_locally(self):
        note = Note(id="1", title="Old")
        assert NoteChanges(title="New").apply_to(note).title == "New"

    def test_draft_rejects_unknown_fields(self):
        with pytest.raises(PydanticValidationError):
            NoteDraft(title="t", content="c", category="k", colour="red")


class TestFolder:
    def test_name_derived_from_path(self):
        folder = Folder.model_validate({"path": "Work/Projects/", "name": "ignored"})
        assert folder.path == "/Work/Projects"
        assert folder.name == "Projects"
        assert folder.parent_path == "/Work"

    def test_root_is_not_a_record(self):
        with pytest.raises(PydanticValidationError):
            Folder.at("/")


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(ConflictError, ValidationError)
        assert issubclass(ValidationError, ValueError)
        assert issubclass(AuthError, NotesError)

    def test_to_dict(self):
        err = ValidationError("Folder name is required", field="name")
        assert err.to_dict() == {
            "error": "ValidationError",
            "code": ErrorCode.VALIDATION_FAILED.value,
            "code_name": "VALIDATION_FAILED",
            "message": "Folder name is required",
            "details": {"field": "name"},
        }
        assert str(err) == "[VALIDATION_FAILED] Folder name is required (field=name)"

    def test_remote_error_keeps_status(self):
        err = RemoteError("Something went wrong", status_code=503)
        assert err.code is ErrorCode.REMOTE_FAILED
        assert err.details == {"status_code": 503}


def test_session_headers_and_callback():
    seen = []
    session = Session(access_token="abc", on_auth_error=seen.append)
    assert session.auth_headers() == {"Authorization": "Bearer abc"}
    assert Session().auth_headers() == {}

    err = AuthError("expired")
    session.report_auth_error(err)
    assert seen == [err]
    assert "on_auth_error" not in session.model_dump()


class TestSettings:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("NOTES_POLL_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("NOTES_BACKEND", "supabase")
        config = Settings(_env_file=None)
        assert config.poll_interval_seconds == 5.0
        assert config.backend == "supabase"

    def test_store_selection(self):
        assert isinstance(get_note_store(Settings(_env_file=None, backend="http")), HttpNoteStore)
        assert isinstance(get_note_store(Settings(_env_file=None, backend="supabase")), SupabaseNoteStore)
