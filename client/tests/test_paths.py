"""Tests for folder path arithmetic."""
import pytest

from notes_client.core.errors import ErrorCode, ValidationError
from notes_client.core.models.note import Note
from notes_client.core.paths import (
    ROOT,
    ancestors_of,
    is_descendant,
    is_within,
    join_path,
    name_of,
    normalize_path,
    notes_in_folder,
    parent_of,
    rebase_path,
    split_path,
    validate_name,
)


class TestNormalizePath:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, "/"),
            ("", "/"),
            ("/", "/"),
            ("work", "/work"),
            ("/work/", "/work"),
            ("//work///2024//", "/work/2024"),
            (" /work / notes ", "/work/notes"),
        ],
    )
    def test_canonical_forms(self, raw, expected):
        assert normalize_path(raw) == expected

    @pytest.mark.parametrize("raw", ["/work/../secrets", "./work", "/a/./b"])
    def test_relative_segments_rejected(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            normalize_path(raw)
        assert exc_info.value.code is ErrorCode.INVALID_PATH

    def test_idempotent(self):
        once = normalize_path("//a//b/")
        assert normalize_path(once) == once


class TestParentAndName:
    def test_root_has_no_parent(self):
        assert parent_of("/") is None

    def test_depth_one_parent_is_root(self):
        assert parent_of("/Work") == ROOT

    def test_nested_parent(self):
        assert parent_of("/Work/Projects/2024") == "/Work/Projects"

    def test_name_of(self):
        assert name_of("/Work/Projects") == "Projects"
        assert name_of("/") == ""

    def test_split_path(self):
        assert split_path("/") == []
        assert split_path("/a/b") == ["a", "b"]

    def test_ancestors_include_root_and_self(self):
        assert ancestors_of("/a/b/c") == ["/", "/a", "/a/b", "/a/b/c"]
        assert ancestors_of("/") == ["/"]


class TestNames:
    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_name_rejected(self, name):
        with pytest.raises(ValidationError) as exc_info:
            validate_name(name)
        assert exc_info.value.field == "name"

    @pytest.mark.parametrize("name", ["a/b", ".", ".."])
    def test_invalid_name_rejected(self, name):
        with pytest.raises(ValidationError):
            validate_name(name)

    def test_name_trimmed(self):
        assert validate_name("  Projects ") == "Projects"

    def test_join_path(self):
        assert join_path("/", "Work") == "/Work"
        assert join_path("/Work", "Projects") == "/Work/Projects"


class TestAncestry:
    def test_descendant_is_strict(self):
        assert is_descendant("/a/b", "/a")
        assert not is_descendant("/a", "/a")
        assert is_within("/a", "/a")

    def test_sibling_with_shared_prefix_is_not_descendant(self):
        assert not is_descendant("/ab", "/a")
        assert not is_within("/ab/c", "/a")

    def test_everything_is_below_root(self):
        assert is_descendant("/a", "/")
        assert not is_descendant("/", "/")


class TestRebase:
    def test_rebase_self_and_descendants(self):
        assert rebase_path("/Work", "/Work", "/Job") == "/Job"
        assert rebase_path("/Work/Projects/2024", "/Work", "/Job") == "/Job/Projects/2024"

    def test_outside_paths_unchanged(self):
        assert rebase_path("/Workshop", "/Work", "/Job") == "/Workshop"
        assert rebase_path("/Other", "/Work", "/Job") == "/Other"

    def test_rebase_to_root_level(self):
        assert rebase_path("/Work/Projects/2024", "/Work/Projects", "/Projects") == "/Projects/2024"


def test_notes_in_folder_excludes_subfolders():
    direct = Note(id="1", title="Direct", folder="/Work")
    nested = Note(id="2", title="Nested", folder="/Work/Projects")
    elsewhere = Note(id="3", title="Root note")

    assert notes_in_folder([direct, nested, elsewhere], "/Work/") == [direct]
    assert notes_in_folder([direct, nested, elsewhere], "/") == [elsewhere]
