"""Tests for query composition and descriptor semantics."""
from datetime import UTC, datetime

import pytest

from notes_client.core.models.note import Note
from notes_client.core.query import (
    QueryDescriptor,
    QueryInputs,
    SortField,
    SortOrder,
    ViewKind,
    compose,
    default_order,
    recompose,
)


def make_note(note_id, title="Note", **fields):
    return Note(id=note_id, title=title, **fields)


class TestCompose:
    def test_defaults(self):
        descriptor = compose()
        assert descriptor.view_kind is ViewKind.ALL
        assert descriptor.sort_field is SortField.UPDATED_AT
        assert descriptor.sort_order is SortOrder.DESC
        assert descriptor.tag_filter == frozenset()
        assert descriptor.search_text == ""

    def test_title_sort_defaults_ascending(self):
        assert compose(sort_field=SortField.TITLE).sort_order is SortOrder.ASC
        assert compose(sort_field="createdAt").sort_order is SortOrder.DESC

    def test_explicit_order_wins(self):
        descriptor = compose(sort_field=SortField.TITLE, sort_order=SortOrder.DESC)
        assert descriptor.sort_order is SortOrder.DESC

    def test_same_intents_compare_and_hash_equal(self):
        a = compose(view_kind="byFolder", folder_path="/Work/", tags={"b", "a"}, search_text=" plan ")
        b = compose(QueryInputs(view_kind=ViewKind.BY_FOLDER, folder_path="Work", tags=frozenset({"a", "b"}), search_text="plan"))
        assert a == b
        assert hash(a) == hash(b)

    def test_selection_without_matching_view_is_dropped(self):
        descriptor = compose(view_kind=ViewKind.FAVORITES, category="Work", folder_path="/Work")
        assert descriptor.category is None
        assert descriptor.folder_path is None

    def test_category_view_without_category_falls_back_to_all(self):
        assert compose(view_kind=ViewKind.BY_CATEGORY).view_kind is ViewKind.ALL
        assert compose(view_kind=ViewKind.BY_CATEGORY, category="  ").view_kind is ViewKind.ALL

    def test_folder_view_without_folder_falls_back_to_all(self):
        assert compose(view_kind=ViewKind.BY_FOLDER).view_kind is ViewKind.ALL

    def test_blank_tags_dropped(self):
        descriptor = compose(tags={" work ", "", "  "})
        assert descriptor.tag_filter == frozenset({"work"})

    def test_descriptor_is_frozen(self):
        descriptor = compose()
        with pytest.raises(Exception):
            descriptor.search_text = "x"


class TestRecompose:
    def test_changing_sort_field_resets_order(self):
        base = compose(sort_field=SortField.UPDATED_AT)
        changed = recompose(base, sort_field=SortField.TITLE)
        assert changed.sort_order is SortOrder.ASC

    def test_keeps_untouched_fields(self):
        base = compose(view_kind=ViewKind.BY_CATEGORY, category="Work", tags={"x"})
        changed = recompose(base, search_text="plan")
        assert changed.category == "Work"
        assert changed.tag_filter == frozenset({"x"})
        assert changed.search_text == "plan"

    def test_switching_view_drops_old_selection(self):
        base = compose(view_kind=ViewKind.BY_FOLDER, folder_path="/Work")
        changed = recompose(base, view_kind=ViewKind.ARCHIVED)
        assert changed.folder_path is None


class TestParams:
    def test_params_are_canonical(self):
        descriptor = compose(view_kind=ViewKind.BY_CATEGORY, category="Work", tags={"b", "a"}, search_text="plan")
        assert descriptor.to_params() == {
            "sort": "updatedAt",
            "order": "desc",
            "tags": "a,b",
            "search": "plan",
            "category": "Work",
        }

    def test_empty_filters_omitted(self):
        assert compose(sort_field=SortField.TITLE).to_params() == {"sort": "title", "order": "asc"}


class TestAdmits:
    def test_tag_filter_requires_every_tag(self):
        descriptor = compose(tags={"a", "b"})
        assert descriptor.admits(make_note("1", tags=["a", "b", "c"]))
        assert not descriptor.admits(make_note("2", tags=["a"]))

    def test_search_is_case_insensitive_over_title_and_content(self):
        descriptor = compose(search_text="PLAN")
        assert descriptor.admits(make_note("1", title="Quarterly plan"))
        assert descriptor.admits(make_note("2", title="Other", content="the plan is"))
        assert not descriptor.admits(make_note("3", title="Other", content="nothing"))

    def test_search_and_tags_combine(self):
        descriptor = compose(search_text="plan", tags={"work"})
        assert descriptor.admits(make_note("1", title="Plan", tags=["work"]))
        assert not descriptor.admits(make_note("2", title="Plan", tags=["home"]))
        assert not descriptor.admits(make_note("3", title="Notes", tags=["work"]))

    def test_archived_only_in_archive_view(self):
        archived = make_note("1", is_archived=True, is_favorite=True)
        assert not compose().admits(archived)
        assert not compose(view_kind=ViewKind.FAVORITES).admits(archived)
        assert compose(view_kind=ViewKind.ARCHIVED).admits(archived)
        assert not compose(view_kind=ViewKind.ARCHIVED).admits(make_note("2"))

    def test_folder_view_is_direct_membership(self):
        descriptor = compose(view_kind=ViewKind.BY_FOLDER, folder_path="/Work")
        assert descriptor.admits(make_note("1", folder="/Work"))
        assert not descriptor.admits(make_note("2", folder="/Work/Projects"))

    def test_category_view(self):
        descriptor = compose(view_kind=ViewKind.BY_CATEGORY, category="Work")
        assert descriptor.admits(make_note("1", category="Work"))
        assert not descriptor.admits(make_note("2", category="Home"))


class TestOrdering:
    def test_title_ascending_is_case_insensitive(self):
        notes = [make_note("1", title="banana"), make_note("2", title="Apple"), make_note("3", title="cherry")]
        ordered = compose(sort_field=SortField.TITLE).order(notes)
        assert [n.title for n in ordered] == ["Apple", "banana", "cherry"]

    def test_updated_desc_newest_first(self):
        older = make_note("1", updated_at=datetime(2024, 1, 1, tzinfo=UTC))
        newer = make_note("2", updated_at=datetime(2024, 6, 1, tzinfo=UTC))
        assert compose().order([older, newer]) == [newer, older]

    def test_default_order(self):
        assert default_order(SortField.TITLE) is SortOrder.ASC
        assert default_order(SortField.UPDATED_AT) is SortOrder.DESC


def test_touches_folder():
    descriptor = QueryDescriptor(view_kind=ViewKind.BY_FOLDER, folder_path="/Work/Projects")
    assert descriptor.touches_folder("/Work")
    assert descriptor.touches_folder("/Work/Projects")
    assert not descriptor.touches_folder("/Work/Projects/2024")
    assert not compose().touches_folder("/")
