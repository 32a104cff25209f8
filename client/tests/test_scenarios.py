"""End-to-end workflows through a wired workspace."""
import pytest

from notes_client.core.query import SortField, ViewKind, compose, recompose
from notes_client.main import create_workspace
from tests.fakes import settle


@pytest.fixture
async def workspace(session, store, timers):
    workspace = create_workspace(session, store=store, timers=timers)
    yield workspace
    await workspace.aclose()


@pytest.mark.anyio
async def test_nested_folder_lifecycle(workspace, store):
    await workspace.folders.load_children("/")
    await workspace.mutations.create_folder("/", "Work")
    await workspace.mutations.create_folder("/Work", "Projects")
    await workspace.mutations.create_folder("/Work/Projects", "2024")
    note = await workspace.mutations.create_note(
        {"title": "Roadmap", "content": "q1", "category": "Work", "folder": "/Work/Projects/2024"}
    )

    view = workspace.mount("folder", view_kind=ViewKind.BY_FOLDER, folder_path="/Work/Projects/2024")
    await workspace.scheduler.refresh_now("folder")
    assert [n.id for n in view.notes] == [note.id]
    assert list(workspace.folders.breadcrumbs("/Work/Projects/2024")) == [
        ("Root", "/"),
        ("Work", "/Work"),
        ("Projects", "/Work/Projects"),
        ("2024", "/Work/Projects/2024"),
    ]

    # Renaming an ancestor carries the open folder view along
    await workspace.mutations.rename_folder("/Work", "Job")
    await workspace.scheduler.refresh_now("folder")
    assert workspace.folders.paths() == ["/Job", "/Job/Projects", "/Job/Projects/2024"]
    assert view.descriptor.folder_path == "/Job/Projects/2024"
    assert [n.folder for n in view.notes] == ["/Job/Projects/2024"]

    await workspace.mutations.move_folder("/Job/Projects", "/")
    await workspace.scheduler.refresh_now("folder")
    assert workspace.folders.paths() == ["/Job", "/Projects", "/Projects/2024"]
    assert view.descriptor.folder_path == "/Projects/2024"
    assert store.notes[note.id].folder == "/Projects/2024"

    await workspace.mutations.delete_folder("/Projects/2024")
    assert store.notes[note.id].folder == "/"
    assert "/Projects/2024" not in workspace.folders


@pytest.mark.anyio
async def test_search_with_tag_filter(workspace, store):
    store.add_note(title="Plan the sprint", tags=["work", "q1"])
    store.add_note(title="Plan the garden", tags=["home"])
    store.add_note(title="Standup notes", content="no plan today", tags=["work"])
    store.add_note(title="Retro", tags=["work"])

    view = workspace.mount("all", sort_field=SortField.TITLE)
    await workspace.scheduler.refresh_now("all")
    assert len(view.notes) == 4

    workspace.scheduler.set_descriptor("all", recompose(view.descriptor, search_text="plan", tags={"work"}))
    await workspace.scheduler.refresh_now("all")
    assert [n.title for n in view.notes] == ["Plan the sprint", "Standup notes"]

    workspace.scheduler.set_descriptor("all", recompose(view.descriptor, tags={"work", "q1"}))
    await workspace.scheduler.refresh_now("all")
    assert [n.title for n in view.notes] == ["Plan the sprint"]


@pytest.mark.anyio
async def test_archive_moves_note_between_views(workspace, store):
    note = store.add_note(title="Old idea")
    active = workspace.mount("all")
    archive = workspace.mount("archive", compose(view_kind=ViewKind.ARCHIVED))
    await workspace.scheduler.refresh_now("all")
    await workspace.scheduler.refresh_now("archive")

    await workspace.mutations.toggle_archive(note.id, view_id="all")
    assert active.find(note.id) is None
    assert archive.find(note.id) is None

    # Other views converge on their next refresh
    await workspace.scheduler.refresh_now("archive")
    assert archive.find(note.id) is not None


@pytest.mark.anyio
async def test_closing_workspace_stops_polling(session, store, timers):
    workspace = create_workspace(session, store=store, timers=timers)
    view = workspace.mount("all")
    await workspace.scheduler.refresh_now("all")

    await workspace.aclose()
    timers.advance(300.0)
    await settle()

    assert not view.mounted
    assert store.closed
    assert len(store.calls_to("list_notes")) == 1


@pytest.mark.anyio
async def test_created_folder_is_listed_under_root(workspace):
    await workspace.folders.load_children("/")
    await workspace.mutations.create_folder("/", "Work")

    listing = workspace.folders.get_children("/")
    assert [(f.path, f.name) for f in listing.folders] == [("/Work", "Work")]


@pytest.mark.anyio
async def test_rename_then_folder_view_finds_note(workspace, store):
    store.add_folders("/Work/2024")
    note = store.add_note(title="Filed", folder="/Work/2024")
    await workspace.folders.load_children("/")
    await workspace.folders.load_children("/Work")

    await workspace.mutations.rename_folder("/Work", "Projects")
    assert workspace.folders.paths() == ["/Projects", "/Projects/2024"]

    view = workspace.mount("folder", view_kind=ViewKind.BY_FOLDER, folder_path="/Projects/2024")
    await workspace.scheduler.refresh_now("folder")
    assert [n.id for n in view.notes] == [note.id]


@pytest.mark.anyio
async def test_deleted_folder_sends_direct_note_to_root(workspace, store):
    store.add_folders("/Work")
    note = store.add_note(title="Filed", folder="/Work")
    await workspace.folders.load_children("/")
    view = workspace.mount("all")
    await workspace.scheduler.refresh_now("all")

    await workspace.mutations.delete_folder("/Work")
    await workspace.scheduler.refresh_now("all")
    assert view.find(note.id).folder == "/"


@pytest.mark.anyio
async def test_search_roadmap_tagged_urgent(workspace, store):
    match = store.add_note(title="Q3 roadmap", tags=["urgent", "work"])
    store.add_note(title="Roadmap draft", tags=["later"])
    store.add_note(title="Fix the build", content="not on the roadmap", tags=["later"])
    store.add_note(title="Pay invoices", tags=["urgent"])

    view = workspace.mount("search", search_text="roadmap", tags={"urgent"})
    await workspace.scheduler.refresh_now("search")
    assert [n.id for n in view.notes] == [match.id]


@pytest.mark.anyio
async def test_refresh_fetches_every_mounted_view(workspace, store):
    active = workspace.mount("all")
    archive = workspace.mount("archive", compose(view_kind=ViewKind.ARCHIVED))
    await workspace.scheduler.refresh_now("all")
    await workspace.scheduler.refresh_now("archive")
    calls = len(store.calls_to("list_notes"))

    note = store.add_note(title="Synced elsewhere")
    states = await workspace.refresh()

    assert {s.view_id for s in states} == {"all", "archive"}
    assert active.find(note.id) is not None
    assert archive.find(note.id) is None
    assert len(store.calls_to("list_notes")) == calls + 2
