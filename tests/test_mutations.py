import asyncio

from clipshelf.backend import BackendError
from clipshelf.models import Clip, Tag
from clipshelf.mutations import MutationCoordinator
from clipshelf.store import LibraryStore


def _clip(clip_id: str, **overrides) -> Clip:
    values = {
        "id": clip_id,
        "filename": f"{clip_id}.mp4",
        "path": f"/videos/{clip_id}.mp4",
        "dir_source": "root",
        "recorded_at": 1_700_000_000.0,
        "file_size": 1000,
    }
    values.update(overrides)
    return Clip(**values)


class RecordingBackend:
    """Records calls; raises BackendError for operations listed in ``failing``."""

    def __init__(self, *failing: str) -> None:
        self.failing = set(failing)
        self.calls: list[tuple[str, tuple]] = []
        self.seen_during_call: list[Clip | None] = []
        self.store: LibraryStore | None = None
        self.gates: dict[str, asyncio.Event] = {}

    async def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        await asyncio.sleep(0)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.failing:
            raise BackendError(name, "disk full")

    async def toggle_star(self, clip_id: str, starred: bool) -> None:
        if self.store is not None:
            self.seen_during_call.append(self.store.clip(clip_id))
        await self._record("toggle_star", clip_id, starred)

    async def bulk_star(self, clip_ids: list[str], starred: bool) -> None:
        await self._record("bulk_star", clip_ids, starred)

    async def add_tag(self, clip_id: str, tag_id: str) -> None:
        await self._record("add_tag", clip_id, tag_id)

    async def remove_tag(self, clip_id: str, tag_id: str) -> None:
        await self._record("remove_tag", clip_id, tag_id)

    async def bulk_add_tag(self, clip_ids: list[str], tag_id: str) -> None:
        await self._record("bulk_add_tag", clip_ids, tag_id)

    async def bulk_remove_tag(self, clip_ids: list[str], tag_id: str) -> None:
        await self._record("bulk_remove_tag", clip_ids, tag_id)

    async def update_description(self, clip_id: str, description: str) -> None:
        await self._record("update_description", clip_id, description)

    async def delete_clips(self, clip_ids: list[str]) -> None:
        await self._record("delete_clips", clip_ids)

    async def create_tag(self, name: str, color: str) -> Tag:
        await self._record("create_tag", name, color)
        return Tag(id="t-new", name=name, color=color)


def _setup(clips: list[Clip], *failing: str, tags: list[Tag] | None = None):
    store = LibraryStore()
    store.load_snapshot(clips, tags or [], [], [])
    backend = RecordingBackend(*failing)
    backend.store = store
    return store, backend, MutationCoordinator(store, backend)


def test_toggle_star_is_applied_before_backend_call() -> None:
    store, backend, mutations = _setup([_clip("a")])
    result = asyncio.run(mutations.toggle_star("a"))
    assert result.ok
    assert backend.seen_during_call[0].starred is True
    assert store.clip("a").starred is True
    assert backend.calls == [("toggle_star", ("a", True))]


def test_toggle_star_reverts_on_failure() -> None:
    store, backend, mutations = _setup([_clip("a")], "toggle_star")
    result = asyncio.run(mutations.toggle_star("a"))
    assert not result.ok
    assert "disk full" in result.error
    assert store.clip("a").starred is False


def test_bulk_star_failure_reverts_every_clip() -> None:
    clips = [_clip(str(index), starred=index % 2 == 0) for index in range(5)]
    store, backend, mutations = _setup(clips, "bulk_star")
    result = asyncio.run(mutations.bulk_star([clip.id for clip in clips], True))
    assert not result.ok
    assert [clip.starred for clip in store.clips] == [True, False, True, False, True]
    assert len(backend.calls) == 1


def test_bulk_star_success_sends_one_call() -> None:
    clips = [_clip("a"), _clip("b"), _clip("c")]
    store, backend, mutations = _setup(clips)
    result = asyncio.run(mutations.bulk_star(["a", "c", "a", "missing"], True))
    assert result.ok
    assert backend.calls == [("bulk_star", (["a", "c"], True))]
    assert [clip.starred for clip in store.clips] == [True, False, True]


def test_add_and_remove_tag() -> None:
    store, backend, mutations = _setup([_clip("a", tags=("t1",))])
    assert asyncio.run(mutations.add_tag("a", "t1")).ok
    assert backend.calls == []
    assert asyncio.run(mutations.add_tag("a", "t2")).ok
    assert store.clip("a").tags == ("t1", "t2")
    assert asyncio.run(mutations.remove_tag("a", "t1")).ok
    assert store.clip("a").tags == ("t2",)


def test_bulk_remove_tag_failure_restores_tags() -> None:
    clips = [_clip("a", tags=("t1", "t2")), _clip("b", tags=("t1",))]
    store, backend, mutations = _setup(clips, "bulk_remove_tag")
    result = asyncio.run(mutations.bulk_remove_tag(["a", "b"], "t1"))
    assert not result.ok
    assert store.clip("a").tags == ("t1", "t2")
    assert store.clip("b").tags == ("t1",)


def test_update_description_reverts_on_failure() -> None:
    store, backend, mutations = _setup([_clip("a", description="old")], "update_description")
    result = asyncio.run(mutations.update_description("a", "new"))
    assert not result.ok
    assert store.clip("a").description == "old"


def test_delete_failure_restores_clips_in_place() -> None:
    clips = [_clip("a"), _clip("b"), _clip("c")]
    store, backend, mutations = _setup(clips, "delete_clips")
    result = asyncio.run(mutations.delete_clips(["b", "c"]))
    assert not result.ok
    assert [clip.id for clip in store.clips] == ["a", "b", "c"]


def test_delete_success_removes_clips() -> None:
    store, backend, mutations = _setup([_clip("a"), _clip("b")])
    assert asyncio.run(mutations.delete_clips(["a"])).ok
    assert [clip.id for clip in store.clips] == ["b"]


def test_create_tag_and_add_reuses_existing_name() -> None:
    tags = [Tag(id="t1", name="highlight", color="#fff")]
    store, backend, mutations = _setup([_clip("a")], tags=tags)
    assert asyncio.run(mutations.create_tag_and_add(["a"], "  Highlight ")).ok
    assert backend.calls == [("add_tag", ("a", "t1"))]


def test_create_tag_and_add_creates_missing_tag() -> None:
    store, backend, mutations = _setup([_clip("a"), _clip("b")])
    assert asyncio.run(mutations.create_tag_and_add(["a", "b"], "Clutch")).ok
    assert backend.calls[0] == ("create_tag", ("clutch", "#6366f1"))
    assert backend.calls[1] == ("bulk_add_tag", (["a", "b"], "t-new"))
    assert store.tag_by_name("clutch").id == "t-new"
    assert store.clip("b").tags == ("t-new",)


def test_create_tag_failure_leaves_clips_untouched() -> None:
    store, backend, mutations = _setup([_clip("a")], "create_tag")
    result = asyncio.run(mutations.create_tag_and_add(["a"], "new"))
    assert not result.ok
    assert store.clip("a").tags == ()
    assert store.tags == ()


def test_missing_clip_is_reported() -> None:
    store, backend, mutations = _setup([])
    result = asyncio.run(mutations.toggle_star("ghost"))
    assert not result.ok
    assert "ghost" in result.error


def test_failed_star_keeps_edits_that_landed_meanwhile() -> None:
    store, backend, mutations = _setup([_clip("a")], "toggle_star")

    async def scenario():
        backend.gates["toggle_star"] = asyncio.Event()
        star = asyncio.create_task(mutations.toggle_star("a"))
        await asyncio.sleep(0)
        assert (await mutations.add_tag("a", "t1")).ok
        assert (await mutations.update_description("a", "kept")).ok
        store.set_thumb("a", "/thumbs/a.jpg")
        backend.gates["toggle_star"].set()
        return await star

    result = asyncio.run(scenario())
    assert not result.ok
    clip = store.clip("a")
    assert clip.starred is False
    assert clip.tags == ("t1",)
    assert clip.description == "kept"
    assert clip.thumb_path == "/thumbs/a.jpg"


def test_failed_tag_add_survives_refetch() -> None:
    store, backend, mutations = _setup([_clip("a")], "add_tag")

    async def scenario():
        backend.gates["add_tag"] = asyncio.Event()
        pending = asyncio.create_task(mutations.add_tag("a", "t1"))
        await asyncio.sleep(0)
        store.load_snapshot([_clip("a", tags=("t9", "t1"), starred=True)], [], [], [])
        backend.gates["add_tag"].set()
        return await pending

    assert not asyncio.run(scenario()).ok
    clip = store.clip("a")
    assert clip.tags == ("t9",)
    assert clip.starred is True


def test_failure_does_not_undo_newer_edit() -> None:
    store, backend, mutations = _setup([_clip("a"), _clip("b")], "toggle_star")

    async def scenario():
        backend.gates["toggle_star"] = asyncio.Event()
        first = asyncio.create_task(mutations.set_star("a", True))
        await asyncio.sleep(0)
        assert (await mutations.bulk_star(["a", "b"], True)).ok
        backend.gates["toggle_star"].set()
        return await first

    assert not asyncio.run(scenario()).ok
    assert [clip.starred for clip in store.clips] == [True, True]


def test_repeated_tag_add_while_pending_reaches_backend() -> None:
    store, backend, mutations = _setup([_clip("a")])

    async def scenario():
        backend.gates["add_tag"] = asyncio.Event()
        first = asyncio.create_task(mutations.add_tag("a", "t1"))
        second = asyncio.create_task(mutations.add_tag("a", "t1"))
        await asyncio.sleep(0.01)
        sent = len(backend.calls)
        backend.gates["add_tag"].set()
        return sent, await first, await second

    sent, first, second = asyncio.run(scenario())
    assert sent == 2
    assert first.ok and second.ok
    assert store.clip("a").tags == ("t1",)
    assert asyncio.run(mutations.add_tag("a", "t1")).ok
    assert len(backend.calls) == 2
