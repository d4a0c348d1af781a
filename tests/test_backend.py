import asyncio
import json

import httpx
import pytest

from clipshelf.backend import BackendError, HttpBackend
from clipshelf.models import LibraryChanged, ScanPhase, ScanProgress, SearchResult, ThumbReady


def _backend(handler) -> HttpBackend:
    return HttpBackend("http://backend.test", transport=httpx.MockTransport(handler))


def _run(backend: HttpBackend, coro):
    async def scenario():
        try:
            return await coro
        finally:
            await backend.aclose()

    return asyncio.run(scenario())


def test_rpc_posts_camel_case_arguments() -> None:
    seen: list[tuple[str, str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200)

    backend = _backend(handler)
    _run(backend, backend.bulk_star(["a", "b"], True))
    assert seen == [("POST", "/rpc/bulk_star", {"clipIds": ["a", "b"], "starred": True})]


def test_update_description_uses_desc_argument() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=None)

    backend = _backend(handler)
    _run(backend, backend.update_description("c1", "nice shot"))
    assert bodies == [{"clipId": "c1", "desc": "nice shot"}]


def test_get_clips_skips_malformed_records() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[
                {
                    "id": "c1",
                    "filename": "clip.mp4",
                    "path": "/v/clip.mp4",
                    "dirSource": "captures",
                    "recordedAt": 1700000000,
                    "fileSize": 2048,
                    "durationSecs": 12.5,
                    "tags": ["t1", 7],
                    "starred": True,
                },
                {"filename": "no-id.mp4"},
                "garbage",
            ],
        )

    backend = _backend(handler)
    clips = _run(backend, backend.get_clips())
    assert [clip.id for clip in clips] == ["c1"]
    assert clips[0].dir_source == "captures"
    assert clips[0].tags == ("t1",)
    assert clips[0].starred is True
    assert clips[0].duration_secs == 12.5


def test_error_status_raises_backend_error_with_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "database is locked"})

    backend = _backend(handler)
    with pytest.raises(BackendError) as excinfo:
        _run(backend, backend.toggle_star("c1", True))
    assert excinfo.value.operation == "toggle_star"
    assert str(excinfo.value) == "toggle_star: database is locked"


def test_error_text_uses_last_line() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, text="Traceback\n  ...\nValueError: bad tag")

    backend = _backend(handler)
    with pytest.raises(BackendError, match="ValueError: bad tag"):
        _run(backend, backend.add_tag("c1", "t1"))


def test_transport_failure_raises_backend_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend = _backend(handler)
    with pytest.raises(BackendError, match="connection refused"):
        _run(backend, backend.get_tags())


def test_invalid_json_raises_backend_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>")

    backend = _backend(handler)
    with pytest.raises(BackendError, match="not valid JSON"):
        _run(backend, backend.get_tags())


def test_semantic_search_and_settings() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/rpc/semantic_search":
            assert json.loads(request.content) == {"query": "sunset", "limit": 50}
            return httpx.Response(200, json=[{"clipId": "c2", "score": 0.8}, {"clipId": "x"}])
        return httpx.Response(200, json={"watchDirs": ["/a", 3, "/b"]})

    backend = _backend(handler)

    async def scenario():
        try:
            return await backend.semantic_search("sunset", 50), await backend.get_settings()
        finally:
            await backend.aclose()

    results, dirs = asyncio.run(scenario())
    assert results == [SearchResult("c2", 0.8)]
    assert dirs == ["/a", "/b"]


def test_check_ffmpeg_requires_true() -> None:
    answers = iter([True, "yes"])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=next(answers))

    backend = _backend(handler)

    async def scenario():
        try:
            return await backend.check_ffmpeg(), await backend.check_ffmpeg()
        finally:
            await backend.aclose()

    assert asyncio.run(scenario()) == (True, False)


def test_events_stream_parses_known_lines() -> None:
    lines = [
        {"event": "scan-progress", "payload": {"done": 3, "total": 10, "phase": "scanning"}},
        {"event": "thumb-ready", "payload": {"clipId": "c1", "thumbPath": "/t/c1.jpg"}},
        {"event": "mystery", "payload": {}},
        {"event": "clips-updated"},
    ]
    body = "\n".join(json.dumps(line) for line in lines) + "\nnot json\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/events"
        return httpx.Response(200, content=body.encode())

    backend = _backend(handler)

    async def scenario():
        try:
            return [event async for event in backend.events()]
        finally:
            await backend.aclose()

    events = asyncio.run(scenario())
    assert events == [
        ScanProgress(done=3, total=10, phase=ScanPhase.SCANNING),
        ThumbReady(clip_id="c1", path="/t/c1.jpg"),
        LibraryChanged(),
    ]


def test_events_error_status_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    backend = _backend(handler)

    async def scenario():
        try:
            return [event async for event in backend.events()]
        finally:
            await backend.aclose()

    with pytest.raises(BackendError, match="HTTP 503"):
        asyncio.run(scenario())
