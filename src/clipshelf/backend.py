"""Contract with the library backend and its HTTP implementation.

The backend owns scanning, persistence, thumbnails, transcoding and the
embedding index. Every operation is an RPC: ``POST /rpc/<operation>`` with a
JSON object of camelCase arguments, answered with a JSON value. Push events
arrive as newline-delimited JSON objects on ``GET /events``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Callable, Protocol, TypeVar

import httpx

from .models import (
    BackendEvent,
    Clip,
    Collection,
    SearchResult,
    SmartFolder,
    Tag,
    clip_from_dict,
    collection_from_dict,
    event_from_dict,
    search_result_from_dict,
    smart_folder_from_dict,
    tag_from_dict,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackendError(RuntimeError):
    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message


class Backend(Protocol):
    async def scan_clips(self) -> list[Clip]: ...

    async def get_clips(self) -> list[Clip]: ...

    async def get_tags(self) -> list[Tag]: ...

    async def create_tag(self, name: str, color: str) -> Tag: ...

    async def add_tag(self, clip_id: str, tag_id: str) -> None: ...

    async def remove_tag(self, clip_id: str, tag_id: str) -> None: ...

    async def bulk_add_tag(self, clip_ids: list[str], tag_id: str) -> None: ...

    async def bulk_remove_tag(self, clip_ids: list[str], tag_id: str) -> None: ...

    async def toggle_star(self, clip_id: str, starred: bool) -> None: ...

    async def bulk_star(self, clip_ids: list[str], starred: bool) -> None: ...

    async def update_description(self, clip_id: str, description: str) -> None: ...

    async def delete_clips(self, clip_ids: list[str]) -> None: ...

    async def get_collections(self) -> list[Collection]: ...

    async def create_collection(self, name: str, color: str) -> Collection: ...

    async def delete_collection(self, collection_id: str) -> None: ...

    async def add_to_collection(self, collection_id: str, clip_ids: list[str]) -> None: ...

    async def remove_from_collection(self, collection_id: str, clip_ids: list[str]) -> None: ...

    async def get_collection_clips(self, collection_id: str) -> list[str]: ...

    async def get_smart_folders(self) -> list[SmartFolder]: ...

    async def create_smart_folder(self, name: str, color: str, rules: str) -> SmartFolder: ...

    async def update_smart_folder(
        self, folder_id: str, name: str, color: str, rules: str
    ) -> None: ...

    async def delete_smart_folder(self, folder_id: str) -> None: ...

    async def semantic_search(self, query: str, limit: int) -> list[SearchResult]: ...

    async def get_waveform(self, clip_id: str, video_path: str) -> list[float]: ...

    async def trim_clip(
        self, input_path: str, output_path: str, start: float, end: float, precise: bool
    ) -> None: ...

    async def export_gif(
        self,
        input_path: str,
        output_path: str,
        start: float,
        end: float,
        width: int,
        fps: int,
    ) -> None: ...

    async def compress_clip(
        self, input_path: str, output_path: str, quality: str, max_width: int | None
    ) -> None: ...

    async def open_in_explorer(self, path: str) -> None: ...

    async def get_settings(self) -> list[str]: ...

    async def set_watch_dirs(self, dirs: list[str]) -> None: ...

    async def check_ffmpeg(self) -> bool: ...

    async def gen_all_thumbs(self) -> None: ...

    def events(self) -> AsyncIterator[BackendEvent]: ...


class HttpBackend:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def scan_clips(self) -> list[Clip]:
        return _parse_list("scan_clips", await self._call("scan_clips"), clip_from_dict)

    async def get_clips(self) -> list[Clip]:
        return _parse_list("get_clips", await self._call("get_clips"), clip_from_dict)

    async def get_tags(self) -> list[Tag]:
        return _parse_list("get_tags", await self._call("get_tags"), tag_from_dict)

    async def create_tag(self, name: str, color: str) -> Tag:
        data = await self._call("create_tag", name=name, color=color)
        return _parse_one("create_tag", data, tag_from_dict)

    async def add_tag(self, clip_id: str, tag_id: str) -> None:
        await self._call("add_tag", clipId=clip_id, tagId=tag_id)

    async def remove_tag(self, clip_id: str, tag_id: str) -> None:
        await self._call("remove_tag", clipId=clip_id, tagId=tag_id)

    async def bulk_add_tag(self, clip_ids: list[str], tag_id: str) -> None:
        await self._call("bulk_add_tag", clipIds=clip_ids, tagId=tag_id)

    async def bulk_remove_tag(self, clip_ids: list[str], tag_id: str) -> None:
        await self._call("bulk_remove_tag", clipIds=clip_ids, tagId=tag_id)

    async def toggle_star(self, clip_id: str, starred: bool) -> None:
        await self._call("toggle_star", clipId=clip_id, starred=starred)

    async def bulk_star(self, clip_ids: list[str], starred: bool) -> None:
        await self._call("bulk_star", clipIds=clip_ids, starred=starred)

    async def update_description(self, clip_id: str, description: str) -> None:
        await self._call("update_description", clipId=clip_id, desc=description)

    async def delete_clips(self, clip_ids: list[str]) -> None:
        await self._call("delete_clips", ids=clip_ids)

    async def get_collections(self) -> list[Collection]:
        data = await self._call("get_collections")
        return _parse_list("get_collections", data, collection_from_dict)

    async def create_collection(self, name: str, color: str) -> Collection:
        data = await self._call("create_collection", name=name, color=color)
        return _parse_one("create_collection", data, collection_from_dict)

    async def delete_collection(self, collection_id: str) -> None:
        await self._call("delete_collection", id=collection_id)

    async def add_to_collection(self, collection_id: str, clip_ids: list[str]) -> None:
        await self._call("add_to_collection", collectionId=collection_id, clipIds=clip_ids)

    async def remove_from_collection(self, collection_id: str, clip_ids: list[str]) -> None:
        await self._call(
            "remove_from_collection", collectionId=collection_id, clipIds=clip_ids
        )

    async def get_collection_clips(self, collection_id: str) -> list[str]:
        data = await self._call("get_collection_clips", collectionId=collection_id)
        if not isinstance(data, list):
            raise BackendError("get_collection_clips", "expected a list of clip ids")
        return [item for item in data if isinstance(item, str)]

    async def get_smart_folders(self) -> list[SmartFolder]:
        data = await self._call("get_smart_folders")
        return _parse_list("get_smart_folders", data, smart_folder_from_dict)

    async def create_smart_folder(self, name: str, color: str, rules: str) -> SmartFolder:
        data = await self._call("create_smart_folder", name=name, color=color, rules=rules)
        return _parse_one("create_smart_folder", data, smart_folder_from_dict)

    async def update_smart_folder(
        self, folder_id: str, name: str, color: str, rules: str
    ) -> None:
        await self._call(
            "update_smart_folder", id=folder_id, name=name, color=color, rules=rules
        )

    async def delete_smart_folder(self, folder_id: str) -> None:
        await self._call("delete_smart_folder", id=folder_id)

    async def semantic_search(self, query: str, limit: int) -> list[SearchResult]:
        data = await self._call("semantic_search", query=query, limit=limit)
        return _parse_list("semantic_search", data, search_result_from_dict)

    async def get_waveform(self, clip_id: str, video_path: str) -> list[float]:
        data = await self._call("get_waveform", clipId=clip_id, videoPath=video_path)
        if not isinstance(data, list):
            raise BackendError("get_waveform", "expected a list of peaks")
        return [float(value) for value in data if isinstance(value, (int, float))]

    async def trim_clip(
        self, input_path: str, output_path: str, start: float, end: float, precise: bool
    ) -> None:
        await self._call(
            "trim_clip",
            input=input_path,
            output=output_path,
            start=start,
            end=end,
            precise=precise,
        )

    async def export_gif(
        self,
        input_path: str,
        output_path: str,
        start: float,
        end: float,
        width: int,
        fps: int,
    ) -> None:
        await self._call(
            "export_gif",
            input=input_path,
            output=output_path,
            start=start,
            end=end,
            width=width,
            fps=fps,
        )

    async def compress_clip(
        self, input_path: str, output_path: str, quality: str, max_width: int | None
    ) -> None:
        await self._call(
            "compress_clip",
            input=input_path,
            output=output_path,
            quality=quality,
            maxWidth=max_width,
        )

    async def open_in_explorer(self, path: str) -> None:
        await self._call("open_in_explorer", path=path)

    async def get_settings(self) -> list[str]:
        data = await self._call("get_settings")
        dirs = data.get("watchDirs") if isinstance(data, dict) else None
        if not isinstance(dirs, list):
            raise BackendError("get_settings", "missing watchDirs")
        return [item for item in dirs if isinstance(item, str)]

    async def set_watch_dirs(self, dirs: list[str]) -> None:
        await self._call("set_watch_dirs", dirs=dirs)

    async def check_ffmpeg(self) -> bool:
        return (await self._call("check_ffmpeg")) is True

    async def gen_all_thumbs(self) -> None:
        await self._call("gen_all_thumbs")

    async def events(self) -> AsyncIterator[BackendEvent]:
        try:
            async with self._client.stream("GET", "/events", timeout=None) as response:
                if response.status_code >= 400:
                    raise BackendError("events", f"HTTP {response.status_code}")
                async for line in response.aiter_lines():
                    event = _parse_event_line(line)
                    if event is not None:
                        yield event
        except httpx.HTTPError as exc:
            raise BackendError("events", str(exc) or exc.__class__.__name__) from exc

    async def _call(self, operation: str, **arguments: Any) -> Any:
        try:
            response = await self._client.post(f"/rpc/{operation}", json=arguments)
        except httpx.HTTPError as exc:
            raise BackendError(operation, str(exc) or exc.__class__.__name__) from exc
        if response.status_code >= 400:
            raise BackendError(operation, _summarize_error(response))
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise BackendError(operation, "response is not valid JSON") from exc


def _parse_event_line(line: str) -> BackendEvent | None:
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Ignoring malformed event line: %s", line)
        return None
    if not isinstance(data, dict):
        return None
    event = event_from_dict(data)
    if event is None:
        logger.debug("Ignoring unknown event: %s", data.get("event"))
    return event


def _parse_list(operation: str, data: Any, parse: Callable[[dict[str, Any]], T]) -> list[T]:
    if not isinstance(data, list):
        raise BackendError(operation, "expected a list")
    items: list[T] = []
    for raw in data:
        if not isinstance(raw, dict):
            logger.warning("%s: skipping non-object record", operation)
            continue
        try:
            items.append(parse(raw))
        except ValueError as exc:
            logger.warning("%s: skipping record: %s", operation, exc)
    return items


def _parse_one(operation: str, data: Any, parse: Callable[[dict[str, Any]], T]) -> T:
    if not isinstance(data, dict):
        raise BackendError(operation, "expected an object")
    try:
        return parse(data)
    except ValueError as exc:
        raise BackendError(operation, str(exc)) from exc


def _summarize_error(response: httpx.Response) -> str:
    message = ""
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        message = data["error"].strip()
    if not message:
        message = response.text.strip()
    if not message:
        return f"HTTP {response.status_code}"
    return message.splitlines()[-1]
