"""Realtime Database REST streaming source.

Each subscription runs one long-lived ``text/event-stream`` request on the
running asyncio loop. The server sends ``put``/``patch`` events relative
to the subscribed path; they are applied to a local tree and the complete
value is pushed to the subscriber after every change.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from flowmon.config import FlowmonConfig
from flowmon.exceptions import (
    FlowmonConfigError,
    FlowmonPermissionDeniedError,
    FlowmonSourceError,
)
from flowmon.sources._tree import merge_at, set_at, split_path
from flowmon.sources.base import ErrorCallback, Unsubscribe, ValueCallback

_logger = logging.getLogger(__name__)

_STREAM_HEADERS = {"Accept": "text/event-stream"}
_DENIED_STATUSES = frozenset({401, 403})


@dataclass
class SseEvent:
    event: str
    data: str


@dataclass
class _StreamState:
    opened: bool = False


@dataclass
class SseDecoder:
    """Incremental ``text/event-stream`` line decoder."""

    _event: str = ""
    _data: list[str] = field(default_factory=list)

    def feed(self, line: str) -> SseEvent | None:
        """Consume one line (without its terminator); return a completed event."""
        if not line:
            if not self._event and not self._data:
                return None
            event = SseEvent(event=self._event or "message", data="\n".join(self._data))
            self._event = ""
            self._data = []
            return event
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        return None


def apply_stream_event(tree: Any, event: SseEvent, *, path: str = "") -> Any:
    """Apply one streaming event to *tree* and return the new tree.

    Raises
    ------
    FlowmonPermissionDeniedError
        For ``cancel`` and ``auth_revoked``: the server closed the listener.
    FlowmonSourceError
        When a ``put``/``patch`` body is not the expected JSON envelope.
    """
    if event.event in ("cancel", "auth_revoked"):
        raise FlowmonPermissionDeniedError(f"Listener cancelled by server ({event.event}): {path}", path=path)
    if event.event not in ("put", "patch"):
        return tree

    try:
        body = json.loads(event.data)
    except json.JSONDecodeError as exc:
        raise FlowmonSourceError(f"Malformed {event.event} event on {path}", path=path) from exc
    if not isinstance(body, dict) or not isinstance(body.get("path"), str):
        raise FlowmonSourceError(f"Malformed {event.event} event on {path}", path=path)

    parts = split_path(body["path"])
    data = body.get("data")
    if event.event == "put":
        return set_at(tree, parts, data)
    if not isinstance(data, dict):
        raise FlowmonSourceError(f"Malformed patch event on {path}", path=path)
    return merge_at(tree, parts, data)


class FirebaseStreamSource:
    """Data source backed by the Realtime Database REST streaming API.

    Usage::

        async with FirebaseStreamSource.from_config(config) as source:
            unsubscribe = source.subscribe("sensorsCurrent", on_value, on_error)
    """

    def __init__(
        self,
        database_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        reconnect_delay: float = 5.0,
    ) -> None:
        if not database_url.strip():
            raise FlowmonConfigError("Missing database URL. Set FLOWMON_DATABASE_URL.")
        self._base_url = database_url.strip().rstrip("/")
        self._external_session = session is not None
        self._http_session = session
        self._reconnect_delay = reconnect_delay
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        config: FlowmonConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> FirebaseStreamSource:
        return cls(config.database_url, session=session, reconnect_delay=config.reconnect_delay)

    async def __aenter__(self) -> FirebaseStreamSource:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    def url_for(self, path: str) -> str:
        parts = split_path(path)
        return f"{self._base_url}/{'/'.join(parts)}.json"

    def subscribe(self, path: str, on_value: ValueCallback, on_error: ErrorCallback) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._stream(path, on_value, on_error), name=f"flowmon-stream:{path}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        _logger.debug("Stream subscribe path=%s url=%s", path, self.url_for(path))

        def unsubscribe() -> None:
            if not task.done():
                _logger.debug("Stream unsubscribe path=%s", path)
                task.cancel()

        return unsubscribe

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._http_session is not None and not self._external_session:
            await self._http_session.close()
        self._http_session = None

    def _session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    async def _stream(self, path: str, on_value: ValueCallback, on_error: ErrorCallback) -> None:
        state = _StreamState()
        url = self.url_for(path)
        while True:
            try:
                await self._read_stream(url, path, on_value, state)
                _logger.debug("Stream ended by server path=%s", path)
            except FlowmonSourceError as exc:
                _logger.debug("Stream failed path=%s code=%s", path, exc.code)
                on_error(exc)
                return
            except (aiohttp.ClientError, TimeoutError) as exc:
                if not state.opened:
                    on_error(FlowmonSourceError(f"Failed to connect to {path}: {exc}", path=path))
                    return
                _logger.debug("Stream dropped path=%s; reconnecting", path, exc_info=True)
            except Exception as exc:
                _logger.warning("Stream crashed path=%s", path, exc_info=True)
                on_error(FlowmonSourceError(f"Stream failed for {path}: {exc}", path=path))
                return
            await asyncio.sleep(self._reconnect_delay)

    async def _read_stream(self, url: str, path: str, on_value: ValueCallback, state: _StreamState) -> None:
        timeout = aiohttp.ClientTimeout(total=None, sock_read=None)
        async with self._session().get(url, headers=_STREAM_HEADERS, timeout=timeout) as response:
            if response.status in _DENIED_STATUSES:
                raise FlowmonPermissionDeniedError(f"Permission denied: {path}", path=path)
            if response.status != 200:
                raise FlowmonSourceError(f"HTTP {response.status} from {path}", path=path)
            state.opened = True

            decoder = SseDecoder()
            tree: Any = None
            first = True
            async for raw_line in response.content:
                event = decoder.feed(raw_line.decode("utf-8", errors="replace").rstrip("\r\n"))
                if event is None:
                    continue
                updated = apply_stream_event(tree, event, path=path)
                if event.event not in ("put", "patch"):
                    continue
                if not first and updated == tree:
                    continue
                first = False
                tree = updated
                try:
                    on_value(tree)
                except Exception:
                    _logger.warning("Value callback failed path=%s", path, exc_info=True)
