"""
WebSocket subscriptions for backend job streams.

A Subscription owns one connection and one reader task. Frames are decoded
into the StreamEvent union and handed to a synchronous handler in arrival
order. Malformed frames are dropped. A transport failure is reported once as
ErrorEvent(error="stream_error"). Closing the subscription is the only way
to cancel a job from the client side; the backend is not told.

SubscriptionManager keys subscriptions by logical job so that at most one
connection per job is alive, and closes everything on dispose.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

import websockets
from pydantic import ValidationError

from pagelm.models.events import ErrorEvent, StreamEvent, parse_event

logger = logging.getLogger(__name__)

EventHandler = Callable[[StreamEvent], None]
# Opens a connection: async context manager yielding an async iterator of frames.
Connector = Callable[[str], AbstractAsyncContextManager[AsyncIterator[Any]]]


def _default_connector(url: str) -> AbstractAsyncContextManager[AsyncIterator[Any]]:
    return websockets.connect(url, open_timeout=10)


class Subscription:
    def __init__(self, url: str, handler: EventHandler, connector: Connector | None = None) -> None:
        self.url = url
        self._handler = handler
        self._connector = connector or _default_connector
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._timer: asyncio.TimerHandle | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "Subscription":
        if self._task is None and not self._closed:
            self._task = asyncio.create_task(self._run(), name=f"ws-{self.url}")
        return self

    async def wait(self) -> None:
        """Wait until the stream ends or the subscription is closed."""
        if self._task is not None:
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                if not self._closed:
                    raise

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        task = self._task
        # closing from inside the handler: the reader loop sees the flag and exits
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.debug("Closed stream %s", self.url)

    def close_later(self, delay: float) -> None:
        if self._closed:
            return
        if delay <= 0:
            self.close()
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(delay, self.close)

    def _emit(self, event: StreamEvent) -> None:
        try:
            self._handler(event)
        except Exception:
            logger.exception("Stream handler failed for %s (%s event)", self.url, event.type)

    async def _run(self) -> None:
        try:
            async with self._connector(self.url) as ws:
                logger.info("Stream open: %s", self.url)
                async for raw in ws:
                    if self._closed:
                        break
                    try:
                        event = parse_event(raw)
                    except ValidationError:
                        logger.debug("Dropping malformed frame on %s: %r", self.url, raw)
                        continue
                    self._emit(event)
                    if self._closed:
                        break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._closed:
                logger.warning("Stream %s failed: %s", self.url, e)
                self._emit(ErrorEvent(type="error", error="stream_error"))
        finally:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class SubscriptionManager:
    def __init__(self, connector: Connector | None = None) -> None:
        self._connector = connector
        self._subs: dict[str, Subscription] = {}

    def subscribe(self, key: str, url: str, handler: EventHandler) -> Subscription:
        """Open a stream for key, closing any stream already open for it."""
        self.close(key)
        sub = Subscription(url, handler, self._connector)
        self._subs[key] = sub
        return sub.start()

    def get(self, key: str) -> Subscription | None:
        sub = self._subs.get(key)
        if sub is not None and sub.closed:
            del self._subs[key]
            return None
        return sub

    def close(self, key: str) -> None:
        sub = self._subs.pop(key, None)
        if sub is not None:
            sub.close()

    def close_later(self, key: str, delay: float) -> None:
        sub = self._subs.get(key)
        if sub is not None:
            sub.close_later(delay)

    def close_all(self) -> None:
        for sub in list(self._subs.values()):
            sub.close()
        self._subs.clear()

    def active_keys(self) -> list[str]:
        return [k for k, s in self._subs.items() if not s.closed]
