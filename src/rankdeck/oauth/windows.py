"""
Browsing contexts and the popup/opener message channel.
Created: 2026-10-03

Models the slice of the browser's window graph the connection flow relies
on: each context has an origin, its own storage mapping, an optional
opener, and a ``post_message`` channel. Messages are delivered
asynchronously on the running event loop and dropped when the sender's
``target_origin`` does not match the receiver, the same way browsers
handle ``window.postMessage``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from rankdeck.oauth.messages import (
    RequestStateMessage,
    StateResponseMessage,
    SuccessMessage,
    parse_message,
    to_wire,
)
from rankdeck.oauth.state_store import LocalStateStore

logger = logging.getLogger(__name__)

Listener = Callable[["MessageEvent"], None]


@dataclass
class MessageEvent:
    """A delivered message. ``origin`` is the sender's origin."""

    origin: str
    data: Any
    source: BrowsingContext | None = None


class BrowsingContext:
    """A window or popup."""

    def __init__(
        self,
        origin: str,
        opener: BrowsingContext | None = None,
        storage: dict[str, str] | None = None,
    ):
        self.origin = origin
        self.opener = opener
        self.local_storage: dict[str, str] = storage if storage is not None else {}
        self.location: str | None = None
        self.closed = False
        self.history: list[str] = []
        self._listeners: list[Listener] = []

    @property
    def is_popup(self) -> bool:
        return self.opener is not None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def post_message(self, data: Any, target_origin: str, source: BrowsingContext) -> None:
        """Queue *data* for delivery to this context, as sent by *source*."""
        if self.closed:
            return
        if target_origin != "*" and target_origin != self.origin:
            logger.debug("Dropped message for %s (target origin %s)", self.origin, target_origin)
            return
        event = MessageEvent(origin=source.origin, data=data, source=source)
        asyncio.get_running_loop().call_soon(self._dispatch, event)

    def _dispatch(self, event: MessageEvent) -> None:
        if self.closed:
            return
        for listener in list(self._listeners):
            listener(event)

    def navigate(self, url: str) -> None:
        self.location = url
        self.history.append(url)

    def open_popup(self, url: str, origin: str | None = None) -> BrowsingContext:
        """Open a popup with its own (empty) storage and this context as opener."""
        popup = BrowsingContext(origin or self.origin, opener=self)
        popup.navigate(url)
        return popup

    def close(self) -> None:
        self.closed = True
        self._listeners.clear()


class OpenerBridge:
    """Opener-side listener for the popup handshake.

    Answers ``oauth_request_state`` with the pending token (handing it out
    once) and reports ``oauth_success``. Messages from other origins and
    unrecognised message types are ignored.
    """

    def __init__(
        self,
        context: BrowsingContext,
        state_store: LocalStateStore,
        on_success: Callable[[], Awaitable[None] | None] | None = None,
    ):
        self.context = context
        self.state_store = state_store
        self.on_success = on_success
        self.succeeded = False
        self._tasks: set[asyncio.Task] = set()

    def attach(self) -> None:
        self.context.add_listener(self._handle)

    def detach(self) -> None:
        self.context.remove_listener(self._handle)

    def _handle(self, event: MessageEvent) -> None:
        if event.origin != self.context.origin:
            logger.warning("Opener ignored message from foreign origin %s", event.origin)
            return

        message = parse_message(event.data)
        if isinstance(message, RequestStateMessage):
            if event.source is None:
                return
            reply = StateResponseMessage(state=self.state_store.take())
            event.source.post_message(to_wire(reply), self.context.origin, self.context)
        elif isinstance(message, SuccessMessage):
            self.succeeded = True
            if self.on_success is not None:
                result = self.on_success()
                if asyncio.iscoroutine(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)


async def request_state_from_opener(context: BrowsingContext, timeout: float = 5.0) -> str | None:
    """Ask the opener for the state it issued.

    Resolves with the first same-origin ``oauth_state_response``; returns
    ``None`` when there is no opener or nothing arrives within *timeout*.
    """
    opener = context.opener
    if opener is None or opener.closed:
        return None

    loop = asyncio.get_running_loop()
    answer: asyncio.Future[str | None] = loop.create_future()

    def on_message(event: MessageEvent) -> None:
        if event.origin != context.origin:
            logger.warning("Popup ignored message from foreign origin %s", event.origin)
            return
        message = parse_message(event.data)
        if isinstance(message, StateResponseMessage) and not answer.done():
            answer.set_result(message.state)

    context.add_listener(on_message)
    try:
        opener.post_message(to_wire(RequestStateMessage()), context.origin, context)
        return await asyncio.wait_for(answer, timeout)
    except TimeoutError:
        logger.warning("Timed out after %.1fs waiting for state from opener", timeout)
        return None
    finally:
        context.remove_listener(on_message)
