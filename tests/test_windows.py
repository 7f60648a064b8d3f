# Tests for oauth/messages.py and oauth/windows.py: popup/opener channel.
# Created: 2026-10-10

import asyncio

import pytest

from rankdeck.oauth.messages import (
    RequestStateMessage,
    StateResponseMessage,
    SuccessMessage,
    parse_message,
    to_wire,
)
from rankdeck.oauth.state_store import LocalStateStore
from rankdeck.oauth.windows import BrowsingContext, OpenerBridge, request_state_from_opener

APP = "http://localhost:5173"
EVIL = "https://evil.example"


async def _drain():
    for _ in range(3):
        await asyncio.sleep(0)


class TestMessages:
    def test_parse_known_types(self):
        assert isinstance(parse_message({"type": "oauth_request_state"}), RequestStateMessage)
        assert isinstance(parse_message({"type": "oauth_success"}), SuccessMessage)
        msg = parse_message({"type": "oauth_state_response", "state": "abc"})
        assert isinstance(msg, StateResponseMessage)
        assert msg.state == "abc"

    def test_parse_unknown_returns_none(self):
        assert parse_message({"type": "something_else"}) is None
        assert parse_message("oauth_success") is None
        assert parse_message(None) is None

    def test_to_wire(self):
        assert to_wire(SuccessMessage()) == {"type": "oauth_success"}
        assert to_wire(StateResponseMessage(state=None)) == {
            "type": "oauth_state_response",
            "state": None,
        }


class TestBrowsingContext:
    def test_popup_has_own_storage(self):
        opener = BrowsingContext(APP)
        opener.local_storage["oauth_state"] = "abc"
        popup = opener.open_popup("https://accounts.google.com/o/oauth2/v2/auth")
        assert popup.is_popup
        assert popup.opener is opener
        assert popup.local_storage == {}
        assert popup.location.startswith("https://accounts.google.com")

    @pytest.mark.asyncio
    async def test_delivery_is_async(self):
        receiver = BrowsingContext(APP)
        sender = BrowsingContext(APP)
        seen = []
        receiver.add_listener(seen.append)
        receiver.post_message({"type": "oauth_success"}, APP, sender)
        assert seen == []
        await _drain()
        assert len(seen) == 1
        assert seen[0].origin == APP

    @pytest.mark.asyncio
    async def test_target_origin_mismatch_dropped(self):
        receiver = BrowsingContext(APP)
        seen = []
        receiver.add_listener(seen.append)
        receiver.post_message({"type": "oauth_success"}, EVIL, BrowsingContext(APP))
        await _drain()
        assert seen == []

    @pytest.mark.asyncio
    async def test_closed_context_drops(self):
        receiver = BrowsingContext(APP)
        seen = []
        receiver.add_listener(seen.append)
        receiver.close()
        receiver.post_message({"type": "oauth_success"}, "*", BrowsingContext(APP))
        await _drain()
        assert seen == []


class TestOpenerHandshake:
    @pytest.mark.asyncio
    async def test_popup_recovers_state_from_opener(self):
        opener = BrowsingContext(APP)
        store = LocalStateStore(opener.local_storage)
        token = store.issue()
        OpenerBridge(opener, store).attach()

        popup = opener.open_popup("https://accounts.google.com/")
        assert await request_state_from_opener(popup, timeout=1.0) == token
        # Handed out once.
        assert store.has_pending() is False

    @pytest.mark.asyncio
    async def test_second_request_gets_none(self):
        opener = BrowsingContext(APP)
        store = LocalStateStore(opener.local_storage)
        store.issue()
        OpenerBridge(opener, store).attach()
        popup = opener.open_popup("https://accounts.google.com/")

        await request_state_from_opener(popup, timeout=1.0)
        assert await request_state_from_opener(popup, timeout=1.0) is None

    @pytest.mark.asyncio
    async def test_timeout_without_answer(self):
        opener = BrowsingContext(APP)
        popup = opener.open_popup("https://accounts.google.com/")
        assert await request_state_from_opener(popup, timeout=0.05) is None

    @pytest.mark.asyncio
    async def test_no_opener(self):
        assert await request_state_from_opener(BrowsingContext(APP), timeout=0.05) is None

    @pytest.mark.asyncio
    async def test_opener_on_other_origin_never_answers(self):
        opener = BrowsingContext(EVIL)
        store = LocalStateStore(opener.local_storage)
        store.issue()
        OpenerBridge(opener, store).attach()
        popup = opener.open_popup("https://accounts.google.com/", origin=APP)
        # The request targets the popup's own origin, so a foreign opener never receives it.
        assert await request_state_from_opener(popup, timeout=0.05) is None
        assert store.has_pending() is True

    @pytest.mark.asyncio
    async def test_bridge_ignores_foreign_sender(self):
        opener = BrowsingContext(APP)
        store = LocalStateStore(opener.local_storage)
        store.issue()
        bridge = OpenerBridge(opener, store)
        bridge.attach()

        attacker = BrowsingContext(EVIL)
        opener.post_message({"type": "oauth_request_state"}, APP, attacker)
        opener.post_message({"type": "oauth_success"}, APP, attacker)
        await _drain()
        assert store.has_pending() is True
        assert bridge.succeeded is False

    @pytest.mark.asyncio
    async def test_success_invokes_callback(self):
        opener = BrowsingContext(APP)
        calls = []

        async def on_success():
            calls.append("refetch")

        bridge = OpenerBridge(opener, LocalStateStore(opener.local_storage), on_success)
        bridge.attach()
        popup = opener.open_popup("https://accounts.google.com/")
        opener.post_message(to_wire(SuccessMessage()), APP, popup)
        await _drain()
        assert bridge.succeeded is True
        assert calls == ["refetch"]

    @pytest.mark.asyncio
    async def test_detached_bridge_stops_answering(self):
        opener = BrowsingContext(APP)
        store = LocalStateStore(opener.local_storage)
        store.issue()
        bridge = OpenerBridge(opener, store)
        bridge.attach()
        bridge.detach()
        popup = opener.open_popup("https://accounts.google.com/")
        assert await request_state_from_opener(popup, timeout=0.05) is None
