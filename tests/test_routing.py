"""
Tests for message routing and role preconditions.
"""

import json
from unittest.mock import patch

import pytest
import pytest_asyncio

from protocol import Role, StopMessage
from broadcast_relay.routing import message_handlers
from tests.conftest import make_connection

SDP_OFFER = {"type": "offer", "sdp": "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\ns=-\r\n"}
SDP_ANSWER = {"type": "answer", "sdp": "v=0\r\no=- 3 4 IN IP4 127.0.0.1\r\ns=-\r\n"}
CANDIDATE = {"candidate": "candidate:0 1 UDP 2122252543 192.168.1.5 40000 typ host", "sdpMid": "0",
             "sdpMLineIndex": 0}


@pytest_asyncio.fixture
async def session(send):
    """A registered broadcaster and one registered viewer."""
    b, v = make_connection(), make_connection()
    await send(b, type="register", role="broadcaster")
    await send(v, type="register", role="viewer")
    b.sck.sent.clear()
    v.sck.sent.clear()
    return b, v


class TestRegister:
    """Tests for register messages."""

    @pytest.mark.asyncio
    async def test_register_viewer(self, send, registry):
        conn = make_connection()
        await send(conn, type="register", role="viewer")

        assert conn.role is Role.VIEWER
        assert registry.get_viewer(conn.viewer_id) is conn

    @pytest.mark.asyncio
    async def test_register_twice(self, send, registry):
        conn = make_connection()
        await send(conn, type="register", role="viewer")
        viewer_id = conn.viewer_id

        await send(conn, type="register", role="broadcaster")

        assert conn.role is Role.VIEWER
        assert conn.viewer_id == viewer_id
        assert registry.broadcaster is None
        assert conn.sck.messages[-1]["type"] == "error"
        assert conn.open

    @pytest.mark.asyncio
    async def test_register_invalid_role(self, send, registry):
        conn = make_connection()
        await send(conn, type="register", role="admin")

        assert conn.role is Role.UNASSIGNED
        assert conn.sck.messages[-1]["type"] == "error"
        assert registry.viewer_count == 0


class TestOffer:
    """Tests for offer routing."""

    @pytest.mark.asyncio
    async def test_forwarded_to_viewer(self, send, session):
        b, v = session
        await send(b, type="offer", viewerId=v.viewer_id, sdp=SDP_OFFER)

        assert v.sck.messages == [{"type": "offer", "viewerId": v.viewer_id, "sdp": SDP_OFFER}]
        assert b.sck.sent == []

    @pytest.mark.asyncio
    async def test_missing_viewer(self, send, session):
        b, v = session
        await send(b, type="offer", viewerId="gone", sdp=SDP_OFFER)

        assert b.sck.messages == [{"type": "viewer-missing", "viewerId": "gone"}]
        assert v.sck.sent == []

    @pytest.mark.asyncio
    async def test_viewer_may_not_offer(self, send, session):
        b, v = session
        await send(v, type="offer", viewerId=v.viewer_id, sdp=SDP_OFFER)

        assert v.sck.messages[-1]["type"] == "error"
        assert b.sck.sent == []
        assert v.open

    @pytest.mark.asyncio
    async def test_unregistered_may_not_offer(self, send, session):
        b, v = session
        stranger = make_connection()
        await send(stranger, type="offer", viewerId=v.viewer_id, sdp=SDP_OFFER)

        assert stranger.sck.messages[-1]["type"] == "error"
        assert v.sck.sent == []


class TestAnswer:
    """Tests for answer routing."""

    @pytest.mark.asyncio
    async def test_forwarded_to_broadcaster(self, send, session):
        b, v = session
        await send(v, type="answer", viewerId=v.viewer_id, sdp=SDP_ANSWER)

        assert b.sck.messages == [{"type": "answer", "viewerId": v.viewer_id, "sdp": SDP_ANSWER}]

    @pytest.mark.asyncio
    async def test_other_viewer_id_refused(self, send, session):
        b, v = session
        await send(v, type="answer", viewerId="someone-else", sdp=SDP_ANSWER)

        assert b.sck.sent == []
        assert v.sck.messages[-1]["type"] == "error"

    @pytest.mark.asyncio
    async def test_dropped_without_broadcaster(self, send, registry):
        v = make_connection()
        await send(v, type="register", role="viewer")
        v.sck.sent.clear()

        await send(v, type="answer", viewerId=v.viewer_id, sdp=SDP_ANSWER)

        assert v.sck.sent == []

    @pytest.mark.asyncio
    async def test_broadcaster_may_not_answer(self, send, session):
        b, v = session
        await send(b, type="answer", viewerId=v.viewer_id, sdp=SDP_ANSWER)

        assert b.sck.messages[-1]["type"] == "error"
        assert v.sck.sent == []


class TestCandidate:
    """Tests for candidate routing in both directions."""

    @pytest.mark.asyncio
    async def test_broadcaster_to_viewer(self, send, session):
        b, v = session
        await send(b, type="candidate", viewerId=v.viewer_id, candidate=CANDIDATE, origin="broadcaster")

        assert v.sck.messages == [
            {"type": "candidate", "viewerId": v.viewer_id, "candidate": CANDIDATE, "origin": "broadcaster"}
        ]

    @pytest.mark.asyncio
    async def test_viewer_to_broadcaster(self, send, session):
        b, v = session
        await send(v, type="candidate", viewerId=v.viewer_id, candidate=CANDIDATE, origin="viewer")

        assert b.sck.messages == [
            {"type": "candidate", "viewerId": v.viewer_id, "candidate": CANDIDATE, "origin": "viewer"}
        ]

    @pytest.mark.asyncio
    async def test_missing_viewer_dropped(self, send, session):
        b, v = session
        await send(b, type="candidate", viewerId="gone", candidate=CANDIDATE, origin="broadcaster")

        assert b.sck.sent == []
        assert v.sck.sent == []

    @pytest.mark.asyncio
    async def test_origin_must_match_sender(self, send, session):
        b, v = session
        await send(v, type="candidate", viewerId=v.viewer_id, candidate=CANDIDATE, origin="broadcaster")
        await send(b, type="candidate", viewerId=v.viewer_id, candidate=CANDIDATE, origin="viewer")

        assert [msg["type"] for msg in v.sck.messages] == ["error"]
        assert [msg["type"] for msg in b.sck.messages] == ["error"]

    @pytest.mark.asyncio
    async def test_viewer_candidate_for_other_viewer_refused(self, send, session):
        b, v = session
        await send(v, type="candidate", viewerId="someone-else", candidate=CANDIDATE, origin="viewer")

        assert b.sck.sent == []
        assert v.sck.messages[-1]["type"] == "error"


class TestStop:
    """Tests for stop messages."""

    @pytest.mark.asyncio
    async def test_stop(self, send, session, registry):
        b, v = session
        await send(b, type="stop")

        assert v.sck.messages == [{"type": "broadcaster-ended"}]
        assert {"type": "stopped"} in b.sck.messages
        assert registry.broadcaster is b
        assert b.open

    @pytest.mark.asyncio
    async def test_viewer_may_not_stop(self, send, session, registry):
        b, v = session
        await send(v, type="stop")

        assert v.sck.messages[-1]["type"] == "error"
        assert registry.viewer_count == 1
        assert b.sck.sent == []


class TestMalformed:
    """Tests for frames that are not valid client messages."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["{", b"\xc3\x28", "42", '{"type": "offer"}', '{"type": "unknown"}'])
    async def test_reported_to_sender_only(self, engine, session, raw):
        b, v = session
        await engine.dispatch(v, raw)

        assert [msg["type"] for msg in v.sck.messages] == ["error"]
        assert b.sck.sent == []
        assert v.open

    @pytest.mark.asyncio
    @pytest.mark.parametrize("number", ["NaN", "Infinity", "1e400"])
    async def test_non_finite_numbers_not_forwarded(self, engine, session, number):
        """Payloads that cannot be re-encoded as strict JSON never reach the viewer."""
        b, v = session
        await engine.dispatch(b, f'{{"type": "offer", "viewerId": "{v.viewer_id}", "sdp": {{"n": {number}}}}}')

        assert v.sck.sent == []
        assert [msg["type"] for msg in b.sck.messages] == ["error"]
        for frame in b.sck.sent:
            json.loads(frame, parse_constant=lambda name: pytest.fail(f"relay sent {name}"))

    @pytest.mark.asyncio
    async def test_relay_message_from_client(self, send, session):
        """Messages only the relay sends are rejected when a client sends them."""
        b, v = session
        await send(v, type="viewer-count", count=99)

        assert v.sck.messages[-1]["type"] == "error"
        assert b.sck.sent == []

    @pytest.mark.asyncio
    async def test_handler_failure_keeps_connection(self, send, session):
        b, v = session

        async def explode(*_args):
            raise RuntimeError("boom")

        with patch.dict(message_handlers, {StopMessage: explode}):
            await send(b, type="stop")

        assert b.sck.messages == [{"type": "error", "message": "Internal relay error"}]
        assert b.open
        assert v.sck.sent == []
