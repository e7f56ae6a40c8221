from __future__ import annotations

import pytest

from amora.realtime import CallPhase, Entitlements, PlanTier
from amora.realtime.calls import pair_key

from app.monitoring.metrics import call_sessions_active, call_sessions_total

VIDEO = Entitlements(PlanTier.ELITE)
OFFER = {"type": "offer", "sdp": "v=0"}
ANSWER = {"type": "answer", "sdp": "v=0"}


@pytest.fixture()
def pair(connect):
    return connect(1, VIDEO), connect(2, VIDEO)


def test_pair_key_is_unordered() -> None:
    assert pair_key(5, 2) == pair_key(2, 5) == (2, 5)


@pytest.mark.anyio
async def test_call_answer_and_hang_up(realtime, pair) -> None:
    alice, bob = pair
    handle = realtime.gateway.handle

    await handle(alice, {"type": "rtc:call", "to": 2, "meta": {"video": True}, "ack": 1})
    assert alice.drain() == [{"type": "ack", "ack": 1, "ok": True}]
    assert bob.drain() == [{"type": "rtc:incoming", "from": 1, "meta": {"video": True}}]

    await handle(bob, {"type": "rtc:answer", "to": 1, "sdp": ANSWER})
    assert alice.drain() == [{"type": "rtc:answer", "from": 2, "sdp": ANSWER}]
    assert realtime.calls.session_for(1, 2).phase is CallPhase.CONNECTED

    await handle(bob, {"type": "rtc:end", "to": 1})
    assert alice.drain() == [{"type": "rtc:end", "from": 2, "reason": "hangup"}]
    assert realtime.calls.session_for(1, 2) is None

    # Nothing from the finished attempt is relayed any more.
    await handle(alice, {"type": "rtc:candidate", "to": 2, "candidate": {"candidate": "udp"}})
    await handle(bob, {"type": "rtc:answer", "to": 1, "sdp": ANSWER, "ack": 2})
    assert bob.drain() == [
        {"type": "ack", "ack": 2, "ok": False, "error": "no-call", "message": "No pending call to answer"}
    ]
    assert alice.drain() == []
    assert call_sessions_total.value("ended") == 1
    assert call_sessions_active.value() == 0


@pytest.mark.anyio
async def test_offer_answer_negotiation(realtime, pair) -> None:
    alice, bob = pair
    handle = realtime.gateway.handle

    await handle(alice, {"type": "rtc:call", "to": 2})
    await handle(alice, {"type": "rtc:offer", "to": 2, "sdp": OFFER})
    assert bob.drain() == [
        {"type": "rtc:incoming", "from": 1, "meta": {}},
        {"type": "rtc:offer", "from": 1, "sdp": OFFER},
    ]
    assert realtime.calls.session_for(1, 2).phase is CallPhase.NEGOTIATING

    # The offerer cannot answer its own offer.
    await handle(alice, {"type": "rtc:answer", "to": 2, "sdp": ANSWER, "ack": "a"})
    assert alice.drain()[0]["error"] == "no-call"

    await handle(bob, {"type": "rtc:candidate", "to": 1, "candidate": {"candidate": "host"}})
    await handle(bob, {"type": "rtc:answer", "to": 1, "sdp": ANSWER, "ack": "b"})
    assert bob.drain() == [{"type": "ack", "ack": "b", "ok": True}]
    assert alice.drain() == [
        {"type": "rtc:candidate", "from": 2, "candidate": {"candidate": "host"}},
        {"type": "rtc:answer", "from": 2, "sdp": ANSWER},
    ]


@pytest.mark.anyio
async def test_answer_without_call_is_rejected(realtime, pair) -> None:
    alice, bob = pair

    await realtime.gateway.handle(bob, {"type": "rtc:answer", "to": 1, "sdp": ANSWER, "ack": 9})

    assert bob.drain()[0]["error"] == "no-call"
    assert alice.drain() == []


@pytest.mark.anyio
async def test_candidate_without_session_is_dropped(realtime, pair) -> None:
    alice, bob = pair

    await realtime.gateway.handle(alice, {"type": "rtc:candidate", "to": 2, "candidate": {"candidate": "x"}})

    assert alice.drain() == []
    assert bob.drain() == []


@pytest.mark.anyio
async def test_offer_after_hang_up_is_dropped(realtime, pair) -> None:
    alice, bob = pair
    handle = realtime.gateway.handle

    await handle(alice, {"type": "rtc:call", "to": 2})
    await handle(bob, {"type": "rtc:end", "to": 1, "reason": "declined"})
    bob.drain()

    await handle(alice, {"type": "rtc:offer", "to": 2, "sdp": OFFER})
    await handle(alice, {"type": "rtc:candidate", "to": 2, "candidate": {"candidate": "udp"}})

    assert bob.drain() == []
    assert realtime.calls.session_for(1, 2) is None


@pytest.mark.anyio
async def test_offer_cannot_bypass_the_call_cooldown(realtime, pair) -> None:
    alice, bob = pair
    handle = realtime.gateway.handle

    await handle(alice, {"type": "rtc:call", "to": 2})
    await handle(alice, {"type": "rtc:end", "to": 2})
    await handle(alice, {"type": "rtc:call", "to": 2, "ack": 1})
    assert alice.drain()[-1]["error"] == "cooldown"
    bob.drain()

    await handle(alice, {"type": "rtc:offer", "to": 2, "sdp": OFFER})
    await handle(bob, {"type": "rtc:answer", "to": 1, "sdp": ANSWER, "ack": 2})

    assert bob.drain() == [
        {"type": "ack", "ack": 2, "ok": False, "error": "no-call", "message": "No pending call to answer"}
    ]
    assert alice.drain() == []
    assert realtime.calls.active_sessions() == []


@pytest.mark.anyio
async def test_call_cooldown(realtime, pair, clock) -> None:
    alice, bob = pair
    handle = realtime.gateway.handle

    await handle(alice, {"type": "rtc:call", "to": 2, "ack": 1})
    await handle(alice, {"type": "rtc:end", "to": 2})
    clock.advance(30 * 60 - 0.001)
    await handle(alice, {"type": "rtc:call", "to": 2, "ack": 2})
    frames = alice.drain()
    assert frames[-1]["ok"] is False
    assert frames[-1]["error"] == "cooldown"
    assert frames[-1]["retryAfter"] == pytest.approx(0.001, abs=1e-3)

    clock.advance(0.002)
    await handle(alice, {"type": "rtc:call", "to": 2, "ack": 3})
    assert alice.drain() == [{"type": "ack", "ack": 3, "ok": True}]
    assert [frame["type"] for frame in bob.drain()] == ["rtc:incoming", "rtc:end", "rtc:incoming"]


@pytest.mark.anyio
async def test_call_to_self_is_invalid(realtime, pair) -> None:
    alice, _ = pair

    await realtime.gateway.handle(alice, {"type": "rtc:call", "to": 1, "ack": 1})

    assert alice.drain() == [
        {"type": "ack", "ack": 1, "ok": False, "error": "invalid", "message": "Cannot call yourself"}
    ]


@pytest.mark.anyio
async def test_ringing_call_times_out(realtime, pair, clock) -> None:
    alice, bob = pair

    await realtime.gateway.handle(alice, {"type": "rtc:call", "to": 2})
    clock.advance(46)
    await realtime.gateway.handle(bob, {"type": "rtc:answer", "to": 1, "sdp": ANSWER, "ack": 1})

    assert bob.drain()[-1]["error"] == "no-call"
    assert call_sessions_total.value("timeout") == 1
    assert realtime.calls.active_sessions() == []


@pytest.mark.anyio
async def test_disconnect_ends_the_call_for_the_peer(realtime, pair, connect) -> None:
    alice, bob = pair
    bob_tablet = connect(2, VIDEO)
    await realtime.gateway.handle(alice, {"type": "rtc:call", "to": 2})
    bob.drain()
    bob_tablet.drain()

    realtime.gateway.detach(bob)
    assert alice.drain() == []
    assert realtime.calls.session_for(1, 2) is not None

    realtime.gateway.detach(bob_tablet)
    assert alice.drain() == [{"type": "rtc:end", "from": 2, "reason": "disconnected"}]
    assert realtime.calls.session_for(1, 2) is None
    assert call_sessions_total.value("disconnected") == 1


@pytest.mark.anyio
async def test_new_call_replaces_the_previous_session(realtime, pair) -> None:
    alice, bob = pair

    await realtime.gateway.handle(alice, {"type": "rtc:call", "to": 2})
    await realtime.gateway.handle(bob, {"type": "rtc:call", "to": 1})

    session = realtime.calls.session_for(1, 2)
    assert session.caller_id == 2
    assert len(realtime.calls.active_sessions()) == 1
    assert call_sessions_total.value("replaced") == 1


@pytest.mark.anyio
async def test_malformed_signaling_is_dropped(realtime, pair) -> None:
    alice, bob = pair

    await realtime.gateway.handle(alice, {"type": "rtc:offer", "to": "nobody", "sdp": OFFER})
    await realtime.gateway.handle(alice, {"type": "rtc:candidate", "to": 2})

    assert alice.drain() == []
    assert bob.drain() == []


@pytest.mark.anyio
async def test_malformed_call_is_acknowledged(realtime, pair) -> None:
    alice, _ = pair

    await realtime.gateway.handle(alice, {"type": "rtc:call", "to": "x", "ack": 4})

    frames = alice.drain()
    assert frames[0]["type"] == "ack"
    assert frames[0]["ok"] is False
    assert frames[0]["error"] == "invalid"
