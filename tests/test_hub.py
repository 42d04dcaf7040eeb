import asyncio

from starlette.websockets import WebSocketState

from storychain.apps.ws.service import BroadcastHub


def test_subscribe_and_unsubscribe_are_idempotent(make_channel):
    hub = BroadcastHub()
    ch = make_channel()

    hub.subscribe("ROOM", ch)
    hub.subscribe("ROOM", ch)
    assert hub.subscribers("ROOM") == [ch]

    hub.unsubscribe("ROOM", ch)
    hub.unsubscribe("ROOM", ch)
    hub.unsubscribe("OTHER", ch)
    assert hub.subscribers("ROOM") == []


def test_empty_room_is_pruned(make_channel):
    hub = BroadcastHub()
    a, b = make_channel("a"), make_channel("b")
    hub.subscribe("ROOM", a)
    hub.subscribe("ROOM", b)

    hub.unsubscribe("ROOM", a)
    assert hub.rooms() == ["ROOM"]

    hub.unsubscribe("ROOM", b)
    assert hub.rooms() == []
    assert hub.stats() == {}


def test_broadcast_excludes_originator(make_channel):
    hub = BroadcastHub()
    joiner, a, b = make_channel("joiner"), make_channel("a"), make_channel("b")
    for ch in (a, b, joiner):
        hub.subscribe("ROOM", ch)

    delivered = asyncio.run(hub.broadcast("ROOM", {"type": "player_joined"}, exclude=joiner))

    assert delivered == 2
    assert a.types() == ["player_joined"]
    assert b.types() == ["player_joined"]
    assert joiner.sent == []


def test_unsubscribed_channel_receives_nothing(make_channel):
    hub = BroadcastHub()
    member, outsider = make_channel("member"), make_channel("outsider")
    hub.subscribe("ROOM", member)
    hub.subscribe("OTHER", outsider)

    asyncio.run(hub.broadcast("ROOM", {"type": "story_updated"}))

    assert member.types() == ["story_updated"]
    assert outsider.sent == []


def test_closed_channel_is_skipped(make_channel):
    hub = BroadcastHub()
    open_ch, closed = make_channel("open"), make_channel("closed")
    closed.client_state = WebSocketState.DISCONNECTED
    hub.subscribe("ROOM", open_ch)
    hub.subscribe("ROOM", closed)

    delivered = asyncio.run(hub.broadcast("ROOM", {"type": "x"}))

    assert delivered == 1
    assert closed.sent == []


def test_failing_channel_is_dropped_everywhere(make_channel):
    hub = BroadcastHub()
    good, bad = make_channel("good"), make_channel("bad", fail=True)
    hub.subscribe("ROOM", good)
    hub.subscribe("ROOM", bad)
    hub.subscribe("OTHER", bad)

    delivered = asyncio.run(hub.broadcast("ROOM", {"type": "x"}))

    assert delivered == 1
    assert not hub.is_subscribed("ROOM", bad)
    assert not hub.is_subscribed("OTHER", bad)
    assert hub.is_subscribed("ROOM", good)


def test_broadcast_order_is_preserved_per_subscriber(make_channel):
    hub = BroadcastHub()
    a, b = make_channel("a"), make_channel("b")
    hub.subscribe("ROOM", a)
    hub.subscribe("ROOM", b)

    async def main():
        for i in range(5):
            await hub.broadcast("ROOM", {"type": "event", "seq": i})

    asyncio.run(main())

    assert [m["seq"] for m in a.sent] == [0, 1, 2, 3, 4]
    assert [m["seq"] for m in b.sent] == [0, 1, 2, 3, 4]


def test_unsubscribe_all_returns_rooms_left(make_channel):
    hub = BroadcastHub()
    ch = make_channel()
    hub.subscribe("A", ch)
    hub.subscribe("B", ch)

    assert sorted(hub.unsubscribe_all(ch)) == ["A", "B"]
    assert hub.rooms() == []


def test_send_to_closed_channel_returns_false(make_channel):
    hub = BroadcastHub()
    ch = make_channel()
    ch.application_state = WebSocketState.DISCONNECTED
    assert asyncio.run(hub.send(ch, {"type": "pong"})) is False


def test_stalled_channel_is_dropped_without_blocking_others(make_channel):
    hub = BroadcastHub(send_timeout=0.05)
    stuck, good = make_channel("stuck", stall=True), make_channel("good")
    hub.subscribe("ROOM", stuck)
    hub.subscribe("ROOM", good)

    async def main():
        return await asyncio.wait_for(hub.broadcast("ROOM", {"type": "story_updated"}), timeout=1.0)

    delivered = asyncio.run(main())

    assert delivered == 1
    assert good.types() == ["story_updated"]
    assert hub.subscribers("ROOM") == [good]


def test_stalled_channels_time_out_together(make_channel):
    hub = BroadcastHub(send_timeout=0.2)
    for i in range(5):
        hub.subscribe("ROOM", make_channel(f"stuck{i}", stall=True))

    async def main():
        # Five stalled sends in sequence would need a full second
        return await asyncio.wait_for(hub.broadcast("ROOM", {"type": "x"}), timeout=0.6)

    assert asyncio.run(main()) == 0
    assert hub.rooms() == []


def test_send_locks_do_not_outlive_broadcasts(make_channel):
    hub = BroadcastHub()
    ch = make_channel()
    hub.subscribe("ROOM", ch)

    async def main():
        await hub.broadcast("ROOM", {"type": "x"})
        await hub.broadcast("EMPTY", {"type": "x"})

    asyncio.run(main())

    assert len(hub._send_locks) == 0
    assert ch.types() == ["x"]
