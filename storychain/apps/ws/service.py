"""
service.py — Subscriber Broadcast Hub
=====================================
Keeps room_id → live channels and fans events out to them.

RESPONSIBILITIES:
-----------------
✅ subscribe / unsubscribe channels per room (both idempotent)
✅ broadcast to every open channel of a room, optionally excluding one
✅ direct send to a single channel (acks, errors)
✅ prune rooms that have no channels left (the Room itself is untouched)

Delivery to a channel that is not open is skipped: no queue, no retry.
A channel whose send raises, or does not finish within `send_timeout`
seconds, is dropped from every room. A broadcast writes to its channels
concurrently, so one stalled socket costs the room at most one timeout.

ORDERING:
---------
Broadcasts to the same room are serialized by a per-room send lock, so every
subscriber sees that room's events in the same order. Different rooms are
independent. A room's send lock exists only while a broadcast holds or
awaits it.

USAGE:
------
    hub = BroadcastHub(send_timeout=5.0)
    hub.subscribe("ABC123", websocket)
    await hub.broadcast("ABC123", {"type": "player_joined", ...}, exclude=websocket)
"""

import asyncio
import logging
from typing import Any, Protocol

from starlette.websockets import WebSocketState

from storychain.core.locks import KeyedLocks

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """What the hub needs from a connection (starlette's WebSocket fits)."""
    client_state: WebSocketState

    async def send_json(self, data: Any) -> None: ...


def is_open(channel: Channel) -> bool:
    return (
        getattr(channel, "client_state", None) == WebSocketState.CONNECTED
        and getattr(channel, "application_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
    )


class BroadcastHub:
    """
    Data layout:
    {
        "ABC123": [ws_1, ws_2],
        "XYZ789": [ws_3],
    }
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._channels: dict[str, list[Channel]] = {}
        self._send_locks = KeyedLocks()

    # ═══════════════════════════════════════════════════
    # SUBSCRIPTIONS
    # ═══════════════════════════════════════════════════

    def subscribe(self, room_id: str, channel: Channel) -> None:
        channels = self._channels.setdefault(room_id, [])
        if channel not in channels:
            channels.append(channel)
            logger.info(f"✅ Channel subscribed to room {room_id} ({len(channels)} live)")

    def unsubscribe(self, room_id: str, channel: Channel) -> None:
        channels = self._channels.get(room_id)
        if not channels or channel not in channels:
            return

        channels.remove(channel)
        logger.info(f"❌ Channel unsubscribed from room {room_id}")
        if not channels:
            del self._channels[room_id]
            logger.info(f"🗑️  Room {room_id} channel group pruned (no subscribers)")

    def unsubscribe_all(self, channel: Channel) -> list[str]:
        """Drop a channel from every room; returns the rooms it left."""
        rooms = [rid for rid, channels in self._channels.items() if channel in channels]
        for rid in rooms:
            self.unsubscribe(rid, channel)
        return rooms

    def subscribers(self, room_id: str) -> list[Channel]:
        return list(self._channels.get(room_id, []))

    def is_subscribed(self, room_id: str, channel: Channel) -> bool:
        return channel in self._channels.get(room_id, [])

    def rooms(self) -> list[str]:
        return list(self._channels)

    # ═══════════════════════════════════════════════════
    # DELIVERY
    # ═══════════════════════════════════════════════════

    async def send(self, channel: Channel, message: dict) -> bool:
        """Unicast. Returns False when the channel is closed, the send failed or timed out."""
        if not is_open(channel):
            return False
        try:
            await asyncio.wait_for(channel.send_json(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"⏱️  Send timed out after {self.send_timeout}s ({message.get('type')}), dropping channel"
            )
            self.unsubscribe_all(channel)
            return False
        except Exception as e:
            logger.warning(f"⚠️  Send failed ({message.get('type')}): {e}")
            self.unsubscribe_all(channel)
            return False

    async def broadcast(self, room_id: str, message: dict, exclude: Channel | None = None) -> int:
        """
        Deliver `message` to every open channel of `room_id` except `exclude`.

        Returns:
            int: number of channels the message reached
        """
        if room_id not in self._channels:
            return 0

        async with self._send_locks.hold(room_id):
            targets = [channel for channel in self.subscribers(room_id) if channel is not exclude]
            results = await asyncio.gather(*(self.send(channel, message) for channel in targets))
            delivered = sum(results)

        logger.debug(f"📢 {message.get('type')} → room {room_id}: {delivered} delivered")
        return delivered

    def stats(self) -> dict:
        return {rid: len(channels) for rid, channels in self._channels.items()}
