"""
registry.py — Room Registry
===========================
Owns the room_id → Room table and one asyncio.Lock per room.

The registry is created by the application factory and handed to the
services that need it; there is no module-level room table.

LOCKING:
--------
Every compound read-modify-write on a room runs inside
`async with registry.locked(room_id):`. Locks are per room, never global,
so rooms do not block each other. Code inside the lock must not await
external I/O. A room's lock exists only while it is held or awaited.
"""

from __future__ import annotations

import logging
import random
import string
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from storychain.apps.rooms.models import Player, Room, RoomSettings
from storychain.core.errors import RoomNotFoundError
from storychain.core.locks import KeyedLocks

logger = logging.getLogger(__name__)

_ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits


def normalize_room_id(room_id: str) -> str:
    return room_id.strip().upper()


class RoomRegistry:
    """In-memory room table with per-room mutual exclusion."""

    def __init__(self, code_length: int = 6):
        self.code_length = code_length
        self._rooms: dict[str, Room] = {}
        self._locks = KeyedLocks()

    # ── Identifiers ──────────────────────────────────

    def generate_room_id(self) -> str:
        """Random upper-case alphanumeric code (ABC123 style)."""
        while True:
            code = "".join(random.choices(_ROOM_ID_ALPHABET, k=self.code_length))
            if code not in self._rooms:
                return code

    # ── Locking ──────────────────────────────────────

    @asynccontextmanager
    async def locked(self, room_id: str) -> AsyncIterator[str]:
        """Hold the room's lock; yields the normalized room id."""
        room_id = normalize_room_id(room_id)
        async with self._locks.hold(room_id):
            yield room_id

    # ── CRUD ─────────────────────────────────────────

    def create(
        self,
        room_id: str | None = None,
        creator: Player | None = None,
        settings: RoomSettings | None = None,
    ) -> tuple[Room, bool]:
        """
        Create a room, or return the existing one untouched.

        Returns:
            (room, created). On an id collision creator and settings are
            ignored and `created` is False.
        """
        rid = normalize_room_id(room_id) if room_id else self.generate_room_id()
        existing = self._rooms.get(rid)
        if existing:
            return existing, False

        room = Room(id=rid, settings=settings or RoomSettings())
        if creator:
            room.players.append(creator)
        self._rooms[rid] = room
        logger.info(
            f"🎮 Room created: {rid} (max_rounds={room.max_rounds}, ai_mode={room.ai_mode.value})"
        )
        return room, True

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(normalize_room_id(room_id))

    def require(self, room_id: str) -> Room:
        """Like `get` but raises RoomNotFoundError."""
        room = self.get(room_id)
        if room is None:
            raise RoomNotFoundError(normalize_room_id(room_id))
        return room

    def delete(self, room_id: str) -> bool:
        rid = normalize_room_id(room_id)
        if self._rooms.pop(rid, None) is None:
            return False
        logger.info(f"🗑️  Room deleted: {rid}")
        return True

    def delete_if_empty(self, room_id: str) -> bool:
        room = self.get(room_id)
        if room is not None and not room.players:
            return self.delete(room_id)
        return False

    def list(self) -> list[Room]:
        return list(self._rooms.values())

    def __contains__(self, room_id: str) -> bool:
        return normalize_room_id(room_id) in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
