"""
service.py — Room Business Logic
================================
The one place where the registry, the turn/round engine, the broadcast hub
and the content provider meet. Both transports (REST router and websocket
gateway) call into `RoomService`; neither touches room state directly.

RULES:
------
- Every mutation runs under the room's lock, and the resulting event is
  broadcast before the lock is released so subscribers see events in commit
  order.
- Provider calls never run under a room lock. A twist is generated from a
  snapshot of the story and appended in a second locked step; turns
  submitted meanwhile are accepted.
- Provider failures never reach the caller: fallback text is used.
- `channel` arguments identify the originating websocket (if any). It is
  subscribed/unsubscribed as needed and excluded from the broadcast,
  because the gateway sends it a direct ack instead.
"""

from __future__ import annotations

import asyncio
import logging

from storychain.apps.rooms import engine
from storychain.apps.rooms.engine import TurnResult
from storychain.apps.rooms.models import Player, Room, RoomSettings, StoryEntry
from storychain.apps.rooms.registry import RoomRegistry, normalize_room_id
from storychain.apps.ws.schema import EventType, make_event
from storychain.apps.ws.service import BroadcastHub, Channel
from storychain.core.config import Settings
from storychain.core.errors import GameFinishedError, RoomNotFoundError, StoryChainError
from storychain.services.content_filter import sanitize_content
from storychain.services.content_provider import (
    FALLBACK_PROMPT,
    FALLBACK_SUGGESTION,
    FALLBACK_TWIST,
    ContentProvider,
)

logger = logging.getLogger(__name__)


class RoomService:
    def __init__(
        self,
        registry: RoomRegistry,
        hub: BroadcastHub,
        provider: ContentProvider,
        settings: Settings,
    ):
        self.registry = registry
        self.hub = hub
        self.provider = provider
        self.settings = settings
        self._tasks: set[asyncio.Task] = set()

    # ═══════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════

    def get_room(self, room_id: str) -> Room:
        return self.registry.require(room_id)

    def list_rooms(self) -> list[Room]:
        return self.registry.list()

    def default_settings(self) -> RoomSettings:
        return RoomSettings.parse(self.settings.DEFAULT_MAX_ROUNDS, self.settings.DEFAULT_AI_MODE)

    # ═══════════════════════════════════════════════════
    # MUTATIONS
    # ═══════════════════════════════════════════════════

    async def create_room(
        self,
        room_id: str | None = None,
        creator_name: str | None = None,
        creator_id: str | None = None,
        max_rounds: int | None = None,
        ai_mode: str | None = None,
        channel: Channel | None = None,
    ) -> tuple[Room, bool]:
        """
        Create a room (idempotent on an existing id).

        Returns:
            (room, created)

        Raises:
            InvalidSettingsError: bad max_rounds / ai_mode
        """
        settings = RoomSettings.parse(max_rounds, ai_mode, self.default_settings())
        rid = normalize_room_id(room_id) if room_id else self.registry.generate_room_id()

        async with self.registry.locked(rid):
            creator = None
            if creator_name:
                creator = Player(id=creator_id or engine.new_player_id(), name=creator_name)
            room, created = self.registry.create(rid, creator, settings)

            if channel is not None:
                self.hub.subscribe(room.id, channel)
            if created:
                await self.hub.broadcast(
                    room.id,
                    make_event(EventType.ROOM_CREATED, room=room.to_dict()),
                    exclude=channel,
                )
        return room, created

    async def join_room(
        self,
        room_id: str,
        name: str,
        player_id: str | None = None,
        channel: Channel | None = None,
    ) -> tuple[Room, Player, bool]:
        """
        Seat a player. Re-joining with a seated id is a no-op (added=False).

        Raises:
            RoomNotFoundError, RoomInactiveError
        """
        async with self.registry.locked(room_id) as rid:
            room = self.registry.require(rid)
            player, added = engine.join(room, player_id, name)

            if channel is not None:
                self.hub.subscribe(rid, channel)
            if added:
                await self.hub.broadcast(
                    rid,
                    make_event(EventType.PLAYER_JOINED, player=player.to_dict(), room=room.summary()),
                    exclude=channel,
                )
        return room, player, added

    async def leave_room(
        self,
        room_id: str,
        player_id: str,
        channel: Channel | None = None,
    ) -> Room | None:
        """
        Vacate a seat. Returns None when the room was deleted (last player left).

        Raises:
            RoomNotFoundError, PlayerNotFoundError
        """
        async with self.registry.locked(room_id) as rid:
            room = self.registry.require(rid)
            remaining = engine.leave(room, player_id)
            if remaining is None:
                self.registry.delete(rid)

            if channel is not None:
                self.hub.unsubscribe(rid, channel)
            await self.hub.broadcast(
                rid,
                make_event(
                    EventType.PLAYER_LEFT,
                    player_id=player_id,
                    room=remaining.summary() if remaining else None,
                    room_deleted=remaining is None,
                ),
                exclude=channel,
            )
        return remaining

    async def submit_turn(
        self,
        room_id: str,
        player_id: str,
        content: str,
        channel: Channel | None = None,
    ) -> tuple[Room, TurnResult]:
        """
        Append a player's part; may complete the round or finish the story.

        Raises:
            RoomNotFoundError, GameFinishedError, NotYourTurnError, EmptyContentError
        """
        async with self.registry.locked(room_id) as rid:
            room = self.registry.require(rid)
            result = engine.submit_turn(room, player_id, content, self.settings.CONTENT_FILTER_KEYWORDS)

            await self.hub.broadcast(
                rid,
                make_event(EventType.STORY_UPDATED, **result.to_dict(), room=room.summary()),
                exclude=channel,
            )
            if result.finished:
                await self.hub.broadcast(
                    rid,
                    make_event(
                        EventType.STORY_FINISHED,
                        room_id=rid,
                        final_round=result.completed_round,
                        story=[entry.to_dict() for entry in room.story],
                    ),
                )

        if result.should_ai_play and self.settings.AUTO_TWIST_ENABLED:
            self.schedule_twist(rid)
        return room, result

    async def shuffle_players(self, room_id: str, channel: Channel | None = None) -> tuple[Room, bool]:
        async with self.registry.locked(room_id) as rid:
            room = self.registry.require(rid)
            shuffled = engine.shuffle(room)
            if shuffled:
                await self.hub.broadcast(
                    rid,
                    make_event(EventType.PLAYERS_SHUFFLED, room=room.summary()),
                    exclude=channel,
                )
        return room, shuffled

    # ═══════════════════════════════════════════════════
    # AUTOMATED TWISTS
    # ═══════════════════════════════════════════════════

    async def _generate(self, coro, fallback: str) -> str:
        """Await a provider call with a hard timeout; never raises."""
        try:
            text = await asyncio.wait_for(coro, timeout=self.settings.CONTENT_PROVIDER_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("⚠️  Content provider timed out, using fallback text")
            return fallback
        except Exception:
            logger.exception("Content provider failed, using fallback text")
            return fallback
        text = (text or "").strip()
        if not text:
            return fallback
        return sanitize_content(text, self.settings.CONTENT_FILTER_KEYWORDS)

    async def add_twist(self, room_id: str) -> tuple[Room, StoryEntry]:
        """
        Generate and append an automated twist, then broadcast it to every
        subscriber of the room.

        Returns:
            (room, twist) as they stood when the twist was appended.

        Raises:
            RoomNotFoundError: room missing before or after generation
            GameFinishedError: room finished before or after generation
        """
        async with self.registry.locked(room_id) as rid:
            room = self.registry.require(rid)
            if not room.is_active:
                raise GameFinishedError(rid)
            story_text = room.story_text()

        content = await self._generate(self.provider.generate_twist(story_text), FALLBACK_TWIST)

        async with self.registry.locked(rid):
            room = self.registry.get(rid)
            if room is None:
                raise RoomNotFoundError(rid)
            if not room.is_active:
                raise GameFinishedError(rid)
            entry = engine.append_twist(room, content)
            logger.info(f"✨ Twist added to room {rid} (round {entry.round})")

            await self.hub.broadcast(
                rid,
                make_event(
                    EventType.AUTOMATED_TWIST_ADDED,
                    twist=entry.to_dict(),
                    room=room.summary(),
                ),
            )
        return room, entry

    def schedule_twist(self, room_id: str) -> asyncio.Task:
        """Run `add_twist` in the background; the caller does not wait for it."""
        task = asyncio.create_task(self.add_twist(room_id))
        self._tasks.add(task)
        task.add_done_callback(self._twist_done)
        return task

    def _twist_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, StoryChainError):
            logger.info(f"Background twist dropped: {exc}")
        elif exc is not None:
            logger.error("Background twist failed", exc_info=exc)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    # ═══════════════════════════════════════════════════
    # SUGGESTIONS (read-only, no lock held while generating)
    # ═══════════════════════════════════════════════════

    async def suggest_next_player(self, room_id: str) -> tuple[str, Player | None]:
        room = self.registry.require(room_id)
        names = [p.name for p in room.players]
        current = room.current_player()
        suggestion = await self._generate(
            self.provider.generate_player_suggestion(names), FALLBACK_SUGGESTION
        )
        return suggestion, current

    async def story_prompt(self, room_id: str) -> str:
        room = self.registry.require(room_id)
        story_text = room.story_text()
        names = [p.name for p in room.players]
        return await self._generate(self.provider.generate_prompt(story_text, names), FALLBACK_PROMPT)
