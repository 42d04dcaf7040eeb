"""
router.py — WebSocket Session Gateway
=====================================
ENDPOINT:
---------
WS /ws

FLOW:
-----
1. Client connects → `connected` welcome message
2. Loop: decode a command envelope, route it to RoomService, answer the
   originating connection with an ack (or an error envelope)
3. Shared-state changes are broadcast by RoomService to the room's other
   subscribers
4. On disconnect the connection is unsubscribed from its room. The player
   keeps their seat: only `leave_room` vacates it.

A connection belongs to at most one room at a time; switching rooms means
`leave_room` then `join_room`/`create_room`.
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from storychain.apps.rooms.registry import normalize_room_id
from storychain.apps.rooms.service import RoomService
from storychain.apps.ws.schema import (
    CreateRoomCommand,
    EventType,
    GetCurrentTurnCommand,
    GetPlayersCommand,
    GetRoomInfoCommand,
    GetStoryHistoryCommand,
    GetStoryPromptCommand,
    JoinRoomCommand,
    LeaveRoomCommand,
    PingCommand,
    RequestTwistCommand,
    ShufflePlayersCommand,
    SubmitTurnCommand,
    SuggestNextPlayerCommand,
    error_event,
    make_event,
    parse_command,
)
from storychain.core.errors import GameFinishedError, ProtocolError, StoryChainError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


class SessionGateway:
    """Protocol state and command handling for one websocket connection."""

    def __init__(self, websocket: WebSocket, service: RoomService):
        self.websocket = websocket
        self.service = service
        self.room_id: str | None = None
        self.player_id: str | None = None
        self._handlers = {
            CreateRoomCommand: self.create_room,
            JoinRoomCommand: self.join_room,
            LeaveRoomCommand: self.leave_room,
            SubmitTurnCommand: self.submit_turn,
            RequestTwistCommand: self.request_twist,
            ShufflePlayersCommand: self.shuffle_players,
            GetRoomInfoCommand: self.get_room_info,
            GetStoryHistoryCommand: self.get_story_history,
            GetPlayersCommand: self.get_players,
            GetCurrentTurnCommand: self.get_current_turn,
            SuggestNextPlayerCommand: self.suggest_next_player,
            GetStoryPromptCommand: self.get_story_prompt,
            PingCommand: self.ping,
        }

    @property
    def hub(self):
        return self.service.hub

    async def reply(self, event_type: EventType, **data) -> None:
        await self.hub.send(self.websocket, make_event(event_type, **data))

    # ═══════════════════════════════════════════════════
    # CONNECTION LIFECYCLE
    # ═══════════════════════════════════════════════════

    async def run(self) -> None:
        await self.websocket.accept()
        logger.info("🔌 WebSocket connection established")
        await self.reply(EventType.CONNECTED, message="Welcome to AI Story Chain!")

        try:
            while True:
                text = await self.websocket.receive_text()
                await self.handle_text(text)
        except WebSocketDisconnect:
            logger.info(f"🔌 WebSocket disconnected (room={self.room_id}, player={self.player_id})")
        except Exception as e:
            logger.error(f"❌ WebSocket error: {e}", exc_info=True)
        finally:
            self.close()

    def close(self) -> None:
        """Disconnection ≠ leaving: drop the subscription, keep the seat."""
        self.hub.unsubscribe_all(self.websocket)
        self.room_id = None

    async def handle_text(self, text: str) -> None:
        command_type = None
        try:
            try:
                raw = json.loads(text)
            except json.JSONDecodeError:
                raise ProtocolError("Message must be valid JSON", "INVALID_FORMAT") from None
            if isinstance(raw, dict):
                command_type = raw.get("type")

            command = parse_command(raw)
            logger.info(f"📥 Received: {command.type}")
            await self._handlers[type(command)](command)
        except StoryChainError as e:
            logger.info(f"⚠️  {command_type or 'message'} rejected: {e.code} {e.message}")
            await self.hub.send(self.websocket, error_event(e, command_type))

    # ═══════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════

    def _target_room(self, command: BaseModel) -> str:
        room_id = getattr(command, "room_id", None) or self.room_id
        if not room_id:
            raise ProtocolError("Room ID required", "NOT_IN_ROOM")
        return normalize_room_id(room_id)

    def _own_room(self, command: BaseModel) -> str:
        """Room a mutating command targets; it must be this connection's room."""
        room_id = self._target_room(command)
        if room_id != self.room_id:
            raise ProtocolError("Not connected to this room", "NOT_IN_ROOM", {"room_id": room_id})
        return room_id

    def _check_can_enter(self, room_id: str | None) -> None:
        if self.room_id and self.room_id != room_id:
            raise ProtocolError(
                f"Already in room {self.room_id}; leave it first",
                "ALREADY_IN_ROOM",
                {"room_id": self.room_id},
            )

    def _acting_player(self, player_id: str | None) -> str:
        pid = player_id or self.player_id
        if not pid:
            raise ProtocolError("Player ID required", "PLAYER_REQUIRED")
        return pid

    # ═══════════════════════════════════════════════════
    # COMMAND HANDLERS: shared state
    # ═══════════════════════════════════════════════════

    async def create_room(self, command: CreateRoomCommand) -> None:
        self._check_can_enter(normalize_room_id(command.room_id) if command.room_id else None)

        creator = command.creator
        room, created = await self.service.create_room(
            room_id=command.room_id,
            creator_name=creator.name if creator else None,
            creator_id=creator.id if creator else None,
            max_rounds=command.max_rounds,
            ai_mode=command.ai_mode,
            channel=self.websocket,
        )
        self.room_id = room.id
        if created and room.players:
            self.player_id = room.players[0].id

        await self.reply(
            EventType.ROOM_CREATED,
            created=created,
            player_id=self.player_id,
            room=room.to_dict(),
        )

    async def join_room(self, command: JoinRoomCommand) -> None:
        room_id = normalize_room_id(command.room_id)
        self._check_can_enter(room_id)

        room, player, added = await self.service.join_room(
            room_id,
            name=command.player.name,
            player_id=command.player.id,
            channel=self.websocket,
        )
        self.room_id = room.id
        self.player_id = player.id

        await self.reply(EventType.JOINED_ROOM, player=player.to_dict(), added=added, room=room.to_dict())

    async def leave_room(self, command: LeaveRoomCommand) -> None:
        room_id = self._own_room(command)
        player_id = self._acting_player(command.player_id)
        if self.player_id and player_id != self.player_id:
            raise ProtocolError(
                "Can only leave with your own player",
                "NOT_YOUR_PLAYER",
                {"player_id": player_id},
            )

        remaining = await self.service.leave_room(room_id, player_id, channel=self.websocket)
        self.room_id = None
        self.player_id = None

        if remaining is None:
            message = "Left room - room was deleted as it became empty"
        else:
            message = "Successfully left room"
        await self.reply(EventType.LEFT_ROOM, room_id=room_id, room_deleted=remaining is None, message=message)

    async def submit_turn(self, command: SubmitTurnCommand) -> None:
        room_id = self._own_room(command)
        player_id = self._acting_player(command.player_id)

        room, result = await self.service.submit_turn(
            room_id, player_id, command.content, channel=self.websocket
        )
        await self.reply(EventType.TURN_ACCEPTED, **result.to_dict(), room=room.summary())

    async def request_twist(self, command: RequestTwistCommand) -> None:
        room_id = self._own_room(command)
        room = self.service.get_room(room_id)
        if not room.is_active:
            raise GameFinishedError(room.id)

        # The twist itself arrives later as automated_twist_added
        self.service.schedule_twist(room.id)
        await self.reply(EventType.TWIST_REQUESTED, room_id=room.id)

    async def shuffle_players(self, command: ShufflePlayersCommand) -> None:
        room_id = self._own_room(command)
        room, shuffled = await self.service.shuffle_players(room_id, channel=self.websocket)
        await self.reply(EventType.PLAYERS_SHUFFLED, shuffled=shuffled, room=room.summary())

    # ═══════════════════════════════════════════════════
    # COMMAND HANDLERS: read only
    # ═══════════════════════════════════════════════════

    async def get_room_info(self, command: GetRoomInfoCommand) -> None:
        room = self.service.get_room(self._target_room(command))
        await self.reply(EventType.ROOM_INFO, room=room.to_dict())

    async def get_story_history(self, command: GetStoryHistoryCommand) -> None:
        room = self.service.get_room(self._target_room(command))
        await self.reply(EventType.STORY_HISTORY, room_id=room.id, story=[e.to_dict() for e in room.story])

    async def get_players(self, command: GetPlayersCommand) -> None:
        room = self.service.get_room(self._target_room(command))
        current = room.current_player()
        await self.reply(
            EventType.PLAYERS_LIST,
            room_id=room.id,
            players=[p.to_dict() for p in room.players],
            current_turn=room.current_turn,
            current_player=current.to_dict() if current else None,
        )

    async def get_current_turn(self, command: GetCurrentTurnCommand) -> None:
        room = self.service.get_room(self._target_room(command))
        current = room.current_player()
        await self.reply(
            EventType.CURRENT_TURN,
            room_id=room.id,
            current_round=room.current_round,
            current_player=current.to_dict() if current else None,
        )

    async def suggest_next_player(self, command: SuggestNextPlayerCommand) -> None:
        suggestion, current = await self.service.suggest_next_player(self._target_room(command))
        await self.reply(
            EventType.AI_PLAYER_SUGGESTION,
            suggestion=suggestion,
            current_player=current.to_dict() if current else None,
        )

    async def get_story_prompt(self, command: GetStoryPromptCommand) -> None:
        room_id = self._target_room(command)
        prompt = await self.service.story_prompt(room_id)
        await self.reply(EventType.STORY_PROMPT, room_id=room_id, prompt=prompt)

    async def ping(self, command: PingCommand) -> None:
        await self.reply(EventType.PONG, timestamp=command.timestamp)


# ═══════════════════════════════════════════════════
# WEBSOCKET ENDPOINT
# ═══════════════════════════════════════════════════

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Example session:
        → {"type": "create_room", "creator": {"name": "Ada"}, "maxRounds": 3}
        ← {"type": "room_created", "room": {...}}
        → {"type": "submit_turn", "content": "It was a dark and stormy night."}
        ← {"type": "turn_accepted", ...}
    """
    gateway = SessionGateway(websocket, websocket.app.state.room_service)
    await gateway.run()
