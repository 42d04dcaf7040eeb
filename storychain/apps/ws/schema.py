"""
schema.py — WebSocket Command & Event Schemas
=============================================
Client → Server: a closed set of commands, discriminated on `type`.
Server → Client: events, always `{"type": <EventType>, ...}`.

MESSAGE FORMAT:
---------------
    {"type": "submit_turn", "roomId": "ABC123", "playerId": "p1", "content": "..."}

Field names are accepted in camelCase or snake_case. `room_id` / `player_id`
may be omitted once the connection has joined a room; the session's values
are used instead.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from storychain.core.errors import ProtocolError, StoryChainError


# ═══════════════════════════════════════════════════
# CLIENT → SERVER COMMANDS
# ═══════════════════════════════════════════════════

class _Command(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PlayerInfo(_Command):
    id: str | None = None
    name: str = "Anonymous"


class RoomCommand(_Command):
    room_id: str | None = None


class CreateRoomCommand(_Command):
    type: Literal["create_room"]
    room_id: str | None = None
    creator: PlayerInfo | None = None
    max_rounds: int | None = None
    ai_mode: str | None = None


class JoinRoomCommand(_Command):
    type: Literal["join_room"]
    room_id: str
    player: PlayerInfo


class LeaveRoomCommand(RoomCommand):
    type: Literal["leave_room"]
    player_id: str | None = None


class SubmitTurnCommand(RoomCommand):
    type: Literal["submit_turn", "add_story_part"]
    player_id: str | None = None
    content: str = ""


class RequestTwistCommand(RoomCommand):
    type: Literal["request_automated_twist", "add_ai_twist"]


class ShufflePlayersCommand(RoomCommand):
    type: Literal["shuffle_players"]


class GetRoomInfoCommand(RoomCommand):
    type: Literal["get_room_info"]


class GetStoryHistoryCommand(RoomCommand):
    type: Literal["get_story_history"]


class GetPlayersCommand(RoomCommand):
    type: Literal["get_players"]


class GetCurrentTurnCommand(RoomCommand):
    type: Literal["get_current_turn"]


class SuggestNextPlayerCommand(RoomCommand):
    type: Literal["ai_suggest_next_player"]


class GetStoryPromptCommand(RoomCommand):
    type: Literal["get_story_prompt"]


class PingCommand(_Command):
    type: Literal["ping", "heartbeat"]
    timestamp: Any = None


Command = Annotated[
    Union[
        CreateRoomCommand,
        JoinRoomCommand,
        LeaveRoomCommand,
        SubmitTurnCommand,
        RequestTwistCommand,
        ShufflePlayersCommand,
        GetRoomInfoCommand,
        GetStoryHistoryCommand,
        GetPlayersCommand,
        GetCurrentTurnCommand,
        SuggestNextPlayerCommand,
        GetStoryPromptCommand,
        PingCommand,
    ],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter = TypeAdapter(Command)


def parse_command(raw: Any) -> BaseModel:
    """
    Decode an inbound envelope into one of the command models.

    Raises:
        ProtocolError: not an object, missing/unknown `type`, or bad payload
    """
    if not isinstance(raw, dict):
        raise ProtocolError("Message must be a JSON object with a 'type' field", "INVALID_FORMAT")

    try:
        return _command_adapter.validate_python(raw)
    except ValidationError as e:
        kinds = {err["type"] for err in e.errors()}
        if "union_tag_not_found" in kinds:
            raise ProtocolError("Message must be a JSON object with a 'type' field", "INVALID_FORMAT") from None
        if "union_tag_invalid" in kinds:
            raise ProtocolError(f"Unknown message type: {raw.get('type')}", "UNKNOWN_COMMAND") from None
        raise ProtocolError(
            f"Invalid '{raw.get('type')}' message",
            "INVALID_COMMAND",
            {"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]},
        ) from None


# ═══════════════════════════════════════════════════
# SERVER → CLIENT EVENTS
# ═══════════════════════════════════════════════════

class EventType(str, Enum):
    CONNECTED = "connected"
    PONG = "pong"
    ERROR = "error"

    # Acks to the originating connection
    ROOM_CREATED = "room_created"
    JOINED_ROOM = "joined_room"
    LEFT_ROOM = "left_room"
    TURN_ACCEPTED = "turn_accepted"
    TWIST_REQUESTED = "twist_requested"

    # Room broadcasts
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    STORY_UPDATED = "story_updated"
    STORY_FINISHED = "story_finished"
    PLAYERS_SHUFFLED = "players_shuffled"
    AUTOMATED_TWIST_ADDED = "automated_twist_added"

    # Read-only replies
    ROOM_INFO = "room_info"
    STORY_HISTORY = "story_history"
    PLAYERS_LIST = "players_list"
    CURRENT_TURN = "current_turn"
    AI_PLAYER_SUGGESTION = "ai_player_suggestion"
    STORY_PROMPT = "story_prompt"


def make_event(event_type: EventType, **data: Any) -> dict:
    return {"type": event_type.value, **data}


def error_event(exc: StoryChainError, command: str | None = None) -> dict:
    return make_event(
        EventType.ERROR,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        command=command,
    )
