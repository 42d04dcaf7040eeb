"""
schema.py — Room Request/Response Models
========================================
Pydantic models for the REST endpoints. Request bodies accept camelCase or
snake_case field names (`maxRounds` / `max_rounds`).

Settings are deliberately loose here (`ai_mode: str`, `max_rounds: int`):
they are validated by `RoomSettings.parse`, the same path the websocket
gateway uses, so both transports report INVALID_SETTINGS identically.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ═══════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════

class PlayerIn(_Request):
    id: str | None = Field(default=None, description="Player id; generated when omitted")
    name: str = Field(..., min_length=1, max_length=50, description="Display name")


class RoomCreateRequest(_Request):
    """
    Example:
        {"creator": {"name": "Ada"}, "max_rounds": 3, "ai_mode": "every_round"}
    """
    room_id: str | None = Field(default=None, description="Custom room code; generated when omitted")
    creator: PlayerIn | None = None
    max_rounds: int | None = Field(default=None, description="Rounds before the story ends")
    ai_mode: str | None = Field(default=None, description="every_round | every_2_rounds | manual_only")


class JoinRequest(_Request):
    player: PlayerIn


class LeaveRequest(_Request):
    player_id: str = Field(..., min_length=1)


class StoryPartRequest(_Request):
    player_id: str = Field(..., min_length=1)
    content: str = ""


# ═══════════════════════════════════════════════════
# RESPONSE MODELS
# ═══════════════════════════════════════════════════

class PlayerOut(BaseModel):
    id: str
    name: str
    joined_at: str


class StoryEntryOut(BaseModel):
    type: str = Field(..., description="story_part | ai_twist")
    content: str
    author: str
    author_id: str | None = None
    round: int
    timestamp: str


class RoomSummaryOut(BaseModel):
    id: str
    players: list[PlayerOut]
    current_turn: int
    current_player: PlayerOut | None = None
    current_round: int


class RoomOut(RoomSummaryOut):
    story: list[StoryEntryOut]
    max_rounds: int
    ai_mode: str
    is_active: bool
    created_at: str
    round_started_at: str


class RoomCreateResponse(BaseModel):
    room_code: str
    created: bool
    creator: str
    max_rounds: int
    ai_mode: str
    participants: list[str]
    current_round: int
    room: RoomOut


class RoomJoinResponse(BaseModel):
    room_code: str
    player: PlayerOut
    added: bool
    participants: list[str]
    max_rounds: int
    current_round: int
    ai_mode: str
    room: RoomOut


class LeaveResponse(BaseModel):
    message: str
    room_deleted: bool
    room: RoomOut | None = None


class PlayersResponse(BaseModel):
    players: list[PlayerOut]
    current_turn: int
    current_player: PlayerOut | None = None


class CurrentTurnResponse(BaseModel):
    room_id: str
    current_round: int
    current_player: PlayerOut | None = None


class ShuffleResponse(BaseModel):
    shuffled: bool
    room: RoomOut
    current_player: PlayerOut | None = None


class StoryResponse(BaseModel):
    story: list[StoryEntryOut]


class TurnResponse(BaseModel):
    type: str = Field(..., description="story_updated | story_finished")
    sender: str
    message: str
    round: int
    story_part: StoryEntryOut
    round_complete: bool
    completed_round: int | None = None
    current_round: int
    finished: bool
    should_ai_play: bool
    next_player: PlayerOut | None = None
    room: RoomOut


class TwistResponse(BaseModel):
    twist: StoryEntryOut
    room: RoomOut


class SuggestionResponse(BaseModel):
    suggestion: str
    current_player: PlayerOut | None = None


class PromptResponse(BaseModel):
    room_id: str
    prompt: str
