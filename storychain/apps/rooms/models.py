"""
Room models — in-memory state of a storytelling room.

A Room owns its players (turn order) and its append-only story.
Nothing here is persisted; rooms live as long as the process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from storychain.core.errors import InvalidSettingsError

AI_AUTHOR = "AI"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AiMode(str, Enum):
    EVERY_ROUND = "every_round"
    EVERY_2_ROUNDS = "every_2_rounds"
    MANUAL_ONLY = "manual_only"


class EntryType(str, Enum):
    STORY_PART = "story_part"
    AI_TWIST = "ai_twist"


@dataclass(frozen=True)
class RoomSettings:
    """Per-room rules fixed at creation."""
    max_rounds: int = 5
    ai_mode: AiMode = AiMode.MANUAL_ONLY

    @classmethod
    def parse(cls, max_rounds: int | None, ai_mode: str | None, defaults: RoomSettings | None = None) -> RoomSettings:
        """
        Validate raw settings coming from either transport.

        Raises:
            InvalidSettingsError: unknown ai_mode or max_rounds < 1
        """
        defaults = defaults or cls()
        rounds = defaults.max_rounds if max_rounds is None else max_rounds
        if isinstance(rounds, bool) or not isinstance(rounds, int) or rounds < 1:
            raise InvalidSettingsError(
                "max_rounds must be a positive integer",
                {"max_rounds": max_rounds},
            )

        mode_raw = defaults.ai_mode.value if ai_mode is None else ai_mode
        try:
            mode = AiMode(mode_raw)
        except ValueError:
            valid = ", ".join(m.value for m in AiMode)
            raise InvalidSettingsError(
                f"ai_mode must be one of: {valid}",
                {"ai_mode": ai_mode},
            ) from None
        return cls(max_rounds=rounds, ai_mode=mode)


@dataclass
class Player:
    id: str
    name: str
    joined_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "joined_at": self.joined_at.isoformat()}


@dataclass(frozen=True)
class StoryEntry:
    """
    One story element. `story_part` entries carry the author's id and name;
    `ai_twist` entries use the fixed author marker "AI" and no author id.
    """
    type: EntryType
    content: str
    author: str
    round: int
    author_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_automated(self) -> bool:
        return self.type is EntryType.AI_TWIST

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "content": self.content,
            "author": self.author,
            "author_id": self.author_id,
            "round": self.round,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Room:
    id: str
    settings: RoomSettings = field(default_factory=RoomSettings)
    players: list[Player] = field(default_factory=list)
    story: list[StoryEntry] = field(default_factory=list)
    current_turn: int = 0
    current_round: int = 1
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    round_started_at: datetime = field(default_factory=utcnow)

    @property
    def max_rounds(self) -> int:
        return self.settings.max_rounds

    @property
    def ai_mode(self) -> AiMode:
        return self.settings.ai_mode

    def find_player(self, player_id: str) -> Player | None:
        return next((p for p in self.players if p.id == player_id), None)

    def current_player(self) -> Player | None:
        if not self.players:
            return None
        return self.players[self.current_turn]

    def story_text(self) -> str:
        return " ".join(entry.content for entry in self.story)

    def summary(self) -> dict:
        """Light snapshot used in join/leave/shuffle events."""
        current = self.current_player()
        return {
            "id": self.id,
            "players": [p.to_dict() for p in self.players],
            "current_turn": self.current_turn,
            "current_player": current.to_dict() if current else None,
            "current_round": self.current_round,
        }

    def to_dict(self) -> dict:
        return {
            **self.summary(),
            "story": [entry.to_dict() for entry in self.story],
            "max_rounds": self.max_rounds,
            "ai_mode": self.ai_mode.value,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "round_started_at": self.round_started_at.isoformat(),
        }
