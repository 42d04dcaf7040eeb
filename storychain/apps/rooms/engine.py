"""
engine.py — Turn / Round Engine
===============================
State transitions over a single Room. Every function here is synchronous and
does no I/O; callers hold the room's lock around each call.

TURN POLICY:
------------
A submission appends a `story_part` tagged with the current round, rotates
the turn to the next player, then checks round completion. A round is
complete once the human (non-automated) parts tagged with it reach the
player count. Finishing round `max_rounds` marks the room Finished.

USAGE:
------
    result = engine.submit_turn(room, "p1", "Once upon a time...")
    if result.finished:
        ...
"""

import logging
import random
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from storychain.apps.rooms.models import (
    AI_AUTHOR,
    AiMode,
    EntryType,
    Player,
    Room,
    StoryEntry,
    utcnow,
)
from storychain.core.errors import (
    EmptyContentError,
    GameFinishedError,
    NotYourTurnError,
    PlayerNotFoundError,
    RoomInactiveError,
)
from storychain.services.content_filter import sanitize_content

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Outcome of an accepted submission."""
    entry: StoryEntry
    round_complete: bool
    completed_round: int | None
    current_round: int
    finished: bool
    should_ai_play: bool
    next_player: Player | None

    def to_dict(self) -> dict:
        return {
            "story_part": self.entry.to_dict(),
            "round_complete": self.round_complete,
            "completed_round": self.completed_round,
            "current_round": self.current_round,
            "finished": self.finished,
            "should_ai_play": self.should_ai_play,
            "next_player": self.next_player.to_dict() if self.next_player else None,
        }


@dataclass
class RoundAdvance:
    advanced: bool
    completed_round: int | None = None
    finished: bool = False


# ═══════════════════════════════════════════════════
# MEMBERSHIP
# ═══════════════════════════════════════════════════

def new_player_id() -> str:
    return uuid.uuid4().hex[:12]


def join(room: Room, player_id: str | None, name: str) -> tuple[Player, bool]:
    """
    Add a player at the end of the turn order.

    Returns:
        (player, added): `added` is False when the id was already seated,
        in which case the room is left untouched.

    Raises:
        RoomInactiveError: room is Finished
    """
    if not room.is_active:
        raise RoomInactiveError(room.id)

    if player_id:
        existing = room.find_player(player_id)
        if existing:
            return existing, False

    player = Player(id=player_id or new_player_id(), name=name)
    room.players.append(player)
    logger.info(f"👤 {player.name} ({player.id}) joined room {room.id}")
    return player, True


def leave(room: Room, player_id: str) -> Room | None:
    """
    Remove a player and keep the turn index valid.

    Returns:
        The room, or None when the last player left (the caller drops it).

    Raises:
        PlayerNotFoundError: player is not seated in the room
    """
    index = next((i for i, p in enumerate(room.players) if p.id == player_id), None)
    if index is None:
        raise PlayerNotFoundError(room.id, player_id)

    del room.players[index]
    logger.info(f"🚪 {player_id} left room {room.id}")

    if not room.players:
        room.current_turn = 0
        return None

    if room.current_turn >= len(room.players):
        room.current_turn %= len(room.players)
    return room


# ═══════════════════════════════════════════════════
# TURNS & ROUNDS
# ═══════════════════════════════════════════════════

def next_turn(room: Room) -> Player | None:
    """Rotate to the next player; None when the room has no players."""
    if not room.players:
        return None
    room.current_turn = (room.current_turn + 1) % len(room.players)
    return room.players[room.current_turn]


def human_parts_in_round(room: Room, round_number: int) -> int:
    return sum(
        1 for entry in room.story
        if entry.type is EntryType.STORY_PART and entry.round == round_number
    )


def is_round_complete(room: Room, round_number: int | None = None) -> bool:
    if not room.players:
        return False
    round_number = room.current_round if round_number is None else round_number
    return human_parts_in_round(room, round_number) >= len(room.players)


def advance_round(room: Room) -> RoundAdvance:
    """Move to the next round if the current one is complete."""
    if not is_round_complete(room):
        return RoundAdvance(advanced=False)

    completed = room.current_round
    room.current_round += 1
    room.round_started_at = utcnow()

    if room.current_round > room.max_rounds:
        room.is_active = False
        logger.info(f"🏁 Room {room.id} finished after round {completed}")
        return RoundAdvance(advanced=True, completed_round=completed, finished=True)

    logger.info(f"🔄 Room {room.id} advanced to round {room.current_round}/{room.max_rounds}")
    return RoundAdvance(advanced=True, completed_round=completed)


def automated_turn_eligible(room: Room, round_number: int | None = None) -> bool:
    """
    Advisory check: may an automated twist be requested for this round?

    Looks at `round_number` (default: the current round) and never changes
    the room.
    """
    round_number = room.current_round if round_number is None else round_number
    if room.ai_mode is AiMode.MANUAL_ONLY:
        return False
    if room.ai_mode is AiMode.EVERY_2_ROUNDS and round_number % 2 != 0:
        return False
    return is_round_complete(room, round_number)


def submit_turn(
    room: Room,
    player_id: str,
    content: str,
    keywords: Iterable[str] | None = None,
) -> TurnResult:
    """
    Append the current player's part and progress the turn/round.

    `keywords` overrides the configured content filter list.

    Raises:
        GameFinishedError: room is Finished
        NotYourTurnError: `player_id` is not the current player
        EmptyContentError: content is blank after trimming
    """
    if not room.is_active:
        raise GameFinishedError(room.id)

    current = room.current_player()
    if current is None or current.id != player_id:
        raise NotYourTurnError(player_id, current.id if current else None)

    text = (content or "").strip()
    if not text:
        raise EmptyContentError()

    entry = StoryEntry(
        type=EntryType.STORY_PART,
        content=sanitize_content(text, keywords),
        author=current.name,
        author_id=current.id,
        round=room.current_round,
    )
    room.story.append(entry)
    next_player = next_turn(room)

    # Eligibility is judged on the round this part belongs to, before it rolls over
    should_ai_play = automated_turn_eligible(room, entry.round)
    advance = advance_round(room)

    return TurnResult(
        entry=entry,
        round_complete=advance.advanced,
        completed_round=advance.completed_round,
        current_round=room.current_round,
        finished=advance.finished,
        should_ai_play=should_ai_play and not advance.finished,
        next_player=next_player,
    )


def append_twist(room: Room, content: str) -> StoryEntry:
    """Append an automated twist; it never counts towards round completion."""
    entry = StoryEntry(
        type=EntryType.AI_TWIST,
        content=content,
        author=AI_AUTHOR,
        round=room.current_round,
    )
    room.story.append(entry)
    return entry


def shuffle(room: Room, rng: random.Random | None = None) -> bool:
    """
    Fisher–Yates shuffle of the turn order; resets the turn to index 0.

    Returns:
        False (and leaves the room untouched) with fewer than two players.
    """
    if len(room.players) < 2:
        return False

    rng = rng or random
    players = room.players
    for i in range(len(players) - 1, 0, -1):
        j = rng.randint(0, i)
        players[i], players[j] = players[j], players[i]
    room.current_turn = 0
    logger.info(f"🔀 Shuffled players in room {room.id}")
    return True
