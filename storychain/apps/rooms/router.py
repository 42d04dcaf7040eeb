"""
router.py — Room REST Endpoints
===============================
Request/response access to every room operation. Mutations made here are
also broadcast to the room's websocket subscribers.

ENDPOINTS:
----------
GET    /rooms                      → list rooms
POST   /rooms                      → create room (idempotent on room_id)
GET    /rooms/{id}                 → room state
POST   /rooms/{id}/join            → seat a player
POST   /rooms/{id}/leave           → vacate a seat (last one deletes the room)
GET    /rooms/{id}/players         → turn order
GET    /rooms/{id}/current-turn    → whose turn it is
POST   /rooms/{id}/shuffle         → shuffle turn order
GET    /rooms/{id}/story           → story so far
POST   /rooms/{id}/story           → submit a turn
POST   /rooms/{id}/twist           → append an automated twist (waits for it)
POST   /rooms/{id}/suggestion      → AI suggestion for who goes next
POST   /rooms/{id}/prompt          → AI story prompt

Errors use the `{"error": {"code", "message", "details"}}` body produced by
`register_error_handlers`.
"""

from fastapi import APIRouter, Depends, status

from storychain.apps.rooms.schema import (
    CurrentTurnResponse,
    JoinRequest,
    LeaveRequest,
    LeaveResponse,
    PlayersResponse,
    PromptResponse,
    RoomCreateRequest,
    RoomCreateResponse,
    RoomJoinResponse,
    RoomOut,
    ShuffleResponse,
    StoryPartRequest,
    StoryResponse,
    SuggestionResponse,
    TurnResponse,
    TwistResponse,
)
from storychain.apps.rooms.service import RoomService
from storychain.core.dependencies import get_room_service

router = APIRouter(
    prefix="/rooms",
    tags=["rooms"],
    responses={
        404: {"description": "Room or player not found"},
        409: {"description": "Room inactive or story finished"},
    },
)


def _player_or_none(player):
    return player.to_dict() if player else None


@router.get("", response_model=list[RoomOut])
async def list_rooms_endpoint(service: RoomService = Depends(get_room_service)):
    """All live rooms (debug/admin)."""
    return [room.to_dict() for room in service.list_rooms()]


@router.post("", response_model=RoomCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_room_endpoint(req: RoomCreateRequest, service: RoomService = Depends(get_room_service)):
    """
    Create a room. If `room_id` already exists the existing room is returned
    unchanged (`created: false`) and creator/settings are ignored.

    Returns:
        201: room
        422: INVALID_SETTINGS (unknown ai_mode, max_rounds < 1)
    """
    room, created = await service.create_room(
        room_id=req.room_id,
        creator_name=req.creator.name if req.creator else None,
        creator_id=req.creator.id if req.creator else None,
        max_rounds=req.max_rounds,
        ai_mode=req.ai_mode,
    )
    return {
        "room_code": room.id,
        "created": created,
        "creator": req.creator.name if req.creator else "Anonymous",
        "max_rounds": room.max_rounds,
        "ai_mode": room.ai_mode.value,
        "participants": [p.name for p in room.players],
        "current_round": room.current_round,
        "room": room.to_dict(),
    }


@router.get("/{room_id}", response_model=RoomOut)
async def get_room_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    return service.get_room(room_id).to_dict()


@router.post("/{room_id}/join", response_model=RoomJoinResponse)
async def join_room_endpoint(room_id: str, req: JoinRequest, service: RoomService = Depends(get_room_service)):
    """
    Returns:
        200: joined (or already seated: `added: false`)
        404: ROOM_NOT_FOUND
        409: ROOM_INACTIVE
    """
    room, player, added = await service.join_room(room_id, name=req.player.name, player_id=req.player.id)
    return {
        "room_code": room.id,
        "player": player.to_dict(),
        "added": added,
        "participants": [p.name for p in room.players],
        "max_rounds": room.max_rounds,
        "current_round": room.current_round,
        "ai_mode": room.ai_mode.value,
        "room": room.to_dict(),
    }


@router.post("/{room_id}/leave", response_model=LeaveResponse)
async def leave_room_endpoint(room_id: str, req: LeaveRequest, service: RoomService = Depends(get_room_service)):
    room = await service.leave_room(room_id, req.player_id)
    if room is None:
        return {"message": "Left room; room deleted (empty)", "room_deleted": True, "room": None}
    return {"message": "Left room", "room_deleted": False, "room": room.to_dict()}


@router.get("/{room_id}/players", response_model=PlayersResponse)
async def get_players_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    room = service.get_room(room_id)
    return {
        "players": [p.to_dict() for p in room.players],
        "current_turn": room.current_turn,
        "current_player": _player_or_none(room.current_player()),
    }


@router.get("/{room_id}/current-turn", response_model=CurrentTurnResponse)
async def get_current_turn_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    room = service.get_room(room_id)
    return {
        "room_id": room.id,
        "current_round": room.current_round,
        "current_player": _player_or_none(room.current_player()),
    }


@router.post("/{room_id}/shuffle", response_model=ShuffleResponse)
async def shuffle_players_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    room, shuffled = await service.shuffle_players(room_id)
    return {
        "shuffled": shuffled,
        "room": room.to_dict(),
        "current_player": _player_or_none(room.current_player()),
    }


@router.get("/{room_id}/story", response_model=StoryResponse)
async def get_story_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    room = service.get_room(room_id)
    return {"story": [entry.to_dict() for entry in room.story]}


@router.post("/{room_id}/story", response_model=TurnResponse, status_code=status.HTTP_201_CREATED)
async def submit_turn_endpoint(room_id: str, req: StoryPartRequest, service: RoomService = Depends(get_room_service)):
    """
    Submit the current player's part.

    Returns:
        201: accepted; `type` is "story_finished" when this part ended the story
        400: EMPTY_CONTENT
        403: NOT_YOUR_TURN
        409: GAME_FINISHED
    """
    room, result = await service.submit_turn(room_id, req.player_id, req.content)
    return {
        "type": "story_finished" if result.finished else "story_updated",
        "sender": result.entry.author,
        "message": result.entry.content,
        "round": result.entry.round,
        **result.to_dict(),
        "room": room.to_dict(),
    }


@router.post("/{room_id}/twist", response_model=TwistResponse, status_code=status.HTTP_201_CREATED)
async def add_twist_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    room, entry = await service.add_twist(room_id)
    return {"twist": entry.to_dict(), "room": room.to_dict()}


@router.post("/{room_id}/suggestion", response_model=SuggestionResponse)
async def suggest_next_player_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    suggestion, current = await service.suggest_next_player(room_id)
    return {"suggestion": suggestion, "current_player": _player_or_none(current)}


@router.post("/{room_id}/prompt", response_model=PromptResponse)
async def story_prompt_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    room = service.get_room(room_id)
    prompt = await service.story_prompt(room.id)
    return {"room_id": room.id, "prompt": prompt}
