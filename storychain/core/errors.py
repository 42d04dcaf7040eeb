"""
errors.py — Error Taxonomy
==========================
Every rejection a room operation can produce is a `StoryChainError` with a
stable `code`, a human readable `message` and the HTTP status the REST layer
answers with. The websocket gateway reuses `code` and `message` for its
error envelope.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class StoryChainError(Exception):
    def __init__(self, code: str, message: str, status: int = 400, details: dict | None = None):
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class RoomNotFoundError(StoryChainError):
    def __init__(self, room_id: str):
        super().__init__("ROOM_NOT_FOUND", f"Room not found: {room_id}", 404, {"room_id": room_id})


class RoomInactiveError(StoryChainError):
    def __init__(self, room_id: str):
        super().__init__("ROOM_INACTIVE", f"Room {room_id} is no longer active", 409, {"room_id": room_id})


class GameFinishedError(StoryChainError):
    def __init__(self, room_id: str):
        super().__init__("GAME_FINISHED", f"Story in room {room_id} is finished", 409, {"room_id": room_id})


class PlayerNotFoundError(StoryChainError):
    def __init__(self, room_id: str, player_id: str):
        super().__init__(
            "PLAYER_NOT_FOUND",
            f"Player {player_id} not found in room {room_id}",
            404,
            {"room_id": room_id, "player_id": player_id},
        )


class NotYourTurnError(StoryChainError):
    def __init__(self, player_id: str, current_player_id: str | None):
        super().__init__(
            "NOT_YOUR_TURN",
            "Not your turn",
            403,
            {"player_id": player_id, "current_player_id": current_player_id},
        )


class EmptyContentError(StoryChainError):
    def __init__(self):
        super().__init__("EMPTY_CONTENT", "Story content cannot be empty", 400)


class InvalidSettingsError(StoryChainError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__("INVALID_SETTINGS", message, 422, details)


class ProtocolError(StoryChainError):
    """Malformed command envelope or a command the connection may not send."""

    def __init__(self, message: str, code: str = "PROTOCOL_ERROR", details: dict | None = None):
        super().__init__(code, message, 400, details)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoryChainError)
    async def story_error_handler(request: Request, exc: StoryChainError):
        return JSONResponse(status_code=exc.status, content={"error": exc.to_dict()})

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": str(exc) if app.debug else "Internal server error",
                    "details": {},
                }
            },
        )
