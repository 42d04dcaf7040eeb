from fastapi import Request

from storychain.apps.rooms.service import RoomService


def get_room_service(request: Request) -> RoomService:
    """RoomService built by the application factory (see main.create_app)."""
    return request.app.state.room_service
