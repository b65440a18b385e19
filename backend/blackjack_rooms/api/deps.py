from fastapi import HTTPException, status

from blackjack_rooms.realtime.socket_server import session_manager
from blackjack_rooms.services.room_service import Room
from blackjack_rooms.services.session_service import SessionManager


def get_session_manager() -> SessionManager:
    return session_manager


def get_room_or_404(code: str, manager: SessionManager) -> Room:
    room = manager.registry.get_room(code.strip())
    if not room:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Room not found",
        )
    return room
