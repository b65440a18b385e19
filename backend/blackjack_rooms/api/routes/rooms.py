from fastapi import APIRouter, Depends

from blackjack_rooms.api.deps import get_room_or_404, get_session_manager
from blackjack_rooms.schemas.room import RoomSnapshotRead, RoomSummaryRead
from blackjack_rooms.services.room_service import serialize_room
from blackjack_rooms.services.session_service import SessionManager

router = APIRouter()


@router.get("", response_model=list[RoomSummaryRead])
def list_rooms(manager: SessionManager = Depends(get_session_manager)) -> list[RoomSummaryRead]:
    rooms = sorted(manager.registry.list_rooms(), key=lambda room: room.created_at)
    return [
        RoomSummaryRead(
            code=room.code,
            phase=room.phase,
            host_id=room.host_id,
            player_count=len(room.players),
            max_players=room.max_players,
            round_number=room.round_number,
        )
        for room in rooms
    ]


@router.get("/{code}", response_model=RoomSnapshotRead)
def get_room(code: str, manager: SessionManager = Depends(get_session_manager)) -> RoomSnapshotRead:
    room = get_room_or_404(code, manager)
    return RoomSnapshotRead.model_validate(serialize_room(room))
