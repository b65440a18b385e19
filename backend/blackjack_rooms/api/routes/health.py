from fastapi import APIRouter, Depends

from blackjack_rooms.api.deps import get_session_manager
from blackjack_rooms.services.session_service import SessionManager

router = APIRouter()


@router.get("/health")
def health(manager: SessionManager = Depends(get_session_manager)) -> dict:
    return {"status": "ok", "rooms": len(manager.registry)}
