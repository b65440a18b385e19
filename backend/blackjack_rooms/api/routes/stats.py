from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from blackjack_rooms.db.session import get_db
from blackjack_rooms.schemas.stats import GameHistoryRead, PlayerSummaryRead
from blackjack_rooms.services.stats_service import get_player_history, get_player_summary

router = APIRouter()


@router.get("/{player_id}/history", response_model=list[GameHistoryRead])
def get_history(
    player_id: str,
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[GameHistoryRead]:
    return get_player_history(db, player_id, limit=limit)


@router.get("/{player_id}/summary", response_model=PlayerSummaryRead)
def get_summary(player_id: str, db: Session = Depends(get_db)) -> PlayerSummaryRead:
    return get_player_summary(db, player_id)
