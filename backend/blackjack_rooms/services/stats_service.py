from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from blackjack_rooms.db.models import GameHistory
from blackjack_rooms.schemas.stats import GameHistoryRead, PlayerSummaryRead
from blackjack_rooms.services.room_service import RoundSummary


def record_round_results(db: Session, summaries: list[RoundSummary]) -> int:
    if not summaries:
        return 0
    for summary in summaries:
        db.add(
            GameHistory(
                player_id=summary.player_id,
                room_code=summary.room_code,
                round_number=summary.round_number,
                hands_played=summary.hands_played,
                hands_won=summary.hands_won,
                hands_lost=summary.hands_lost,
                hands_pushed=summary.hands_pushed,
                blackjacks=summary.blackjacks,
                chips_delta=summary.chips_delta,
            )
        )
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(summaries)


def get_player_history(db: Session, player_id: str, limit: int = 20) -> list[GameHistoryRead]:
    stmt = (
        select(GameHistory)
        .where(GameHistory.player_id == player_id)
        .order_by(GameHistory.created_at.desc())
        .limit(limit)
    )
    return [GameHistoryRead.model_validate(row, from_attributes=True) for row in db.scalars(stmt).all()]


def get_player_summary(db: Session, player_id: str) -> PlayerSummaryRead:
    row = db.execute(
        select(
            func.count(GameHistory.id),
            func.coalesce(func.sum(GameHistory.hands_played), 0),
            func.coalesce(func.sum(GameHistory.hands_won), 0),
            func.coalesce(func.sum(GameHistory.hands_lost), 0),
            func.coalesce(func.sum(GameHistory.hands_pushed), 0),
            func.coalesce(func.sum(GameHistory.blackjacks), 0),
            func.coalesce(func.sum(case((GameHistory.chips_delta > 0, GameHistory.chips_delta), else_=0)), 0),
            func.coalesce(func.sum(case((GameHistory.chips_delta < 0, GameHistory.chips_delta), else_=0)), 0),
            func.coalesce(func.max(GameHistory.chips_delta), 0),
        ).where(GameHistory.player_id == player_id)
    ).one()

    rounds, hands, won, lost, pushed, blackjacks, chips_won, chips_lost, best = row
    return PlayerSummaryRead(
        player_id=player_id,
        rounds_played=int(rounds),
        total_hands=int(hands),
        total_won=int(won),
        total_lost=int(lost),
        total_pushed=int(pushed),
        total_blackjacks=int(blackjacks),
        total_chips_won=int(chips_won),
        total_chips_lost=abs(int(chips_lost)),
        best_round_delta=int(best),
        win_rate=round((float(won) / float(hands)) * 100.0, 2) if hands else 0.0,
    )
