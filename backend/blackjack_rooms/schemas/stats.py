from datetime import datetime

from pydantic import BaseModel


class GameHistoryRead(BaseModel):
    id: str
    player_id: str
    room_code: str
    round_number: int
    hands_played: int
    hands_won: int
    hands_lost: int
    hands_pushed: int
    blackjacks: int
    chips_delta: int
    created_at: datetime


class PlayerSummaryRead(BaseModel):
    player_id: str
    rounds_played: int
    total_hands: int
    total_won: int
    total_lost: int
    total_pushed: int
    total_blackjacks: int
    total_chips_won: int
    total_chips_lost: int
    best_round_delta: int
    win_rate: float
