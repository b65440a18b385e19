from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from blackjack_rooms.db.base import Base


class GameHistory(Base):
    __tablename__ = "game_history"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid4().hex)
    player_id: Mapped[str] = mapped_column(String(64), index=True)
    room_code: Mapped[str] = mapped_column(String(8))
    round_number: Mapped[int] = mapped_column(Integer)
    hands_played: Mapped[int] = mapped_column(Integer, default=0)
    hands_won: Mapped[int] = mapped_column(Integer, default=0)
    hands_lost: Mapped[int] = mapped_column(Integer, default=0)
    hands_pushed: Mapped[int] = mapped_column(Integer, default=0)
    blackjacks: Mapped[int] = mapped_column(Integer, default=0)
    chips_delta: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
