from typing import Literal

from pydantic import BaseModel, Field

RoomPhaseValue = Literal["lobby", "betting", "player_turns", "dealer_turn", "results"]
HandStatusValue = Literal["playing", "standing", "busted", "blackjack", "doubled"]
HandResultValue = Literal["win", "loss", "push"]
PlayerActionValue = Literal["hit", "stand", "double", "split"]


class CreateRoomRequest(BaseModel):
    name: str = Field(min_length=1, max_length=40)


class JoinRoomRequest(BaseModel):
    code: str = Field(min_length=4, max_length=8)
    name: str = Field(min_length=1, max_length=40)


class RejoinRoomRequest(BaseModel):
    code: str = Field(min_length=4, max_length=8)


class RoomCodeRequest(BaseModel):
    code: str = Field(min_length=4, max_length=8)


class PlaceBetRequest(BaseModel):
    code: str = Field(min_length=4, max_length=8)
    amount: int = Field(gt=0)


class PlayerActionRequest(BaseModel):
    code: str = Field(min_length=4, max_length=8)
    action: PlayerActionValue
    hand_index: int = Field(default=0, ge=0)


class CardRead(BaseModel):
    suit: str
    rank: str
    value: int
    id: str


class HandRead(BaseModel):
    id: str
    cards: list[CardRead]
    bet: int
    status: HandStatusValue
    result: HandResultValue | None = None
    payout: int
    doubled: bool
    total: int
    is_soft: bool


class RoomPlayerRead(BaseModel):
    player_id: str
    name: str
    chips: int
    hands: list[HandRead]
    current_bet: int
    has_bet: bool
    is_done: bool
    disconnected: bool


class RoomSnapshotRead(BaseModel):
    code: str
    host_id: str
    phase: RoomPhaseValue
    round_number: int
    players: list[RoomPlayerRead]
    dealer_hand: list[CardRead]
    dealer_total: int
    dealer_is_soft: bool
    reveal_dealer: bool
    active_player_id: str | None = None
    shoe_remaining: int


class RoomSummaryRead(BaseModel):
    code: str
    phase: RoomPhaseValue
    host_id: str
    player_count: int
    max_players: int
    round_number: int
