import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock

from blackjack_rooms.services.cards import Card, Shoe, hand_value, is_natural_blackjack
from blackjack_rooms.services.rules_engine import (
    DEFAULT_MAX_HANDS,
    HAND_BLACKJACK,
    HAND_PLAYING,
    RESULT_LOSS,
    RESULT_PUSH,
    RESULT_WIN,
    PlayerHand,
    dealer_should_hit,
    double_down,
    has_live_hands,
    hit,
    settle_hand,
    settle_player,
    split_hand,
    stand,
)

logger = logging.getLogger(__name__)

PHASE_LOBBY = "lobby"
PHASE_BETTING = "betting"
PHASE_PLAYER_TURNS = "player_turns"
PHASE_DEALER_TURN = "dealer_turn"
PHASE_RESULTS = "results"

DEFAULT_STARTING_CHIPS = 1000
DEFAULT_MAX_PLAYERS = 7


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RoomPlayer:
    player_id: str
    name: str
    chips: int = DEFAULT_STARTING_CHIPS
    hands: list[PlayerHand] = field(default_factory=list)
    current_bet: int = 0
    has_bet: bool = False
    is_done: bool = False
    disconnected: bool = False

    def reset_round(self) -> None:
        self.hands = []
        self.current_bet = 0
        self.has_bet = False
        self.is_done = False


@dataclass
class Room:
    code: str
    host_id: str
    shoe: Shoe
    phase: str = PHASE_LOBBY
    players: list[RoomPlayer] = field(default_factory=list)
    dealer_hand: list[Card] = field(default_factory=list)
    active_player_id: str | None = None
    round_number: int = 0
    recorded_round: int = 0
    max_players: int = DEFAULT_MAX_PLAYERS
    max_hands_per_player: int = DEFAULT_MAX_HANDS
    created_at: datetime = field(default_factory=_utc_now)

    def get_player(self, player_id: str | None) -> RoomPlayer | None:
        if player_id is None:
            return None
        return next((player for player in self.players if player.player_id == player_id), None)

    def player_ids(self) -> list[str]:
        return [player.player_id for player in self.players]

    def connected_players(self) -> list[RoomPlayer]:
        return [player for player in self.players if not player.disconnected]


@dataclass
class RoundSummary:
    player_id: str
    room_code: str
    round_number: int
    hands_played: int
    hands_won: int
    hands_lost: int
    hands_pushed: int
    blackjacks: int
    chips_delta: int


class RoomRegistry:
    """Process-wide set of live rooms, keyed by their numeric code."""

    def __init__(
        self,
        *,
        shoe_decks: int = 6,
        reshuffle_threshold: int = 20,
        max_players: int = DEFAULT_MAX_PLAYERS,
        max_hands_per_player: int = DEFAULT_MAX_HANDS,
        rng: random.Random | None = None,
    ) -> None:
        self._rooms: dict[str, Room] = {}
        self._lock = Lock()
        self._shoe_decks = shoe_decks
        self._reshuffle_threshold = reshuffle_threshold
        self._max_players = max_players
        self._max_hands_per_player = max_hands_per_player
        self._rng = rng or random.Random()

    def _generate_code_locked(self) -> str:
        while True:
            code = str(self._rng.randint(1000, 9999))
            if code not in self._rooms:
                return code

    def create_room(self, host: RoomPlayer) -> Room:
        with self._lock:
            room = Room(
                code=self._generate_code_locked(),
                host_id=host.player_id,
                shoe=Shoe(num_decks=self._shoe_decks, reshuffle_threshold=self._reshuffle_threshold),
                players=[host],
                max_players=self._max_players,
                max_hands_per_player=self._max_hands_per_player,
            )
            self._rooms[room.code] = room
        logger.info("Room %s created by %s", room.code, host.player_id)
        return room

    def get_room(self, code: str) -> Room | None:
        with self._lock:
            return self._rooms.get(code)

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def remove_room(self, code: str) -> bool:
        with self._lock:
            removed = self._rooms.pop(code, None)
        if removed:
            logger.info("Room %s closed", code)
        return removed is not None

    def __contains__(self, code: str) -> bool:
        with self._lock:
            return code in self._rooms

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)


def start_game(room: Room, player_id: str) -> bool:
    if room.phase != PHASE_LOBBY or room.host_id != player_id:
        return False
    if len(room.players) == 0:
        return False
    _begin_betting(room)
    return True


def _begin_betting(room: Room) -> None:
    room.phase = PHASE_BETTING
    room.dealer_hand = []
    room.active_player_id = None
    for player in room.players:
        player.reset_round()


def _betting_players(room: Room) -> list[RoomPlayer]:
    # Broke players without a wager sit the round out.
    return [
        player
        for player in room.connected_players()
        if player.has_bet or player.chips > 0
    ]


def ready_to_deal(room: Room) -> bool:
    if room.phase != PHASE_BETTING:
        return False
    bettors = _betting_players(room)
    return len(bettors) > 0 and all(player.has_bet for player in bettors)


def place_bet(room: Room, player_id: str, amount: int) -> bool:
    if room.phase != PHASE_BETTING:
        return False
    player = room.get_player(player_id)
    if not player or player.has_bet or player.disconnected:
        return False
    if amount <= 0 or amount > player.chips:
        return False

    player.current_bet = amount
    player.chips -= amount
    player.has_bet = True

    if ready_to_deal(room):
        deal_round(room)
    return True


def deal_round(room: Room) -> None:
    room.phase = PHASE_PLAYER_TURNS
    room.round_number += 1
    room.active_player_id = None

    dealt: list[RoomPlayer] = []
    for player in room.players:
        if not player.has_bet:
            player.hands = []
            player.is_done = True
            continue
        if player.disconnected:
            # Wager placed before the drop is handed back; the seat sits out.
            player.chips += player.current_bet
            player.reset_round()
            player.is_done = True
            continue
        player.hands = [PlayerHand(cards=[room.shoe.draw(), room.shoe.draw()], bet=player.current_bet)]
        player.is_done = False
        dealt.append(player)

    room.dealer_hand = [room.shoe.draw(), room.shoe.draw()]
    logger.info("Room %s dealt round %s to %s players", room.code, room.round_number, len(dealt))

    if is_natural_blackjack(room.dealer_hand):
        for player in dealt:
            hand = player.hands[0]
            if is_natural_blackjack(hand.cards):
                hand.status = HAND_BLACKJACK
            player.is_done = True
        resolve_results(room)
        return

    for player in dealt:
        hand = player.hands[0]
        if is_natural_blackjack(hand.cards):
            hand.status = HAND_BLACKJACK
            player.chips += settle_hand(hand, room.dealer_hand)
            player.is_done = True

    first_active = next((player for player in dealt if not player.is_done), None)
    if first_active:
        room.active_player_id = first_active.player_id
    else:
        enter_dealer_turn(room)


def _resolve_hand_index(player: RoomPlayer, hand_index: int | None) -> int | None:
    index = 0 if hand_index is None else hand_index
    if index < 0 or index >= len(player.hands):
        return None
    return index


def apply_player_action(
    room: Room,
    player_id: str,
    action: str,
    hand_index: int | None = 0,
) -> bool:
    if room.phase != PHASE_PLAYER_TURNS or room.active_player_id != player_id:
        return False
    player = room.get_player(player_id)
    if not player:
        return False
    index = _resolve_hand_index(player, hand_index)
    if index is None:
        return False
    hand = player.hands[index]
    if hand.status != HAND_PLAYING:
        return False

    if action == "hit":
        applied = hit(hand, room.shoe)
    elif action == "stand":
        applied = stand(hand)
    elif action == "double":
        applied = double_down(player, hand, room.shoe)
    elif action == "split":
        applied = split_hand(player, index, room.shoe, room.max_hands_per_player)
    else:
        applied = False
    if not applied:
        return False

    if all(entry.status != HAND_PLAYING for entry in player.hands):
        player.is_done = True
        advance_turn(room)
    return True


def auto_stand_player(room: Room, player_id: str) -> bool:
    if room.phase != PHASE_PLAYER_TURNS or room.active_player_id != player_id:
        return False
    player = room.get_player(player_id)
    if not player:
        return False
    for hand in player.hands:
        stand(hand)
    player.is_done = True
    advance_turn(room)
    return True


def next_active_player_id(room: Room) -> str | None:
    ids = room.player_ids()
    start = ids.index(room.active_player_id) + 1 if room.active_player_id in ids else 0
    for player in room.players[start:]:
        if not player.is_done and not player.disconnected:
            return player.player_id
    return None


def advance_turn(room: Room) -> None:
    if room.phase != PHASE_PLAYER_TURNS:
        return
    next_player_id = next_active_player_id(room)
    if next_player_id:
        room.active_player_id = next_player_id
        return
    enter_dealer_turn(room)


def enter_dealer_turn(room: Room) -> None:
    room.phase = PHASE_DEALER_TURN
    room.active_player_id = None


def all_player_hands(room: Room) -> list[PlayerHand]:
    return [hand for player in room.players for hand in player.hands]


def dealer_needs_card(room: Room) -> bool:
    if room.phase != PHASE_DEALER_TURN:
        return False
    if not has_live_hands(all_player_hands(room)):
        return False
    return dealer_should_hit(room.dealer_hand)


def draw_dealer_card(room: Room) -> Card:
    card = room.shoe.draw()
    room.dealer_hand.append(card)
    return card


def resolve_results(room: Room) -> list[RoundSummary]:
    room.phase = PHASE_RESULTS
    room.active_player_id = None
    for player in room.players:
        settle_player(player, room.dealer_hand)
    return summarize_round(room)


def summarize_round(room: Room) -> list[RoundSummary]:
    summaries: list[RoundSummary] = []
    for player in room.players:
        if not player.hands:
            continue
        summaries.append(
            RoundSummary(
                player_id=player.player_id,
                room_code=room.code,
                round_number=room.round_number,
                hands_played=len(player.hands),
                hands_won=sum(1 for hand in player.hands if hand.result == RESULT_WIN),
                hands_lost=sum(1 for hand in player.hands if hand.result == RESULT_LOSS),
                hands_pushed=sum(1 for hand in player.hands if hand.result == RESULT_PUSH),
                blackjacks=sum(1 for hand in player.hands if hand.status == HAND_BLACKJACK),
                chips_delta=sum(hand.payout - hand.bet for hand in player.hands),
            )
        )
    return summaries


def next_round(room: Room, player_id: str) -> bool:
    if room.phase != PHASE_RESULTS or room.host_id != player_id:
        return False
    _begin_betting(room)
    return True


def add_player(room: Room, player: RoomPlayer) -> None:
    room.players.append(player)


def mark_disconnected(room: Room, player_id: str) -> RoomPlayer | None:
    player = room.get_player(player_id)
    if not player:
        return None
    player.disconnected = True
    return player


def mark_reconnected(room: Room, player_id: str) -> RoomPlayer | None:
    player = room.get_player(player_id)
    if not player:
        return None
    player.disconnected = False
    return player


def remove_player(room: Room, player_id: str) -> bool:
    """Drop a seat for good, keeping turn order and host authority consistent.

    Returns False when the player was not seated. The caller owns the room
    registry and is responsible for discarding the room once it is empty.
    """
    player = room.get_player(player_id)
    if not player:
        return False

    was_active = room.phase == PHASE_PLAYER_TURNS and room.active_player_id == player_id
    next_player_id: str | None = None
    if was_active:
        player.is_done = True
        next_player_id = next_active_player_id(room)

    room.players = [entry for entry in room.players if entry.player_id != player_id]

    if room.host_id == player_id and room.players:
        connected = room.connected_players()
        room.host_id = (connected[0] if connected else room.players[0]).player_id

    if not room.players:
        room.active_player_id = None
        return True

    if was_active:
        if next_player_id:
            room.active_player_id = next_player_id
        else:
            enter_dealer_turn(room)
    elif ready_to_deal(room):
        deal_round(room)
    return True


def serialize_hand(hand: PlayerHand) -> dict:
    total, soft = hand_value(hand.cards)
    return {
        "id": hand.hand_id,
        "cards": [serialize_card(card) for card in hand.cards],
        "bet": hand.bet,
        "status": hand.status,
        "result": hand.result,
        "payout": hand.payout,
        "doubled": hand.doubled,
        "total": total,
        "is_soft": soft,
    }


def serialize_card(card: Card) -> dict:
    return {"suit": card.suit, "rank": card.rank, "value": card.value, "id": card.id}


def serialize_room(room: Room) -> dict:
    dealer_total, dealer_soft = hand_value(room.dealer_hand)
    return {
        "code": room.code,
        "host_id": room.host_id,
        "phase": room.phase,
        "round_number": room.round_number,
        "players": [
            {
                "player_id": player.player_id,
                "name": player.name,
                "chips": player.chips,
                "hands": [serialize_hand(hand) for hand in player.hands],
                "current_bet": player.current_bet,
                "has_bet": player.has_bet,
                "is_done": player.is_done,
                "disconnected": player.disconnected,
            }
            for player in room.players
        ],
        "dealer_hand": [serialize_card(card) for card in room.dealer_hand],
        "dealer_total": dealer_total,
        "dealer_is_soft": dealer_soft,
        "reveal_dealer": room.phase in {PHASE_DEALER_TURN, PHASE_RESULTS},
        "active_player_id": room.active_player_id,
        "shoe_remaining": len(room.shoe),
    }
