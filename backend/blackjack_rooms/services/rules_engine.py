from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable
from uuid import uuid4

from blackjack_rooms.services.cards import Card, Shoe, hand_value, is_natural_blackjack, is_pair

if TYPE_CHECKING:
    from blackjack_rooms.services.room_service import RoomPlayer

HAND_PLAYING = "playing"
HAND_STANDING = "standing"
HAND_BUSTED = "busted"
HAND_BLACKJACK = "blackjack"
HAND_DOUBLED = "doubled"

RESULT_WIN = "win"
RESULT_LOSS = "loss"
RESULT_PUSH = "push"

DEFAULT_MAX_HANDS = 4
DEALER_STAND_TOTAL = 17


@dataclass
class PlayerHand:
    cards: list[Card]
    bet: int
    status: str = HAND_PLAYING
    result: str | None = None
    payout: int = 0
    doubled: bool = False
    hand_id: str = field(default_factory=lambda: f"hand-{uuid4().hex[:12]}")

    @property
    def total(self) -> int:
        return hand_value(self.cards)[0]

    @property
    def is_soft(self) -> bool:
        return hand_value(self.cards)[1]


def _lock_bust(hand: PlayerHand) -> bool:
    if hand.total <= 21:
        return False
    hand.status = HAND_BUSTED
    hand.result = RESULT_LOSS
    hand.payout = 0
    return True


def hit(hand: PlayerHand, shoe: Shoe) -> bool:
    if hand.status != HAND_PLAYING:
        return False
    hand.cards.append(shoe.draw())
    _lock_bust(hand)
    return True


def stand(hand: PlayerHand) -> bool:
    if hand.status != HAND_PLAYING:
        return False
    hand.status = HAND_STANDING
    return True


def can_double(player: "RoomPlayer", hand: PlayerHand) -> bool:
    return hand.status == HAND_PLAYING and len(hand.cards) == 2 and player.chips >= hand.bet


def double_down(player: "RoomPlayer", hand: PlayerHand, shoe: Shoe) -> bool:
    if not can_double(player, hand):
        return False
    player.chips -= hand.bet
    hand.bet *= 2
    hand.doubled = True
    hand.cards.append(shoe.draw())
    if not _lock_bust(hand):
        hand.status = HAND_STANDING
    return True


def can_split(player: "RoomPlayer", hand: PlayerHand, max_hands: int = DEFAULT_MAX_HANDS) -> bool:
    return (
        hand.status == HAND_PLAYING
        and is_pair(hand.cards)
        and len(player.hands) < max_hands
        and player.chips >= hand.bet
    )


def split_hand(
    player: "RoomPlayer",
    hand_index: int,
    shoe: Shoe,
    max_hands: int = DEFAULT_MAX_HANDS,
) -> bool:
    if hand_index < 0 or hand_index >= len(player.hands):
        return False
    hand = player.hands[hand_index]
    if not can_split(player, hand, max_hands):
        return False

    player.chips -= hand.bet
    first_card, second_card = hand.cards
    first_hand = PlayerHand(cards=[first_card, shoe.draw()], bet=hand.bet)
    second_hand = PlayerHand(cards=[second_card, shoe.draw()], bet=hand.bet)

    # Split aces get exactly one card each and no further action.
    if first_card.rank == "A":
        first_hand.status = HAND_STANDING
        second_hand.status = HAND_STANDING

    player.hands[hand_index : hand_index + 1] = [first_hand, second_hand]
    return True


def dealer_should_hit(cards: list[Card]) -> bool:
    total, soft = hand_value(cards)
    return total < DEALER_STAND_TOTAL or (total == DEALER_STAND_TOTAL and soft)


def has_live_hands(hands: Iterable[PlayerHand]) -> bool:
    return any(hand.status not in {HAND_BUSTED, HAND_BLACKJACK} for hand in hands)


def blackjack_payout(bet: int) -> int:
    return bet + (bet * 3) // 2


def settle_hand(hand: PlayerHand, dealer_cards: list[Card]) -> int:
    """Assign a result to an unsettled hand and return the chips to credit.

    Hands that already carry a result are left untouched and credit nothing.
    """
    if hand.result is not None:
        return 0

    dealer_total = hand_value(dealer_cards)[0]
    dealer_bust = dealer_total > 21
    dealer_blackjack = is_natural_blackjack(dealer_cards)
    player_blackjack = hand.status == HAND_BLACKJACK

    if dealer_blackjack and player_blackjack:
        hand.result, hand.payout = RESULT_PUSH, hand.bet
    elif dealer_blackjack:
        hand.result, hand.payout = RESULT_LOSS, 0
    elif player_blackjack:
        hand.result, hand.payout = RESULT_WIN, blackjack_payout(hand.bet)
    elif dealer_bust:
        hand.result, hand.payout = RESULT_WIN, hand.bet * 2
    elif hand.total > dealer_total:
        hand.result, hand.payout = RESULT_WIN, hand.bet * 2
    elif hand.total < dealer_total:
        hand.result, hand.payout = RESULT_LOSS, 0
    else:
        hand.result, hand.payout = RESULT_PUSH, hand.bet
    return hand.payout


def settle_player(player: "RoomPlayer", dealer_cards: list[Card]) -> int:
    credited = sum(settle_hand(hand, dealer_cards) for hand in player.hands)
    player.chips += credited
    return credited
