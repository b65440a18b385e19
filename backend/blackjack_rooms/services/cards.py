import random
import secrets
from dataclasses import dataclass, field
from uuid import uuid4

SUITS = ("H", "D", "C", "S")
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
DEFAULT_DECKS = 6
DEFAULT_RESHUFFLE_THRESHOLD = 20


@dataclass(frozen=True)
class Card:
    suit: str
    rank: str
    value: int
    id: str = field(default_factory=lambda: uuid4().hex[:10], compare=False)

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"


def card_value(rank: str) -> int:
    if rank == "A":
        return 11
    if rank in {"J", "Q", "K"}:
        return 10
    return int(rank)


def card_from_code(code: str) -> Card:
    """Build a card from its short code, e.g. ``"AS"`` or ``"10H"``."""
    normalized = code.strip().upper()
    rank, suit = normalized[:-1], normalized[-1:]
    if rank not in RANKS or suit not in SUITS:
        raise ValueError(f"Invalid card code: {code!r}")
    return Card(suit=suit, rank=rank, value=card_value(rank))


def build_shoe(num_decks: int = DEFAULT_DECKS) -> list[Card]:
    if num_decks < 1:
        raise ValueError("A shoe needs at least one deck")
    cards: list[Card] = []
    for deck_index in range(num_decks):
        for suit in SUITS:
            for rank in RANKS:
                cards.append(
                    Card(
                        suit=suit,
                        rank=rank,
                        value=card_value(rank),
                        id=f"{rank}{suit}-{deck_index}-{uuid4().hex[:6]}",
                    )
                )
    return cards


def shuffle_cards(cards: list[Card], rng: random.Random | None = None) -> list[Card]:
    # Fisher-Yates over a copy; the input sequence is left untouched.
    generator = rng or secrets.SystemRandom()
    shuffled = list(cards)
    for index in range(len(shuffled) - 1, 0, -1):
        swap_index = generator.randint(0, index)
        shuffled[index], shuffled[swap_index] = shuffled[swap_index], shuffled[index]
    return shuffled


def hand_value(cards: list[Card]) -> tuple[int, bool]:
    total = sum(card.value for card in cards)
    aces = sum(1 for card in cards if card.rank == "A")
    while total > 21 and aces > 0:
        total -= 10
        aces -= 1
    return total, aces > 0


def is_pair(cards: list[Card]) -> bool:
    return len(cards) == 2 and cards[0].rank == cards[1].rank


def is_natural_blackjack(cards: list[Card]) -> bool:
    return len(cards) == 2 and hand_value(cards)[0] == 21


def is_bust(cards: list[Card]) -> bool:
    return hand_value(cards)[0] > 21


class Shoe:
    """Multi-deck shoe drawn from the tail.

    When fewer than ``reshuffle_threshold`` cards remain, the whole shoe is
    replaced by a freshly built and shuffled one before the next card is
    handed out, so a draw never fails.
    """

    def __init__(
        self,
        num_decks: int = DEFAULT_DECKS,
        reshuffle_threshold: int = DEFAULT_RESHUFFLE_THRESHOLD,
        rng: random.Random | None = None,
        cards: list[Card] | None = None,
    ) -> None:
        self.num_decks = num_decks
        self.reshuffle_threshold = reshuffle_threshold
        self._rng = rng
        self.reshuffle_count = 0
        self.cards = list(cards) if cards is not None else shuffle_cards(build_shoe(num_decks), rng)

    @classmethod
    def from_draw_order(
        cls,
        codes: list[str],
        num_decks: int = DEFAULT_DECKS,
        reshuffle_threshold: int = 0,
    ) -> "Shoe":
        cards = [card_from_code(code) for code in codes]
        return cls(
            num_decks=num_decks,
            reshuffle_threshold=reshuffle_threshold,
            cards=list(reversed(cards)),
        )

    def __len__(self) -> int:
        return len(self.cards)

    def reshuffle(self) -> None:
        self.cards = shuffle_cards(build_shoe(self.num_decks), self._rng)
        self.reshuffle_count += 1

    def draw(self) -> Card:
        if len(self.cards) < self.reshuffle_threshold or not self.cards:
            self.reshuffle()
        return self.cards.pop()
