import random
import unittest
from collections import Counter

from blackjack_rooms.services.cards import (
    Shoe,
    build_shoe,
    card_from_code,
    hand_value,
    is_bust,
    is_natural_blackjack,
    is_pair,
    shuffle_cards,
)


def _cards(*codes: str):
    return [card_from_code(code) for code in codes]


class HandValueTests(unittest.TestCase):
    def test_hand_value_table(self) -> None:
        cases = [
            ((), (0, False)),
            (("10H", "7D"), (17, False)),
            (("AH", "6D"), (17, True)),
            (("AH", "6D", "10C"), (17, False)),
            (("AH", "KD"), (21, True)),
            (("AH", "AD"), (12, True)),
            (("AH", "AD", "9C"), (21, True)),
            (("AH", "AD", "AC", "AS"), (14, True)),
            (("KH", "QD", "2C"), (22, False)),
        ]
        for codes, expected in cases:
            with self.subTest(codes=codes):
                self.assertEqual(hand_value(_cards(*codes)), expected)

    def test_natural_needs_exactly_two_cards(self) -> None:
        self.assertTrue(is_natural_blackjack(_cards("AS", "QH")))
        self.assertFalse(is_natural_blackjack(_cards("7S", "7H", "7D")))
        self.assertTrue(is_bust(_cards("KH", "QD", "2C")))
        self.assertFalse(is_bust(_cards("AH", "AD", "9C")))

    def test_pair_compares_rank_not_value(self) -> None:
        self.assertTrue(is_pair(_cards("KH", "KD")))
        self.assertFalse(is_pair(_cards("KH", "QD")))
        self.assertFalse(is_pair(_cards("10H", "JD")))
        self.assertFalse(is_pair(_cards("8H", "8D", "8C")))

    def test_card_from_code_rejects_garbage(self) -> None:
        card = card_from_code("10h")
        self.assertEqual((card.rank, card.suit, card.value), ("10", "H", 10))
        self.assertEqual(card_from_code("AS").value, 11)
        with self.assertRaises(ValueError):
            card_from_code("1X")


class ShuffleTests(unittest.TestCase):
    def test_build_shoe_has_every_card_per_deck(self) -> None:
        cards = build_shoe(6)
        self.assertEqual(len(cards), 312)
        counts = Counter(str(card) for card in cards)
        self.assertEqual(len(counts), 52)
        self.assertTrue(all(count == 6 for count in counts.values()))
        self.assertEqual(len({card.id for card in cards}), 312)

    def test_shuffle_keeps_input_untouched(self) -> None:
        cards = build_shoe(1)
        before = [card.id for card in cards]
        shuffled = shuffle_cards(cards, random.Random(99))
        self.assertEqual([card.id for card in cards], before)
        self.assertEqual(sorted(card.id for card in shuffled), sorted(before))

    def test_shuffle_permutations_are_uniform(self) -> None:
        rng = random.Random(1234)
        cards = _cards("2H", "3H", "4H")
        trials = 60000
        counts = Counter(
            tuple(str(card) for card in shuffle_cards(cards, rng))
            for _ in range(trials)
        )
        self.assertEqual(len(counts), 6)
        expected = trials / 6
        for permutation, count in counts.items():
            with self.subTest(permutation=permutation):
                self.assertLess(abs(count - expected), expected * 0.1)


class ShoeTests(unittest.TestCase):
    def test_draw_order_is_preserved(self) -> None:
        shoe = Shoe.from_draw_order(["AS", "KD", "7C"])
        self.assertEqual([str(shoe.draw()) for _ in range(3)], ["AS", "KD", "7C"])
        self.assertEqual(shoe.reshuffle_count, 0)

    def test_empty_shoe_is_rebuilt_before_drawing(self) -> None:
        shoe = Shoe.from_draw_order(["AS"], num_decks=2)
        shoe.draw()
        shoe.draw()
        self.assertEqual(shoe.reshuffle_count, 1)
        self.assertEqual(len(shoe), 103)

    def test_reshuffles_once_below_threshold(self) -> None:
        shoe = Shoe(num_decks=1, reshuffle_threshold=20, rng=random.Random(7))
        for _ in range(32):
            shoe.draw()
        self.assertEqual(len(shoe), 20)
        shoe.draw()
        self.assertEqual(len(shoe), 19)
        self.assertEqual(shoe.reshuffle_count, 0)

        shoe.draw()
        self.assertEqual(shoe.reshuffle_count, 1)
        self.assertEqual(len(shoe), 51)
