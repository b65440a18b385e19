import unittest

from blackjack_rooms.services.cards import Shoe, card_from_code
from blackjack_rooms.services.room_service import RoomPlayer
from blackjack_rooms.services.rules_engine import (
    HAND_BLACKJACK,
    HAND_BUSTED,
    HAND_PLAYING,
    HAND_STANDING,
    RESULT_LOSS,
    RESULT_PUSH,
    RESULT_WIN,
    PlayerHand,
    blackjack_payout,
    can_split,
    dealer_should_hit,
    double_down,
    has_live_hands,
    hit,
    settle_hand,
    settle_player,
    split_hand,
    stand,
)


def _cards(*codes: str):
    return [card_from_code(code) for code in codes]


def _player(chips: int, *hands: PlayerHand) -> RoomPlayer:
    return RoomPlayer(player_id="p1", name="Ann", chips=chips, hands=list(hands))


class PlayerActionRulesTests(unittest.TestCase):
    def test_hit_busts_and_locks_loss(self) -> None:
        hand = PlayerHand(cards=_cards("10H", "6C"), bet=100)
        self.assertTrue(hit(hand, Shoe.from_draw_order(["KC"])))
        self.assertEqual(hand.status, HAND_BUSTED)
        self.assertEqual(hand.result, RESULT_LOSS)
        self.assertFalse(hit(hand, Shoe.from_draw_order(["2C"])))
        self.assertFalse(stand(hand))

    def test_double_takes_one_card_and_matches_bet(self) -> None:
        hand = PlayerHand(cards=_cards("5H", "6D"), bet=100)
        player = _player(900, hand)
        self.assertTrue(double_down(player, hand, Shoe.from_draw_order(["KC"])))
        self.assertEqual(player.chips, 800)
        self.assertEqual(hand.bet, 200)
        self.assertTrue(hand.doubled)
        self.assertEqual(len(hand.cards), 3)
        self.assertEqual(hand.status, HAND_STANDING)
        self.assertFalse(double_down(player, hand, Shoe.from_draw_order(["2C"])))

    def test_double_refused_without_chips_or_after_hit(self) -> None:
        hand = PlayerHand(cards=_cards("5H", "6D"), bet=100)
        player = _player(50, hand)
        self.assertFalse(double_down(player, hand, Shoe.from_draw_order(["KC"])))
        self.assertEqual((player.chips, hand.bet, len(hand.cards)), (50, 100, 2))

        player.chips = 500
        hit(hand, Shoe.from_draw_order(["2C"]))
        self.assertFalse(double_down(player, hand, Shoe.from_draw_order(["KC"])))

    def test_double_can_bust(self) -> None:
        hand = PlayerHand(cards=_cards("10H", "6D"), bet=100)
        player = _player(900, hand)
        self.assertTrue(double_down(player, hand, Shoe.from_draw_order(["KC"])))
        self.assertEqual(hand.status, HAND_BUSTED)
        self.assertEqual(hand.result, RESULT_LOSS)

    def test_split_aces_get_one_card_each_and_stand(self) -> None:
        player = _player(900, PlayerHand(cards=_cards("AS", "AD"), bet=100))
        self.assertTrue(split_hand(player, 0, Shoe.from_draw_order(["9C", "KH"])))
        self.assertEqual(player.chips, 800)
        self.assertEqual([[str(card) for card in hand.cards] for hand in player.hands], [["AS", "9C"], ["AD", "KH"]])
        self.assertTrue(all(hand.status == HAND_STANDING for hand in player.hands))
        self.assertTrue(all(hand.bet == 100 for hand in player.hands))

    def test_split_keeps_hand_position(self) -> None:
        first = PlayerHand(cards=_cards("10H", "9C"), bet=50, status=HAND_STANDING)
        pair = PlayerHand(cards=_cards("8H", "8D"), bet=50)
        player = _player(500, first, pair)
        self.assertTrue(split_hand(player, 1, Shoe.from_draw_order(["3C", "2D"])))
        self.assertIs(player.hands[0], first)
        self.assertEqual(len(player.hands), 3)
        self.assertEqual(player.hands[1].status, HAND_PLAYING)
        self.assertEqual(str(player.hands[2].cards[1]), "2D")

    def test_split_refused_at_hand_limit_or_without_pair(self) -> None:
        hands = [PlayerHand(cards=_cards("8H", "8D"), bet=10) for _ in range(4)]
        player = _player(500, *hands)
        self.assertFalse(can_split(player, hands[0], max_hands=4))
        self.assertFalse(split_hand(player, 0, Shoe.from_draw_order(["3C", "2D"]), max_hands=4))

        mixed = _player(500, PlayerHand(cards=_cards("KH", "QD"), bet=10))
        self.assertFalse(split_hand(mixed, 0, Shoe.from_draw_order(["3C", "2D"])))
        poor = _player(5, PlayerHand(cards=_cards("8H", "8D"), bet=10))
        self.assertFalse(split_hand(poor, 0, Shoe.from_draw_order(["3C", "2D"])))


class DealerRulesTests(unittest.TestCase):
    def test_dealer_hits_soft_17_and_stands_hard_17(self) -> None:
        self.assertTrue(dealer_should_hit(_cards("AH", "6D")))
        self.assertTrue(dealer_should_hit(_cards("10H", "6C")))
        self.assertFalse(dealer_should_hit(_cards("10H", "7D")))
        self.assertFalse(dealer_should_hit(_cards("AH", "6D", "10C")))
        self.assertFalse(dealer_should_hit(_cards("AH", "7D")))

    def test_live_hands_ignore_busted_and_naturals(self) -> None:
        busted = PlayerHand(cards=_cards("10H", "6C", "KC"), bet=10, status=HAND_BUSTED)
        natural = PlayerHand(cards=_cards("AS", "KD"), bet=10, status=HAND_BLACKJACK)
        standing = PlayerHand(cards=_cards("10H", "7C"), bet=10, status=HAND_STANDING)
        self.assertFalse(has_live_hands([busted, natural]))
        self.assertTrue(has_live_hands([busted, standing]))


class SettlementTests(unittest.TestCase):
    def test_blackjack_pays_three_to_two_rounded_down(self) -> None:
        self.assertEqual(blackjack_payout(100), 250)
        self.assertEqual(blackjack_payout(25), 62)

    def test_settlement_table(self) -> None:
        cases = [
            (("10H", "9D"), HAND_STANDING, ("10C", "8S"), RESULT_WIN, 200),
            (("10H", "7D"), HAND_STANDING, ("10C", "8S"), RESULT_LOSS, 0),
            (("10H", "8D"), HAND_STANDING, ("10C", "8S"), RESULT_PUSH, 100),
            (("10H", "2D"), HAND_STANDING, ("10C", "6S", "9D"), RESULT_WIN, 200),
            (("AS", "KD"), HAND_BLACKJACK, ("10C", "9S"), RESULT_WIN, 250),
            (("AS", "KD"), HAND_BLACKJACK, ("AC", "QS"), RESULT_PUSH, 100),
            (("10H", "5D", "6C"), HAND_STANDING, ("AC", "QS"), RESULT_LOSS, 0),
        ]
        for player_codes, status, dealer_codes, result, payout in cases:
            with self.subTest(player=player_codes, dealer=dealer_codes):
                hand = PlayerHand(cards=_cards(*player_codes), bet=100, status=status)
                self.assertEqual(settle_hand(hand, _cards(*dealer_codes)), payout)
                self.assertEqual(hand.result, result)
                self.assertEqual(hand.payout, payout)

    def test_settled_hand_is_never_paid_twice(self) -> None:
        hand = PlayerHand(cards=_cards("10H", "9D"), bet=100, status=HAND_STANDING)
        dealer = _cards("10C", "8S")
        self.assertEqual(settle_hand(hand, dealer), 200)
        self.assertEqual(settle_hand(hand, dealer), 0)
        self.assertEqual(hand.payout, 200)

    def test_bust_stays_lost_when_dealer_busts(self) -> None:
        hand = PlayerHand(cards=_cards("10H", "6C"), bet=100)
        hit(hand, Shoe.from_draw_order(["KC"]))
        player = _player(900, hand)
        self.assertEqual(settle_player(player, _cards("10C", "6S", "9D")), 0)
        self.assertEqual(hand.result, RESULT_LOSS)
        self.assertEqual(player.chips, 900)
