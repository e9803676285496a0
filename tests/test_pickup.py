"""Tests for discard pile locking and pickup justification."""

from card import parse_hand
from meld import Meld
from pickup import (
    can_justify_pickup,
    find_extendable_meld,
    find_new_meld_partners,
    is_discard_pile_locked,
)


def _card(label):
    return parse_hand(label)[0]


class TestLocking:
    """A three on top locks the pile."""

    def test_empty_pile_is_not_locked(self):
        assert not is_discard_pile_locked([])

    def test_black_three_on_top(self):
        assert is_discard_pile_locked(parse_hand("5H,3S"))

    def test_red_three_on_top(self):
        assert is_discard_pile_locked(parse_hand("5H,3H"))

    def test_three_below_top(self):
        assert not is_discard_pile_locked(parse_hand("3S,5H"))


class TestJustification:
    """The top card must be usable right away."""

    def test_extends_team_meld(self):
        melds = [Meld("meld-1", parse_hand("QC,QH,QD"))]
        assert can_justify_pickup(_card("QS"), [], melds)
        assert find_extendable_meld(_card("QS"), melds) is melds[0]

    def test_new_meld_from_hand(self):
        hand = parse_hand("9H,10H,KS")
        assert can_justify_pickup(_card("8H"), hand, [])
        partners = find_new_meld_partners(_card("8H"), hand)
        assert sorted(c.id for c in partners) == ["10H-0", "9H-0"]

    def test_no_partners(self):
        assert not can_justify_pickup(_card("8H"), parse_hand("9H,KD"), [])
        assert find_extendable_meld(_card("8H"), []) is None

    def test_wildcard_on_top(self):
        assert can_justify_pickup(_card("2C"), parse_hand("5H,6H"), [])

    def test_threes_never_justify(self):
        hand = parse_hand("3S-1,3C")
        assert not can_justify_pickup(_card("3S"), hand, [])
        assert not can_justify_pickup(_card("3H"), parse_hand("3H-1,3D"), [])

    def test_top_card_id_not_reused(self):
        top = _card("QH")
        assert find_new_meld_partners(top, [top, _card("QD")]) is None
