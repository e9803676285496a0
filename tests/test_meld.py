"""Tests for meld validation and canasta classification."""

from itertools import permutations

import pytest

from card import parse_hand
from meld import (
    CanastaType,
    Meld,
    MeldType,
    can_add_to_meld,
    can_extend_meld,
    validate_meld,
)


class TestSets:
    """Sets: cards of one rank plus at most one wildcard."""

    def test_three_queens(self):
        check = validate_meld(parse_hand("QC,QH,QD"))
        assert check
        assert check.meld_type == MeldType.SET
        assert check.canasta_type is None

    def test_set_with_wildcard(self):
        check = validate_meld(parse_hand("7C,7H,2S"))
        assert check.meld_type == MeldType.SET

    def test_seven_sevens_with_wildcard_is_dirty(self):
        check = validate_meld(parse_hand("7C-0,7C-1,7D-0,7D-1,7H-0,7H-1,2S-0"))
        assert check.meld_type == MeldType.SET
        assert check.canasta_type == CanastaType.DIRTY

    def test_seven_naturals_is_clean(self):
        check = validate_meld(parse_hand("KC-0,KC-1,KD-0,KD-1,KH-0,KH-1,KS-0"))
        assert check.canasta_type == CanastaType.CLEAN

    def test_six_cards_is_not_a_canasta(self):
        check = validate_meld(parse_hand("KC-0,KC-1,KD-0,KD-1,KH-0,KH-1"))
        assert check
        assert check.canasta_type is None

    def test_mixed_ranks_and_suits(self):
        assert not validate_meld(parse_hand("QC,KH,QD"))


class TestRuns:
    """Runs: consecutive ranks of one suit plus at most one wildcard."""

    def test_simple_run(self):
        check = validate_meld(parse_hand("5H,6H,7H"))
        assert check.meld_type == MeldType.RUN

    def test_gap_needs_wildcard(self):
        assert not validate_meld(parse_hand("5H,7H,8H"))
        assert validate_meld(parse_hand("5H,7H,8H,2C"))
        assert validate_meld(parse_hand("5H,7H,2S"))

    def test_one_wildcard_fills_one_gap(self):
        assert not validate_meld(parse_hand("5H,8H,2C"))

    def test_seven_card_run_is_clean(self):
        check = validate_meld(parse_hand("4H,5H,6H,7H,8H,9H,10H"))
        assert check.meld_type == MeldType.RUN
        assert check.canasta_type == CanastaType.CLEAN

    def test_seven_card_run_with_wildcard_is_dirty(self):
        check = validate_meld(parse_hand("4H,5H,6H,2C,8H,9H,10H"))
        assert check.canasta_type == CanastaType.DIRTY

    def test_ace_high(self):
        assert validate_meld(parse_hand("QH,KH,AH"))
        assert validate_meld(parse_hand("KH,AH,2C"))

    def test_ace_cannot_wrap(self):
        assert not validate_meld(parse_hand("KH,AH,4H,2H"))
        assert not validate_meld(parse_hand("AH,2H,4H"))

    def test_repeated_rank(self):
        assert not validate_meld(parse_hand("5H-0,5H-1,6H-0"))

    def test_mixed_suits(self):
        assert not validate_meld(parse_hand("5H,6S,7H"))


class TestInvalidMelds:
    """Groups that can never be melded."""

    def test_too_few_cards(self):
        assert not validate_meld(parse_hand("QC,QH"))
        assert not validate_meld([])

    def test_two_wildcards(self):
        check = validate_meld(parse_hand("QC,QH,2S,2D"))
        assert not check
        assert check.reason

    def test_only_wildcards(self):
        assert not validate_meld(parse_hand("2C,2H,2S"))

    def test_threes(self):
        assert not validate_meld(parse_hand("3C,3S,3C-1"))
        assert not validate_meld(parse_hand("3H,3D,3H-1"))
        assert not validate_meld(parse_hand("4S,5S,3S"))

    def test_duplicate_card(self):
        assert not validate_meld(parse_hand("QC,QC,QH"))


class TestOrderIndependence:
    """Validation does not depend on card order."""

    @pytest.mark.parametrize(
        "group",
        ["5H,7H,8H,2C", "QC,QH,QD,2S", "5H,7H,8H", "KH,AH,2C", "QC,QH,2S,2D"],
    )
    def test_every_permutation_agrees(self, group):
        cards = parse_hand(group)
        expected = validate_meld(cards)
        for ordering in permutations(cards):
            assert validate_meld(ordering) == expected


class TestMeld:
    """The Meld value object."""

    def test_invalid_cards_raise(self):
        with pytest.raises(ValueError):
            Meld("meld-1", parse_hand("QC,KH,5D"))

    def test_declared_type_must_match(self):
        with pytest.raises(ValueError):
            Meld("meld-1", parse_hand("QC,QH,QD"), MeldType.RUN)

    def test_extended_returns_new_meld(self):
        meld = Meld("meld-1", parse_hand("5H,6H,7H"))
        grown = meld.extended(parse_hand("8H"))
        assert grown.id == "meld-1"
        assert len(grown.cards) == 4
        assert len(meld.cards) == 3

    def test_extension_keeps_validity_up_to_canasta(self):
        meld = Meld("meld-1", parse_hand("4H,5H,6H"))
        for label in ["7H", "8H", "9H", "10H"]:
            meld = meld.extended(parse_hand(label))
        assert meld.is_canasta
        assert meld.is_clean_canasta
        assert not meld.is_dirty_canasta

    def test_can_add(self):
        meld = Meld("meld-1", parse_hand("QC,QH,QD"))
        assert meld.can_add(parse_hand("QS")[0])
        assert meld.can_add(parse_hand("2C")[0])
        assert not meld.can_add(parse_hand("KS")[0])

    def test_second_wildcard_rejected(self):
        meld = Meld("meld-1", parse_hand("QC,QH,QD,2S"))
        assert meld.wildcard_count == 1
        assert can_add_to_meld(parse_hand("2C")[0], meld) is None

    def test_can_extend_meld(self):
        meld = Meld("meld-1", parse_hand("5H,6H,7H"))
        grown = can_extend_meld(parse_hand("9H,8H"), meld)
        assert grown is not None
        assert len(grown.cards) == 5
        assert can_extend_meld(parse_hand("9H"), meld) is None
        assert can_extend_meld([], meld) is None
