"""Tests for the bot policy and the benchmark harness."""

import random

from benchmark_bot import (
    CHALLENGER_CONFIG,
    _seat_zero,
    _take,
    make_bot,
    make_random_bot,
    main,
    run_blunder_scenarios,
    run_one_round,
)
from bot import (
    candidate_melds,
    choose_discard,
    discard_scores,
    find_valid_melds,
    legal_actions,
    organize_hand,
    play_bot_turn,
    play_random_turn,
    sort_hand_action,
    team_live_scores,
)
from card import parse_hand
from engine import DrawFromStock, ProcessRedThrees, TurnPhase, apply, new_round
from meld import Meld, validate_meld


def _at_draw(hand, pile, seed=1):
    state = new_round(seed, human_seat=None)
    state.current_player_index = 0
    state.turn_phase = TurnPhase.DRAW
    state.players[0].hand = parse_hand(hand)
    state.discard_pile = parse_hand(pile)
    for team in state.teams:
        team.melds = []
    return state


def _all_card_ids(state):
    cards = list(state.stock) + list(state.discard_pile)
    for player in state.players:
        cards.extend(player.hand)
    for pile in state.dead_piles:
        cards.extend(pile)
    for team in state.teams:
        cards.extend(team.red_threes)
        for meld in team.melds:
            cards.extend(meld.cards)
    return [c.id for c in cards]


class TestMeldSearch:
    """Finding melds in a hand."""

    def test_candidates_are_valid_and_largest_first(self):
        hand = parse_hand("QC,QH,QD,QS,5H,6H,7H,2C")
        candidates = candidate_melds(hand)
        assert candidates
        assert all(validate_meld(cards) for cards in candidates)
        sizes = [len(cards) for cards in candidates]
        assert sizes == sorted(sizes, reverse=True)

    def test_greedy_disjoint_melds(self):
        hand = parse_hand("QC,QH,QD,QS,5H,6H,7H,2C")
        melds = find_valid_melds(hand)
        assert [len(cards) for cards in melds] == [5, 3]
        ids = [c.id for cards in melds for c in cards]
        assert len(ids) == len(set(ids))

    def test_size_limit(self):
        hand = parse_hand("4H,5H,6H,7H,8H,9H")
        assert max(len(cards) for cards in candidate_melds(hand, 4)) == 4

    def test_no_melds(self):
        assert find_valid_melds(parse_hand("3S,3C,KD,9H")) == []


class TestDiscardChoice:
    """Choosing the card to throw away."""

    def test_keeps_wildcard_and_locker(self):
        assert choose_discard(parse_hand("2C,3S,KD,5H"), []) == "KD-0"

    def test_avoids_feeding_opponent(self):
        hand = parse_hand("QS,9H")
        opponent = [Meld("meld-1", parse_hand("QC,QH,QD"))]
        assert choose_discard(hand, [], opponent) == "9H-0"
        assert choose_discard(hand, []) == "QS-0"

    def test_pairs_are_kept(self):
        scores = discard_scores(parse_hand("9H-0,9H-1,KD"), [])
        assert scores["9H-0"] > scores["KD-0"]

    def test_empty_hand(self):
        assert choose_discard([], []) is None


class TestOrganizeHand:
    """Display order of a hand."""

    def test_wildcard_fills_gap(self):
        hand = parse_hand("KH,2C,9H,JH,4C")
        assert [c.id for c in organize_hand(hand)] == [
            "4C-0", "9H-0", "2C-0", "JH-0", "KH-0",
        ]

    def test_sort_action_is_accepted(self):
        state = new_round(1)
        new, rejection = apply(state, sort_hand_action(state, "player-2"))
        assert rejection is None
        assert sorted(c.id for c in new.players[2].hand) == sorted(
            c.id for c in state.players[2].hand
        )


class TestLegalActions:
    """Enumerating accepted actions."""

    def test_draw_phase(self):
        assert legal_actions(new_round(1)) == [DrawFromStock()]

    def test_red_three_phase(self):
        state = new_round(1)
        state.turn_phase = TurnPhase.PROCESSING_RED_THREE
        assert legal_actions(state) == [ProcessRedThrees()]

    def test_every_listed_action_is_accepted(self):
        state, _ = apply(new_round(2), DrawFromStock())
        actions = legal_actions(state)
        assert actions
        for action in actions:
            _, rejection = apply(state, action)
            assert rejection is None


class TestPlayTurn:
    """Whole turns."""

    def test_bot_turn_passes_the_turn(self):
        state = new_round(1, human_seat=None)
        new = play_bot_turn(state)
        assert new is not state
        assert new.current_player_index == 1
        assert new.card_count() == 104
        assert state.current_player_index == 0

    def test_bot_turn_leaves_input_state_alone(self):
        state = _at_draw("9H-1,10H-1,KS-1", "8H-1")
        snapshot = state.copy()
        play_bot_turn(state)
        assert state == snapshot

    def test_bot_takes_useful_pile(self):
        state = _at_draw("9H-1,10H-1,KS-1", "8H-1")
        new = play_bot_turn(state)
        assert new.teams[0].has_claimed_dead_pile
        assert any(
            "8H-1" in [c.id for c in meld.cards] for meld in new.teams[0].melds
        )

    def test_bot_can_skip_the_pile(self):
        state = _at_draw("9H-1,10H-1,KS-1", "8H-1")
        new = play_bot_turn(state, {"claim_pile": False})
        assert "8H-1" in [c.id for c in new.discard_pile]

    def test_random_turn(self):
        state = new_round(1, human_seat=None)
        new = play_random_turn(state, random.Random(0))
        assert new.current_player_index == 1
        assert new.card_count() == 104

    def test_live_scores(self):
        state = new_round(1)
        assert team_live_scores(state) == {
            team.index: team.round_score for team in state.teams
        }


class TestBenchmark:
    """The benchmark harness."""

    def test_blunder_scenarios(self):
        result = run_blunder_scenarios()
        assert result["passed"] == result["total"]

    def test_scenario_positions_keep_every_card_once(self):
        state = _seat_zero(TurnPhase.DRAW, "10C-1,KD-1,9S-1")
        state.teams[0].melds = [Meld("meld-1", _take(state, "4H-0,5H-0,6H-0"))]
        state.discard_pile = _take(state, "7H-1")
        ids = _all_card_ids(state)
        assert len(ids) == len(set(ids)) == 104
        assert [c.id for c in state.players[0].hand] == ["10C-1", "KD-1", "9S-1"]
        assert not any(c.is_red_three for p in state.players for c in p.hand)

    def test_run_one_round(self):
        bots = {0: make_bot(CHALLENGER_CONFIG), 1: make_random_bot(random.Random(1))}
        winner, scores, completed = run_one_round(21, bots)
        assert completed
        assert set(scores) == {0, 1}
        assert winner in (0, 1, None)

    def test_main(self, capsys):
        main(["--skip-blunder", "--skip-random", "--compare-games", "1"])
        out = capsys.readouterr().out
        assert "Control vs Challenger" in out
