"""Automated play and invariant checks to catch bugs without manual reporting.

Run with: pytest tests/test_play_and_validate.py -v
Or: python -m pytest tests/test_play_and_validate.py -v

These tests play whole rounds (bot vs bot, bot vs random, random only) and
after every turn assert that engine invariants hold: card conservation,
valid melds, pile lock flag, phase and index in range. Any violation fails
the test with a clear message.
"""

import random

from bot import play_bot_turn, play_random_turn
from card import NUM_PLAYERS, build_deck
from engine import Engine, TurnPhase, new_round
from meld import validate_meld
from pickup import is_discard_pile_locked

DECK_SIZE = len(build_deck())
MAX_TURNS = 400


def _collect_all_cards(engine: Engine) -> list:
    """Return all cards in the engine (hands, stock, discard, dead piles, team tables)."""
    cards = []
    cards.extend(engine.stock)
    cards.extend(engine.discard_pile)
    for p in engine.players:
        cards.extend(p.hand)
    for pile in engine.dead_piles:
        cards.extend(pile)
    for team in engine.teams:
        cards.extend(team.red_threes)
        for meld in team.melds:
            cards.extend(meld.cards)
    return cards


def validate_engine_invariants(engine: Engine, *, after_turn: int = -1) -> None:
    """Assert engine invariants. Raises AssertionError with message on failure.

    - Every one of the DECK_SIZE (104) cards is in exactly one place.
    - current_player_index in valid range.
    - turn_phase is a valid TurnPhase.
    - Every meld on every team is valid (re-validated from its cards).
    - The lock flag matches the top of the discard pile.
    - Red threes only sit in a hand while the turn waits to process them.
    """
    all_cards = _collect_all_cards(engine)
    assert len(all_cards) == DECK_SIZE == engine.card_count(), (
        f"Card count mismatch: got {len(all_cards)}, expected {DECK_SIZE} "
        f"(after_turn={after_turn}, phase={engine.turn_phase.value}, "
        f"stock={len(engine.stock)}, discard={len(engine.discard_pile)})"
    )
    ids = [c.id for c in all_cards]
    assert len(set(ids)) == DECK_SIZE, (
        f"Duplicate cards: {sorted(i for i in set(ids) if ids.count(i) > 1)} "
        f"(after_turn={after_turn})"
    )

    assert 0 <= engine.current_player_index < NUM_PLAYERS, (
        f"Invalid current_player_index={engine.current_player_index} "
        f"(after_turn={after_turn})"
    )

    assert engine.turn_phase in TurnPhase, (
        f"Invalid turn_phase={engine.turn_phase} (after_turn={after_turn})"
    )

    for team in engine.teams:
        for meld in team.melds:
            check = validate_meld(meld.cards)
            assert check, (
                f"Invalid meld: team {team.index} {meld.id} "
                f"({len(meld.cards)} cards): {check.reason} "
                f"(after_turn={after_turn})"
            )
            assert check.canasta_type == meld.canasta_type, (
                f"Stale canasta class on {meld.id} (after_turn={after_turn})"
            )

    assert engine.is_discard_pile_locked == is_discard_pile_locked(engine.discard_pile), (
        f"Lock flag {engine.is_discard_pile_locked} does not match pile top "
        f"(after_turn={after_turn})"
    )

    if engine.turn_phase != TurnPhase.PROCESSING_RED_THREE:
        for p in engine.players:
            assert not any(c.is_red_three for c in p.hand), (
                f"Red three left in {p.id}'s hand (after_turn={after_turn})"
            )


def _validate_round_end(engine: Engine) -> None:
    assert engine.is_round_over
    assert engine.round_end_reason is not None
    for team in engine.teams:
        assert team.score == team.round_score, (
            f"Team {team.index} score {team.score} != round score {team.round_score}"
        )
    if engine.going_out_team is not None:
        assert engine.winner == engine.going_out_team
        assert any(not p.hand for p in engine.players)


def _play_round(engine: Engine, play_turn, max_turns: int = MAX_TURNS) -> int:
    turn = 0
    while not engine.is_round_over and turn < max_turns:
        new_engine = play_turn(engine)
        assert new_engine is not engine, (
            f"No progress for {engine.get_current_player().id} in phase "
            f"{engine.turn_phase.value} (after_turn={turn})"
        )
        engine = new_engine
        validate_engine_invariants(engine, after_turn=turn)
        turn += 1
    _validate_round_end(engine)
    return turn


def test_play_full_rounds_all_bots_invariants_hold():
    """Play several rounds with bots in every seat; validate after every turn."""
    for seed in range(4):
        engine = new_round(seed, human_seat=None)
        turns = _play_round(engine, play_bot_turn)
        assert turns > 0


def test_play_rounds_bot_vs_random_invariants_hold():
    """Team 0 uses the bot, team 1 plays random legal actions."""
    for seed in range(3):
        rng = random.Random(seed)

        def play_turn(engine):
            if engine.get_current_player().team_index == 0:
                return play_bot_turn(engine)
            return play_random_turn(engine, rng)

        _play_round(new_round(100 + seed, human_seat=None), play_turn)


def test_play_full_round_random_only_invariants_hold():
    """Random legal moves only; validate after every turn."""
    rng = random.Random(123)
    _play_round(new_round(123, human_seat=None), lambda e: play_random_turn(e, rng))


def test_validate_engine_invariants_on_fresh_round():
    """Sanity: a freshly dealt round passes invariant checks."""
    for seed in range(5):
        validate_engine_invariants(new_round(seed), after_turn=0)
