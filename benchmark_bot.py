"""Measure Tranca bot strength from the command line.

Three checks, each optional:

1. Blunder scenarios: hand-built positions with one obviously bad move.
2. Bot vs random: the default bot as team 0 against random legal play.
3. Control vs Challenger: two bot configs meet head-to-head, swapping
   teams halfway so neither side keeps the same deals.

Usage: tranca-benchmark [--games N] [--compare-games N]
   or: python benchmark_bot.py --assert-challenger-wins
"""

import argparse
import random
import sys
import time
from collections.abc import Callable
from typing import Optional

from bot import DEFAULT_BOT_CONFIG, play_bot_turn, play_random_turn
from card import parse_hand
from engine import Engine, TurnPhase, new_round
from meld import Meld

# Baseline: short meld search, blind to the opponents' table.
CONTROL_CONFIG = {
    **DEFAULT_BOT_CONFIG,
    "max_meld_size": 4,
    "watch_opponents": False,
}

# Candidate config. With --assert-challenger-wins it has to outscore or
# outwin CONTROL_CONFIG.
CHALLENGER_CONFIG = dict(DEFAULT_BOT_CONFIG)

MAX_TURNS = 400
SCENARIO_SEED = 7

Bot = Callable[[Engine], Engine]


def make_bot(config: dict) -> Bot:
    """Wrap :func:`bot.play_bot_turn` with a fixed config."""
    return lambda state: play_bot_turn(state, config)


def make_random_bot(rng: random.Random) -> Bot:
    return lambda state: play_random_turn(state, rng)


def run_one_round(
    seed: int,
    team_bots: dict[int, Bot],
    max_turns: int = MAX_TURNS,
) -> tuple[Optional[int], dict[int, int], bool]:
    """Deal a round from ``seed`` and let each team's bot play it out.

    Returns:
        (winner, round scores by team, completed). A round that hits
        ``max_turns`` or where a bot returns the state unchanged is not
        completed and carries no scores.
    """
    state = new_round(seed, human_seat=None)
    for _ in range(max_turns):
        if state.is_round_over:
            break
        seat_team = state.get_current_player().team_index
        next_state = team_bots[seat_team](state)
        if next_state is state:
            break
        state = next_state

    if not state.is_round_over:
        return None, {}, False
    return state.winner, {t.index: t.round_score for t in state.teams}, True


def run_control_vs_challenger(
    num_games_per_side: int = 5,
    seed_base: int = 100,
) -> dict:
    """Head-to-head rounds, reported from the configs' point of view.

    Control sits as team 0 for the first ``num_games_per_side`` deals and
    as team 1 for as many more.
    """
    bots = {"control": make_bot(CONTROL_CONFIG), "challenger": make_bot(CHALLENGER_CONFIG)}
    tally = {
        "control_wins": 0,
        "challenger_wins": 0,
        "ties": 0,
        "total_points_control": 0,
        "total_points_challenger": 0,
        "games_played": 0,
        "games_requested": 2 * num_games_per_side,
    }

    for control_team, first_seed in ((0, seed_base), (1, seed_base + 1000)):
        seats = {control_team: "control", 1 - control_team: "challenger"}
        team_bots = {team: bots[name] for team, name in seats.items()}
        for seed in range(first_seed, first_seed + num_games_per_side):
            winner, scores, completed = run_one_round(seed, team_bots)
            if not completed:
                continue
            tally["games_played"] += 1
            for team, name in seats.items():
                tally[f"total_points_{name}"] += scores[team]
            if winner is None:
                tally["ties"] += 1
            else:
                tally[f"{seats[winner]}_wins"] += 1

    played = tally["games_played"]
    gap = tally["total_points_challenger"] - tally["total_points_control"]
    tally["avg_point_diff"] = gap / played if played else 0
    return tally


def benchmark_win_rate_vs_random(
    num_games: int = 20,
    bot_team: int = 0,
    seed_base: int = 42,
) -> dict:
    """Default bot against random play; win rate over all requested rounds."""
    wins = 0
    completed = 0
    margin = 0
    for seed in range(seed_base, seed_base + num_games):
        team_bots = {
            bot_team: make_bot(DEFAULT_BOT_CONFIG),
            1 - bot_team: make_random_bot(random.Random(seed)),
        }
        winner, scores, done = run_one_round(seed, team_bots)
        if not done:
            continue
        completed += 1
        wins += winner == bot_team
        margin += scores[bot_team] - scores[1 - bot_team]
    return {
        "games": num_games,
        "completed": completed,
        "wins": wins,
        "win_rate": wins / num_games if num_games else 0,
        "avg_point_diff": margin / completed if completed else 0,
    }


# Blunder scenarios


def _take(state: Engine, labels: str) -> list:
    """Pull the named cards out of wherever the deal put them.

    A card taken from a hand or a dead pile is swapped for a stock card,
    so every card still sits in exactly one place.
    """
    cards = parse_hand(labels)
    wanted = {c.id for c in cards}
    holders = [p.hand for p in state.players] + state.dead_piles + [state.discard_pile]
    for card in cards:
        if card.id in {c.id for c in state.stock}:
            state.stock = [c for c in state.stock if c.id != card.id]
            continue
        holder = next(h for h in holders if any(c.id == card.id for c in h))
        spare = next(
            c for c in state.stock if c.id not in wanted and not c.is_red_three
        )
        state.stock.remove(spare)
        holder[[c.id for c in holder].index(card.id)] = spare
    return cards


def _seat_zero(phase: TurnPhase, hand: str) -> Engine:
    """Seat 0 to act in ``phase`` holding ``hand``; the rest as dealt."""
    state = new_round(SCENARIO_SEED, human_seat=None)
    state.current_player_index = 0
    state.turn_phase = phase
    state.stock.extend(state.players[0].hand)
    state.players[0].hand = []
    state.players[0].hand = _take(state, hand)
    return state


def _discard_after_turn(hand: str, opponent_meld: Optional[str] = None) -> Optional[str]:
    state = _seat_zero(TurnPhase.MELD_OR_DISCARD, hand)
    if opponent_meld:
        state.teams[1].melds = [Meld("meld-1", _take(state, opponent_meld))]
        state.next_meld_number = 2
    after = play_bot_turn(state)
    return after.discard_pile[-1].label if after.discard_pile else None


def _keeps_wildcard() -> bool:
    """A 2 and two loose cards: throw a loose card."""
    return _discard_after_turn("2D-1,4S-1,9H-1") not in (None, "2D")


def _keeps_locker() -> bool:
    """A black 3 is worth more later, to lock the pile."""
    return _discard_after_turn("3S-1,6D-1,9C-1") not in (None, "3S")


def _does_not_feed_opponent() -> bool:
    """The opponents have queens down; our queen stays home."""
    discarded = _discard_after_turn("QC-1,5D-1,8S-1", opponent_meld="QH-0,QD-0,QS-0")
    return discarded not in (None, "QC")


def _takes_useful_pile() -> bool:
    """The pile's top card extends our run, so the pile is taken."""
    state = _seat_zero(TurnPhase.DRAW, "10C-1,KD-1,9S-1")
    state.teams[0].melds = [Meld("meld-1", _take(state, "4H-0,5H-0,6H-0"))]
    state.next_meld_number = 2
    state.discard_pile = _take(state, "7H-1")
    state.is_discard_pile_locked = False
    run = play_bot_turn(state).teams[0].find_meld("meld-1")
    return run is not None and any(c.label == "7H" for c in run.cards)


BLUNDER_SCENARIOS = [
    ("Keep the wildcard when a loose card can go", _keeps_wildcard),
    ("Keep black 3s", _keeps_locker),
    ("Don't discard a card the opponents can meld", _does_not_feed_opponent),
    ("Take the pile when its top card is playable", _takes_useful_pile),
]


def run_blunder_scenarios() -> dict:
    """Play every blunder scenario; ``details`` pairs each name with pass/fail."""
    details = [(name, scenario()) for name, scenario in BLUNDER_SCENARIOS]
    return {
        "passed": sum(ok for _, ok in details),
        "total": len(details),
        "details": details,
    }


# Command line


def _timed(fn, *args, **kwargs):
    start = time.perf_counter()
    result = fn(*args, **kwargs)
    return result, time.perf_counter() - start


def _describe(config: dict) -> str:
    return ", ".join(f"{key}={value}" for key, value in sorted(config.items()))


def _challenger_is_better(tally: dict) -> bool:
    return (
        tally["total_points_challenger"] > tally["total_points_control"]
        or tally["challenger_wins"] > tally["control_wins"]
    )


def _summary(tally: dict) -> str:
    return (
        f"points {tally['total_points_challenger']} vs "
        f"{tally['total_points_control']} "
        f"(avg diff {tally['avg_point_diff']:+.0f}), "
        f"wins {tally['challenger_wins']} vs {tally['control_wins']}"
    )


def _assert_challenger_wins(num_games_per_side: int) -> None:
    """Exit with status 1 unless the challenger beats control."""
    print("Control vs Challenger, challenger must come out ahead...")
    tally = run_control_vs_challenger(num_games_per_side=num_games_per_side)
    if tally["games_played"] < 2:
        print(f"ERROR: {tally['games_played']} round(s) completed; need at least 2.")
        sys.exit(1)
    if _challenger_is_better(tally):
        print(f"OK: challenger ahead, {_summary(tally)}.")
        return
    print(f"FAIL: challenger not ahead, {_summary(tally)}.")
    sys.exit(1)


def _report_blunders() -> None:
    print("1. Blunder scenarios")
    result, elapsed = _timed(run_blunder_scenarios)
    print(f"   {result['passed']}/{result['total']} passed ({elapsed:.1f}s)")
    for name, ok in result["details"]:
        print(f"   [{'ok' if ok else 'FAIL'}] {name}")
    print()


def _report_vs_random(games: int) -> None:
    print(f"2. Bot (team 0) vs random, {games} rounds")
    result, elapsed = _timed(benchmark_win_rate_vs_random, num_games=games)
    print(f"   Wins: {result['wins']}/{result['games']} ({result['win_rate']:.0%})")
    print(f"   Completed rounds: {result['completed']}")
    print(f"   Avg point margin: {result['avg_point_diff']:+.0f}")
    print(f"   ({elapsed:.1f}s)")
    print()


def _report_head_to_head(games_per_side: int) -> None:
    print("3. Control vs Challenger")
    print(f"   Control:    {_describe(CONTROL_CONFIG)}")
    print(f"   Challenger: {_describe(CHALLENGER_CONFIG)}")
    tally, elapsed = _timed(run_control_vs_challenger, num_games_per_side=games_per_side)
    print(f"   Rounds completed: {tally['games_played']}/{tally['games_requested']}")
    print(
        f"   Wins: control {tally['control_wins']}, "
        f"challenger {tally['challenger_wins']}, ties {tally['ties']}"
    )
    print(
        f"   Points: control {tally['total_points_control']}, "
        f"challenger {tally['total_points_challenger']}"
    )
    verdict = "challenger ahead" if tally["avg_point_diff"] > 0 else (
        "control ahead" if tally["avg_point_diff"] < 0 else "even"
    )
    print(f"   Avg diff (challenger - control): {tally['avg_point_diff']:+.0f}, {verdict}")
    print(f"   ({elapsed:.1f}s)")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Tranca bot benchmark.")
    parser.add_argument(
        "--games", type=int, default=5,
        help="rounds against the random bot (default: 5)",
    )
    parser.add_argument(
        "--compare-games", type=int, default=4,
        help="rounds per side for control vs challenger (default: 4)",
    )
    parser.add_argument(
        "--skip-blunder", action="store_true",
        help="do not run the blunder scenarios",
    )
    parser.add_argument(
        "--skip-random", action="store_true",
        help="do not play against the random bot",
    )
    parser.add_argument(
        "--assert-challenger-wins", action="store_true",
        help="only run control vs challenger; exit 1 if the challenger is not ahead",
    )
    args = parser.parse_args(argv)

    if args.assert_challenger_wins:
        _assert_challenger_wins(args.compare_games)
        return

    print("=== Tranca bot benchmark ===\n")
    if not args.skip_blunder:
        _report_blunders()
    if not args.skip_random:
        _report_vs_random(args.games)
    _report_head_to_head(args.compare_games)


if __name__ == "__main__":
    main()
