"""Bot policy for Tranca.

The bot sees the table only through :meth:`engine.Engine.view_for` and
calls the rule queries (``validate_meld``, ``can_add_to_meld``,
``can_justify_pickup``, ``is_discard_pile_locked``) plus
:func:`engine.apply`. It never changes a state directly.
"""

import random
from itertools import combinations
from typing import Dict, List, Optional, Sequence

from card import Card, Rank, Suit
from engine import (
    ClaimDiscardPile,
    Discard,
    DrawFromStock,
    Engine,
    ExtendMeld,
    FormMeld,
    ProcessRedThrees,
    SortHand,
    TurnPhase,
    apply,
)
from meld import Meld, can_add_to_meld, validate_meld
from pickup import can_justify_pickup, is_discard_pile_locked

MAX_MELD_SEARCH_SIZE = 7
# Safety cap on actions per turn; a turn normally needs far fewer.
MAX_TURN_STEPS = 40
RANDOM_TURN_MELD_SIZE = 3

# Keep-score weights: the card with the lowest score is discarded
PAIR_BONUS = 10
TRIPLE_BONUS = 20
NEIGHBOR_BONUS = 5
FITS_OWN_MELD_BONUS = 15
FEEDS_OPPONENT_GUARD = 100
LOCKER_BONUS = 50
WILDCARD_BONUS = 40

DEFAULT_BOT_CONFIG = {
    "max_meld_size": MAX_MELD_SEARCH_SIZE,
    # Take the discard pile whenever the top card can be used
    "claim_pile": True,
    # Avoid discarding cards that fit the opponents' melds
    "watch_opponents": True,
    # Add single cards to existing melds after laying down new ones
    "extend_melds": True,
}


def _meld_pools(hand: Sequence[Card]) -> List[List[Card]]:
    """Natural cards that could share a meld: one rank, or one suit."""
    naturals = [c for c in hand if not (c.is_wildcard or c.is_locker or c.is_red_three)]
    pools = []
    for rank in Rank:
        same_rank = [c for c in naturals if c.rank == rank]
        if same_rank:
            pools.append(same_rank)
    for suit in Suit:
        same_suit = [c for c in naturals if c.suit == suit]
        if same_suit:
            pools.append(same_suit)
    return pools


def candidate_melds(hand: Sequence[Card], max_size: int = MAX_MELD_SEARCH_SIZE) -> List[List[Card]]:
    """Every valid meld of 3 to ``max_size`` cards from ``hand``, largest first."""
    wildcards = [c for c in hand if c.is_wildcard]
    seen = set()
    found = []

    def consider(cards):
        key = frozenset(c.id for c in cards)
        if key in seen:
            return
        seen.add(key)
        if validate_meld(cards):
            found.append(list(cards))

    for pool in _meld_pools(hand):
        for size in range(3, max_size + 1):
            for combo in combinations(pool, size):
                consider(combo)
            # At most one wildcard fits in a meld.
            for combo in combinations(pool, size - 1):
                for wildcard in wildcards:
                    consider(combo + (wildcard,))
    found.sort(key=len, reverse=True)
    return found


def find_valid_melds(hand: Sequence[Card], max_size: int = MAX_MELD_SEARCH_SIZE) -> List[List[Card]]:
    """Disjoint melds to lay down from ``hand``.

    Every valid meld is found, then the largest ones are taken greedily
    while no card is used twice.
    """
    used = set()
    chosen = []
    for cards in candidate_melds(hand, max_size):
        if any(c.id in used for c in cards):
            continue
        chosen.append(cards)
        used.update(c.id for c in cards)
    return chosen


def discard_scores(
    hand: Sequence[Card],
    own_melds: Sequence[Meld],
    opponent_melds: Sequence[Meld] = (),
) -> Dict[str, int]:
    """Keep score of each card in ``hand`` by card id."""
    scores = {}
    for card in hand:
        score = -card.rank_value

        same_rank = sum(1 for c in hand if c.rank == card.rank)
        if same_rank == 2:
            score += PAIR_BONUS
        elif same_rank >= 3:
            score += TRIPLE_BONUS

        if any(
            c.suit == card.suit and abs(c.rank_value - card.rank_value) == 1
            for c in hand
        ):
            score += NEIGHBOR_BONUS

        if any(can_add_to_meld(card, m) is not None for m in own_melds):
            score += FITS_OWN_MELD_BONUS
        if any(can_add_to_meld(card, m) is not None for m in opponent_melds):
            score += FEEDS_OPPONENT_GUARD

        if card.is_locker:
            score += LOCKER_BONUS
        if card.is_wildcard:
            score += WILDCARD_BONUS

        scores[card.id] = score
    return scores


def choose_discard(
    hand: Sequence[Card],
    own_melds: Sequence[Meld],
    opponent_melds: Sequence[Meld] = (),
) -> Optional[str]:
    """Id of the card to discard (lowest keep score), or None for an empty hand."""
    if not hand:
        return None
    scores = discard_scores(hand, own_melds, opponent_melds)
    return min(hand, key=lambda c: scores[c.id]).id


def organize_hand(hand: Sequence[Card]) -> List[Card]:
    """Organize hand by suit with wildcards in gaps."""
    wildcards = [c for c in hand if c.is_wildcard]
    others = [c for c in hand if not c.is_wildcard]

    organized_hand = []
    for suit in Suit:
        suit_cards = sorted(
            (c for c in others if c.suit == suit), key=lambda c: (c.rank_value, c.copy)
        )
        if suit_cards and wildcards:
            values = [c.rank_value for c in suit_cards]
            for wildcard in wildcards[:]:
                gap = next(
                    (i for i in range(len(values) - 1) if values[i + 1] - values[i] > 1),
                    None,
                )
                if gap is None:
                    break
                suit_cards.insert(gap + 1, wildcard)
                values.insert(gap + 1, values[gap] + 1)
                wildcards.remove(wildcard)
        organized_hand.extend(suit_cards)

    organized_hand.extend(wildcards)
    return organized_hand


def sort_hand_action(state: Engine, player_id: str) -> SortHand:
    """SortHand action putting ``player_id``'s hand in :func:`organize_hand` order."""
    view = state.view_for(state.get_player(player_id).seat)
    return SortHand(player_id, tuple(c.id for c in organize_hand(view.hand)))


def _accepted(state: Engine, action) -> bool:
    _, rejection = apply(state, action)
    return rejection is None


def legal_actions(state: Engine, max_meld_size: int = MAX_MELD_SEARCH_SIZE) -> list:
    """Enumerate the actions the current player may take now."""
    view = state.view_for()
    if view.round_number == 0 or view.is_round_over:
        return []

    if view.phase == TurnPhase.PROCESSING_RED_THREE:
        return [ProcessRedThrees()]

    actions = []
    if view.phase == TurnPhase.DRAW:
        if view.stock_size:
            actions.append(DrawFromStock())
        if _accepted(state, ClaimDiscardPile()):
            actions.append(ClaimDiscardPile())
        return actions

    for card in view.hand:
        for meld in view.own_melds:
            if can_add_to_meld(card, meld) is not None:
                action = ExtendMeld((card.id,), meld.id)
                if _accepted(state, action):
                    actions.append(action)
    for cards in candidate_melds(view.hand, max_meld_size):
        action = FormMeld(tuple(c.id for c in cards))
        if _accepted(state, action):
            actions.append(action)
    if view.phase == TurnPhase.MELD_OR_DISCARD:
        for card in view.hand:
            action = Discard(card.id)
            if _accepted(state, action):
                actions.append(action)
    return actions


def _same_turn(state: Engine, round_number: int, seat: int) -> bool:
    view = state.view_for(seat)
    return view.round_number == round_number and view.is_my_turn


def _draw(state: Engine, config: dict) -> Engine:
    view = state.view_for()
    top = view.pile_top
    if (
        config["claim_pile"]
        and top is not None
        and not is_discard_pile_locked(view.discard_pile)
        and can_justify_pickup(top, view.hand, view.own_melds)
    ):
        new_state, rejection = apply(state, ClaimDiscardPile())
        if rejection is None:
            return new_state

    new_state, rejection = apply(state, DrawFromStock())
    if rejection is None:
        return new_state
    new_state, rejection = apply(state, ClaimDiscardPile())
    return new_state


def _justify(state: Engine, config: dict) -> Engine:
    """Play the card taken from the discard pile."""
    view = state.view_for()
    card = view.find_card(view.justification_card_id)
    if card is None:
        return state

    for meld in view.own_melds:
        if can_add_to_meld(card, meld) is not None:
            new_state, rejection = apply(state, ExtendMeld((card.id,), meld.id))
            if rejection is None:
                return new_state

    for cards in candidate_melds(view.hand, config["max_meld_size"]):
        if card not in cards:
            continue
        new_state, rejection = apply(state, FormMeld(tuple(c.id for c in cards)))
        if rejection is None:
            return new_state
    return state


def _still_melding(state: Engine, round_number: int, seat: int) -> bool:
    return (
        _same_turn(state, round_number, seat)
        and state.view_for(seat).phase == TurnPhase.MELD_OR_DISCARD
    )


def _lay_down(state: Engine, config: dict) -> Engine:
    view = state.view_for()
    round_number, seat = view.round_number, view.seat

    for cards in find_valid_melds(view.hand, config["max_meld_size"]):
        new_state, rejection = apply(state, FormMeld(tuple(c.id for c in cards)))
        if rejection is not None:
            continue
        state = new_state
        if not _still_melding(state, round_number, seat):
            return state

    if not config["extend_melds"]:
        return state

    progress = True
    while progress:
        progress = False
        view = state.view_for(seat)
        for card in view.hand:
            meld = next((m for m in view.own_melds if can_add_to_meld(card, m)), None)
            if meld is None:
                continue
            new_state, rejection = apply(state, ExtendMeld((card.id,), meld.id))
            if rejection is not None:
                continue
            state = new_state
            if not _still_melding(state, round_number, seat):
                return state
            progress = True
            break
    return state


def _discard(state: Engine, config: dict) -> Engine:
    view = state.view_for()
    opponent_melds = view.opponent_melds if config["watch_opponents"] else ()
    scores = discard_scores(view.hand, view.own_melds, opponent_melds)

    for card in sorted(view.hand, key=lambda c: scores[c.id]):
        new_state, rejection = apply(state, Discard(card.id))
        if rejection is None:
            return new_state
    return state


def play_bot_turn(state: Engine, config: Optional[dict] = None) -> Engine:
    """Play one complete turn for the current player and return the new state.

    The turn ends when the player discards, the round ends or the player
    has no accepted action left.
    """
    config = {**DEFAULT_BOT_CONFIG, **(config or {})}
    view = state.view_for()
    if view.round_number == 0 or view.is_round_over:
        return state

    round_number, seat = view.round_number, view.seat
    for _ in range(MAX_TURN_STEPS):
        before = state
        phase = state.view_for(seat).phase
        if phase == TurnPhase.PROCESSING_RED_THREE:
            state, _ = apply(state, ProcessRedThrees())
        elif phase == TurnPhase.DRAW:
            state = _draw(state, config)
        elif phase == TurnPhase.MUST_JUSTIFY_DISCARD:
            state = _justify(state, config)
        elif phase == TurnPhase.MELD_OR_DISCARD:
            state = _lay_down(state, config)
            if _still_melding(state, round_number, seat):
                state = _discard(state, config)

        if not _same_turn(state, round_number, seat) or state is before:
            return state
    return state


def play_random_turn(state: Engine, rng: random.Random) -> Engine:
    """Play one turn choosing uniformly among legal actions."""
    view = state.view_for()
    if view.round_number == 0 or view.is_round_over:
        return state

    round_number, seat = view.round_number, view.seat
    for _ in range(MAX_TURN_STEPS):
        actions = legal_actions(state, max_meld_size=RANDOM_TURN_MELD_SIZE)
        if not actions:
            return state
        state, _ = apply(state, rng.choice(actions))
        if not _same_turn(state, round_number, seat):
            return state

    # Still holding the turn: finish it with any accepted discard.
    if state.view_for(seat).phase == TurnPhase.MELD_OR_DISCARD:
        for action in legal_actions(state, max_meld_size=0):
            if isinstance(action, Discard):
                state, _ = apply(state, action)
                break
    return state


def team_live_scores(state: Engine) -> Dict[int, int]:
    """Live score of each team, as shown on the table."""
    return dict(enumerate(state.view_for().live_scores))
