"""Rules for taking the discard pile in Tranca."""

from itertools import combinations
from typing import Optional, Sequence

from card import Card
from meld import Meld, can_add_to_meld, validate_meld


def is_discard_pile_locked(discard_pile: Sequence[Card]) -> bool:
    """True if the pile cannot be taken: a black or red 3 lies on top."""
    if not discard_pile:
        return False
    top = discard_pile[-1]
    return top.is_locker or top.is_red_three


def find_extendable_meld(
    top_card: Card, team_melds: Sequence[Meld]
) -> Optional[Meld]:
    """First team meld that ``top_card`` can join, or None."""
    for meld in team_melds:
        if can_add_to_meld(top_card, meld) is not None:
            return meld
    return None


def find_new_meld_partners(
    top_card: Card, hand: Sequence[Card]
) -> Optional[tuple]:
    """Two hand cards that form a new meld with ``top_card``, or None.

    Any valid meld holding the top card also holds a valid three-card
    window around it, so pairs are enough.
    """
    others = [c for c in hand if c.id != top_card.id]
    for pair in combinations(others, 2):
        if validate_meld([top_card, *pair]):
            return pair
    return None


def can_justify_pickup(
    top_card: Card, hand: Sequence[Card], team_melds: Sequence[Meld]
) -> bool:
    """Check, before the pile moves, that the top card can be used at once.

    The card must either extend one of the team's melds or form a new
    meld with two cards already in ``hand``.
    """
    if top_card.is_locker or top_card.is_red_three:
        return False
    if find_extendable_meld(top_card, team_melds) is not None:
        return True
    return find_new_meld_partners(top_card, hand) is not None
