"""Point tables and score computation for Tranca."""

from typing import Dict, Iterable, Optional, Sequence

from card import Card, Rank
from meld import CanastaType, Meld

CARD_POINTS = {
    Rank.ACE: 15,
    Rank.KING: 10,
    Rank.QUEEN: 10,
    Rank.JACK: 10,
    Rank.TEN: 10,
    Rank.NINE: 10,
    Rank.EIGHT: 10,
    Rank.SEVEN: 5,
    Rank.SIX: 5,
    Rank.FIVE: 5,
    Rank.FOUR: 5,
    Rank.THREE: 5,
    Rank.TWO: 10,
}

CANASTA_BONUS = {
    CanastaType.CLEAN: 200,
    CanastaType.DIRTY: 100,
    CanastaType.REAL: 500,
}

GOING_OUT_BONUS = 100
RED_THREE_BONUS = 100
RED_THREE_PENALTY = -100
LOCKER_IN_HAND_PENALTY = -100
NO_DEAD_PILE_PENALTY = -100


def card_points(card: Card) -> int:
    """Table value of a card. Red threes are never scored through the table."""
    if card.is_red_three:
        return 0
    return CARD_POINTS[card.rank]


def meld_points(meld: Meld) -> int:
    return sum(card_points(c) for c in meld.cards)


def canasta_bonus(meld: Meld) -> int:
    if meld.canasta_type is None:
        return 0
    return CANASTA_BONUS[meld.canasta_type]


def has_canasta(melds: Iterable[Meld]) -> bool:
    return any(m.is_canasta for m in melds)


def has_clean_canasta(melds: Iterable[Meld]) -> bool:
    return any(m.is_clean_canasta for m in melds)


def red_three_score(red_threes: Sequence[Card], melds: Sequence[Meld]) -> int:
    """Red threes pay off only once the team holds a canasta."""
    if not red_threes:
        return 0
    per_card = RED_THREE_BONUS if has_canasta(melds) else RED_THREE_PENALTY
    return len(red_threes) * per_card


def hand_penalty(cards: Iterable[Card]) -> int:
    """Points lost for cards left in hand (a positive number).

    A black 3 costs a flat amount instead of its table value.
    """
    total = 0
    for card in cards:
        if card.is_locker:
            total -= LOCKER_IN_HAND_PENALTY
        else:
            total += card_points(card)
    return total


def dead_pile_penalty(cards: Iterable[Card]) -> int:
    """Points lost for a dead pile the team never claimed (a positive number)."""
    return sum(card_points(c) for c in cards)


def live_score(team) -> int:
    """Score shown during play: melds, canasta bonuses and red threes.

    ``team`` needs ``melds`` and ``red_threes``.
    """
    melds = list(team.melds)
    score = sum(meld_points(m) for m in melds)
    score += sum(canasta_bonus(m) for m in melds)
    score += red_three_score(team.red_threes, melds)
    return score


class RoundScore:
    """Breakdown of a team's final score for one round."""

    def __init__(
        self,
        meld_points: int = 0,
        canasta_bonus: int = 0,
        going_out_bonus: int = 0,
        hand_penalty: int = 0,
        red_threes: int = 0,
        dead_pile_penalty: int = 0,
    ):
        self.meld_points = meld_points
        self.canasta_bonus = canasta_bonus
        self.going_out_bonus = going_out_bonus
        self.hand_penalty = hand_penalty
        self.red_threes = red_threes
        self.dead_pile_penalty = dead_pile_penalty

    @property
    def total(self) -> int:
        return (
            self.meld_points
            + self.canasta_bonus
            + self.going_out_bonus
            - self.hand_penalty
            + self.red_threes
            - self.dead_pile_penalty
        )

    def as_dict(self) -> Dict[str, int]:
        return {
            "meld_points": self.meld_points,
            "canasta_bonus": self.canasta_bonus,
            "going_out_bonus": self.going_out_bonus,
            "hand_penalty": self.hand_penalty,
            "red_threes": self.red_threes,
            "dead_pile_penalty": self.dead_pile_penalty,
            "total": self.total,
        }

    def __repr__(self):
        return f"RoundScore(total={self.total})"


def round_score(
    team,
    hands: Sequence[Sequence[Card]],
    went_out: bool,
    unclaimed_pile: Optional[Sequence[Card]] = None,
) -> RoundScore:
    """Final score of ``team`` at the end of a round.

    Args:
        team: Object with ``melds``, ``red_threes`` and ``has_claimed_dead_pile``
        hands: The hands of the team's players
        went_out: Whether this team emptied its hand to end the round
        unclaimed_pile: Dead pile charged to this team if it never claimed one

    Returns:
        RoundScore breakdown; ``total`` is the round score
    """
    melds = list(team.melds)
    result = RoundScore(
        meld_points=sum(meld_points(m) for m in melds),
        canasta_bonus=sum(canasta_bonus(m) for m in melds),
        going_out_bonus=GOING_OUT_BONUS if went_out else 0,
        hand_penalty=sum(hand_penalty(hand) for hand in hands),
        red_threes=red_three_score(team.red_threes, melds),
    )
    if not team.has_claimed_dead_pile:
        result.dead_pile_penalty = -NO_DEAD_PILE_PENALTY
        if unclaimed_pile:
            result.dead_pile_penalty += dead_pile_penalty(unclaimed_pile)
    return result


def determine_winner(
    scores: Dict[int, int], going_out_team: Optional[int] = None
) -> Optional[int]:
    """Return the winning team index, or None on a draw.

    The team that went out wins regardless of points; otherwise the higher
    round score wins.
    """
    if going_out_team is not None:
        return going_out_team
    if len(scores) < 2:
        return next(iter(scores), None)
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    if ranked[0][1] == ranked[1][1]:
        return None
    return ranked[0][0]
