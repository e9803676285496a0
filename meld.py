"""Tranca meld rules: sets, runs and canasta classification."""

from enum import Enum
from typing import List, Optional, Sequence

from card import Card

MIN_MELD_SIZE = 3
CANASTA_SIZE = 7
MAX_WILDCARDS = 1

ACE_HIGH = 14
ACE_LOW = 1


class MeldType(Enum):
    SET = "set"
    RUN = "run"


class CanastaType(Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    # Kept for the scoring table; validation never produces it.
    REAL = "real"


class MeldCheck:
    """Outcome of :func:`validate_meld`.

    Truthy when the cards form a valid meld. ``reason`` explains a failure
    in plain words and is empty on success.
    """

    def __init__(
        self,
        valid: bool,
        meld_type: Optional[MeldType] = None,
        canasta_type: Optional[CanastaType] = None,
        reason: str = "",
    ):
        self.valid = valid
        self.meld_type = meld_type
        self.canasta_type = canasta_type
        self.reason = reason

    def __bool__(self):
        return self.valid

    def __eq__(self, other):
        if not isinstance(other, MeldCheck):
            return False
        return (self.valid, self.meld_type, self.canasta_type) == (
            other.valid,
            other.meld_type,
            other.canasta_type,
        )

    def __repr__(self):
        if not self.valid:
            return f"MeldCheck(invalid: {self.reason})"
        canasta = self.canasta_type.value if self.canasta_type else None
        return f"MeldCheck({self.meld_type.value}, canasta={canasta})"


def _invalid(reason: str) -> MeldCheck:
    return MeldCheck(False, reason=reason)


def classify_canasta(size: int, wildcards: int) -> Optional[CanastaType]:
    """Canasta class of a valid meld, or None below CANASTA_SIZE cards."""
    if size < CANASTA_SIZE:
        return None
    return CanastaType.CLEAN if wildcards == 0 else CanastaType.DIRTY


def _run_gaps(values: List[int]) -> int:
    """Number of missing ranks between the lowest and highest value."""
    ordered = sorted(values)
    return ordered[-1] - ordered[0] - (len(ordered) - 1)


def _run_readings(regulars: List[Card], wildcards: List[Card]) -> List[List[int]]:
    """Possible rank readings of a run's natural cards.

    The ace is high unless a two of the run's own suit sits in the group,
    in which case the ace may also be read low, next to that two.
    """
    high = [c.rank_value for c in regulars]
    readings = [high]
    suit = regulars[0].suit
    has_ace = any(v == ACE_HIGH for v in high)
    if has_ace and any(w.suit == suit for w in wildcards):
        readings.append([ACE_LOW if v == ACE_HIGH else v for v in high])
    return readings


def validate_meld(cards: Sequence[Card]) -> MeldCheck:
    """Decide whether ``cards`` form a valid set or run.

    The result never depends on the order of ``cards``.
    """
    cards = list(cards)
    if len(cards) < MIN_MELD_SIZE:
        return _invalid(f"Meld needs at least {MIN_MELD_SIZE} cards")

    if len({c.id for c in cards}) != len(cards):
        return _invalid("The same card appears twice")

    if any(c.is_locker or c.is_red_three for c in cards):
        return _invalid("Threes cannot be melded")

    wildcards = [c for c in cards if c.is_wildcard]
    regulars = [c for c in cards if not c.is_wildcard]
    if len(wildcards) > MAX_WILDCARDS:
        return _invalid("Only one wildcard per meld")
    if not regulars:
        return _invalid("Meld needs at least one natural card")

    canasta = classify_canasta(len(cards), len(wildcards))

    if len({c.rank for c in regulars}) == 1:
        if len(wildcards) >= len(regulars):
            return _invalid("Set needs more natural cards than wildcards")
        return MeldCheck(True, MeldType.SET, canasta)

    if len({c.suit for c in regulars}) != 1:
        return _invalid("Cards are neither the same rank nor the same suit")

    if len({c.rank for c in regulars}) != len(regulars):
        return _invalid("Run cannot repeat a rank")

    for values in _run_readings(regulars, wildcards):
        if _run_gaps(values) <= len(wildcards):
            return MeldCheck(True, MeldType.RUN, canasta)
    return _invalid("Wildcards cannot fill the gaps in this run")


class Meld:
    """A meld laid down on the table by a team.

    A meld is never changed in place: :meth:`extended` returns a new meld
    holding every existing card plus the added ones.
    """

    def __init__(
        self,
        meld_id: str,
        cards: Sequence[Card],
        meld_type: Optional[MeldType] = None,
        canasta_type: Optional[CanastaType] = None,
        *,
        _skip_validate: bool = False,
    ):
        self.id = meld_id
        self.cards = tuple(cards)
        if _skip_validate:
            self.meld_type = meld_type
            self.canasta_type = canasta_type
            return

        check = validate_meld(self.cards)
        if not check:
            raise ValueError(check.reason)
        if meld_type is not None and meld_type != check.meld_type:
            raise ValueError(
                f"Cards form a {check.meld_type.value}, not a {meld_type.value}"
            )
        self.meld_type = check.meld_type
        self.canasta_type = check.canasta_type

    @property
    def wildcard_count(self) -> int:
        return sum(1 for c in self.cards if c.is_wildcard)

    @property
    def is_canasta(self) -> bool:
        return self.canasta_type is not None

    @property
    def is_clean_canasta(self) -> bool:
        """Clean or better: enough to let the team go out."""
        return self.canasta_type in (CanastaType.CLEAN, CanastaType.REAL)

    @property
    def is_dirty_canasta(self) -> bool:
        return self.canasta_type == CanastaType.DIRTY

    def can_add(self, card: Card) -> bool:
        """Check if a card can be added to the meld."""
        return can_add_to_meld(card, self) is not None

    def extended(self, cards: Sequence[Card]) -> "Meld":
        """Return a new meld with ``cards`` appended.

        Raises:
            ValueError: if the grown meld is not valid
        """
        return Meld(self.id, list(self.cards) + list(cards), self.meld_type)

    def __eq__(self, other):
        if not isinstance(other, Meld):
            return False
        return (
            self.id == other.id
            and self.cards == other.cards
            and self.meld_type == other.meld_type
            and self.canasta_type == other.canasta_type
        )

    def __repr__(self):
        cards = ",".join(c.id for c in self.cards)
        return f"Meld({self.id}, {self.meld_type.value}, [{cards}])"


def can_add_to_meld(card: Card, meld: Meld) -> Optional[Meld]:
    """Return the grown meld if ``card`` can join ``meld``, else None."""
    return can_extend_meld([card], meld)


def can_extend_meld(cards: Sequence[Card], meld: Meld) -> Optional[Meld]:
    """Return the grown meld if all ``cards`` can join ``meld``, else None."""
    if not cards:
        return None
    try:
        return meld.extended(cards)
    except ValueError:
        return None
