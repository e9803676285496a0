"""Card representation and deck utilities for Tranca."""

import random
from enum import Enum
from typing import List, Optional, Tuple

NUM_PLAYERS = 4
NUM_DECKS = 2
HAND_SIZE = 11
DEAD_PILE_SIZE = 11
# Left after the deal: 104 - 4 x 11 - 2 x 11
STOCK_SIZE = NUM_DECKS * 52 - NUM_PLAYERS * HAND_SIZE - 2 * DEAD_PILE_SIZE


class Suit(Enum):
    """Card suits."""
    CLUBS = "C"
    DIAMONDS = "D"
    HEARTS = "H"
    SPADES = "S"

    @property
    def is_black(self) -> bool:
        return self in (Suit.CLUBS, Suit.SPADES)


class Rank(Enum):
    """Card ranks."""
    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"


# Ace high; the wildcard sits at its face value.
RANK_VALUES = {
    Rank.TWO: 2,
    Rank.THREE: 3,
    Rank.FOUR: 4,
    Rank.FIVE: 5,
    Rank.SIX: 6,
    Rank.SEVEN: 7,
    Rank.EIGHT: 8,
    Rank.NINE: 9,
    Rank.TEN: 10,
    Rank.JACK: 11,
    Rank.QUEEN: 12,
    Rank.KING: 13,
    Rank.ACE: 14,
}

_RANK_BY_VALUE = {r.value: r for r in Rank}
_SUIT_BY_VALUE = {s.value: s for s in Suit}


class Card:
    """Represents one physical card of the double deck.

    Two queens of hearts share rank and suit but not identity: ``copy``
    (0 or 1) tells which deck a card came from, and the card id carries it.
    Cards never change once created; they only move between piles.
    """

    def __init__(self, rank: Rank, suit: Suit, copy: int = 0):
        """Initialize a card.

        Args:
            rank: The rank of the card
            suit: The suit of the card
            copy: Index of the deck the card belongs to (0 or 1)
        """
        if copy not in range(NUM_DECKS):
            raise ValueError(f"Invalid deck copy: {copy}")
        self._rank = rank
        self._suit = suit
        self._copy = copy

    @property
    def rank(self) -> Rank:
        return self._rank

    @property
    def suit(self) -> Suit:
        return self._suit

    @property
    def copy(self) -> int:
        return self._copy

    @property
    def id(self) -> str:
        """Unique identity, e.g. ``"QH-0"`` or ``"10S-1"``."""
        return f"{self._rank.value}{self._suit.value}-{self._copy}"

    @property
    def label(self) -> str:
        """Face label without the deck copy, e.g. ``"QH"``."""
        return f"{self._rank.value}{self._suit.value}"

    @property
    def is_wildcard(self) -> bool:
        """Every 2 is a wildcard."""
        return self._rank == Rank.TWO

    @property
    def is_locker(self) -> bool:
        """Black 3: cannot be melded and locks the discard pile."""
        return self._rank == Rank.THREE and self._suit.is_black

    @property
    def is_red_three(self) -> bool:
        """Red 3: banked by the team for bonus or penalty scoring."""
        return self._rank == Rank.THREE and not self._suit.is_black

    @property
    def rank_value(self) -> int:
        """Numeric rank used for sequencing (ace high)."""
        return RANK_VALUES[self._rank]

    def __eq__(self, other):
        if not isinstance(other, Card):
            return False
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return self.id

    @classmethod
    def from_string(cls, card_str: str) -> "Card":
        """Parse a card from string format (e.g. ``'AS'``, ``'10H'``, ``'QD-1'``).

        Args:
            card_str: Face label, optionally followed by ``-<copy>``

        Returns:
            Card object
        """
        card_str = card_str.strip().upper()
        copy = 0
        if "-" in card_str:
            card_str, copy_str = card_str.rsplit("-", 1)
            if not copy_str.isdigit():
                raise ValueError(f"Invalid card copy: {copy_str}")
            copy = int(copy_str)

        if len(card_str) < 2:
            raise ValueError(f"Invalid card format: {card_str}")

        rank_str = card_str[:-1]
        suit_str = card_str[-1]
        if rank_str not in _RANK_BY_VALUE:
            raise ValueError(f"Invalid rank: {rank_str}")
        if suit_str not in _SUIT_BY_VALUE:
            raise ValueError(f"Invalid suit: {suit_str}")

        return cls(_RANK_BY_VALUE[rank_str], _SUIT_BY_VALUE[suit_str], copy)

    @classmethod
    def from_id(cls, card_id: str) -> "Card":
        """Rebuild a card from its id (inverse of :attr:`id`)."""
        if "-" not in card_id:
            raise ValueError(f"Card id without deck copy: {card_id}")
        return cls.from_string(card_id)


def parse_hand(hand_str: str) -> List[Card]:
    """Parse a hand from string format.

    Args:
        hand_str: Comma-separated card strings (e.g. "AS,2C,KD-1")

    Returns:
        List of Card objects
    """
    if not hand_str.strip():
        return []

    cards = []
    for card_str in hand_str.split(","):
        cards.append(Card.from_string(card_str.strip()))
    return cards


def build_deck() -> List[Card]:
    """Create the Tranca deck: two standard 52-card decks, no jokers.

    Ordering is deterministic (deck copy, then suit, then rank) so that a
    seeded shuffle always yields the same deal.
    """
    deck = []
    for copy in range(NUM_DECKS):
        for suit in Suit:
            for rank in Rank:
                deck.append(Card(rank, suit, copy))
    return deck


def shuffle_deck(
    deck: List[Card], rng: Optional[random.Random] = None
) -> List[Card]:
    """Return a uniformly shuffled copy of ``deck``.

    ``random.Random.shuffle`` is a Fisher-Yates shuffle; pass a seeded
    generator to make the permutation reproducible.
    """
    rng = rng if rng is not None else random.Random()
    shuffled = list(deck)
    rng.shuffle(shuffled)
    return shuffled


def deal(
    deck: List[Card],
) -> Tuple[List[Card], List[List[Card]], List[List[Card]]]:
    """Deal a shuffled deck into hands, dead piles and the stock.

    Cards are taken from the end of ``deck`` (the top of the stock): one
    card per player per pass for HAND_SIZE passes, then the two dead piles
    alternately. The input list is not modified.

    Returns:
        (stock, hands, dead_piles) with 4 hands and 2 dead piles
    """
    needed = NUM_PLAYERS * HAND_SIZE + 2 * DEAD_PILE_SIZE
    if len(deck) < needed:
        raise ValueError(f"Deck has {len(deck)} cards, need at least {needed}")

    stock = list(deck)
    hands: List[List[Card]] = [[] for _ in range(NUM_PLAYERS)]
    dead_piles: List[List[Card]] = [[], []]

    for _ in range(HAND_SIZE):
        for hand in hands:
            hand.append(stock.pop())

    for _ in range(DEAD_PILE_SIZE):
        for pile in dead_piles:
            pile.append(stock.pop())

    return stock, hands, dead_piles
