"""Turn state machine for Tranca."""

import random
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import List, Optional, Sequence, Tuple

from card import NUM_PLAYERS, Card, build_deck, deal, shuffle_deck
from meld import Meld, MeldType, can_add_to_meld, can_extend_meld, validate_meld
from pickup import can_justify_pickup, is_discard_pile_locked
from scoring import determine_winner, has_clean_canasta, live_score, round_score

NUM_TEAMS = 2


class TurnPhase(Enum):
    DRAW = "comprar"
    MELD_OR_DISCARD = "baixar_ou_descartar"
    MUST_JUSTIFY_DISCARD = "justificar_lixo"
    PROCESSING_RED_THREE = "tres_vermelho"
    ENDED = "terminado"


class RoundEndReason(Enum):
    GOING_OUT = "going_out"
    STOCK_EXHAUSTED = "stock_exhausted"


class RejectionKind(Enum):
    INVALID_ACTION = "invalid_action"
    RULE_VIOLATION = "rule_violation"
    RESOURCE_EXHAUSTION = "resource_exhaustion"


class RejectReason(Enum):
    ROUND_OVER = "round_over"
    ROUND_NOT_STARTED = "round_not_started"
    WRONG_PHASE = "wrong_phase"
    NOT_YOUR_TURN = "not_your_turn"
    UNKNOWN_PLAYER = "unknown_player"
    CARD_NOT_IN_HAND = "card_not_in_hand"
    DUPLICATE_CARDS = "duplicate_cards"
    NO_CARDS = "no_cards"
    UNKNOWN_MELD = "unknown_meld"
    INVALID_MELD = "invalid_meld"
    STOCK_EMPTY = "stock_empty"
    DISCARD_PILE_EMPTY = "discard_pile_empty"
    DISCARD_PILE_LOCKED = "discard_pile_locked"
    PICKUP_NOT_JUSTIFIED = "pickup_not_justified"
    JUSTIFICATION_CARD_REQUIRED = "justification_card_required"
    CLEAN_CANASTA_REQUIRED = "clean_canasta_required"
    INVALID_SORT = "invalid_sort"
    UNKNOWN_ACTION = "unknown_action"

    @property
    def kind(self) -> RejectionKind:
        if self == RejectReason.STOCK_EMPTY:
            return RejectionKind.RESOURCE_EXHAUSTION
        if self in _RULE_VIOLATIONS:
            return RejectionKind.RULE_VIOLATION
        return RejectionKind.INVALID_ACTION


_RULE_VIOLATIONS = {
    RejectReason.INVALID_MELD,
    RejectReason.DISCARD_PILE_LOCKED,
    RejectReason.PICKUP_NOT_JUSTIFIED,
    RejectReason.JUSTIFICATION_CARD_REQUIRED,
    RejectReason.CLEAN_CANASTA_REQUIRED,
}

_DEFAULT_MESSAGES = {
    RejectReason.ROUND_OVER: "A rodada já terminou",
    RejectReason.ROUND_NOT_STARTED: "A rodada ainda não começou",
    RejectReason.WRONG_PHASE: "Ação não permitida nesta fase do turno",
    RejectReason.NOT_YOUR_TURN: "Não é a sua vez",
    RejectReason.UNKNOWN_PLAYER: "Jogador desconhecido",
    RejectReason.CARD_NOT_IN_HAND: "Carta não está na mão",
    RejectReason.DUPLICATE_CARDS: "A mesma carta foi escolhida duas vezes",
    RejectReason.NO_CARDS: "Nenhuma carta escolhida",
    RejectReason.UNKNOWN_MELD: "Jogo não encontrado entre os jogos do seu time",
    RejectReason.INVALID_MELD: "Jogo inválido",
    RejectReason.STOCK_EMPTY: "O monte acabou",
    RejectReason.DISCARD_PILE_EMPTY: "Lixo está vazio",
    RejectReason.DISCARD_PILE_LOCKED: "Lixo está trancado",
    RejectReason.PICKUP_NOT_JUSTIFIED: (
        "A carta do topo do lixo precisa formar ou completar um jogo"
    ),
    RejectReason.JUSTIFICATION_CARD_REQUIRED: (
        "Use a carta do topo do lixo em um jogo antes de continuar"
    ),
    RejectReason.CLEAN_CANASTA_REQUIRED: (
        "Só é possível bater com uma canastra limpa (7+ cartas sem curinga)"
    ),
    RejectReason.INVALID_SORT: "A nova ordem precisa conter exatamente as cartas da mão",
    RejectReason.UNKNOWN_ACTION: "Ação desconhecida",
}


class Rejection:
    """Why an action was refused. The state it was applied to is unchanged."""

    def __init__(self, reason: RejectReason, message: Optional[str] = None):
        self.reason = reason
        self.message = message or _DEFAULT_MESSAGES[reason]

    @property
    def kind(self) -> RejectionKind:
        return self.reason.kind

    def __eq__(self, other):
        if not isinstance(other, Rejection):
            return False
        return self.reason == other.reason

    def __str__(self):
        return self.message

    def __repr__(self):
        return f"Rejection({self.reason.value}: {self.message})"


# Actions


@dataclass(frozen=True)
class InitializeRound:
    seed: Optional[int] = None


@dataclass(frozen=True)
class DrawFromStock:
    pass


@dataclass(frozen=True)
class ClaimDiscardPile:
    pass


@dataclass(frozen=True)
class Discard:
    card_id: str


@dataclass(frozen=True)
class FormMeld:
    card_ids: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "card_ids", tuple(self.card_ids))


@dataclass(frozen=True)
class ExtendMeld:
    card_ids: Tuple[str, ...]
    meld_id: str

    def __post_init__(self):
        object.__setattr__(self, "card_ids", tuple(self.card_ids))


@dataclass(frozen=True)
class SortHand:
    player_id: str
    card_ids: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "card_ids", tuple(self.card_ids))


@dataclass(frozen=True)
class ProcessRedThrees:
    pass


@dataclass(frozen=True)
class AcknowledgeDrawnCard:
    pass


class Player:
    """Represents a player in the game."""

    def __init__(self, seat: int, name: str, is_bot: bool = False):
        self.seat = seat
        self.id = f"player-{seat}"
        self.name = name
        self.is_bot = is_bot
        self.hand: List[Card] = []

    @property
    def team_index(self) -> int:
        """Partnerships are seats {0, 2} and {1, 3}."""
        return self.seat % NUM_TEAMS

    def find_card(self, card_id: str) -> Optional[Card]:
        return next((c for c in self.hand if c.id == card_id), None)

    def __eq__(self, other):
        if not isinstance(other, Player):
            return False
        return (self.seat, self.name, self.is_bot, self.hand) == (
            other.seat,
            other.name,
            other.is_bot,
            other.hand,
        )

    def __repr__(self):
        return f"Player({self.id}, {self.name}, {len(self.hand)} cartas)"


class Team:
    """Two partners sharing melds, red threes and score."""

    def __init__(self, index: int, player_ids: Sequence[str]):
        self.index = index
        self.id = f"team-{index}"
        self.player_ids = list(player_ids)
        self.melds: List[Meld] = []
        self.score = 0
        self.round_score = 0
        self.has_claimed_dead_pile = False
        self.red_threes: List[Card] = []

    def find_meld(self, meld_id: str) -> Optional[Meld]:
        return next((m for m in self.melds if m.id == meld_id), None)

    def reset_round(self):
        self.melds = []
        self.round_score = 0
        self.has_claimed_dead_pile = False
        self.red_threes = []

    def __eq__(self, other):
        if not isinstance(other, Team):
            return False
        return (
            self.index == other.index
            and self.player_ids == other.player_ids
            and self.melds == other.melds
            and self.score == other.score
            and self.round_score == other.round_score
            and self.has_claimed_dead_pile == other.has_claimed_dead_pile
            and self.red_threes == other.red_threes
        )

    def __repr__(self):
        return f"Team({self.id}, {len(self.melds)} jogos, {self.score} pontos)"


@dataclass(frozen=True)
class SeatView:
    """The table as one seat sees it. Holds tuples, never the live lists."""

    seat: int
    team_index: int
    current_seat: int
    round_number: int
    is_round_over: bool
    phase: TurnPhase
    hand: Tuple[Card, ...]
    own_melds: Tuple[Meld, ...]
    opponent_melds: Tuple[Meld, ...]
    discard_pile: Tuple[Card, ...]
    is_discard_pile_locked: bool
    stock_size: int
    justification_card_id: Optional[str]
    # Live score per team index
    live_scores: Tuple[int, ...]

    @property
    def is_my_turn(self) -> bool:
        return self.seat == self.current_seat and not self.is_round_over

    @property
    def pile_top(self) -> Optional[Card]:
        return self.discard_pile[-1] if self.discard_pile else None

    def find_card(self, card_id: Optional[str]) -> Optional[Card]:
        return next((c for c in self.hand if c.id == card_id), None)


class Engine:
    """Round state of a Tranca game and the rules that move it forward.

    Actions go through :func:`apply`, which runs them on a copy. The
    private action methods either change that copy and return None, or
    return a :class:`Rejection` and leave it untouched.
    """

    def __init__(
        self,
        player_names: Optional[Sequence[str]] = None,
        human_seat: Optional[int] = 0,
    ):
        if player_names is None:
            player_names = [f"Jogador {i + 1}" for i in range(NUM_PLAYERS)]
        if len(player_names) != NUM_PLAYERS:
            raise ValueError(f"Tranca needs exactly {NUM_PLAYERS} players")

        self.human_seat = human_seat
        self.players = [
            Player(i, name, is_bot=(i != human_seat))
            for i, name in enumerate(player_names)
        ]
        self.teams = [
            Team(t, [p.id for p in self.players if p.team_index == t])
            for t in range(NUM_TEAMS)
        ]
        self.stock: List[Card] = []
        self.discard_pile: List[Card] = []
        self.is_discard_pile_locked = False
        self.dead_piles: List[List[Card]] = [[], []]
        self.current_player_index = 0
        self.turn_phase = TurnPhase.ENDED
        # Phase to return to once pending red threes are processed.
        self.resume_phase: Optional[TurnPhase] = None
        self.round_number = 0
        self.last_drawn_card_id: Optional[str] = None
        self.justification_card_id: Optional[str] = None
        self.going_out_team: Optional[int] = None
        self.winner: Optional[int] = None
        self.round_end_reason: Optional[RoundEndReason] = None
        self.next_meld_number = 1
        self.messages: List[str] = []

    # Lookups

    def get_current_player(self) -> Player:
        """Get the current player."""
        return self.players[self.current_player_index]

    def get_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def team_of(self, player: Player) -> Team:
        return self.teams[player.team_index]

    def team_hands(self, team: Team) -> List[List[Card]]:
        return [p.hand for p in self.players if p.team_index == team.index]

    def find_meld(self, meld_id: str) -> Optional[Tuple[Team, Meld]]:
        for team in self.teams:
            meld = team.find_meld(meld_id)
            if meld is not None:
                return team, meld
        return None

    def view_for(self, seat: Optional[int] = None) -> SeatView:
        """Snapshot of what ``seat`` (default: the seat to play) may see."""
        if seat is None:
            seat = self.current_player_index
        player = self.players[seat]
        team = self.team_of(player)
        return SeatView(
            seat=seat,
            team_index=team.index,
            current_seat=self.current_player_index,
            round_number=self.round_number,
            is_round_over=self.is_round_over,
            phase=self.turn_phase,
            hand=tuple(player.hand),
            own_melds=tuple(team.melds),
            opponent_melds=tuple(
                m for t in self.teams if t is not team for m in t.melds
            ),
            discard_pile=tuple(self.discard_pile),
            is_discard_pile_locked=self.is_discard_pile_locked,
            stock_size=len(self.stock),
            justification_card_id=self.justification_card_id,
            live_scores=tuple(live_score(t) for t in self.teams),
        )

    @property
    def is_round_over(self) -> bool:
        return self.round_number > 0 and self.turn_phase == TurnPhase.ENDED

    def card_count(self) -> int:
        """Cards in every container; always 104 once a round is dealt."""
        total = len(self.stock) + len(self.discard_pile)
        total += sum(len(p) for p in self.dead_piles)
        total += sum(len(p.hand) for p in self.players)
        for team in self.teams:
            total += len(team.red_threes)
            total += sum(len(m.cards) for m in team.melds)
        return total

    def display_name(self, player: Player) -> str:
        """Get display name for a player (Você, Parceiro, Oponente 1, Oponente 2)."""
        if self.human_seat is None:
            return player.name
        human = self.players[self.human_seat]
        if player is human or player.seat == human.seat:
            return "Você"
        if player.team_index == human.team_index:
            return "Parceiro"
        opponents = [p for p in self.players if p.team_index != human.team_index]
        return f"Oponente {[p.seat for p in opponents].index(player.seat) + 1}"

    def _log(self, message: str):
        """Add message to log."""
        self.messages.append(message)

    def _log_player_action(self, player: Player, message_template: str, *args):
        """Log a player action, prefixed with the player's display name."""
        message = message_template.format(*args) if args else message_template
        self._log(f"{self.display_name(player)} {message}")

    # Guards

    def _check_started(self) -> Optional[Rejection]:
        if self.round_number == 0:
            return Rejection(RejectReason.ROUND_NOT_STARTED)
        return None

    def _check_phase(self, *phases: TurnPhase) -> Optional[Rejection]:
        rejection = self._check_started()
        if rejection:
            return rejection
        if self.turn_phase == TurnPhase.ENDED:
            return Rejection(RejectReason.ROUND_OVER)
        if self.turn_phase not in phases:
            return Rejection(
                RejectReason.WRONG_PHASE,
                f"Ação não permitida na fase '{self.turn_phase.value}'",
            )
        return None

    def _cards_from_hand(
        self, player: Player, card_ids: Sequence[str]
    ) -> Tuple[Optional[List[Card]], Optional[Rejection]]:
        if not card_ids:
            return None, Rejection(RejectReason.NO_CARDS)
        if len(set(card_ids)) != len(card_ids):
            return None, Rejection(RejectReason.DUPLICATE_CARDS)
        cards = []
        for card_id in card_ids:
            card = player.find_card(card_id)
            if card is None:
                return None, Rejection(
                    RejectReason.CARD_NOT_IN_HAND, f"Carta {card_id} não está na mão"
                )
            cards.append(card)
        return cards, None

    def _check_justification(self, card_ids: Sequence[str]) -> Optional[Rejection]:
        if (
            self.turn_phase == TurnPhase.MUST_JUSTIFY_DISCARD
            and self.justification_card_id not in card_ids
        ):
            return Rejection(RejectReason.JUSTIFICATION_CARD_REQUIRED)
        return None

    def _dead_pile_available(self, team: Team) -> bool:
        return not team.has_claimed_dead_pile and any(self.dead_piles)

    def _check_empty_hand(self, team: Team, melds: Sequence[Meld]) -> Optional[Rejection]:
        """Emptying the hand needs a dead pile to take or a clean canasta."""
        if self._dead_pile_available(team) or has_clean_canasta(melds):
            return None
        return Rejection(RejectReason.CLEAN_CANASTA_REQUIRED)

    # Actions

    def _initialize_round(self, seed: Optional[int] = None) -> Optional[Rejection]:
        """Shuffle, deal and start the next round.

        Hands, melds, piles and dead-pile flags reset; cumulative team
        scores carry over.
        """
        rng = random.Random(seed)
        stock, hands, dead_piles = deal(shuffle_deck(build_deck(), rng))

        self.round_number += 1
        self.stock = stock
        self.discard_pile = []
        self.is_discard_pile_locked = False
        self.dead_piles = dead_piles
        for player, hand in zip(self.players, hands):
            player.hand = hand
        for team in self.teams:
            team.reset_round()
        self.current_player_index = (self.round_number - 1) % NUM_PLAYERS
        self.turn_phase = TurnPhase.DRAW
        self.resume_phase = None
        self.last_drawn_card_id = None
        self.justification_card_id = None
        self.going_out_team = None
        self.winner = None
        self.round_end_reason = None
        self.next_meld_number = 1
        self.messages = []
        self._log(f"=== RODADA {self.round_number} ===")

        for player in self.players:
            self._bank_red_threes(player)
        self._refresh_live_scores()

        starting_player = self.get_current_player()
        self._log_player_action(starting_player, "começa a rodada")
        return None

    def _draw_from_stock(self) -> Optional[Rejection]:
        """Draw a card from stock; red threes are banked and replaced."""
        rejection = self._check_phase(TurnPhase.DRAW)
        if rejection:
            return rejection
        if not self.stock:
            return Rejection(RejectReason.STOCK_EMPTY)

        player = self.get_current_player()
        team = self.team_of(player)
        drawn = None
        while self.stock and drawn is None:
            card = self.stock.pop()
            if card.is_red_three:
                team.red_threes.append(card)
                self._log_player_action(player, "comprou um 3 vermelho ({})", card.label)
                continue
            drawn = card

        self._refresh_live_scores()
        if drawn is None:
            # Only red threes were left; the turn passes without a discard.
            self._log_player_action(player, "não conseguiu comprar")
            self._next_turn()
            return None

        player.hand.append(drawn)
        self.last_drawn_card_id = drawn.id
        self.turn_phase = TurnPhase.MELD_OR_DISCARD
        self._log_player_action(player, "comprou do monte")
        return None

    def _claim_discard_pile(self) -> Optional[Rejection]:
        """Take the whole discard pile, if its top card can be used at once."""
        rejection = self._check_phase(TurnPhase.DRAW)
        if rejection:
            return rejection
        player = self.get_current_player()
        rejection = self._check_pickup(player)
        if rejection:
            return rejection

        top = self.discard_pile[-1]
        size = len(self.discard_pile)
        player.hand.extend(self.discard_pile)
        self.discard_pile = []
        self.is_discard_pile_locked = False
        self.justification_card_id = top.id
        self.last_drawn_card_id = top.id
        self.turn_phase = TurnPhase.MUST_JUSTIFY_DISCARD
        self._log_player_action(player, "pegou o lixo ({} cartas)", size)
        self._hold_for_red_threes(player)
        return None

    def _form_meld(self, card_ids: Sequence[str]) -> Optional[Rejection]:
        """Lay down a new meld for the current player's team."""
        rejection = self._check_phase(
            TurnPhase.MELD_OR_DISCARD, TurnPhase.MUST_JUSTIFY_DISCARD
        )
        if rejection:
            return rejection

        player = self.get_current_player()
        cards, rejection = self._cards_from_hand(player, card_ids)
        if rejection:
            return rejection
        rejection = self._check_justification(card_ids)
        if rejection:
            return rejection

        check = validate_meld(cards)
        if not check:
            return Rejection(RejectReason.INVALID_MELD, f"Jogo inválido: {check.reason}")

        team = self.team_of(player)
        meld = Meld(f"meld-{self.next_meld_number}", cards)
        rejection = self._commit_meld(player, cards, team.melds + [meld])
        if rejection:
            return rejection
        self.next_meld_number += 1
        kind = "trinca" if meld.meld_type == MeldType.SET else "sequência"
        self._log_player_action(player, "baixou {} com {} cartas", kind, len(cards))
        self._after_meld(player)
        return None

    def _extend_meld(self, card_ids: Sequence[str], meld_id: str) -> Optional[Rejection]:
        """Add cards from hand to one of the team's melds."""
        rejection = self._check_phase(
            TurnPhase.MELD_OR_DISCARD, TurnPhase.MUST_JUSTIFY_DISCARD
        )
        if rejection:
            return rejection

        player = self.get_current_player()
        team = self.team_of(player)
        meld = team.find_meld(meld_id)
        if meld is None:
            return Rejection(RejectReason.UNKNOWN_MELD)
        cards, rejection = self._cards_from_hand(player, card_ids)
        if rejection:
            return rejection
        rejection = self._check_justification(card_ids)
        if rejection:
            return rejection

        grown = can_extend_meld(cards, meld)
        if grown is None:
            return Rejection(
                RejectReason.INVALID_MELD, "As cartas não cabem nesse jogo"
            )

        melds = [grown if m.id == meld_id else m for m in team.melds]
        rejection = self._commit_meld(player, cards, melds)
        if rejection:
            return rejection
        labels = ", ".join(c.label for c in cards)
        self._log_player_action(player, "adicionou {} ao jogo {}", labels, meld_id)
        if grown.is_canasta and not meld.is_canasta:
            self._log_player_action(player, "completou uma canastra")
        self._after_meld(player)
        return None

    def _discard(self, card_id: str) -> Optional[Rejection]:
        """Discard a card to end the turn."""
        rejection = self._check_phase(
            TurnPhase.MELD_OR_DISCARD, TurnPhase.MUST_JUSTIFY_DISCARD
        )
        if rejection:
            return rejection
        if self.turn_phase == TurnPhase.MUST_JUSTIFY_DISCARD:
            return Rejection(RejectReason.JUSTIFICATION_CARD_REQUIRED)

        player = self.get_current_player()
        card = player.find_card(card_id)
        if card is None:
            return Rejection(
                RejectReason.CARD_NOT_IN_HAND, f"Carta {card_id} não está na mão"
            )
        team = self.team_of(player)
        if len(player.hand) == 1:
            rejection = self._check_empty_hand(team, team.melds)
            if rejection:
                return rejection

        player.hand.remove(card)
        self.discard_pile.append(card)
        self.is_discard_pile_locked = is_discard_pile_locked(self.discard_pile)
        self.last_drawn_card_id = None
        self.justification_card_id = None
        self._log_player_action(player, "descartou {}", card.label)
        if self.is_discard_pile_locked:
            self._log("Lixo trancado")

        if not player.hand:
            self._handle_empty_hand(player)
        else:
            self._next_turn()
        return None

    def _process_red_threes(self) -> Optional[Rejection]:
        """Bank red threes in the current hand, replace them, resume the turn."""
        rejection = self._check_phase(TurnPhase.PROCESSING_RED_THREE)
        if rejection:
            return rejection

        player = self.get_current_player()
        self._bank_red_threes(player)
        self.turn_phase = self.resume_phase or TurnPhase.MELD_OR_DISCARD
        self.resume_phase = None
        self._refresh_live_scores()
        return None

    def _sort_hand(self, player_id: str, card_ids: Sequence[str]) -> Optional[Rejection]:
        """Reorder a hand for display. Has no rule effect."""
        rejection = self._check_started()
        if rejection:
            return rejection
        player = self.get_player(player_id)
        if player is None:
            return Rejection(RejectReason.UNKNOWN_PLAYER)
        if sorted(card_ids) != sorted(c.id for c in player.hand):
            return Rejection(RejectReason.INVALID_SORT)

        by_id = {c.id: c for c in player.hand}
        player.hand = [by_id[card_id] for card_id in card_ids]
        return None

    def _acknowledge_drawn_card(self) -> Optional[Rejection]:
        """Clear the display markers for the last drawn card."""
        rejection = self._check_started()
        if rejection:
            return rejection
        self.last_drawn_card_id = None
        if self.turn_phase != TurnPhase.MUST_JUSTIFY_DISCARD:
            self.justification_card_id = None
        return None

    # Transitions

    def _commit_meld(
        self, player: Player, cards: Sequence[Card], melds: List[Meld]
    ) -> Optional[Rejection]:
        team = self.team_of(player)
        used = {c.id for c in cards}
        remaining = [c for c in player.hand if c.id not in used]
        # With one card left the next discard empties the hand.
        if not self._may_keep(team, len(remaining), melds):
            return Rejection(RejectReason.CLEAN_CANASTA_REQUIRED)
        player.hand = remaining
        team.melds = melds
        return None

    def _after_meld(self, player: Player):
        self.turn_phase = TurnPhase.MELD_OR_DISCARD
        self.justification_card_id = None
        self._refresh_live_scores()
        if not player.hand:
            self._handle_empty_hand(player)

    def _handle_empty_hand(self, player: Player):
        """Take a dead pile and keep playing, or go out and end the round."""
        team = self.team_of(player)
        if self._dead_pile_available(team):
            index = next(i for i, pile in enumerate(self.dead_piles) if pile)
            player.hand = self.dead_piles[index]
            self.dead_piles[index] = []
            team.has_claimed_dead_pile = True
            self.turn_phase = TurnPhase.MELD_OR_DISCARD
            self._log_player_action(player, "pegou o morto")
            self._hold_for_red_threes(player)
            return

        self._log_player_action(player, "bateu")
        self._end_round(team.index, RoundEndReason.GOING_OUT)

    def _hold_for_red_threes(self, player: Player):
        """Pause the turn if red threes just arrived in the hand."""
        if any(c.is_red_three for c in player.hand):
            self.resume_phase = self.turn_phase
            self.turn_phase = TurnPhase.PROCESSING_RED_THREE
            self._log_player_action(player, "precisa baixar 3 vermelho")

    def _bank_red_threes(self, player: Player):
        """Move red threes from hand to the team, drawing replacements.

        A replacement that is itself a red three is banked too. If the
        stock runs out the hand stays short.
        """
        team = self.team_of(player)
        pending = [c for c in player.hand if c.is_red_three]
        if not pending:
            return
        player.hand = [c for c in player.hand if not c.is_red_three]
        while pending:
            card = pending.pop()
            team.red_threes.append(card)
            self._log_player_action(player, "baixou 3 vermelho ({})", card.label)
            if self.stock:
                replacement = self.stock.pop()
                if replacement.is_red_three:
                    pending.append(replacement)
                else:
                    player.hand.append(replacement)

    def _next_turn(self):
        """Move to next player."""
        self.current_player_index = (self.current_player_index + 1) % NUM_PLAYERS
        self.turn_phase = TurnPhase.DRAW
        self.last_drawn_card_id = None
        self.justification_card_id = None
        current_player = self.get_current_player()
        self._log(f"Vez de {self.display_name(current_player)}")

        if not self.stock and not self._can_claim_pile(current_player):
            self._log("O monte acabou")
            self._end_round(None, RoundEndReason.STOCK_EXHAUSTED)

    def _check_pickup(self, player: Player) -> Optional[Rejection]:
        if not self.discard_pile:
            return Rejection(RejectReason.DISCARD_PILE_EMPTY)
        if self.is_discard_pile_locked or is_discard_pile_locked(self.discard_pile):
            return Rejection(RejectReason.DISCARD_PILE_LOCKED)
        team = self.team_of(player)
        top = self.discard_pile[-1]
        if not can_justify_pickup(top, player.hand, team.melds):
            return Rejection(RejectReason.PICKUP_NOT_JUSTIFIED)
        if not self._has_playable_justification(player, team, top):
            return Rejection(
                RejectReason.PICKUP_NOT_JUSTIFIED,
                "Usar a carta do lixo deixaria você sem carta para descartar",
            )
        return None

    def _has_playable_justification(self, player: Player, team: Team, top: Card) -> bool:
        """True if some play of the top card would be accepted after pickup."""
        # Red threes in the pile leave the hand and may not be replaced.
        after_pickup = len(player.hand) + sum(
            1 for c in self.discard_pile if not c.is_red_three
        )
        for meld in team.melds:
            grown = can_add_to_meld(top, meld)
            if grown is None:
                continue
            melds = [grown if m.id == meld.id else m for m in team.melds]
            if self._may_keep(team, after_pickup - 1, melds):
                return True
        for pair in combinations(player.hand, 2):
            group = [top, *pair]
            if validate_meld(group):
                melds = team.melds + [Meld("candidate", group)]
                if self._may_keep(team, after_pickup - 3, melds):
                    return True
        return False

    def _may_keep(self, team: Team, remaining: int, melds: Sequence[Meld]) -> bool:
        """A hand may drop below two cards only if the team may empty it."""
        return remaining >= 2 or self._check_empty_hand(team, melds) is None

    def _can_claim_pile(self, player: Player) -> bool:
        return self._check_pickup(player) is None

    def _refresh_live_scores(self):
        for team in self.teams:
            team.round_score = live_score(team)

    def _end_round(self, going_out_team: Optional[int], reason: RoundEndReason):
        self.turn_phase = TurnPhase.ENDED
        self.resume_phase = None
        self.going_out_team = going_out_team
        self.round_end_reason = reason
        self._calculate_final_points()

        scores = {team.index: team.round_score for team in self.teams}
        self.winner = determine_winner(scores, going_out_team)
        for team in self.teams:
            team.score += team.round_score
        if self.winner is None:
            self._log("Empate")
        else:
            self._log(f"Time {self.winner + 1} venceu a rodada")

    def _calculate_final_points(self):
        """Calculate final points for all teams."""
        self._log("=== CONTAGEM DE PONTOS ===")

        unclaimed = [pile for pile in self.dead_piles if pile]
        for team in self.teams:
            pile = None
            if not team.has_claimed_dead_pile and unclaimed:
                pile = unclaimed.pop(0)
            result = round_score(
                team,
                self.team_hands(team),
                went_out=(team.index == self.going_out_team),
                unclaimed_pile=pile,
            )
            team.round_score = result.total

            label = f"Time {team.index + 1}"
            self._log(
                f"{label}: Jogos {result.meld_points}, "
                f"Canastras {result.canasta_bonus}, Mão -{result.hand_penalty}"
            )
            if result.going_out_bonus:
                self._log(f"{label}: +{result.going_out_bonus} pontos (Batida)")
            if result.red_threes:
                self._log(f"{label}: {result.red_threes:+d} pontos (3 vermelhos)")
            if result.dead_pile_penalty:
                self._log(
                    f"{label}: -{result.dead_pile_penalty} pontos (Não pegou o morto)"
                )
            self._log(f"{label} total: {result.total} pontos")

    def copy(self) -> "Engine":
        """Return an independent copy of the state.

        Cards and melds are never changed in place, so only the containers
        holding them are copied.
        """
        eng = Engine.__new__(Engine)
        eng.human_seat = self.human_seat
        eng.players = []
        for p in self.players:
            new_p = Player(p.seat, p.name, p.is_bot)
            new_p.hand = list(p.hand)
            eng.players.append(new_p)
        eng.teams = []
        for t in self.teams:
            new_t = Team(t.index, t.player_ids)
            new_t.melds = list(t.melds)
            new_t.score = t.score
            new_t.round_score = t.round_score
            new_t.has_claimed_dead_pile = t.has_claimed_dead_pile
            new_t.red_threes = list(t.red_threes)
            eng.teams.append(new_t)
        eng.stock = list(self.stock)
        eng.discard_pile = list(self.discard_pile)
        eng.is_discard_pile_locked = self.is_discard_pile_locked
        eng.dead_piles = [list(pile) for pile in self.dead_piles]
        eng.current_player_index = self.current_player_index
        eng.turn_phase = self.turn_phase
        eng.resume_phase = self.resume_phase
        eng.round_number = self.round_number
        eng.last_drawn_card_id = self.last_drawn_card_id
        eng.justification_card_id = self.justification_card_id
        eng.going_out_team = self.going_out_team
        eng.winner = self.winner
        eng.round_end_reason = self.round_end_reason
        eng.next_meld_number = self.next_meld_number
        eng.messages = list(self.messages)
        return eng

    def _key(self):
        return (
            self.human_seat,
            self.players,
            self.teams,
            self.stock,
            self.discard_pile,
            self.is_discard_pile_locked,
            self.dead_piles,
            self.current_player_index,
            self.turn_phase,
            self.resume_phase,
            self.round_number,
            self.last_drawn_card_id,
            self.justification_card_id,
            self.going_out_team,
            self.winner,
            self.round_end_reason,
            self.next_meld_number,
            self.messages,
        )

    def __eq__(self, other):
        if not isinstance(other, Engine):
            return False
        return self._key() == other._key()

    __hash__ = None


def _dispatch(state: Engine, action) -> Optional[Rejection]:
    if isinstance(action, InitializeRound):
        return state._initialize_round(action.seed)
    if isinstance(action, DrawFromStock):
        return state._draw_from_stock()
    if isinstance(action, ClaimDiscardPile):
        return state._claim_discard_pile()
    if isinstance(action, FormMeld):
        return state._form_meld(action.card_ids)
    if isinstance(action, ExtendMeld):
        return state._extend_meld(action.card_ids, action.meld_id)
    if isinstance(action, Discard):
        return state._discard(action.card_id)
    if isinstance(action, ProcessRedThrees):
        return state._process_red_threes()
    if isinstance(action, SortHand):
        return state._sort_hand(action.player_id, action.card_ids)
    if isinstance(action, AcknowledgeDrawnCard):
        return state._acknowledge_drawn_card()
    return Rejection(RejectReason.UNKNOWN_ACTION)


# Actions any seat may submit, whoever holds the turn.
_SEATLESS_ACTIONS = (InitializeRound, SortHand, AcknowledgeDrawnCard)


def apply(
    state: Engine, action, player_id: Optional[str] = None
) -> Tuple[Engine, Optional[Rejection]]:
    """Apply ``action`` to ``state`` and return ``(new_state, rejection)``.

    ``state`` is never modified. On success a new state is returned with
    ``rejection`` None; on failure the original ``state`` object comes
    back together with the rejection.

    Args:
        state: Current round state
        action: One of the action dataclasses of this module
        player_id: Seat submitting the action; checked against the turn
    """
    if player_id is not None and not isinstance(action, _SEATLESS_ACTIONS):
        player = state.get_player(player_id)
        if player is None:
            return state, Rejection(RejectReason.UNKNOWN_PLAYER)
        if state.round_number and player is not state.get_current_player():
            return state, Rejection(RejectReason.NOT_YOUR_TURN)

    new_state = state.copy()
    rejection = _dispatch(new_state, action)
    if rejection is not None:
        return state, rejection
    return new_state, None


def new_round(seed: Optional[int] = None, **kwargs) -> Engine:
    """Create a state and deal its first round."""
    state, _ = apply(Engine(**kwargs), InitializeRound(seed))
    return state
