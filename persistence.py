"""
Round state serialization and saved-game storage.

Snapshots are JSON-compatible dicts carrying every field of an
:class:`engine.Engine`, so a state survives a save/load cycle exactly
(pile order, meld ids and the message log included). Storage goes through
a small key-value interface; the engine never touches it.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

from card import Card
from engine import Engine, Player, RoundEndReason, Team, TurnPhase
from meld import CanastaType, Meld, MeldType

SCHEMA_VERSION = 1
KEY_PREFIX = "tranca:"


def _cards_to_list(cards) -> List[str]:
    return [c.id for c in cards]


def _cards_from_list(ids) -> List[Card]:
    return [Card.from_id(card_id) for card_id in ids]


def _enum_value(member) -> Optional[str]:
    return member.value if member is not None else None


def _meld_to_dict(meld: Meld) -> Dict[str, Any]:
    return {
        "id": meld.id,
        "type": meld.meld_type.value,
        "canasta": _enum_value(meld.canasta_type),
        "cards": _cards_to_list(meld.cards),
    }


def _meld_from_dict(d: Dict[str, Any]) -> Meld:
    canasta = d.get("canasta")
    return Meld(
        d["id"],
        _cards_from_list(d["cards"]),
        MeldType(d["type"]),
        CanastaType(canasta) if canasta is not None else None,
        _skip_validate=True,
    )


def _player_to_dict(player: Player) -> Dict[str, Any]:
    return {
        "seat": player.seat,
        "name": player.name,
        "is_bot": player.is_bot,
        "hand": _cards_to_list(player.hand),
    }


def _team_to_dict(team: Team) -> Dict[str, Any]:
    return {
        "index": team.index,
        "player_ids": list(team.player_ids),
        "melds": [_meld_to_dict(m) for m in team.melds],
        "score": team.score,
        "round_score": team.round_score,
        "has_claimed_dead_pile": team.has_claimed_dead_pile,
        "red_threes": _cards_to_list(team.red_threes),
    }


def state_to_dict(state: Engine) -> Dict[str, Any]:
    """
    Serialize a round state to a JSON-compatible dict.

    Args:
        state: The state to serialize.

    Returns:
        Dict with schema_version plus every field of the state.
    """
    return {
        "schema_version": SCHEMA_VERSION,
        "human_seat": state.human_seat,
        "players": [_player_to_dict(p) for p in state.players],
        "teams": [_team_to_dict(t) for t in state.teams],
        "stock": _cards_to_list(state.stock),
        "discard_pile": _cards_to_list(state.discard_pile),
        "is_discard_pile_locked": state.is_discard_pile_locked,
        "dead_piles": [_cards_to_list(pile) for pile in state.dead_piles],
        "current_player_index": state.current_player_index,
        "turn_phase": state.turn_phase.value,
        "resume_phase": _enum_value(state.resume_phase),
        "round_number": state.round_number,
        "last_drawn_card_id": state.last_drawn_card_id,
        "justification_card_id": state.justification_card_id,
        "going_out_team": state.going_out_team,
        "winner": state.winner,
        "round_end_reason": _enum_value(state.round_end_reason),
        "next_meld_number": state.next_meld_number,
        "messages": list(state.messages),
    }


def state_from_dict(d: Dict[str, Any]) -> Engine:
    """
    Deserialize a round state from a dict (e.g. from JSON).

    Raises:
        ValueError: if the schema version is not supported.
    """
    version = d.get("schema_version")
    if version != SCHEMA_VERSION:
        raise ValueError(f"Unsupported snapshot schema version: {version}")

    players_d = sorted(d["players"], key=lambda p: p["seat"])
    state = Engine([p["name"] for p in players_d], human_seat=d.get("human_seat"))
    for player, player_d in zip(state.players, players_d):
        player.is_bot = bool(player_d["is_bot"])
        player.hand = _cards_from_list(player_d["hand"])

    for team, team_d in zip(state.teams, sorted(d["teams"], key=lambda t: t["index"])):
        team.player_ids = list(team_d["player_ids"])
        team.melds = [_meld_from_dict(m) for m in team_d["melds"]]
        team.score = int(team_d["score"])
        team.round_score = int(team_d["round_score"])
        team.has_claimed_dead_pile = bool(team_d["has_claimed_dead_pile"])
        team.red_threes = _cards_from_list(team_d["red_threes"])

    state.stock = _cards_from_list(d["stock"])
    state.discard_pile = _cards_from_list(d["discard_pile"])
    state.is_discard_pile_locked = bool(d["is_discard_pile_locked"])
    state.dead_piles = [_cards_from_list(pile) for pile in d["dead_piles"]]
    state.current_player_index = int(d["current_player_index"])
    state.turn_phase = TurnPhase(d["turn_phase"])
    resume = d.get("resume_phase")
    state.resume_phase = TurnPhase(resume) if resume is not None else None
    state.round_number = int(d["round_number"])
    state.last_drawn_card_id = d.get("last_drawn_card_id")
    state.justification_card_id = d.get("justification_card_id")
    state.going_out_team = d.get("going_out_team")
    state.winner = d.get("winner")
    reason = d.get("round_end_reason")
    state.round_end_reason = RoundEndReason(reason) if reason is not None else None
    state.next_meld_number = int(d["next_meld_number"])
    state.messages = list(d.get("messages", []))
    return state


def dumps(state: Engine) -> str:
    """Serialize a round state to a JSON string."""
    return json.dumps(state_to_dict(state), ensure_ascii=False)


def loads(s: str) -> Engine:
    """Deserialize a round state from a JSON string."""
    return state_from_dict(json.loads(s))


class KeyValueStore(Protocol):
    """Blob storage keyed by string."""

    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, blob: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryStore:
    """Store kept in a dict; lives as long as the process."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, blob: str) -> None:
        self._data[key] = blob

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self):
        return len(self._data)


class DirectoryStore:
    """Store writing one JSON file per key under ``root``."""

    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def put(self, key: str, blob: str) -> None:
        self._path(key).write_text(blob, encoding="utf-8")

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def room_key(room_id: str) -> str:
    return f"{KEY_PREFIX}{room_id}"


def save_round(
    store: KeyValueStore,
    room_id: str,
    state: Engine,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Save ``state`` under the room's key, stamped with ``saved_at``."""
    saved_at = now or datetime.now(timezone.utc)
    blob = {"saved_at": saved_at.isoformat(), "state": state_to_dict(state)}
    store.put(room_key(room_id), json.dumps(blob, ensure_ascii=False))


def load_round(
    store: KeyValueStore,
    room_id: str,
    *,
    max_age: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> Engine:
    """
    Load the state saved for ``room_id``.

    Args:
        store: Where the room was saved.
        room_id: Room identifier.
        max_age: Snapshots older than this are deleted and treated as missing.
        now: Current time, for tests.

    Raises:
        KeyError: if nothing (or only an expired snapshot) is saved.
    """
    key = room_key(room_id)
    raw = store.get(key)
    if raw is None:
        raise KeyError(room_id)

    blob = json.loads(raw)
    if max_age is not None:
        saved_at = datetime.fromisoformat(blob["saved_at"])
        current = now or datetime.now(timezone.utc)
        if current - saved_at > max_age:
            store.delete(key)
            raise KeyError(room_id)
    return state_from_dict(blob["state"])


def delete_round(store: KeyValueStore, room_id: str) -> None:
    store.delete(room_key(room_id))


__all__ = [
    "state_to_dict",
    "state_from_dict",
    "dumps",
    "loads",
    "KeyValueStore",
    "InMemoryStore",
    "DirectoryStore",
    "save_round",
    "load_round",
    "delete_round",
    "SCHEMA_VERSION",
]
