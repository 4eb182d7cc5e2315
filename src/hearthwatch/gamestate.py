"""Hearthstone game state tracking from parsed log lines.

This module provides the GameState class that maintains the players, the
match log and the entity cache of the game currently being watched.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from hearthwatch.entities import (
    UNKNOWN_PLAYER_NAME,
    CardEntity,
    is_placeholder_name,
    merge_entity,
)

logger = logging.getLogger(__name__)


@dataclass
class EntityProps:
    """An entity as it appears in a match log entry."""
    card_name: str
    entity_id: int
    player: str
    card_id: Optional[str] = None
    damage: Optional[int] = None
    healing: Optional[int] = None
    dead: Optional[bool] = None

    @classmethod
    def from_entity(cls, entity: CardEntity, **props) -> "EntityProps":
        return cls(
            card_name=entity.card_name,
            entity_id=entity.entity_id,
            player=entity.player,
            card_id=entity.card_id,
            **props,
        )

    def to_dict(self) -> dict:
        """Convert to dict, leaving out attributions that were never set."""
        result = {
            "card_name": self.card_name,
            "entity_id": self.entity_id,
            "player": self.player,
            "card_id": self.card_id,
        }
        for key in ("damage", "healing", "dead"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


class MatchLogEntry:
    """One game action (play, attack or trigger) in the match log."""

    def __init__(self, log_type: str, source: CardEntity) -> None:
        self.type = log_type
        self.mana_spent: int = 0
        self.source = EntityProps.from_entity(source)
        self.targets: list[EntityProps] = []
        self.timestamp = time.time()

    def add_target(self, entity: Optional[CardEntity], props: Optional[dict] = None) -> None:
        """Add a target, merging props into it if it is already present.

        Args:
            entity: The target. Non-card or missing entities are ignored.
            props: Optional attributions such as ``{"dead": True}``.
        """
        if not isinstance(entity, CardEntity):
            return

        props = props or {}
        existing = next((t for t in self.targets if t.entity_id == entity.entity_id), None)
        if existing:
            for key, value in props.items():
                setattr(existing, key, value)
            return

        self.targets.append(EntityProps.from_entity(entity, **props))

    def mark_deaths(self, deaths: set[int]) -> set[int]:
        """Flag the source and targets whose ids are in ``deaths`` as dead.

        Entities already flagged dead are skipped.

        Returns:
            The ids that were marked on this entry.
        """
        marked = set()
        for props in [self.source, *self.targets]:
            if props.entity_id in deaths and not props.dead:
                props.dead = True
                marked.add(props.entity_id)
        return marked

    def all_props(self) -> list[EntityProps]:
        return [self.source, *self.targets]

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "mana_spent": self.mana_spent,
            "source": self.source.to_dict(),
            "targets": [t.to_dict() for t in self.targets],
        }

    def __repr__(self) -> str:
        return (
            f"MatchLogEntry(type={self.type!r}, source={self.source.card_name!r}, "
            f"targets={[t.entity_id for t in self.targets]})"
        )


@dataclass
class Discovery:
    """A discover choice presented to a player."""
    id: Optional[str] = None
    enabled: bool = False
    source: Optional[EntityProps] = None
    options: list[EntityProps] = field(default_factory=list)
    chosen: Optional[EntityProps] = None


@dataclass
class TurnRecord:
    """Start time and (once ended) duration of one turn."""
    start: float
    duration: Optional[float] = None


@dataclass
class PlayerCard:
    """A card known to belong to a player's deck or hand."""
    entity_id: int
    state: str  # DECK, HAND or OTHERS
    is_spawned_card: bool
    card_id: Optional[str] = None
    card_name: Optional[str] = None


@dataclass
class Quest:
    card_name: str
    card_class: str
    requirement: int
    sidequest: bool
    progress: int = 0
    timestamp: float = 0


@dataclass
class Secret:
    card_id: str
    card_class: str
    card_name: str
    timestamp: float = 0


@dataclass
class Player:
    """A player in the game."""
    id: int
    name: str
    status: str = ""
    turn: bool = False
    position: str = "bottom"
    timeout: int = 45
    card_count: int = 0
    mana_spent: int = 0
    cards_replaced_in_mulligan: int = 0
    quests: list[Quest] = field(default_factory=list)
    secrets: list[Secret] = field(default_factory=list)
    cards: list[PlayerCard] = field(default_factory=list)
    discovery: Discovery = field(default_factory=Discovery)
    discover_history: list[Discovery] = field(default_factory=list)
    turn_history: list[TurnRecord] = field(default_factory=list)


class GameState:
    """Maintains the state of the current game from parsed log lines.

    Players, the match log and the entity cache all belong to a single
    game and are discarded together by ``reset()``.
    """

    def __init__(self) -> None:
        self.players: list[Player] = []
        self.match_log: list[MatchLogEntry] = []
        self.entities: dict[int, CardEntity] = {}
        self._unresolved_ids: set[int] = set()

        self.game_over_count: int = 0
        self.mulligan_active: bool = False
        self.begin_phase_active: bool = True
        self.active: bool = False
        self.start_time: Optional[float] = None
        self.turn_start_time: Optional[float] = None

    def reset(self) -> None:
        """Reset to an empty state for a new game."""
        logger.info("Resetting GameState for new game")
        self.players = []
        self.match_log = []
        self.entities = {}
        self._unresolved_ids = set()

        self.game_over_count = 0
        self.mulligan_active = False
        self.begin_phase_active = True
        self.active = False
        self.start_time = time.time()
        self.turn_start_time = None

    @property
    def player_count(self) -> int:
        return len(self.players)

    def add_player(self, player: Player) -> Player:
        """Register a player, or return the existing registration for its id.

        A player registered under the placeholder name keeps its identity and
        only gets the real name filled in.
        """
        existing = self.get_player_by_id(player.id)
        if existing:
            if existing.name == UNKNOWN_PLAYER_NAME:
                existing.name = player.name
            return existing

        self.players.append(player)
        return player

    def get_player_by_id(self, player_id: int) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def get_player_by_position(self, position: str) -> Optional[Player]:
        return next((p for p in self.players if p.position == position), None)

    def get_player_by_name(self, name: str) -> Optional[Player]:
        return next((p for p in self.players if p.name == name), None)

    def get_entity(self, entity_id: int) -> Optional[CardEntity]:
        return self.entities.get(entity_id)

    def resolve_entity(self, entity: CardEntity) -> CardEntity:
        """Merge a (partial) entity into the cache.

        If this reveals the real name of an entity that match log entries
        were created for while it was still anonymous, those entries are
        patched in place.

        Args:
            entity: Entity data to merge. It is copied, never stored.

        Returns:
            The cached entity after merging.
        """
        cached = self.entities.get(entity.entity_id)
        if cached is None:
            cached = entity.copy()
            self.entities[entity.entity_id] = cached
        else:
            merge_entity(cached, entity)

        if not is_placeholder_name(cached.card_name) and cached.entity_id in self._unresolved_ids:
            self._patch_match_log(cached)
            self._unresolved_ids.discard(cached.entity_id)

        return cached

    def _patch_match_log(self, entity: CardEntity) -> None:
        patched = 0
        for log_entry in self.match_log:
            for props in log_entry.all_props():
                if props.entity_id == entity.entity_id and is_placeholder_name(props.card_name):
                    props.card_name = entity.card_name
                    props.card_id = entity.card_id
                    patched += 1
        logger.debug(f"Resolved entity {entity.entity_id} as {entity.card_name} ({patched} log references)")

    def add_match_log_entry(self, *entries: MatchLogEntry) -> None:
        """Append entries to the match log, remembering unnamed references."""
        for log_entry in entries:
            for props in log_entry.all_props():
                if is_placeholder_name(props.card_name):
                    self._unresolved_ids.add(props.entity_id)
            self.match_log.append(log_entry)

    def get_all_players(self) -> list[Player]:
        return list(self.players)

    def get_snapshot(self) -> dict:
        """Get a plain dict view of the players and match log."""
        return {
            "players": [
                {
                    "id": p.id,
                    "name": p.name,
                    "status": p.status,
                    "turn": p.turn,
                    "position": p.position,
                    "mana_spent": p.mana_spent,
                    "card_count": p.card_count,
                }
                for p in self.players
            ],
            "match_log": [e.to_dict() for e in self.match_log],
            "mulligan_active": self.mulligan_active,
            "game_over_count": self.game_over_count,
        }
