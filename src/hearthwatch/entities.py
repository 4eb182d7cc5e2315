"""Entity and entry types read out of Hearthstone power logs.

Entities are the game objects a log line can refer to (the game itself, a
player, or a card). Entries are the pieces a block is built from: tag
changes, meta data, embedded entity snapshots, sub spells and nested blocks.
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from hearthwatch.gamestate import GameState

# Name the client prints for cards whose identity is hidden from us
UNKNOWN_CARDNAME = "UNKNOWN ENTITY [cardType=INVALID]"

# Name the client uses for a player before the real battletag is known
UNKNOWN_PLAYER_NAME = "UNKNOWN HUMAN PLAYER"

GAME_ENTITY_NAME = "GameEntity"

ENTITY_STRING_PATTERN = re.compile(
    r'\[entityName=(.*) (?:\[cardType=(.*)\] )?id=(\d+) zone=.* zonePos=\d* cardId=(.*) player=(\d)\]'
)


def is_placeholder_name(name: Optional[str]) -> bool:
    """True if the name is blank or the hidden-card sentinel."""
    return not name or name == UNKNOWN_CARDNAME


@dataclass
class GameEntity:
    """The singleton game entity."""
    kind: str = field(default="game", init=False)


@dataclass
class PlayerEntity:
    """A player, referenced by display name in the log."""
    player: str
    kind: str = field(default="player", init=False)


@dataclass
class CardEntity:
    """A card (minion, spell, hero, enchantment, ...) in the game."""
    card_name: str
    entity_id: int
    player: str = "bottom"
    card_id: Optional[str] = None
    tags: dict[str, str] = field(default_factory=dict)
    kind: str = field(default="card", init=False)

    def copy(self) -> "CardEntity":
        return CardEntity(
            card_name=self.card_name,
            entity_id=self.entity_id,
            player=self.player,
            card_id=self.card_id,
            tags=dict(self.tags),
        )


Entity = Union[GameEntity, PlayerEntity, CardEntity]


@dataclass
class TagData:
    """A ``TAG_CHANGE Entity=X tag=T value=V`` line."""
    entity: Optional[Entity]
    tag: str
    value: str


@dataclass
class MetaData:
    """A ``META_DATA - Meta=K Data=V`` line."""
    key: str
    value: int


@dataclass
class EmbeddedEntity:
    """A FULL_ENTITY / SHOW_ENTITY / CHANGE_ENTITY snapshot with its tag lines."""
    action: str  # "Creating" or "Updating"
    card_id: str
    entity: CardEntity


@dataclass
class SubSpell:
    """Unlabelled nested scope inside a block."""
    spell: str
    entries: list["Entry"] = field(default_factory=list)


@dataclass
class BlockData:
    """Everything between a BLOCK_START and its matching BLOCK_END."""
    block_type: str
    trigger_keyword: Optional[str] = None
    entity: Optional[Entity] = None
    target: Optional[Entity] = None
    entries: list["Entry"] = field(default_factory=list)


Entry = Union[BlockData, SubSpell, TagData, MetaData, EmbeddedEntity]


def is_card(entity: object) -> bool:
    return isinstance(entity, CardEntity)


def has_tag(entry: object, tag: str, value: Optional[str] = None) -> bool:
    """Tests if the entry is a tag with a particular tag or tag/value combo."""
    return (
        isinstance(entry, TagData)
        and entry.tag == tag
        and (value is None or entry.value == value)
    )


def filter_tags(entries: list, tag: Optional[str] = None, value: Optional[str] = None) -> list[TagData]:
    """Filters entries down to tags, optionally by tag name and value."""
    if tag:
        return [e for e in entries if has_tag(e, tag, value)]
    return [e for e in entries if isinstance(e, TagData)]


def identify_player(game_state: "GameState", player_index: int) -> str:
    """Determines if the player is bottom or top given the player index.

    If the index is unknown but exactly one player is registered, the other
    side is assumed. This covers lines logged before both players joined and
    is a best guess rather than a guarantee.
    """
    player = game_state.get_player_by_id(player_index)
    if player:
        return player.position

    if game_state.player_count == 1:
        return "top" if game_state.players[0].position == "bottom" else "bottom"

    return "bottom"


def read_entity_string(text: Optional[str], game_state: "GameState") -> Optional[Entity]:
    """Parse an entity reference as it appears in power log lines.

    Args:
        text: ``GameEntity``, a player name, a bare entity id, or a full
            ``[entityName=... id=... player=N]`` string.
        game_state: Used for player lookups and side inference.

    Returns:
        The typed entity, or None if the text can't be interpreted.
    """
    if text is None:
        return None

    text = text.strip()
    if not text:
        return None

    if text == GAME_ENTITY_NAME:
        return GameEntity()

    player = game_state.get_player_by_name(text)
    if player:
        return PlayerEntity(player=player.position)

    if text.isdigit():
        # Entity id 0 is how the log spells "no entity" (e.g. Target=0)
        entity_id = int(text)
        if entity_id == 0:
            return None
        return CardEntity(card_name="", entity_id=entity_id, player="bottom")

    match = ENTITY_STRING_PATTERN.search(text)
    if not match:
        return None

    card_name = match.group(1)
    return CardEntity(
        card_name="" if card_name == UNKNOWN_CARDNAME else card_name,
        entity_id=int(match.group(3)),
        player=identify_player(game_state, int(match.group(5))),
        card_id=match.group(4) or None,
    )


def merge_entity(target: CardEntity, source: CardEntity) -> CardEntity:
    """Merge ``source`` into ``target`` in place, later values winning.

    A real card name is never replaced by a blank or placeholder one.
    """
    if not is_placeholder_name(source.card_name) or is_placeholder_name(target.card_name):
        target.card_name = "" if is_placeholder_name(source.card_name) else source.card_name
    target.player = source.player
    if source.card_id:
        target.card_id = source.card_id
    target.tags.update(source.tags)
    return target
