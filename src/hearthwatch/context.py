"""Per-block analysis helpers used when building the match log."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional, Union

from hearthwatch.entities import (
    BlockData,
    CardEntity,
    EmbeddedEntity,
    Entry,
    MetaData,
    SubSpell,
    TagData,
    merge_entity,
)

if TYPE_CHECKING:
    from hearthwatch.gamestate import GameState


@dataclass
class HealthChange:
    """Damage or healing attributed to an entity by a META_DATA line."""
    entity_id: Optional[int]
    damage: int = 0
    healing: int = 0


class EntityCollection:
    """Entities seen in a top-level block, falling back to the game state cache.

    One collection is shared by a block context and all of its children, so
    whatever is learned anywhere in the block is visible everywhere in it.
    """

    def __init__(self, game_state: "GameState") -> None:
        self.game_state = game_state
        self.entities: dict[int, CardEntity] = {}

    def add(self, entity: CardEntity) -> CardEntity:
        merged = merge_entity(self.get(entity.entity_id), entity)
        self.entities[entity.entity_id] = merged
        return merged

    def set_tag(self, entity: CardEntity, key: str, value: str) -> None:
        """Adds the entity and sets the tag."""
        self.add(entity).tags[key] = value

    def values(self) -> list[CardEntity]:
        return list(self.entities.values())

    def get(self, entity_id_or_card: Union[int, CardEntity]) -> CardEntity:
        entity_id = (
            entity_id_or_card.entity_id
            if isinstance(entity_id_or_card, CardEntity)
            else entity_id_or_card
        )
        if entity_id in self.entities:
            return self.entities[entity_id]

        cached = self.game_state.get_entity(entity_id)
        if cached:
            return cached.copy()
        return CardEntity(card_name="", entity_id=entity_id, player="bottom")

    def __contains__(self, entity_id: int) -> bool:
        return entity_id in self.entities


def flatten_entries(entries: list[Entry]) -> Iterator[Entry]:
    """Yield entries with sub spells inlined, recursively."""
    for entry in entries:
        if isinstance(entry, SubSpell):
            yield from flatten_entries(entry.entries)
        else:
            yield entry


class BlockContext:
    """Pre-processed view of one block.

    Caches the flattened entries and child blocks, and tracks the state
    needed to pair damage/healing amounts with the entity they apply to.
    """

    def __init__(
        self,
        game_state: "GameState",
        block: BlockData,
        entities: Optional[EntityCollection] = None,
    ) -> None:
        self.game_state = game_state
        self.block = block
        self.source: Optional[CardEntity] = block.entity if isinstance(block.entity, CardEntity) else None

        self.next_damage_entity_id: Optional[int] = None
        self.next_healing_entity_id: Optional[int] = None

        if entities is not None:
            # Child scope, the parent already collected everything
            self.entities = entities
        else:
            self.entities = EntityCollection(game_state)
            self._apply_entry(block)

        self.flattened_entries: list[Entry] = list(flatten_entries(block.entries))
        self.blocks: list[BlockData] = [e for e in block.entries if isinstance(e, BlockData)]

    def create_child(self, block: BlockData) -> "BlockContext":
        return BlockContext(self.game_state, block, self.entities)

    def get_all_entities(self) -> list[CardEntity]:
        return self.entities.values()

    def get(self, entity_id: Union[int, CardEntity]) -> CardEntity:
        """Latest known state of an entity, including everything in this block."""
        return self.entities.get(entity_id)

    def get_merged_entity(self, entity_id: int) -> Optional[EmbeddedEntity]:
        """Fold every snapshot of an entity in this block into one (Create, then Updates)."""
        snapshots = [
            e for e in self.flattened_entries
            if isinstance(e, EmbeddedEntity) and e.entity.entity_id == entity_id
        ]
        if not snapshots:
            return None

        first = snapshots[0]
        merged = EmbeddedEntity(action=first.action, card_id=first.card_id, entity=first.entity.copy())
        for snapshot in snapshots[1:]:
            merged.action = snapshot.action
            merged.card_id = snapshot.card_id or merged.card_id
            merge_entity(merged.entity, snapshot.entity)
        return merged

    def detect_health_change(self, entry: Entry) -> Optional[HealthChange]:
        """Pair DAMAGE/HEALING meta data with the entity that was last about to take it.

        The log names the entity in a PREDAMAGE/PREHEALING tag and the amount
        in a later META_DATA line, so this has to be fed entries in order.
        """
        if isinstance(entry, TagData) and isinstance(entry.entity, CardEntity) and entry.value != "0":
            if entry.tag == "PREDAMAGE":
                self.next_damage_entity_id = entry.entity.entity_id
            elif entry.tag == "PREHEALING":
                self.next_healing_entity_id = entry.entity.entity_id

        if isinstance(entry, MetaData):
            if entry.key == "DAMAGE":
                return HealthChange(self.next_damage_entity_id, damage=entry.value)
            if entry.key == "HEALING":
                return HealthChange(self.next_healing_entity_id, healing=entry.value)

        return None

    def commit_to_state(self) -> None:
        for entity in self.get_all_entities():
            self.game_state.resolve_entity(entity)

    def _apply_entry(self, entry: Entry) -> None:
        """Collect every entity referenced anywhere under ``entry``."""
        if isinstance(entry, BlockData):
            for entity in (entry.entity, entry.target):
                if isinstance(entity, CardEntity):
                    self.entities.add(entity)
        elif isinstance(entry, TagData):
            if isinstance(entry.entity, CardEntity):
                self.entities.set_tag(entry.entity, entry.tag, entry.value)
        elif isinstance(entry, EmbeddedEntity):
            self.entities.add(entry.entity)

        if isinstance(entry, (BlockData, SubSpell)):
            for sub in entry.entries:
                self._apply_entry(sub)
