"""Builds the match log from completed power log blocks.

Every top-level block read from the GameState stream is turned into zero or
more match log entries (play, attack, trigger) that are added to the game
state and announced as events. Blocks from the PowerTaskList stream are only
used to learn entity names.
"""

import logging
from typing import TYPE_CHECKING, Optional

from hearthwatch.context import BlockContext
from hearthwatch.entities import (
    BlockData,
    CardEntity,
    EmbeddedEntity,
    Entry,
    PlayerEntity,
    TagData,
    filter_tags,
    has_tag,
)
from hearthwatch.gamestate import GameState, MatchLogEntry
from hearthwatch.line_parsers import LineParser
from hearthwatch.readers import BlockReader

if TYPE_CHECKING:
    from hearthwatch.events import EventEmitter

logger = logging.getLogger(__name__)

GAME_STATE_PREFIX = "[Power] GameState.DebugPrintPower() -"
POWER_TASK_LIST_PREFIX = "[Power] PowerTaskList.DebugPrintPower() -"

# Trigger keywords that produce a match log entry
VALID_TRIGGER_TYPES = ("TRIGGER_VISUAL", "SECRET", "DEATHRATTLE", "SIDEQUEST", "SPELLBURST")

MANA_TAG = "NUM_RESOURCES_SPENT_THIS_GAME"


def _card_name(entity: object) -> Optional[str]:
    return entity.card_name if isinstance(entity, CardEntity) else None


class MatchLogParser(LineParser):
    """Handles everything between BLOCK_START and BLOCK_END.

    Only claims a line when it closes a top-level block, so the simple
    parsers registered after it still see the lines inside blocks.
    """

    event_name = "card-played"

    def __init__(self) -> None:
        self.reader = BlockReader(GAME_STATE_PREFIX)
        self.power_reader = BlockReader(POWER_TASK_LIST_PREFIX)

    def handle_line(self, emitter: "EventEmitter", game_state: GameState, line: str) -> bool:
        # GameState blocks build the match log
        block = self.reader.read_line(line, game_state)
        if block:
            try:
                self._handle_top_level_block(emitter, game_state, block)
            except Exception as e:
                logger.error(
                    f"Failed to process block: Type={block.block_type} "
                    f"Source={_card_name(block.entity)} Target={_card_name(block.target)}: {e}",
                    exc_info=True,
                )
            return True

        # PowerTaskList blocks are poor for card flow but good for names
        power_block = self.power_reader.read_line(line, game_state)
        if power_block:
            BlockContext(game_state, power_block).commit_to_state()
            return True

        return False

    def reset(self) -> None:
        self.reader.reset()
        self.power_reader.reset()

    def _handle_top_level_block(self, emitter: "EventEmitter", game_state: GameState, block: BlockData) -> None:
        if block.block_type == "DEATHS":
            self._handle_top_level_deaths(game_state, block)
            return

        if not isinstance(block.entity, CardEntity):
            return

        main_context = BlockContext(game_state, block)

        if block.block_type == "TRIGGER" and block.trigger_keyword in VALID_TRIGGER_TYPES:
            self._handle_top_level_trigger(emitter, main_context, block)
            return

        if block.block_type not in ("PLAY", "ATTACK"):
            return

        # Trueaim style retargets show up as a direct PROPOSED_DEFENDER tag
        proposed_defender = next(iter(filter_tags(block.entries, "PROPOSED_DEFENDER")), None)
        defender_id = _to_int(proposed_defender.value) if proposed_defender else 0
        if block.block_type == "ATTACK" and defender_id > 0:
            main_target = main_context.get(defender_id)
        else:
            main_target = block.target

        log_entry = MatchLogEntry(block.block_type.lower(), main_context.get(block.entity))
        log_entry.mana_spent = self._determine_mana_cost(block, game_state)
        if isinstance(main_target, CardEntity):
            log_entry.add_target(main_context.get(main_target))

        # Satellite trigger entries placed before/after the main one
        pre_extras: list[MatchLogEntry] = []
        post_extras: list[MatchLogEntry] = []

        def handle_trigger(trigger: BlockData) -> None:
            if not isinstance(trigger.entity, CardEntity) or trigger.trigger_keyword not in VALID_TRIGGER_TYPES:
                return

            # A trigger caused by a play (Mirror Entity) becomes a target of the play
            if log_entry.type == "play" and trigger.trigger_keyword != "DEATHRATTLE":
                log_entry.add_target(main_context.get(trigger.entity))

            context = main_context.create_child(trigger)
            trigger_entry = MatchLogEntry("trigger", context.get(trigger.entity))
            add_before = False

            for sub_entry in context.flattened_entries:
                self._add_resolved_target(trigger_entry, context, sub_entry, game_state)
                self._handle_health_change(trigger_entry, context, sub_entry)

                if isinstance(sub_entry, BlockData) and sub_entry.block_type == "DEATHS":
                    deaths = self._resolve_deaths(sub_entry)
                    deaths -= trigger_entry.mark_deaths(deaths)
                    for unmarked in sorted(deaths):
                        trigger_entry.add_target(context.get(unmarked), {"dead": True})

                # A redirected attack puts the trigger before the attack
                new_target_id = _to_int(sub_entry.value) if has_tag(sub_entry, "PROPOSED_DEFENDER") else 0
                if log_entry.type == "attack" and new_target_id > 0 and isinstance(main_target, CardEntity):
                    source_id = main_context.source.entity_id if main_context.source else None
                    for target_id in (new_target_id, source_id, main_target.entity_id):
                        if target_id:
                            trigger_entry.add_target(context.get(target_id))

                    log_entry.targets = []
                    log_entry.add_target(context.get(new_target_id))
                    add_before = True

            (pre_extras if add_before else post_extras).append(trigger_entry)

        def handle_power(power: BlockData) -> None:
            context = main_context.create_child(power)
            entries = context.flattened_entries

            # Cards with flexible costs sometimes report mana here
            log_entry.mana_spent += self._determine_mana_cost(power, game_state)

            for sub_entry in entries:
                self._add_resolved_target(log_entry, context, sub_entry, game_state)
                self._handle_health_change(log_entry, context, sub_entry)

                if isinstance(sub_entry, BlockData) and sub_entry.block_type == "TRIGGER":
                    handle_trigger(sub_entry)

                # Nested POWER (Puzzle Box) makes its source a target
                if (
                    isinstance(sub_entry, BlockData)
                    and sub_entry.block_type == "POWER"
                    and isinstance(sub_entry.entity, CardEntity)
                ):
                    entity = context.get(sub_entry.entity.entity_id)
                    log_entry.add_target(entity)

                    invoked_hero_power = any(
                        isinstance(e, EmbeddedEntity)
                        and e.entity.entity_id == entity.entity_id
                        and e.entity.tags.get("CARDTYPE") == "HERO_POWER"
                        for e in entries
                    )
                    if invoked_hero_power:
                        handle_power(sub_entry)

        for entry in block.entries:
            # Twinspell copies are the only things created directly in the main block
            if (
                isinstance(entry, EmbeddedEntity)
                and entry.action == "Creating"
                and entry.entity.tags.get("ZONE") == "HAND"
            ):
                log_entry.add_target(main_context.get(entry.entity.entity_id))

            self._handle_health_change(log_entry, main_context, entry)

            if not isinstance(entry, BlockData):
                continue

            if entry.block_type == "TRIGGER":
                handle_trigger(entry)
            elif entry.block_type == "POWER":
                handle_power(entry)
            elif entry.block_type == "DEATHS":
                produced = [*pre_extras, log_entry, *post_extras]
                deaths = self._resolve_deaths(entry)
                for produced_entry in produced:
                    if not deaths:
                        break
                    deaths -= produced_entry.mark_deaths(deaths)

                # Leftovers go to the latest entry
                for death in sorted(deaths):
                    produced[-1].add_target(main_context.get(death), {"dead": True})

        main_context.commit_to_state()

        all_entries = [*pre_extras, log_entry, *post_extras]
        game_state.add_match_log_entry(*all_entries)
        self._emit_events(emitter, all_entries)

    def _handle_top_level_deaths(self, game_state: GameState, block: BlockData) -> None:
        """Mark deaths on earlier attack entries, most recent first."""
        deaths = self._resolve_deaths(block)
        for log_entry in reversed(game_state.match_log):
            if not deaths:
                break
            if log_entry.type == "attack":
                deaths -= log_entry.mark_deaths(deaths)

    def _handle_top_level_trigger(self, emitter: "EventEmitter", context: BlockContext, block: BlockData) -> None:
        """Handle a standalone trigger, including attacks nested in it (Trueaim Crescent)."""
        game_state = context.game_state

        attacks = [b for b in context.blocks if b.block_type == "ATTACK"]
        for attack in attacks:
            self._handle_top_level_block(emitter, game_state, attack)

        log_entry = MatchLogEntry("trigger", context.get(context.source))
        for sub_entry in block.entries:
            self._add_resolved_target(log_entry, context, sub_entry, game_state)
            self._handle_health_change(log_entry, context, sub_entry)

        # Only publish if it did something the nested attacks don't already cover
        if log_entry.targets or not attacks:
            game_state.add_match_log_entry(log_entry)
            self._emit_events(emitter, [log_entry])

        context.commit_to_state()

    def _handle_health_change(self, log_entry: MatchLogEntry, context: BlockContext, entry: Entry) -> None:
        """Apply damage or healing from a single entry to the log entry.

        Entities that aren't on the entry yet are added as targets.
        """
        change = context.detect_health_change(entry)
        if change is None or change.entity_id is None:
            return

        matching = [p for p in log_entry.all_props() if p.entity_id == change.entity_id]
        if not matching:
            props = {}
            if change.damage:
                props["damage"] = change.damage
            if change.healing:
                props["healing"] = change.healing
            log_entry.add_target(context.entities.get(change.entity_id), props)
            return

        for props in matching:
            if change.damage:
                props.damage = (props.damage or 0) + change.damage
            if change.healing:
                props.healing = (props.healing or 0) + change.healing

    def _determine_mana_cost(self, block: BlockData, game_state: GameState) -> int:
        """Mana spent in a block, from the player's running total of resources spent.

        The tag carries a cumulative count, so the previous total stored on the
        player is subtracted and replaced.
        """
        mana_tag = next(
            (t for t in filter_tags(block.entries, MANA_TAG) if isinstance(t.entity, PlayerEntity)),
            None,
        )
        if mana_tag is None or not mana_tag.value.isdigit():
            return 0

        player = game_state.get_player_by_position(mana_tag.entity.player)
        if player is None:
            return 0

        total_mana = int(mana_tag.value)
        spent = total_mana - player.mana_spent
        player.mana_spent = total_mana
        return spent

    def _add_resolved_target(
        self,
        log_entry: MatchLogEntry,
        context: BlockContext,
        entry: Entry,
        game_state: GameState,
    ) -> None:
        target_id = self._resolve_target(context, entry, game_state)
        if target_id is not None:
            log_entry.add_target(context.get(target_id))

    def _resolve_target(self, context: BlockContext, entry: Entry, game_state: GameState) -> Optional[int]:
        """Identify the entity a single entry meaningfully affects.

        Covers draws, discovers and creations, repositioned cards, buffs,
        and a handful of status tags. The first rule that matches wins.

        Returns:
            An entity id, or None if the entry isn't a game-meaningful effect.
        """
        block = context.block
        entries = context.flattened_entries

        if isinstance(entry, EmbeddedEntity):
            entity_id = entry.entity.entity_id
            tags = entry.entity.tags

            # Created entities with a real zone and a position (draw/discover/create)
            if entry.action == "Creating":
                if tags.get("ZONE_POSITION") and tags.get("ZONE") != "SETASIDE":
                    return entity_id
                return None

            # Updated entities (transforms, reveals) unless they were created in this scope
            has_creation = any(
                isinstance(e, EmbeddedEntity) and e.action == "Creating" and e.entity.entity_id == entity_id
                for e in entries
            )
            merged = context.get_merged_entity(entity_id)
            merged_tags = merged.entity.tags if merged else {}
            if not has_creation and merged_tags.get("ZONE_POSITION") and merged_tags.get("ZONE") != "SETASIDE":
                return entity_id
            return None

        if not isinstance(entry, TagData) or not isinstance(entry.entity, CardEntity):
            return None

        entity_id = entry.entity.entity_id

        # ZONE_POSITION alone is board shifting, it needs a zone move alongside
        if entry.tag == "ZONE_POSITION":
            zone_tag = next(
                (t for t in filter_tags(entries, "ZONE")
                 if isinstance(t.entity, CardEntity) and t.entity.entity_id == entity_id),
                None,
            )
            embedded = next(
                (e for e in entries if isinstance(e, EmbeddedEntity) and e.entity.entity_id == entity_id),
                None,
            )
            embedded_zone = embedded.entity.tags.get("ZONE") if embedded else None
            if (embedded_zone and embedded_zone != "SETASIDE") or (zone_tag and zone_tag.value != "SETASIDE"):
                return entity_id

        # Enchantments entering play resolve to what they are attached to.
        # Attached to 2 or 3 means a player, which isn't interesting.
        if has_tag(entry, "ZONE", "PLAY") and isinstance(block.entity, CardEntity):
            merged = context.get_merged_entity(entity_id)
            tags = merged.entity.tags if merged else {}
            attached = _to_int(tags.get("ATTACHED"))
            creator = _to_int(tags.get("CREATOR"))
            if tags.get("CARDTYPE") == "ENCHANTMENT" and attached > 3 and creator == block.entity.entity_id:
                return attached

        # Existing enchantments getting stacked (Master Swordsmith, Dragonmaw Overseer)
        if entry.tag == "SPAWN_TIME_COUNT":
            existing = context.get(entity_id) if entity_id in context.entities else game_state.get_entity(entity_id)
            if existing and existing.tags.get("CARDTYPE") == "ENCHANTMENT" and existing.tags.get("ATTACHED"):
                return _to_int(existing.tags["ATTACHED"]) or None

        # Counterspell, silence, revealed cards, created secrets
        if (
            has_tag(entry, "CANT_PLAY", "1")
            or has_tag(entry, "SILENCED", "1")
            or has_tag(entry, "REVEALED", "1")
            or has_tag(entry, "ZONE", "SECRET")
        ):
            return entity_id

        return None

    @staticmethod
    def _resolve_deaths(death_block: Optional[BlockData]) -> set[int]:
        """Ids of every entity that went to the graveyard in a DEATHS block."""
        if death_block is None:
            return set()

        return {
            entry.entity.entity_id
            for entry in death_block.entries
            if has_tag(entry, "ZONE", "GRAVEYARD") and isinstance(entry.entity, CardEntity)
        }

    def _emit_events(self, emitter: "EventEmitter", entries: list[MatchLogEntry]) -> None:
        for log_entry in entries:
            card_name = log_entry.source.card_name
            if log_entry.type == "play":
                logger.debug(f"Played card {card_name}")
                emitter.emit("card-played", log_entry)
            elif log_entry.type == "attack":
                logger.debug(f"Attack initiated by {card_name}")
                emitter.emit("attack", log_entry)
            elif log_entry.type == "trigger":
                logger.debug(f"Trigger activated on {card_name}")
                emitter.emit("trigger", log_entry)


def _to_int(value: Optional[str]) -> int:
    try:
        return int(value) if value is not None else 0
    except ValueError:
        return 0
