"""Multi-line readers for Hearthstone power log blocks.

The power log prints nested scopes as a flat run of prefixed lines:

    [Power] GameState.DebugPrintPower() - BLOCK_START BlockType=PLAY Entity=[...] ...
    [Power] GameState.DebugPrintPower() -     TAG_CHANGE Entity=[...] tag=ZONE value=PLAY
    [Power] GameState.DebugPrintPower() -     FULL_ENTITY - Creating ID=87 CardID=EX1_116t
    [Power] GameState.DebugPrintPower() -         tag=ZONE value=PLAY
    [Power] GameState.DebugPrintPower() -     BLOCK_START BlockType=POWER ...
    [Power] GameState.DebugPrintPower() -     BLOCK_END
    [Power] GameState.DebugPrintPower() - BLOCK_END

BlockReader rebuilds the tree with a stack and hands back the outermost
block once it closes. FullEntityReader handles the entity snapshots, which
have no end marker at all.
"""

import logging
import re
from typing import TYPE_CHECKING, NamedTuple, Optional, Union

from hearthwatch.entities import (
    BlockData,
    CardEntity,
    EmbeddedEntity,
    Entity,
    MetaData,
    SubSpell,
    TagData,
    identify_player,
    read_entity_string,
)

if TYPE_CHECKING:
    from hearthwatch.gamestate import GameState

logger = logging.getLogger(__name__)

FULL_ENTITY_PATTERN = re.compile(
    r'^\s*FULL_ENTITY - (Creating|Updating) (?:ID=(\d+)|(\[.*\])) CardID=(.*)'
)
CHANGE_ENTITY_PATTERN = re.compile(
    r'^\s*CHANGE_ENTITY - (Updating) Entity=(\[.*\]) CardID=(.*)'
)
SHOW_ENTITY_PATTERN = re.compile(
    r'^\s*SHOW_ENTITY - (Updating) Entity=(.*) CardID=(.*)'
)
ENTITY_TAG_PATTERN = re.compile(r'^\s*tag=(.*) value=(.*)')

BLOCK_START_PATTERN = re.compile(
    r'\s*BLOCK_START BlockType=([A-Z_]*) Entity=(.*) EffectCardId=(.*) EffectIndex=(.*) '
    r'Target=(.*) SubOption=(\S*)(?: TriggerKeyword=(\S*))?'
)
SUB_SPELL_START_PATTERN = re.compile(
    r'\s*SUB_SPELL_START - SpellPrefabGUID=(.*):(.*) Source=(.*) TargetCount=(.*)'
)
TAG_CHANGE_PATTERN = re.compile(r'\s*TAG_CHANGE Entity=(.*) tag=(\S*) value=([\w.-]*)')
META_DATA_PATTERN = re.compile(r'\s*META_DATA - Meta=([A-Z_]+) Data=(-?\d*) Info(?:Count)?=(.*)')

CONTROLLER_TAG = "CONTROLLER"

Frame = Union[BlockData, SubSpell]


class ReadResult(NamedTuple):
    """Outcome of offering a line to a FullEntityReader.

    handled=False, result=None: not reading an entity.
    handled=True,  result=None: in the middle of an entity.
    handled=False, result=X:    entity X finished on an unrelated line,
                                which the caller must still process.
    handled=True,  result=X:    entity X finished because another started.
    """
    handled: bool
    result: Optional[EmbeddedEntity] = None


class FullEntityReader:
    """Reads FULL_ENTITY / SHOW_ENTITY / CHANGE_ENTITY snapshots.

    A snapshot is a header line followed by any number of ``tag=K value=V``
    lines. Nothing marks its end, so an entity is only complete once a line
    arrives that isn't one of its tags.
    """

    def __init__(self, prefix: str = "") -> None:
        """Initialize the reader.

        Args:
            prefix: Optional line prefix. Lines without it are not handled
                and stripped of it otherwise.
        """
        self.prefix = prefix
        self._entity: Optional[EmbeddedEntity] = None

    @property
    def in_progress(self) -> bool:
        return self._entity is not None

    def handle_line(self, line: str, game_state: "GameState") -> ReadResult:
        """Offer a line to the reader.

        Args:
            line: A complete log line.
            game_state: Used to resolve entity strings and controllers.

        Returns:
            ReadResult saying whether the line was consumed and carrying an
            entity that has just been completed, if any.
        """
        if self.prefix:
            if not line.startswith(self.prefix):
                return ReadResult(False)
            line = line[len(self.prefix):]

        header = self._read_header(line)
        if header:
            action, entity_string, card_id = header

            # If we already have an entity, the previous one just finished
            result = self._entity
            self._entity = None

            entity = read_entity_string(entity_string, game_state)
            if isinstance(entity, CardEntity):
                if card_id:
                    entity.card_id = card_id
                self._entity = EmbeddedEntity(action=action, card_id=card_id, entity=entity)

            return ReadResult(True, result)

        if self._entity is None:
            return ReadResult(False)

        tag_match = ENTITY_TAG_PATTERN.match(line)
        if tag_match:
            tag, value = tag_match.group(1), tag_match.group(2).strip()
            self._entity.entity.tags[tag] = value
            if tag == CONTROLLER_TAG and value.isdigit():
                self._entity.entity.player = identify_player(game_state, int(value))
            return ReadResult(True)

        # This line is not part of the entity anymore, hand back what we have
        result = self._entity
        self._entity = None
        return ReadResult(False, result)

    @staticmethod
    def _read_header(line: str) -> Optional[tuple[str, str, str]]:
        match = FULL_ENTITY_PATTERN.match(line)
        if match:
            entity_string = match.group(2) or match.group(3)
            return match.group(1), entity_string, match.group(4).strip()

        for pattern in (CHANGE_ENTITY_PATTERN, SHOW_ENTITY_PATTERN):
            match = pattern.match(line)
            if match:
                return match.group(1), match.group(2), match.group(3).strip()

        return None

    def reset(self) -> None:
        self._entity = None


class BlockReader:
    """Stack machine that rebuilds nested blocks from prefixed lines.

    Does not emit events or interpret the blocks; MatchLogParser does that
    with what ``read_line`` returns.
    """

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self._stack: list[Frame] = []
        self._full_entity_reader = FullEntityReader()

    @property
    def processing(self) -> bool:
        return len(self._stack) > 0

    @property
    def depth(self) -> int:
        return len(self._stack)

    def read_line(self, line: str, game_state: "GameState") -> Optional[BlockData]:
        """Consume a line.

        Args:
            line: A complete log line.
            game_state: Used to resolve entity strings.

        Returns:
            The outermost block once its BLOCK_END has been read, else None.
        """
        if not line.startswith(self.prefix):
            return None

        line = line[len(self.prefix):]

        # Embedded entities can run into the following lines, so they go first
        if self._handle_embedded_entities(line, game_state):
            return None

        block_start = BLOCK_START_PATTERN.match(line)
        if block_start:
            self._stack.append(BlockData(
                block_type=block_start.group(1),
                trigger_keyword=block_start.group(7),
                entity=read_entity_string(block_start.group(2), game_state),
                target=read_entity_string(block_start.group(5), game_state),
            ))
            return None

        if "BLOCK_END" in line or "SUB_SPELL_END" in line:
            return self._close_frame()

        if not self._stack:
            return None

        sub_spell = SUB_SPELL_START_PATTERN.match(line)
        if sub_spell:
            self._stack.append(SubSpell(spell=sub_spell.group(1)))
            return None

        if self._read_tag_change(line, game_state):
            return None

        if self._read_meta_data(line):
            return None

        logger.debug(f"Skipping unrecognized line in block: {line.strip()}")
        return None

    def reset(self) -> None:
        """Abandon any block in progress."""
        self._stack.clear()
        self._full_entity_reader.reset()

    def _close_frame(self) -> Optional[BlockData]:
        if not self._stack:
            # Unmatched end marker, nothing to close
            return None

        frame = self._stack.pop()

        # The outermost frame is always a block, sub spells only open inside one
        if not self._stack:
            return frame

        self._stack[-1].entries.append(frame)
        return None

    def _read_tag_change(self, line: str, game_state: "GameState") -> bool:
        match = TAG_CHANGE_PATTERN.match(line)
        if not match:
            return False

        entity_string, tag, value = match.group(1), match.group(2), match.group(3)
        frame = self._stack[-1]
        entity: Optional[Entity] = None

        if entity_string.strip().isdigit():
            # Prefer what this scope already knows about the entity
            entity_id = int(entity_string)
            entity = next(
                (e.entity for e in frame.entries
                 if isinstance(e, EmbeddedEntity) and e.entity.entity_id == entity_id),
                None,
            )

        if entity is None:
            entity = read_entity_string(entity_string, game_state)

        frame.entries.append(TagData(entity=entity, tag=tag, value=value))
        return True

    def _read_meta_data(self, line: str) -> bool:
        match = META_DATA_PATTERN.match(line)
        if not match:
            return False

        data = match.group(2)
        value = int(data) if data.lstrip("-") else 0
        self._stack[-1].entries.append(MetaData(key=match.group(1), value=value))
        return True

    def _handle_embedded_entities(self, line: str, game_state: "GameState") -> bool:
        """Feed FULL_ENTITY style lines, returning True if the line was consumed."""
        if not self._stack:
            return False

        handled, result = self._full_entity_reader.handle_line(line, game_state)
        if result:
            self._stack[-1].entries.append(result)

        return handled
