"""hearthwatch: Hearthstone log watcher and match log builder."""

from hearthwatch.config import WatcherOptions, install_log_config, load_options
from hearthwatch.entities import (
    BlockData,
    CardEntity,
    EmbeddedEntity,
    GameEntity,
    MetaData,
    PlayerEntity,
    SubSpell,
    TagData,
    read_entity_string,
)
from hearthwatch.events import EventEmitter
from hearthwatch.gamestate import EntityProps, GameState, MatchLogEntry, Player
from hearthwatch.line_parsers import create_line_parsers
from hearthwatch.match_log import MatchLogParser
from hearthwatch.readers import BlockReader, FullEntityReader
from hearthwatch.watcher import HearthstoneLogWatcher

__version__ = "0.1.0"

__all__ = [
    "BlockData",
    "BlockReader",
    "CardEntity",
    "EmbeddedEntity",
    "EntityProps",
    "EventEmitter",
    "FullEntityReader",
    "GameEntity",
    "GameState",
    "HearthstoneLogWatcher",
    "MatchLogEntry",
    "MatchLogParser",
    "MetaData",
    "Player",
    "PlayerEntity",
    "SubSpell",
    "TagData",
    "WatcherOptions",
    "create_line_parsers",
    "install_log_config",
    "load_options",
    "read_entity_string",
]
