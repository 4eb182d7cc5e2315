"""Watcher configuration.

Options are resolved from platform defaults, then ~/.hearthwatch/settings.json,
then HEARTHWATCH_* environment variables, then explicit overrides.
"""

import codecs
import json
import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Settings file location
SETTINGS_DIR = Path.home() / ".hearthwatch"
SETTINGS_FILE = SETTINGS_DIR / "settings.json"

ENV_PREFIX = "HEARTHWATCH_"

# Sections the client has to log for the parsers to work
LOG_CONFIG = """[Zone]
LogLevel=1
FilePrinting=false
ConsolePrinting=true
ScreenPrinting=false

[Power]
LogLevel=1
FilePrinting=false
ConsolePrinting=true
ScreenPrinting=false
Verbose=true

[LoadingScreen]
LogLevel=1
FilePrinting=false
ConsolePrinting=true
ScreenPrinting=false
"""


@dataclass
class WatcherOptions:
    """Where to find the client's files and how to read them.

    Attributes:
        log_file: Log file the client writes to.
        config_file: Client log.config, overwritten on start.
        line_terminator: Line separator, None splits on any newline.
        lines_per_update: Parse new content in groups of this many lines,
            emitting gamestate-changed after each group. 0 disables grouping.
        update_every_turn: Also emit gamestate-changed whenever a new turn starts.
    """
    log_file: str = ""
    config_file: str = ""
    line_terminator: Optional[str] = None
    lines_per_update: int = 0
    update_every_turn: bool = False


def default_options() -> WatcherOptions:
    """Default client file locations for the current platform."""
    options = WatcherOptions()

    if sys.platform.startswith("win"):
        logger.debug("Windows platform detected.")
        user_profile = os.environ.get("UserProfile") or os.environ.get("USERPROFILE")
        if user_profile:
            options.log_file = os.path.join(
                user_profile, "AppData", "LocalLow", "Blizzard Entertainment", "Hearthstone", "output_log.txt"
            )
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            options.config_file = os.path.join(local_app_data, "Blizzard", "Hearthstone", "log.config")
    else:
        logger.debug("OS X platform detected.")
        home = os.environ.get("HOME")
        if home:
            options.log_file = os.path.join(home, "Library", "Logs", "Unity", "Player.log")
            options.config_file = os.path.join(
                home, "Library", "Preferences", "Blizzard", "Hearthstone", "log.config"
            )

    return options


def _load_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            loaded = json.load(f)
        logger.debug(f"Loaded settings from {path}")
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load settings: {e}")
        return {}

    if not isinstance(loaded, dict):
        logger.warning(f"Ignoring settings in {path}: expected a JSON object")
        return {}
    return loaded


def _coerce(name: str, value: Any) -> Any:
    if name == "lines_per_update":
        return int(value)
    if name == "update_every_turn" and isinstance(value, str):
        return value.lower() in ("1", "true", "yes", "on")
    return value


def load_options(settings_file: Optional[Path] = None, **overrides: Any) -> WatcherOptions:
    """Resolve watcher options.

    Args:
        settings_file: Settings JSON to read instead of ~/.hearthwatch/settings.json.
        **overrides: Explicit values, None values are ignored.

    Returns:
        The resolved WatcherOptions.
    """
    options = default_options()
    names = [f.name for f in fields(WatcherOptions)]

    settings = _load_settings_file(settings_file or SETTINGS_FILE)
    for name in names:
        if settings.get(name) is not None:
            setattr(options, name, _coerce(name, settings[name]))

    for name in names:
        env_value = os.environ.get(ENV_PREFIX + name.upper())
        if env_value:
            if name == "line_terminator":
                # Allow "\r\n" to be written with backslashes in the shell
                env_value = codecs.decode(env_value, "unicode_escape")
            setattr(options, name, _coerce(name, env_value))

    for name, value in overrides.items():
        if name not in names:
            raise TypeError(f"Unknown watcher option: {name}")
        if value is not None:
            setattr(options, name, value)

    return options


def install_log_config(path: str) -> None:
    """Write the client log.config that turns on the needed log sections.

    The client only writes Power/Zone/LoadingScreen output if asked to, so
    this is done on every start.
    """
    with open(path, "w") as f:
        f.write(LOG_CONFIG)
    logger.info(f"Wrote log config to {path}")
