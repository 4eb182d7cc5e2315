"""Command line entry point.

Either follows the live client log and prints events as they happen, or
parses a saved log once and prints the resulting game state.
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from hearthwatch.config import SETTINGS_FILE, load_options
from hearthwatch.watcher import HearthstoneLogWatcher

logger = logging.getLogger(__name__)


def _print_event(event_name: str, payload) -> None:
    if event_name == "gamestate-changed":
        return
    if hasattr(payload, "to_dict"):
        print(f"{event_name}: {json.dumps(payload.to_dict())}")
    else:
        print(event_name)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Follow a Hearthstone log and report game events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  hearthwatch
  hearthwatch --log-file ~/Library/Logs/Unity/Player.log
  hearthwatch --parse saved_game.log

Settings are read from {SETTINGS_FILE} and HEARTHWATCH_* environment variables.
        """
    )
    parser.add_argument("--log-file", help="Client log file to follow")
    parser.add_argument("--config-file", help="Client log.config to write on start")
    parser.add_argument("--parse", type=Path, metavar="LOG", help="Parse a saved log once and print the game state")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.parse:
        if not args.parse.exists():
            print(f"Error: Log not found: {args.parse}")
            return 1

        options = load_options(
            log_file=str(args.parse),
            config_file=args.config_file or str(args.parse.parent / "log.config"),
        )
        try:
            watcher = HearthstoneLogWatcher(options)
        except FileNotFoundError as e:
            print(f"Error: {e}")
            return 1
        game_state = watcher.parse_buffer(args.parse.read_bytes())
        print(json.dumps(game_state.get_snapshot(), indent=2))
        return 0

    try:
        watcher = HearthstoneLogWatcher(log_file=args.log_file, config_file=args.config_file)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1

    watcher.register_any_handler(_print_event)

    with watcher:
        try:
            while True:
                time.sleep(1.0)
                watcher.poll()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")

    return 0


if __name__ == "__main__":
    sys.exit(main())
