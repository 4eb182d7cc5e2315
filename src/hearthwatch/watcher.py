"""Hearthstone log file watcher using watchdog.

This module tails the client's log file, runs every new line through the
line parser chain and emits the resulting events.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileSystemEventHandler
from watchdog.observers import Observer

from hearthwatch.config import WatcherOptions, install_log_config, load_options
from hearthwatch.events import EventEmitter
from hearthwatch.gamestate import GameState
from hearthwatch.line_parsers import create_line_parsers

logger = logging.getLogger(__name__)

# Pattern to identify game start in logs
GAME_START_PATTERN = re.compile(rb'\[Power\] GameState\.DebugPrintPower\(\) -\s*CREATE_GAME')

# Bursts of modify events within this window are read once
DEBOUNCE_SECONDS = 0.1

# Only the tail of the log is scanned for the last game start
MAX_SCAN_BYTES = 15 * 1024 * 1024


class LogFileHandler(FileSystemEventHandler):
    """FileSystemEventHandler that tracks file position for incremental reads.

    Only complete lines are handed to the callback. A trailing partial line
    stays in the file and is read again once its terminator is written.
    """

    def __init__(
        self,
        log_path: str,
        callback: Callable[[str], None],
        line_terminator: Optional[str] = None,
    ) -> None:
        """Initialize the handler.

        Args:
            log_path: Path to the client log file.
            callback: Function called with new, complete lines of log content.
            line_terminator: Line separator, None for any newline.
        """
        super().__init__()
        self.log_path = Path(log_path).resolve()
        self.callback = callback
        self.file_position: int = 0
        self._terminator = (line_terminator or "\n").encode("utf-8")
        self._lock = threading.Lock()
        self._schedule_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._dirty = False

        # Initialize position to end of file if it exists
        if self.log_path.exists():
            try:
                self.file_position = self.log_path.stat().st_size
                logger.debug(f"Initialized file position to {self.file_position}")
            except OSError as e:
                logger.warning(f"Could not get file size: {e}")
                self.file_position = 0

    def on_modified(self, event: FileModifiedEvent) -> None:
        """Handle file modification events."""
        if event.is_directory or not self._is_log_file(event.src_path):
            return

        self._schedule_read()

    def on_created(self, event: FileCreatedEvent) -> None:
        """Handle file creation events (log recreated when the client restarts)."""
        if event.is_directory or not self._is_log_file(event.src_path):
            return

        logger.info("Log file recreated, resetting position to 0")
        with self._lock:
            self.file_position = 0
        self._schedule_read()

    def cancel(self) -> None:
        """Cancel a pending debounced read."""
        with self._schedule_lock:
            self._dirty = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _is_log_file(self, src_path: Union[str, bytes]) -> bool:
        if isinstance(src_path, bytes):
            src_path = src_path.decode("utf-8", errors="replace")
        return Path(src_path).resolve() == self.log_path

    def _schedule_read(self) -> None:
        with self._schedule_lock:
            if self._timer is not None and self._timer.is_alive():
                # The running read may already be past this write
                self._dirty = True
                return
            self._start_timer()

    def _start_timer(self) -> None:
        self._timer = threading.Timer(DEBOUNCE_SECONDS, self._on_timer)
        self._timer.daemon = True
        self._timer.start()

    def _on_timer(self) -> None:
        self.read_new_content()

        with self._schedule_lock:
            self._timer = None
            if self._dirty:
                self._dirty = False
                self._start_timer()

    def read_new_content(self) -> None:
        """Read complete lines written since the last read and invoke callback."""
        with self._lock:
            try:
                with open(self.log_path, "rb") as f:
                    f.seek(0, 2)
                    file_size = f.tell()

                    if file_size < self.file_position:
                        logger.warning(f"File truncated (size {file_size} < position {self.file_position}), resetting")
                        self.file_position = 0

                    f.seek(self.file_position)
                    data = f.read()

            except FileNotFoundError:
                logger.debug("Log file not found (Hearthstone may not be running)")
                return
            except PermissionError as e:
                # Windows file locking, the next event retries
                logger.debug(f"Permission error reading log: {e}")
                return
            except OSError as e:
                logger.warning(f"Error reading log file: {e}")
                return

            self._deliver(data)

    def read_from_position(self, start_position: int) -> None:
        """Read content from a specific position and invoke callback.

        Used for backfilling existing log content on startup.

        Args:
            start_position: Byte position to start reading from.
        """
        with self._lock:
            try:
                with open(self.log_path, "rb") as f:
                    f.seek(start_position)
                    data = f.read()
            except FileNotFoundError:
                logger.debug("Log file not found for backfill")
                return
            except OSError as e:
                logger.warning(f"Error during backfill read: {e}")
                return

            self.file_position = start_position
            if data:
                logger.info(f"Backfill: read {len(data)} bytes from position {start_position}")
            self._deliver(data)

    def _deliver(self, data: bytes) -> None:
        """Pass on everything up to the last line terminator."""
        end = data.rfind(self._terminator)
        if end == -1:
            return

        end += len(self._terminator)
        self.file_position += end
        logger.debug(f"Read {end} bytes, new position: {self.file_position}")
        self.callback(data[:end].decode("utf-8", errors="replace"))


class HearthstoneLogWatcher(EventEmitter):
    """Watches the Hearthstone log and keeps a GameState up to date.

    Example:
        watcher = HearthstoneLogWatcher(log_file="/path/to/Player.log",
                                        config_file="/path/to/log.config")
        watcher.register_handler("card-played", on_card_played)
        with watcher:
            ...
    """

    def __init__(self, options: Optional[WatcherOptions] = None, **overrides) -> None:
        """Initialize the log watcher.

        Args:
            options: Fully resolved options. If omitted they are loaded with
                ``load_options`` and ``overrides`` applied.
            **overrides: Individual option values (log_file, config_file, ...).

        Raises:
            FileNotFoundError: If the directory of the log or config file
                doesn't exist.
        """
        super().__init__()
        self.options = options or load_options(**overrides)
        self.game_state = GameState()
        self._line_parsers = create_line_parsers()
        self._observer: Optional[Observer] = None
        self._handler: Optional[LogFileHandler] = None

        logger.info(f"Config file path: {self.options.config_file}")
        logger.info(f"Log file path: {self.options.log_file}")

        if not Path(self.options.config_file).parent.exists():
            raise FileNotFoundError(f"Config file path does not exist: {self.options.config_file}")

        if not Path(self.options.log_file).parent.exists():
            raise FileNotFoundError(f"Log file path does not exist: {self.options.log_file}")

        self.log_path = Path(self.options.log_file).resolve()

    def parse_buffer(self, data: Union[bytes, str], game_state: Optional[GameState] = None) -> GameState:
        """Parse a chunk of log content.

        Args:
            data: Log content, bytes are decoded as UTF-8.
            game_state: State to update. A fresh GameState is used if omitted.

        Returns:
            The updated game state.
        """
        if game_state is None:
            game_state = GameState()

        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")

        return self._parse_lines(self._split_lines(data), game_state)

    def _split_lines(self, text: str) -> list[str]:
        terminator = self.options.line_terminator
        lines = text.splitlines() if terminator is None else text.split(terminator)
        return [line for line in lines if line]

    def _parse_lines(self, lines: list[str], game_state: GameState) -> GameState:
        updated = False
        last_turn_time = game_state.turn_start_time

        for line in lines:
            # The first parser to claim the line wins
            for line_parser in self._line_parsers:
                if line_parser.handle_line(self, game_state, line):
                    updated = True
                    break

            if updated and self.options.update_every_turn and game_state.turn_start_time != last_turn_time:
                last_turn_time = game_state.turn_start_time
                self.emit("gamestate-changed", game_state)
                updated = False

        if updated:
            self.emit("gamestate-changed", game_state)

        return game_state

    def _on_new_content(self, content: str) -> None:
        lines = self._split_lines(content)
        group_size = self.options.lines_per_update
        if group_size > 0:
            for i in range(0, len(lines), group_size):
                self._parse_lines(lines[i:i + group_size], self.game_state)
        else:
            self._parse_lines(lines, self.game_state)

    def find_last_game_start(self) -> int:
        """Find the byte position of the last CREATE_GAME line in the log file.

        Only the tail of the file is scanned since client logs grow large.

        Returns:
            Byte position to start reading from. If no game start is found,
            the current file size (start from the end).
        """
        if not self.log_path.exists():
            return 0

        try:
            file_size = self.log_path.stat().st_size
            read_size = min(file_size, MAX_SCAN_BYTES)
            start_offset = file_size - read_size

            if read_size == 0:
                return 0

            with open(self.log_path, "rb") as f:
                f.seek(start_offset)
                content = f.read(read_size)

        except OSError as e:
            logger.warning(f"Error scanning log for game start: {e}")
            return 0

        last_match = None
        for last_match in GAME_START_PATTERN.finditer(content):
            pass

        if last_match is None:
            logger.info(f"No game start found in last {read_size / 1024 / 1024:.1f}MB, starting from end")
            return file_size

        line_start = content.rfind(b"\n", 0, last_match.start()) + 1
        position = start_offset + line_start
        logger.info(f"Found last game start at byte position {position}")
        return position

    def start(self) -> None:
        """Start watching the log file.

        Resets the game state, writes the client log config, backfills the
        game in progress and then follows the file for changes.
        """
        if self._observer is not None:
            logger.warning("Watcher already started")
            return

        self.game_state.reset()
        for line_parser in self._line_parsers:
            line_parser.reset()

        try:
            install_log_config(self.options.config_file)
        except OSError as e:
            logger.warning(f"Could not write log config: {e}")

        self._handler = LogFileHandler(str(self.log_path), self._on_new_content, self.options.line_terminator)
        if self.log_path.exists():
            self._handler.read_from_position(self.find_last_game_start())

        self._observer = Observer()
        self._observer.schedule(self._handler, str(self.log_path.parent), recursive=False)
        self._observer.start()

        logger.info(f"Log watcher started: {self.log_path}")

    def stop(self) -> None:
        """Stop watching the log file. Blocks in progress are abandoned."""
        if self._observer is None:
            logger.debug("Watcher not running")
            return

        if self._handler:
            self._handler.cancel()

        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
        self._handler = None

        for line_parser in self._line_parsers:
            line_parser.reset()

        logger.info("Log watcher stopped")

    @property
    def file_position(self) -> int:
        """Byte position in the log file up to which content has been parsed."""
        if self._handler:
            return self._handler.file_position
        return 0

    def poll(self) -> None:
        """Manually read new log content.

        Safe to call even if the watcher isn't running.
        """
        if self._handler:
            self._handler.read_new_content()

    def __enter__(self) -> "HearthstoneLogWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
