"""Tests for the log watcher: reading the file and feeding the parsers."""

import pytest

from hearthwatch.config import LOG_CONFIG, WatcherOptions
from hearthwatch.watcher import HearthstoneLogWatcher, LogFileHandler

from helpers import GS, PTL, block_end, block_start, card, tag_change

FIREBALL = card("Fireball", 20, player=1, card_id="CS2_029", zone="HAND")
RAPTOR = card("Bloodfen Raptor", 30, player=1, card_id="CS2_172", zone="HAND")
YETI = card("Chillwind Yeti", 40, player=2, card_id="CS2_182")

GAME_START = f"{GS} CREATE_GAME"
GAME = [
    GAME_START,
    "[Power] GameState.DebugPrintGame() - PlayerID=1, PlayerName=Alice",
    "[Power] GameState.DebugPrintGame() - PlayerID=2, PlayerName=Bob",
    block_start("PLAY", FIREBALL, YETI),
    block_end(),
]


def make_watcher(tmp_path, **options):
    options = WatcherOptions(
        log_file=str(tmp_path / "Player.log"),
        config_file=str(tmp_path / "log.config"),
        **options,
    )
    watcher = HearthstoneLogWatcher(options)
    watcher.events = []
    watcher.register_any_handler(lambda name, payload: watcher.events.append(name))
    return watcher


class TestInit:
    def test_missing_log_directory(self, tmp_path):
        options = WatcherOptions(log_file=str(tmp_path / "missing" / "Player.log"), config_file=str(tmp_path / "log.config"))
        with pytest.raises(FileNotFoundError):
            HearthstoneLogWatcher(options)

    def test_missing_config_directory(self, tmp_path):
        options = WatcherOptions(log_file=str(tmp_path / "Player.log"), config_file=str(tmp_path / "missing" / "log.config"))
        with pytest.raises(FileNotFoundError):
            HearthstoneLogWatcher(options)

    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setattr("hearthwatch.config.SETTINGS_FILE", tmp_path / "settings.json")
        watcher = HearthstoneLogWatcher(
            log_file=str(tmp_path / "Player.log"),
            config_file=str(tmp_path / "log.config"),
            lines_per_update=10,
        )
        assert watcher.options.lines_per_update == 10
        assert watcher.log_path == (tmp_path / "Player.log").resolve()


class TestParseBuffer:
    @pytest.mark.parametrize("newline", ["\n", "\r\n"])
    def test_bytes(self, tmp_path, newline):
        watcher = make_watcher(tmp_path)
        data = newline.join(GAME + [""]).encode("utf-8")

        state = watcher.parse_buffer(data)

        assert [p.name for p in state.players] == ["Alice", "Bob"]
        assert [e.type for e in state.match_log] == ["play"]
        assert watcher.events == [
            "game-start",
            "player-joined",
            "player-joined",
            "card-played",
            "gamestate-changed",
        ]
        # The watcher's own game is untouched
        assert watcher.game_state.players == []

    def test_existing_state(self, tmp_path, game_state):
        watcher = make_watcher(tmp_path)
        lines = [block_start("PLAY", RAPTOR), block_end()]

        assert watcher.parse_buffer("\n".join(lines), game_state) is game_state
        assert game_state.match_log[0].source.card_name == "Bloodfen Raptor"

    def test_nothing_claimed(self, tmp_path):
        watcher = make_watcher(tmp_path)
        watcher.parse_buffer("[Asset] nothing to see here\n\n")
        assert watcher.events == []

    def test_custom_line_terminator(self, tmp_path):
        watcher = make_watcher(tmp_path, line_terminator="|")
        state = watcher.parse_buffer("|".join(GAME))
        assert len(state.players) == 2
        assert len(state.match_log) == 1

    def test_update_every_turn(self, tmp_path):
        lines = GAME[:3] + [
            tag_change("GameEntity", "STEP", "MAIN_READY", depth=0, prefix=PTL),
            tag_change("Alice", "CURRENT_PLAYER", "1", depth=0),
        ]

        watcher = make_watcher(tmp_path)
        watcher.parse_buffer("\n".join(lines))
        assert watcher.events.count("gamestate-changed") == 1

        watcher = make_watcher(tmp_path, update_every_turn=True)
        watcher.parse_buffer("\n".join(lines))
        assert watcher.events.count("gamestate-changed") == 2


def test_lines_per_update(tmp_path):
    watcher = make_watcher(tmp_path, lines_per_update=2)
    watcher._on_new_content("\n".join(GAME[:3] + [tag_change("Alice", "CURRENT_PLAYER", "1", depth=0)]) + "\n")

    assert watcher.events.count("gamestate-changed") == 2
    assert watcher.game_state.get_player_by_name("Alice").turn


class TestFindLastGameStart:
    def test_last_of_several(self, tmp_path):
        watcher = make_watcher(tmp_path)
        content = "\n".join(["[Asset] loading", GAME_START, "[Power] old game", GAME_START, "[Power] new game", ""])
        (tmp_path / "Player.log").write_bytes(content.encode("utf-8"))

        assert watcher.find_last_game_start() == content.rindex(GAME_START)

    def test_no_game_start(self, tmp_path):
        watcher = make_watcher(tmp_path)
        (tmp_path / "Player.log").write_bytes(b"[Asset] loading\n")
        assert watcher.find_last_game_start() == len(b"[Asset] loading\n")

    def test_no_file(self, tmp_path):
        assert make_watcher(tmp_path).find_last_game_start() == 0


class TestLogFileHandler:
    def test_starts_at_end_of_file(self, tmp_path):
        log = tmp_path / "Player.log"
        log.write_bytes(b"old line\n")
        handler = LogFileHandler(str(log), lambda content: None)
        assert handler.file_position == 9

    def test_partial_line_is_held_back(self, tmp_path):
        log = tmp_path / "Player.log"
        log.write_bytes(b"old\n")
        received = []
        handler = LogFileHandler(str(log), received.append)

        with open(log, "ab") as f:
            f.write(b"abc\ndef")
        handler.read_new_content()
        assert received == ["abc\n"]
        assert handler.file_position == 8

        with open(log, "ab") as f:
            f.write(b"\n")
        handler.read_new_content()
        assert received == ["abc\n", "def\n"]
        assert handler.file_position == 12

    def test_truncation_restarts_from_beginning(self, tmp_path):
        log = tmp_path / "Player.log"
        log.write_bytes(b"a long line from the last session\n")
        received = []
        handler = LogFileHandler(str(log), received.append)

        log.write_bytes(b"new\n")
        handler.read_new_content()
        assert received == ["new\n"]
        assert handler.file_position == 4

    def test_custom_terminator(self, tmp_path):
        log = tmp_path / "Player.log"
        log.write_bytes(b"")
        received = []
        handler = LogFileHandler(str(log), received.append, line_terminator="\r\n")

        with open(log, "ab") as f:
            f.write(b"one\r\ntwo\n")
        handler.read_new_content()
        assert received == ["one\r\n"]

    def test_missing_file(self, tmp_path):
        received = []
        handler = LogFileHandler(str(tmp_path / "Player.log"), received.append)
        handler.read_new_content()
        assert received == []
        assert handler.file_position == 0

    def test_backfill(self, tmp_path):
        log = tmp_path / "Player.log"
        log.write_bytes(b"skip\nkeep\n")
        received = []
        handler = LogFileHandler(str(log), received.append)

        handler.read_from_position(5)
        assert received == ["keep\n"]
        assert handler.file_position == 10

    def test_write_during_read_is_read_again(self, tmp_path, monkeypatch):
        class RunningTimer:
            def is_alive(self):
                return True

            def cancel(self):
                pass

        log = tmp_path / "Player.log"
        log.write_bytes(b"")
        received = []
        handler = LogFileHandler(str(log), received.append)
        started = []
        monkeypatch.setattr(handler, "_start_timer", lambda: started.append(True))

        handler._timer = RunningTimer()
        with open(log, "ab") as f:
            f.write(b"one\n")
        handler._schedule_read()
        assert started == []

        handler._on_timer()
        assert received == ["one\n"]
        assert started == [True]

    def test_no_write_during_read(self, tmp_path, monkeypatch):
        log = tmp_path / "Player.log"
        log.write_bytes(b"")
        received = []
        handler = LogFileHandler(str(log), received.append)
        started = []
        monkeypatch.setattr(handler, "_start_timer", lambda: started.append(True))

        with open(log, "ab") as f:
            f.write(b"one\n")
        handler._on_timer()
        assert received == ["one\n"]
        assert started == []
        assert handler._timer is None

    def test_cancel_drops_pending_reread(self, tmp_path, monkeypatch):
        log = tmp_path / "Player.log"
        log.write_bytes(b"")
        handler = LogFileHandler(str(log), lambda content: None)
        started = []
        monkeypatch.setattr(handler, "_start_timer", lambda: started.append(True))

        handler._dirty = True
        handler.cancel()
        handler._on_timer()
        assert started == []


class TestWatching:
    def test_backfill_and_poll(self, tmp_path):
        log = tmp_path / "Player.log"
        previous = ["[Power] a finished game", GAME_START, "[Power] more of it"]
        log.write_text("\n".join(previous + GAME) + "\n")
        watcher = make_watcher(tmp_path)

        with watcher:
            assert (tmp_path / "log.config").read_text() == LOG_CONFIG
            assert [p.name for p in watcher.game_state.players] == ["Alice", "Bob"]
            assert len(watcher.game_state.match_log) == 1
            assert watcher.file_position == log.stat().st_size

            with open(log, "a") as f:
                f.write("\n".join([block_start("PLAY", RAPTOR), block_end()]) + "\n")
            watcher.poll()
            assert len(watcher.game_state.match_log) == 2

        assert watcher.file_position == 0
        watcher.poll()

    def test_start_without_log_file(self, tmp_path):
        watcher = make_watcher(tmp_path)
        watcher.start()
        try:
            assert watcher.file_position == 0
            assert watcher.game_state.players == []
        finally:
            watcher.stop()

    def test_stop_when_not_running(self, tmp_path):
        make_watcher(tmp_path).stop()
