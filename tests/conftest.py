import pytest

from hearthwatch.events import EventEmitter
from hearthwatch.gamestate import GameState, Player


class RecordingEmitter(EventEmitter):
    """EventEmitter that remembers everything emitted."""

    def __init__(self):
        super().__init__()
        self.events = []
        self.register_any_handler(lambda name, payload: self.events.append((name, payload)))

    def names(self):
        return [name for name, _ in self.events]


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def game_state():
    """Game with Alice at the bottom (player 1) and Bob at the top (player 2)."""
    state = GameState()
    state.add_player(Player(id=1, name="Alice", position="bottom"))
    state.add_player(Player(id=2, name="Bob", position="top"))
    return state
