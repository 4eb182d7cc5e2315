"""Line parsers run against every log line in order.

Each parser inspects a single line and returns True if it claimed it.
The first parser to claim a line wins, so order matters: MatchLogParser
goes first and only claims lines that complete a block.
"""

import copy
import logging
import re
import time
from typing import TYPE_CHECKING, Optional

from hearthwatch.cards import get_quest, get_secret_class
from hearthwatch.entities import (
    UNKNOWN_CARDNAME,
    CardEntity,
    identify_player,
    read_entity_string,
)
from hearthwatch.gamestate import (
    Discovery,
    EntityProps,
    GameState,
    Player,
    PlayerCard,
    Quest,
    Secret,
    TurnRecord,
)
from hearthwatch.readers import FullEntityReader

if TYPE_CHECKING:
    from hearthwatch.events import EventEmitter


DECK_CARD_COUNT = 30


class LineParser:
    """Base for everything in the dispatch chain."""

    event_name: str = ""

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"{__name__}.{self.event_name}")

    def handle_line(self, emitter: "EventEmitter", game_state: GameState, line: str) -> bool:
        """Inspect one line.

        Returns:
            True if the line was claimed and no later parser should see it.
        """
        raise NotImplementedError

    def reset(self) -> None:
        """Drop any partially read state."""


class AbstractLineParser(LineParser):
    """A parser driven by a single regular expression.

    Subclasses set ``pattern`` and ``event_name`` and implement the hooks.
    When the pattern matches, ``line_matched`` updates the state, the
    message from ``format_log_message`` is logged and the event is emitted
    if ``should_emit`` agrees.
    """

    pattern: re.Pattern

    def handle_line(self, emitter: "EventEmitter", game_state: GameState, line: str) -> bool:
        match = self.pattern.search(line)
        if not match:
            return False

        self.line_matched(match, game_state)

        message = self.format_log_message(match, game_state)
        if message:
            self.logger.debug(message)

        if self.should_emit(game_state):
            emitter.emit(self.event_name)

        return True

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        raise NotImplementedError

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        return None

    def should_emit(self, game_state: GameState) -> bool:
        return True


class GameOverLineParser(AbstractLineParser):
    """Records each player's result, the game is over once both are in."""

    pattern = re.compile(
        r'\[Power\] GameState\.DebugPrintPower\(\) - TAG_CHANGE Entity=(.*) tag=PLAYSTATE value=(LOST|WON|TIED)'
    )
    event_name = "game-over"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        player = game_state.get_player_by_name(match.group(1))
        if player:
            player.status = match.group(2)

        game_state.game_over_count += 1
        if game_state.game_over_count == 2:
            game_state.active = False

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        if game_state.game_over_count == 2:
            return "The current game has ended."
        return None

    def should_emit(self, game_state: GameState) -> bool:
        return game_state.game_over_count == 2


class GameStartLineParser(AbstractLineParser):
    pattern = re.compile(r'\[Power\] GameState\.DebugPrintPower\(\) -\s*CREATE_GAME')
    event_name = "game-start"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        game_state.reset()
        game_state.active = True
        game_state.begin_phase_active = True

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        return "A new game has started."


class NewPlayerLineParser(AbstractLineParser):
    """Registers players as they join, player 1 starts out at the bottom."""

    pattern = re.compile(r'\[Power\] GameState\.DebugPrintGame\(\) - PlayerID=(\d+),? PlayerName=(.*)$')
    event_name = "player-joined"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        player_id = int(match.group(1))
        game_state.add_player(Player(
            id=player_id,
            name=match.group(2).strip(),
            position="bottom" if player_id == 1 else "top",
        ))

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        return f'Player "{match.group(2).strip()}" has joined.'


class TurnLineParser(AbstractLineParser):
    pattern = re.compile(
        r'^\[Power\] GameState\.DebugPrintPower\(\) -\s*TAG_CHANGE Entity=(.*) tag=CURRENT_PLAYER value=(\d)'
    )
    event_name = "turn-change"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        player_name = match.group(1)
        turn = bool(int(match.group(2)))

        player = game_state.get_player_by_name(player_name)
        if player is None:
            # Only one player announced so far, this must be the other one
            if game_state.player_count == 1:
                existing = game_state.players[0]
                player = game_state.add_player(Player(
                    id=2 if existing.id == 1 else 1,
                    name=player_name,
                    turn=turn,
                    position="top" if existing.position == "bottom" else "bottom",
                ))
                if turn:
                    player.turn_history.append(TurnRecord(start=time.time()))
            return

        now = time.time()
        if turn and not player.turn:
            player.turn_history.append(TurnRecord(start=now))
        elif not turn and player.turn_history and player.turn_history[-1].duration is None:
            last = player.turn_history[-1]
            last.duration = now - last.start

        player.turn = turn

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        turn_state = "begun" if int(match.group(2)) else "ended"
        return f"{match.group(1)}'s turn has {turn_state}"


class ZoneChangeLineParser(AbstractLineParser):
    """Tracks cards moving between zones.

    Keeps each player's known cards, deck size, quests and secrets current,
    and during mulligan works out which side each player is on and who goes
    first.
    """

    pattern = re.compile(
        r'^\[Zone\] ZoneChangeList\.ProcessChanges\(\) - id=\d* local=.* '
        r'\[entityName=(.*) id=(\d*) zone=.* zonePos=\d* cardId=(.*) player=(\d)\] '
        r'zone from ?(FRIENDLY|OPPOSING)? ?(.*)? -> ?(FRIENDLY|OPPOSING)? ?(.*)?$'
    )
    event_name = "zone-change"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        card_name = match.group(1)
        entity_id = int(match.group(2))
        card_id = match.group(3) or None
        player_id = int(match.group(4))
        from_team, from_zone = match.group(5), match.group(6)
        to_team, to_zone = match.group(7), match.group(8)

        if card_name == UNKNOWN_CARDNAME:
            card_name = ""

        # This may have revealed the entity
        game_state.resolve_entity(CardEntity(
            card_name=card_name,
            entity_id=entity_id,
            player=identify_player(game_state, player_id),
            card_id=card_id,
        ))

        if game_state.mulligan_active:
            player = game_state.get_player_by_id(player_id)
            other_player = game_state.get_player_by_id(3 - player_id)
            if not player or not other_player:
                return

            # Whoever gets The Coin goes second
            if card_name == "The Coin" and to_zone == "HAND":
                other_player.turn = True

            if to_zone in ("HAND", "DECK"):
                if to_team == "FRIENDLY":
                    player.position, other_player.position = "bottom", "top"
                elif to_team == "OPPOSING":
                    player.position, other_player.position = "top", "bottom"

        from_player = self._player_for_team(game_state, from_team)
        if from_player:
            # Some cards are only identified when leaving the hand or deck
            if from_zone in ("DECK", "HAND"):
                self._put_card(from_player, entity_id, state="OTHERS", card_id=card_id, card_name=card_name)

            if from_zone == "DECK":
                from_player.card_count -= 1

            if from_zone == "SECRET":
                if get_quest(card_id):
                    from_player.quests = [q for q in from_player.quests if q.card_name != card_name]
                else:
                    from_player.secrets = [s for s in from_player.secrets if s.card_id != card_id]

        to_player = self._player_for_team(game_state, to_team)
        if to_player:
            if to_zone in ("DECK", "HAND"):
                self._put_card(
                    to_player,
                    entity_id,
                    state=to_zone,
                    card_id=card_id,
                    card_name=card_name,
                    # Outside of mulligan it didn't come from the starting deck
                    is_spawned_card=not game_state.mulligan_active,
                )

            if to_zone == "DECK":
                to_player.card_count += 1

            if to_zone == "SECRET":
                self._add_secret_or_quest(to_player, card_id, card_name)

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        return f"{match.group(1)} moved from {match.group(5)} {match.group(6)} to {match.group(7)} {match.group(8)}"

    @staticmethod
    def _player_for_team(game_state: GameState, team: Optional[str]) -> Optional[Player]:
        if team == "FRIENDLY":
            return game_state.get_player_by_position("bottom")
        if team == "OPPOSING":
            return game_state.get_player_by_position("top")
        return None

    @staticmethod
    def _put_card(
        player: Player,
        entity_id: int,
        state: str,
        card_id: Optional[str],
        card_name: Optional[str],
        is_spawned_card: Optional[bool] = None,
    ) -> None:
        """Update a card in the player's list, or add it if it's new."""
        card = next((c for c in player.cards if c.entity_id == entity_id), None)
        if card:
            if card_id:
                card.card_id = card_id
            if card_name:
                card.card_name = card_name
            card.state = state
            return

        # Only cards first seen entering the hand or deck are tracked
        if is_spawned_card is None:
            return

        player.cards.append(PlayerCard(
            entity_id=entity_id,
            state=state,
            is_spawned_card=is_spawned_card,
            card_id=card_id,
            card_name=card_name or None,
        ))

    @staticmethod
    def _add_secret_or_quest(player: Player, card_id: Optional[str], card_name: str) -> None:
        quest = get_quest(card_id)
        if quest:
            player.quests.append(Quest(
                card_name=card_name,
                card_class=quest.card_class,
                requirement=quest.requirement,
                sidequest=quest.sidequest,
                progress=0,
                timestamp=time.time(),
            ))
            return

        card_class = get_secret_class(card_id)
        if card_class:
            player.secrets.append(Secret(
                card_id=card_id,
                card_class=card_class,
                card_name=card_name,
                timestamp=time.time(),
            ))


class TagChangeLineParser(AbstractLineParser):
    """Tag changes on cards. Only quest progress is tracked."""

    pattern = re.compile(
        r'^\[Power\] GameState\.DebugPrintPower\(\) -\s+TAG_CHANGE '
        r'Entity=\[entityName=(.*) id=(\d*) zone=.* zonePos=\d* cardId=(.*) player=(\d)\] tag=(\S*) value=(\d*)'
    )
    event_name = "tag-change"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        if match.group(5) != "QUEST_PROGRESS" or not match.group(6):
            return

        player = game_state.get_player_by_id(int(match.group(4)))
        if player is None:
            return

        for quest in player.quests:
            if quest.card_name == match.group(1):
                quest.progress = int(match.group(6))

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        return f"Tag {match.group(5)} of player {match.group(4)}'s {match.group(1)} set to {match.group(6)}"


class GameTagChangeLineParser(AbstractLineParser):
    """Game level tag changes from the PowerTaskList stream."""

    pattern = re.compile(r'^\[Power\] PowerTaskList\.DebugPrintPower\(\) -\s+TAG_CHANGE Entity=(.*) tag=(.*) value=(.*)')
    event_name = "game-tag-change"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        entity, tag, value = match.group(1), match.group(2), match.group(3).strip()

        if entity == "GameEntity" and value == "MAIN_READY":
            if tag == "NEXT_STEP":
                game_state.mulligan_active = False

            if tag == "STEP":
                game_state.turn_start_time = time.time()

                # Nobody has the turn yet, so the bottom player goes first
                if all(not p.turn for p in game_state.players):
                    bottom_player = game_state.get_player_by_position("bottom")
                    if bottom_player:
                        bottom_player.turn = True

        if tag == "TIMEOUT" and value.isdigit():
            player = game_state.get_player_by_name(entity)
            if player:
                player.timeout = int(value)

        if tag == "MULLIGAN_STATE" and value == "INPUT":
            game_state.mulligan_active = True

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        return f"Tag {match.group(2)} of {match.group(1)} set to {match.group(3).strip()}"


class MulliganStartParser(AbstractLineParser):
    pattern = re.compile(r'\[Power\] GameState\.DebugPrintPower\(\) -\s*tag=MULLIGAN_STATE value=INPUT')
    event_name = "mulligan-start"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        game_state.mulligan_active = True

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        return "Mulligan has started."


class MulliganResultParser(AbstractLineParser):
    """Works out how many cards each player replaced in the mulligan."""

    pattern = re.compile(
        r'\[Power\]\s+GameState\.DebugPrintEntitiesChosen\(\)\s+-\s+id=\w+\s+Player=(.*)\s+EntitiesCount=(\d+)'
    )
    event_name = "mulligan-result"

    def line_matched(self, match: re.Match, game_state: GameState) -> None:
        if not game_state.mulligan_active:
            return

        player = game_state.get_player_by_name(match.group(1).strip())
        if player is None:
            return

        cards_kept = int(match.group(2))
        player.cards_replaced_in_mulligan = DECK_CARD_COUNT - player.card_count - cards_kept

    def format_log_message(self, match: re.Match, game_state: GameState) -> Optional[str]:
        if not game_state.mulligan_active:
            return None

        player = game_state.get_player_by_name(match.group(1).strip())
        if player is None:
            return None
        return f"{player.name} replaced {player.cards_replaced_in_mulligan} cards in mulligan"

    def should_emit(self, game_state: GameState) -> bool:
        return game_state.mulligan_active


DISCOVER_START_PATTERN = re.compile(
    r'^\[Power\]\s+GameState\.DebugPrintEntityChoices\(\)\s+-\s+id=(\w+)\s+Player=(.*)\s+TaskList=.*\s+ChoiceType=GENERAL'
)
DISCOVER_SOURCE_PATTERN = re.compile(r'^\[Power\]\s+GameState\.DebugPrintEntityChoices\(\)\s-\s+Source=(.*)')
DISCOVER_OPTION_PATTERN = re.compile(r'^\[Power\]\s+GameState\.DebugPrintEntityChoices\(\)\s-\s+Entities\[([0-9]+)\]=(.*)')
DISCOVER_SHOWN_PATTERN = re.compile(r'^\[Power\]\s+ChoiceCardMgr\.WaitThenShowChoices\(\)\s+-\s+id=(\w+)\s+BEGIN')
DISCOVER_CHOSEN_PATTERN = re.compile(r'^\[Power\]\s+GameState\.DebugPrintEntitiesChosen\(\)\s+-\s+Entities\[([0-9]+)\]=(.*)')
DISCOVER_END_PATTERN = re.compile(
    r'^\[Power\]\s+ChoiceCardMgr\.WaitThenHideChoicesFromPacket\(\)\s+-\s+id=(\w+)\s+END\s+WAIT'
)


class DiscoveryParser(LineParser):
    """Follows a discover choice from registration to the player's pick.

    The lines arrive in order: choice registered, source, options, shown,
    chosen, hidden. Only GENERAL choices are discovers; mulligan choices
    are left to the mulligan parsers.
    """

    event_name = "discovery"

    def __init__(self) -> None:
        self._current: Optional[Discovery] = None

    def handle_line(self, emitter: "EventEmitter", game_state: GameState, line: str) -> bool:
        match = DISCOVER_START_PATTERN.match(line)
        if match:
            self._handle_start(emitter, game_state, match.group(1), match.group(2).strip())
            return True

        match = DISCOVER_SOURCE_PATTERN.match(line)
        if match:
            source = read_entity_string(match.group(1), game_state)
            if self._current and isinstance(source, CardEntity):
                self._current.source = EntityProps.from_entity(source)
            return True

        match = DISCOVER_OPTION_PATTERN.match(line)
        if match:
            option = read_entity_string(match.group(2), game_state)
            if self._current and isinstance(option, CardEntity):
                self._current.options.append(EntityProps.from_entity(option))
            return True

        match = DISCOVER_SHOWN_PATTERN.match(line)
        if match:
            self._handle_shown(emitter, game_state, match.group(1))
            return True

        match = DISCOVER_CHOSEN_PATTERN.match(line)
        if match:
            chosen = read_entity_string(match.group(2), game_state)
            if self._current and isinstance(chosen, CardEntity):
                self._current.chosen = EntityProps.from_entity(chosen)
            return True

        match = DISCOVER_END_PATTERN.match(line)
        if match:
            self._handle_end(emitter, game_state, match.group(1))
            return True

        return False

    def reset(self) -> None:
        self._current = None

    def _handle_start(self, emitter: "EventEmitter", game_state: GameState, choice_id: str, player_name: str) -> None:
        player = game_state.get_player_by_name(player_name)
        if player is None:
            return

        player.discovery = Discovery(id=choice_id)
        self._current = player.discovery
        self.logger.debug(f"Choice ID {choice_id} is registered for {player_name}")
        emitter.emit("choice-id")

    def _handle_shown(self, emitter: "EventEmitter", game_state: GameState, choice_id: str) -> None:
        player = next((p for p in game_state.players if p.discovery.id == choice_id), None)
        if player:
            player.discovery.enabled = True
            self.logger.debug(f"Discovery has started for choice ID {choice_id}")

        emitter.emit("discovery-start")

    def _handle_end(self, emitter: "EventEmitter", game_state: GameState, choice_id: str) -> None:
        player = next((p for p in game_state.players if p.discovery.id == choice_id), None)
        if player:
            player.discovery.enabled = False
            player.discover_history.append(copy.deepcopy(player.discovery))
            self.logger.debug(f"Discovery has ended for choice ID {choice_id}")

        emitter.emit("discovery-end")


BEGIN_PHASE_END_PATTERN = re.compile(
    r'\[LoadingScreen\] MulliganManager\.HandleGameStart\(\) - IsPastBeginPhase\(\)=False'
)


class CardInitParser(LineParser):
    """Adds the entities created at game start to the entity cache.

    Does nothing once the begin phase is over.
    """

    event_name = "card-init"

    def __init__(self) -> None:
        self._reader = FullEntityReader("[Power] GameState.DebugPrintPower() -")

    def handle_line(self, emitter: "EventEmitter", game_state: GameState, line: str) -> bool:
        if BEGIN_PHASE_END_PATTERN.search(line):
            game_state.begin_phase_active = False
            return True

        if game_state.active and game_state.begin_phase_active:
            _, result = self._reader.handle_line(line, game_state)
            if result:
                game_state.resolve_entity(result.entity)
                return True

        return False

    def reset(self) -> None:
        self._reader.reset()


def create_line_parsers() -> list[LineParser]:
    """Build a fresh parser chain in dispatch order."""
    from hearthwatch.match_log import MatchLogParser

    return [
        MatchLogParser(),
        GameOverLineParser(),
        GameStartLineParser(),
        NewPlayerLineParser(),
        TurnLineParser(),
        ZoneChangeLineParser(),
        TagChangeLineParser(),
        GameTagChangeLineParser(),
        MulliganStartParser(),
        DiscoveryParser(),
        MulliganResultParser(),
        CardInitParser(),
    ]
