"""Background spymaster thinking sessions, one per (game, team)."""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Awaitable, Callable, Protocol

from src.engine import (
    GameRecord, Team, get_unrevealed_words, is_team_turn, spymaster_model,
)

from .config import MemoryConfig
from .models import ActiveClueView, SpymasterStrategicInfo, ThinkingResult
from .provider import GameRecordProvider
from .scheduler import PeriodicScheduler, ScheduledSession
from .store import TeamMemoryStore

logger = logging.getLogger(__name__)

SessionKey = tuple[int, Team]


class Thinker(Protocol):
    async def think(
        self,
        record: GameRecord,
        team: Team,
        strategic: SpymasterStrategicInfo | None = None,
        active_clues: list[ActiveClueView] | None = None,
    ) -> ThinkingResult: ...


class SessionState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class BackgroundThinkingScheduler:
    """
    Keeps each team's spymaster planning while the other team plays.

    A running session reloads the game record every interval, skips ticks
    during its own team's turn, ends itself once the team has no words left,
    and otherwise syncs memory and asks the thinker for a clue. Generation
    failures are logged and the session carries on.
    """

    def __init__(
        self,
        store: TeamMemoryStore,
        records: GameRecordProvider,
        thinker: Thinker,
        config: MemoryConfig | None = None,
        scheduler: PeriodicScheduler[SessionKey] | None = None,
    ):
        self.store = store
        self.records = records
        self.thinker = thinker
        self.config = config or store.config
        self._scheduler: PeriodicScheduler[SessionKey] = scheduler or PeriodicScheduler()
        # Token of the latest start per key; stop removes it
        self._generations: dict[SessionKey, int] = {}
        self._next_generation = itertools.count(1)

    def state(self, game_id: int, team: Team) -> SessionState:
        if self._scheduler.is_running((game_id, team)):
            return SessionState.RUNNING
        return SessionState.IDLE

    def session(self, game_id: int, team: Team) -> ScheduledSession[SessionKey] | None:
        return self._scheduler.current((game_id, team))

    async def start(
        self,
        game_id: int,
        team: Team,
        skip_first: bool = False,
    ) -> SessionState:
        """
        Start (or restart) background thinking for a team.

        Unless ``skip_first`` is set, one thinking update runs immediately
        before the periodic session is registered.
        """
        key = (game_id, team)
        self.stop(game_id, team)
        generation = next(self._next_generation)
        self._generations[key] = generation

        record = await self.records.get_game(game_id)
        if record is None:
            logger.warning(f"Cannot start spymaster thinking - game {game_id} not found")
            self._release(key, generation)
            return SessionState.IDLE

        if not spymaster_model(record, team):
            logger.info(f"No spymaster model configured for {team.value} in game {game_id}")
            self._release(key, generation)
            return SessionState.IDLE

        if not get_unrevealed_words(record, team):
            logger.info(f"All {team.value} words revealed, skipping background thinking")
            self._release(key, generation)
            return SessionState.IDLE

        if not skip_first:
            await self._scheduler.run_once(
                key,
                lambda: self._think(game_id, team, record, lambda: self._is_generation(key, generation)),
            )

        if not self._is_generation(key, generation):
            logger.debug(f"Start for {key} superseded before registering")
            return self.state(game_id, team)

        self._scheduler.start(
            key,
            self.config.thinking_interval_seconds,
            lambda session: self._tick(session, game_id, team),
        )
        logger.info(f"Started background thinking for {team.value} spymaster in game {game_id}")
        return SessionState.RUNNING

    def stop(self, game_id: int, team: Team) -> bool:
        """Stop a team's session. Stopping an idle team is a no-op."""
        key = (game_id, team)
        self._generations.pop(key, None)
        stopped = self._scheduler.stop(key)
        if stopped:
            logger.info(f"Stopped background thinking for {team.value} in game {game_id}")
        return stopped

    async def restart_all(self, game_id: int) -> None:
        """Restart thinking for both teams of a game."""
        for team in (Team.RED, Team.BLUE):
            self.stop(game_id, team)
        for team in (Team.RED, Team.BLUE):
            await self.start(game_id, team)

    async def shutdown(self) -> None:
        for game_id, team in {*self._scheduler.keys(), *self._generations}:
            self.stop(game_id, team)
        await self._scheduler.shutdown()

    def _is_generation(self, key: SessionKey, generation: int) -> bool:
        return self._generations.get(key) == generation

    def _release(self, key: SessionKey, generation: int) -> None:
        if self._is_generation(key, generation):
            del self._generations[key]

    def tracked_keys(self) -> list[SessionKey]:
        """Keys with a live or starting session."""
        return list(self._generations)

    def _end_session(self, session: ScheduledSession[SessionKey]) -> None:
        if self._scheduler.current(session.key) is session:
            self.stop(*session.key)
        else:
            session.cancel()

    async def _tick(self, session: ScheduledSession[SessionKey], game_id: int, team: Team) -> None:
        record = await self.records.get_game(game_id)
        if record is None:
            logger.warning(f"Game {game_id} disappeared, stopping background thinking")
            self._end_session(session)
            return

        if is_team_turn(record, team):
            logger.debug(f"Skipping background thinking for {team.value} - it's their turn")
            return

        if not get_unrevealed_words(record, team):
            logger.info(f"All {team.value} words revealed, stopping background thinking")
            self._end_session(session)
            return

        await self._think(game_id, team, record, lambda: not session.cancelled)

    async def _think(
        self,
        game_id: int,
        team: Team,
        record: GameRecord,
        is_current: Callable[[], bool],
    ) -> None:
        self.store.sync(game_id, record)
        strategic = self.store.get_spymaster_strategic_info(game_id, team)
        active_clues = self.store.get_active_clues(game_id, team)

        thinking: Awaitable[ThinkingResult] = self.thinker.think(
            record, team, strategic, active_clues
        )
        try:
            result = await asyncio.wait_for(thinking, timeout=self.config.think_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Background thinking for {team.value} in game {game_id} timed out "
                f"after {self.config.think_timeout_seconds}s"
            )
            return
        except Exception as e:
            logger.warning(f"Background thinking for {team.value} in game {game_id} failed: {e}")
            return

        if not is_current():
            logger.debug(f"Discarding thinking result for {team.value} in game {game_id}: session stopped")
            return

        self.store.record_thinking(game_id, team, result)
        if result.clue is None:
            logger.warning(f"Spymaster for {team.value} in game {game_id} gave no parseable clue")
        else:
            logger.info(
                f"Spymaster for {team.value} in game {game_id} planned "
                f"{result.clue} ({result.number})"
            )
