"""Read access to the authoritative game record."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.engine import GameRecord


class GameRecordProvider(ABC):
    """Source of game records. Team memory only reads through this."""

    @abstractmethod
    async def get_game(self, game_id: int) -> GameRecord | None:
        """Latest record for a game, or None if it does not exist."""
        pass


class InMemoryGameRecordProvider(GameRecordProvider):
    """Process-local record storage, standing in for the game layer."""

    def __init__(self) -> None:
        self._games: dict[int, GameRecord] = {}

    def save_game(self, record: GameRecord) -> GameRecord:
        """Store (or replace) a record."""
        self._games[record.game_id] = record.model_copy(deep=True)
        return record

    def update_game(self, record: GameRecord) -> GameRecord:
        if record.game_id not in self._games:
            raise ValueError(f"Game {record.game_id} not found")
        return self.save_game(record)

    def delete_game(self, game_id: int) -> None:
        self._games.pop(game_id, None)

    async def get_game(self, game_id: int) -> GameRecord | None:
        record = self._games.get(game_id)
        return record.model_copy(deep=True) if record is not None else None
