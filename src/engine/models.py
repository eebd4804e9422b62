"""Data models for the authoritative game record consumed by team memory."""

from __future__ import annotations

import re
import time
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class Team(str, Enum):
    """Team enumeration."""
    RED = "RED"
    BLUE = "BLUE"

    @property
    def other(self) -> "Team":
        return Team.BLUE if self == Team.RED else Team.RED


class CardType(str, Enum):
    """Card type enumeration."""
    RED = "RED"
    BLUE = "BLUE"
    NEUTRAL = "NEUTRAL"
    ASSASSIN = "ASSASSIN"


class GuessOutcome(str, Enum):
    """Result of a single guess from the guessing team's point of view."""
    CORRECT = "correct"
    WRONG = "wrong"
    ASSASSIN = "assassin"


class RiskLevel(str, Enum):
    """Risk label attached to a suggestion. Ordered Low < Medium < High."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return _RISK_ORDER[self]


_RISK_ORDER = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


_CLUE_CONTENT_RE = re.compile(r"^\s*(.+?)\s*\((-?\d+)\)\s*$")


def parse_clue_content(content: str) -> tuple[str, int] | None:
    """Parse clue text of the form "WORD (N)" into (word, number)."""
    match = _CLUE_CONTENT_RE.match(content or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


class ConsensusLevel(str, Enum):
    """How strongly a round's agents agree on one word."""
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Transcript entries

class HistoryEntry(BaseModel):
    """One clue or guess in the authoritative game transcript.

    Clue entries carry the clue word and number. Older records only have the
    textual form "WORD (N)" in ``content``; the number is parsed from it.
    """
    kind: Literal["clue", "guess"]
    team: Team
    timestamp: float = Field(default_factory=time.time)
    content: str = ""
    word: str | None = None
    number: int | None = None
    result: GuessOutcome | None = None
    related_clue: str | None = None  # clue key "WORD (N)" for guesses

    @model_validator(mode="after")
    def fill_clue_fields(self) -> "HistoryEntry":
        if self.kind == "clue" and (self.word is None or self.number is None):
            parsed = parse_clue_content(self.content)
            if parsed is not None:
                if self.word is None:
                    self.word = parsed[0]
                if self.number is None:
                    self.number = parsed[1]
        return self


class DiscussionEntry(BaseModel):
    """A single agent message during a team's discussion."""
    team: Team
    agent_id: str
    message: str = ""
    suggested_word: str | None = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    risk: RiskLevel | None = None
    round: int | None = None
    timestamp: float = Field(default_factory=time.time)

    @field_validator("suggested_word")
    @classmethod
    def blank_suggestion_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class GameRecord(BaseModel):
    """Authoritative game state as owned by the hosting game layer.

    Team memory only ever reads this record.
    """
    game_id: int
    words: list[str] = Field(default_factory=list)
    red_words: list[str] = Field(default_factory=list)
    blue_words: list[str] = Field(default_factory=list)
    neutral_words: list[str] = Field(default_factory=list)
    assassin: str = ""
    current_turn: Team = Team.RED
    red_score: int = 0
    blue_score: int = 0
    red_spymaster: str | None = None  # model name, None when human/unset
    blue_spymaster: str | None = None
    revealed_cards: list[str] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)
    team_discussion: list[DiscussionEntry] = Field(default_factory=list)
    winner: Team | None = None
