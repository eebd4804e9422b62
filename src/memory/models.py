"""Data models for per-team game memory."""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, Field

from src.engine import ConsensusLevel, RiskLevel, Team, clue_key


AssociationStatus = Literal["active", "guessed", "rejected", "uncertain"]
RiskTolerance = Literal["conservative", "balanced", "aggressive"]


class WordAssociation(BaseModel):
    """What the team has said about one word under one clue."""
    word: str
    clue: str
    confidence: float = 0.0
    mention_count: int = 0
    first_mentioned_at: float = Field(default_factory=time.time)
    last_mentioned_at: float = Field(default_factory=time.time)
    supporters: list[str] = Field(default_factory=list)
    opposers: list[str] = Field(default_factory=list)
    risk: RiskLevel = RiskLevel.MEDIUM
    related_words: list[str] = Field(default_factory=list)
    status: AssociationStatus = "uncertain"

    # Derived from the owning memory's word sets; rewritten on every update
    is_team_word: bool = False
    is_opponent_word: bool = False
    is_neutral_word: bool = False
    is_assassin: bool = False


class ClueMemory(BaseModel):
    """Lifecycle record of one clue given to the team."""
    clue: str
    number: int
    timestamp: float = Field(default_factory=time.time)
    suggested_words: list[str] = Field(default_factory=list)
    guessed_words: list[str] = Field(default_factory=list)
    remaining_guesses: int = 0
    success: bool = False
    failure: bool = False

    @property
    def key(self) -> str:
        return clue_key(self.clue, self.number)

    def refresh_remaining(self) -> None:
        """Apply the +1 rule: a team may guess once beyond the clue number."""
        self.remaining_guesses = max(0, self.number + 1 - len(self.guessed_words))

    def add_guess(self, word: str) -> None:
        if word not in self.guessed_words:
            self.guessed_words.append(word)
        self.refresh_remaining()


class ConflictMemory(BaseModel):
    """Two suggestions that agents argued over. Resolution is one-way."""
    word_a: str
    word_b: str | None = None  # None when the objecting agent offered no alternative
    agent_a: str
    agent_b: str
    resolved: bool = False
    resolved_by: str | None = None
    resolution: str | None = None
    timestamp: float = Field(default_factory=time.time)

    @property
    def pair(self) -> frozenset[str | None]:
        return frozenset((self.word_a, self.word_b))

    def matches(self, word_a: str | None, word_b: str | None) -> bool:
        return self.pair == frozenset((word_a, word_b))


class ConsensusSnapshot(BaseModel):
    reached: bool = False
    word: str | None = None
    support_level: ConsensusLevel = ConsensusLevel.NONE
    supporters: list[str] = Field(default_factory=list)
    opposers: list[str] = Field(default_factory=list)


class DiscussionRound(BaseModel):
    """Outcome of one discussion round, appended to history once."""
    round: int
    timestamp: float = Field(default_factory=time.time)
    clue: str | None = None
    word_suggestions: list[str] = Field(default_factory=list)
    word_supporters: dict[str, list[str]] = Field(default_factory=dict)
    conflicts: list[ConflictMemory] = Field(default_factory=list)
    consensus: ConsensusSnapshot = Field(default_factory=ConsensusSnapshot)


class AgentPersonality(BaseModel):
    agent_id: str
    risk_tolerance: RiskTolerance = "balanced"
    risk_history: list[RiskLevel] = Field(default_factory=list)
    word_associations: dict[str, list[str]] = Field(default_factory=dict)  # clue -> words
    agreement_with: dict[str, float] = Field(default_factory=dict)


class ThinkingResult(BaseModel):
    """A clue the spymaster worked out in the background."""
    team: Team
    clue: str | None = None
    number: int | None = None
    targets: list[str] = Field(default_factory=list)
    reasoning: str = ""
    model: str = ""
    raw_response: str = ""
    latency_ms: float = 0.0
    timestamp: float = Field(default_factory=time.time)


class TeamGameMemory(BaseModel):
    """Strategic state for one team in one game.

    Owned by TeamMemoryStore. Everything handed to callers is a copy.
    """
    game_id: int
    team: Team

    # Mirror of the authoritative record
    board_words: list[str] = Field(default_factory=list)
    team_words: list[str] = Field(default_factory=list)
    opponent_words: list[str] = Field(default_factory=list)
    revealed_cards: list[str] = Field(default_factory=list)
    assassin_word: str = ""
    scores: dict[Team, int] = Field(default_factory=lambda: {Team.RED: 0, Team.BLUE: 0})
    current_team: Team = Team.RED

    # Strategic memory
    active_clues: dict[str, ClueMemory] = Field(default_factory=dict)
    word_associations: dict[str, list[WordAssociation]] = Field(default_factory=dict)
    discussion_history: list[DiscussionRound] = Field(default_factory=list)
    agent_personalities: dict[str, AgentPersonality] = Field(default_factory=dict)

    # Statistics
    correct_guesses: int = 0
    incorrect_guesses: int = 0
    successful_clues: list[ClueMemory] = Field(default_factory=list)
    failed_clues: list[ClueMemory] = Field(default_factory=list)

    # Background thinking
    planned_clue: ThinkingResult | None = None
    thinking_history: list[ThinkingResult] = Field(default_factory=list)

    game_start_time: float = Field(default_factory=time.time)
    last_update_time: float = Field(default_factory=time.time)

    def is_revealed(self, word: str) -> bool:
        return word in self.revealed_cards

    def word_flags(self, word: str) -> dict[str, bool]:
        """Exactly one of the four flags is True for any word."""
        is_assassin = bool(self.assassin_word) and word == self.assassin_word
        is_team = not is_assassin and word in self.team_words
        is_opponent = not is_assassin and not is_team and word in self.opponent_words
        return {
            "is_team_word": is_team,
            "is_opponent_word": is_opponent,
            "is_neutral_word": not (is_assassin or is_team or is_opponent),
            "is_assassin": is_assassin,
        }

    def vocabulary(self) -> list[str]:
        """Every word this team knows about: the board plus anything discussed."""
        words = list(self.board_words)
        seen = set(words)
        for word in [*self.team_words, *self.opponent_words, *self.word_associations]:
            if word not in seen:
                seen.add(word)
                words.append(word)
        return words

    def archived_clue(self, key: str) -> ClueMemory | None:
        for clue in [*self.successful_clues, *self.failed_clues]:
            if clue.key == key:
                return clue
        return None


# Query results

class ActiveClueView(BaseModel):
    clue: str
    number: int
    key: str
    remaining_guesses: int
    suggested_words: list[str]  # unrevealed, most confident first
    guessed_words: list[str]
    timestamp: float


class InteractionAnalysis(BaseModel):
    strong_pairs: list[tuple[str, str]] = Field(default_factory=list)
    conflicting_pairs: list[tuple[str, str]] = Field(default_factory=list)
    influencers: list[str] = Field(default_factory=list)
    conservatives: list[str] = Field(default_factory=list)
    balanced: list[str] = Field(default_factory=list)
    risk_takers: list[str] = Field(default_factory=list)


class WordRevealStatus(BaseModel):
    word: str
    revealed: bool


class ClueOutcomeSummary(BaseModel):
    clue: str
    words: list[str]


class TeamPerformance(BaseModel):
    correct_guess_rate: float = 0.0
    average_guesses_per_clue: float = 0.0


class SpymasterStrategicInfo(BaseModel):
    team: Team
    team_words: list[WordRevealStatus]
    opponent_words: list[WordRevealStatus]
    neutral_words: list[WordRevealStatus]
    assassin_word: str
    successful_clues: list[ClueOutcomeSummary]
    failed_clues: list[ClueOutcomeSummary]
    team_performance: TeamPerformance
    planned_clue: ThinkingResult | None = None
