"""Consensus and conflict analysis for one discussion round."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field

from src.engine import ConsensusLevel, DiscussionEntry, RiskLevel, Team

from .associations import max_risk
from .config import MemoryConfig
from .models import (
    AgentPersonality, ConflictMemory, ConsensusSnapshot, DiscussionRound,
    TeamGameMemory,
)

logger = logging.getLogger(__name__)


class DisagreementDetector(ABC):
    """Decides whether a later message argues against an earlier suggestion."""

    @abstractmethod
    def disagrees(self, earlier: DiscussionEntry, later: DiscussionEntry) -> bool:
        pass


class PhraseDisagreementDetector(DisagreementDetector):
    """
    Flags a disagreement when the later message names the earlier
    suggestion and contains one of a fixed set of objection phrases.

    This is a heuristic: sarcasm and negated objections are misread.
    """

    def __init__(self, phrases: list[str]):
        self.phrases = [p.lower() for p in phrases]

    def disagrees(self, earlier: DiscussionEntry, later: DiscussionEntry) -> bool:
        if not earlier.suggested_word:
            return False
        message = later.message.lower()
        if earlier.suggested_word.lower() not in message:
            return False
        return any(phrase in message for phrase in self.phrases)


@dataclass
class WordSupport:
    """Running tally for one suggested word within a round."""
    word: str
    risk: RiskLevel
    first_mentioned: float
    last_mentioned: float
    mentions: int = 0
    confidence_mass: float = 0.0
    supporters: list[str] = field(default_factory=list)
    opposers: list[str] = field(default_factory=list)

    @property
    def avg_confidence(self) -> float:
        return self.confidence_mass / max(1, len(self.supporters))


@dataclass
class RankedCandidate:
    word: str
    supporters: int
    opposers: int
    net_support: int
    support_ratio: float
    support_percentage: float
    avg_confidence: float


@dataclass
class ConsensusResult:
    word: str | None
    level: ConsensusLevel
    ranking: list[RankedCandidate] = field(default_factory=list)


@dataclass
class RoundAnalysis:
    entries: list[DiscussionEntry]
    suggestions: dict[str, WordSupport]
    conflicts: list[ConflictMemory]
    participants: list[str]
    consensus: ConsensusResult


def select_round_entries(
    entries: list[DiscussionEntry],
    team: Team,
    current_round: int,
) -> list[DiscussionEntry]:
    """Entries for this team and round; entries without a round count as current."""
    selected = [
        e for e in entries
        if e.team == team and (e.round is None or e.round == current_round)
    ]
    return sorted(selected, key=lambda e: e.timestamp)


def aggregate_suggestions(
    entries: list[DiscussionEntry],
    revealed: set[str],
    config: MemoryConfig,
) -> dict[str, WordSupport]:
    """
    Tally support per unrevealed suggested word.

    A speaker supports a word at confidence >= support_threshold and opposes
    it below oppose_threshold; anything in between only counts as a mention.
    """
    suggestions: dict[str, WordSupport] = {}

    for entry in entries:
        word = entry.suggested_word
        if not word or word in revealed:
            continue

        support = suggestions.get(word)
        if support is None:
            support = WordSupport(
                word=word,
                risk=entry.risk or config.default_risk,
                first_mentioned=entry.timestamp,
                last_mentioned=entry.timestamp,
            )
            suggestions[word] = support

        support.mentions += 1
        support.last_mentioned = max(support.last_mentioned, entry.timestamp)

        if entry.confidence >= config.support_threshold:
            if entry.agent_id not in support.supporters:
                support.supporters.append(entry.agent_id)
            support.confidence_mass += entry.confidence
        elif entry.confidence < config.oppose_threshold:
            if entry.agent_id not in support.opposers:
                support.opposers.append(entry.agent_id)

        if entry.risk is not None:
            support.risk = max_risk(support.risk, entry.risk)

    return suggestions


def detect_conflicts(
    entries: list[DiscussionEntry],
    detector: DisagreementDetector,
) -> list[ConflictMemory]:
    """Find pairs of suggestions that different agents argued over."""
    conflicts: list[ConflictMemory] = []

    for i, later in enumerate(entries):
        for earlier in entries[:i]:
            if earlier.agent_id == later.agent_id or not earlier.suggested_word:
                continue
            if earlier.suggested_word == later.suggested_word:
                continue
            if not detector.disagrees(earlier, later):
                continue
            if any(c.matches(earlier.suggested_word, later.suggested_word) for c in conflicts):
                continue

            conflicts.append(ConflictMemory(
                word_a=earlier.suggested_word,
                word_b=later.suggested_word,
                agent_a=earlier.agent_id,
                agent_b=later.agent_id,
                timestamp=later.timestamp,
            ))
            logger.debug(
                f"Conflict between {earlier.suggested_word!r} and {later.suggested_word!r} "
                f"({earlier.agent_id} vs {later.agent_id})"
            )

    return conflicts


def rank_candidates(
    suggestions: dict[str, WordSupport],
    total_participants: int,
) -> list[RankedCandidate]:
    """Order candidates by net support, then support ratio, then confidence."""
    ranking = []
    for word, support in suggestions.items():
        supporters = len(support.supporters)
        opposers = len(support.opposers)
        ranking.append(RankedCandidate(
            word=word,
            supporters=supporters,
            opposers=opposers,
            net_support=supporters - opposers,
            support_ratio=supporters / max(1, opposers),
            support_percentage=supporters / max(1, total_participants),
            avg_confidence=support.avg_confidence,
        ))

    ranking.sort(
        key=lambda c: (c.net_support, c.support_ratio, c.avg_confidence),
        reverse=True,
    )
    return ranking


def classify_consensus(candidate: RankedCandidate) -> ConsensusLevel:
    supporters = candidate.supporters
    share = candidate.support_percentage
    if supporters >= 3 or (supporters >= 2 and share >= 0.7):
        return ConsensusLevel.HIGH
    if supporters >= 2 or (supporters >= 1 and share >= 0.5):
        return ConsensusLevel.MEDIUM
    if supporters >= 1:
        return ConsensusLevel.LOW
    return ConsensusLevel.NONE


def compute_consensus(
    suggestions: dict[str, WordSupport],
    total_participants: int,
) -> ConsensusResult:
    ranking = rank_candidates(suggestions, total_participants)
    if not ranking:
        return ConsensusResult(word=None, level=ConsensusLevel.NONE)
    top = ranking[0]
    return ConsensusResult(word=top.word, level=classify_consensus(top), ranking=ranking)


def analyze_round(
    entries: list[DiscussionEntry],
    revealed: set[str],
    config: MemoryConfig,
    detector: DisagreementDetector,
) -> RoundAnalysis:
    """Run aggregation, conflict detection and consensus over a round's entries."""
    participants: list[str] = []
    for entry in entries:
        if entry.suggested_word and entry.agent_id not in participants:
            participants.append(entry.agent_id)

    suggestions = aggregate_suggestions(entries, revealed, config)
    return RoundAnalysis(
        entries=entries,
        suggestions=suggestions,
        conflicts=detect_conflicts(entries, detector),
        participants=participants,
        consensus=compute_consensus(suggestions, len(participants)),
    )


def build_round_record(
    analysis: RoundAnalysis,
    round_number: int,
    clue: str | None,
    timestamp: float,
) -> DiscussionRound:
    consensus = analysis.consensus
    top = analysis.suggestions.get(consensus.word) if consensus.word else None
    return DiscussionRound(
        round=round_number,
        timestamp=timestamp,
        clue=clue,
        word_suggestions=list(analysis.suggestions),
        word_supporters={
            word: list(support.supporters)
            for word, support in analysis.suggestions.items()
        },
        conflicts=analysis.conflicts,
        consensus=ConsensusSnapshot(
            reached=consensus.level == ConsensusLevel.HIGH,
            word=consensus.word,
            support_level=consensus.level,
            supporters=list(top.supporters) if top else [],
            opposers=list(top.opposers) if top else [],
        ),
    )


def _risk_tolerance(history: list[RiskLevel]) -> str:
    counts = Counter(history)
    high, medium, low = (counts[RiskLevel.HIGH], counts[RiskLevel.MEDIUM], counts[RiskLevel.LOW])
    if high > medium and high > low:
        return "conservative"
    if low > high and low > medium:
        return "aggressive"
    return "balanced"


def update_agent_personalities(
    memory: TeamGameMemory,
    entries: list[DiscussionEntry],
    clue: str,
    config: MemoryConfig,
) -> None:
    """
    Fold a round's entries into each speaking agent's profile.

    Risk tolerance is a majority vote over the agent's recent risk labels.
    Agreement with another agent goes up for every matching suggestion in
    the round and down by half as much for every differing one.
    """
    for entry in entries:
        personality = memory.agent_personalities.get(entry.agent_id)
        if personality is None:
            personality = AgentPersonality(agent_id=entry.agent_id)
            memory.agent_personalities[entry.agent_id] = personality

        if not entry.suggested_word:
            continue

        if entry.risk is not None:
            personality.risk_history.append(entry.risk)
            del personality.risk_history[:-config.risk_history_window]
            personality.risk_tolerance = _risk_tolerance(personality.risk_history)

        if entry.message:
            words = personality.word_associations.setdefault(clue, [])
            if entry.suggested_word not in words:
                words.append(entry.suggested_word)

        for other in entries:
            if other.agent_id == entry.agent_id or not other.suggested_word:
                continue
            score = personality.agreement_with.get(other.agent_id, 0.0)
            if other.suggested_word == entry.suggested_word:
                score += config.agreement_increment
            else:
                score -= config.disagreement_decrement
            personality.agreement_with[other.agent_id] = score
