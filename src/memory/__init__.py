"""Team game memory: associations, clue lifecycle, consensus and background thinking."""

from .config import MemoryConfig, DEFAULT_DISAGREEMENT_PHRASES
from .models import (
    WordAssociation,
    ClueMemory,
    ConflictMemory,
    ConsensusSnapshot,
    DiscussionRound,
    AgentPersonality,
    ThinkingResult,
    TeamGameMemory,
    ActiveClueView,
    InteractionAnalysis,
    WordRevealStatus,
    ClueOutcomeSummary,
    TeamPerformance,
    SpymasterStrategicInfo,
)
from .consensus import (
    DisagreementDetector,
    PhraseDisagreementDetector,
    analyze_round,
    compute_consensus,
    detect_conflicts,
)
from .store import GameNotFoundError, TeamMemoryStore
from .provider import GameRecordProvider, InMemoryGameRecordProvider
from .scheduler import PeriodicScheduler, ScheduledSession
from .thinking import BackgroundThinkingScheduler, SessionState, Thinker

__all__ = [
    # Config
    "MemoryConfig",
    "DEFAULT_DISAGREEMENT_PHRASES",
    # Models
    "WordAssociation",
    "ClueMemory",
    "ConflictMemory",
    "ConsensusSnapshot",
    "DiscussionRound",
    "AgentPersonality",
    "ThinkingResult",
    "TeamGameMemory",
    "ActiveClueView",
    "InteractionAnalysis",
    "WordRevealStatus",
    "ClueOutcomeSummary",
    "TeamPerformance",
    "SpymasterStrategicInfo",
    # Consensus
    "DisagreementDetector",
    "PhraseDisagreementDetector",
    "analyze_round",
    "compute_consensus",
    "detect_conflicts",
    # Store
    "GameNotFoundError",
    "TeamMemoryStore",
    # Records
    "GameRecordProvider",
    "InMemoryGameRecordProvider",
    # Scheduling
    "PeriodicScheduler",
    "ScheduledSession",
    "BackgroundThinkingScheduler",
    "SessionState",
    "Thinker",
]
