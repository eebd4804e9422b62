"""Configuration for team memory heuristics and background thinking."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from src.engine import RiskLevel


DEFAULT_DISAGREEMENT_PHRASES = [
    "disagree", "don't think", "not sure", "too risky",
    "instead of", "rather than", "better than", "prefer",
    "no, ", "not ", "unlike", "contrary", "dispute",
]


class MemoryConfig(BaseModel):
    """Tunable thresholds for consensus, conflicts and scheduling.

    The defaults are empirically tuned values, not derived optima.
    """

    # Suggestion classification
    support_threshold: float = 0.6  # confidence >= this counts as support
    oppose_threshold: float = 0.3  # confidence < this counts as opposition
    default_risk: RiskLevel = RiskLevel.MEDIUM

    # Conflict detection
    disagreement_phrases: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DISAGREEMENT_PHRASES)
    )

    # Agent personalities
    agreement_increment: float = 1.0
    disagreement_decrement: float = 0.5
    risk_history_window: int = 5

    # Interaction analysis
    pair_agreement_threshold: float = 2.0
    influencer_min_suggestions: int = 3
    influencer_acceptance_rate: float = 0.7

    # Background thinking
    thinking_interval_seconds: float = 30.0
    think_timeout_seconds: float = 60.0
    thinking_temperature: float = 0.7
    thinking_history_limit: int = 10

    @classmethod
    def from_env(cls, **overrides) -> "MemoryConfig":
        """Build a config, letting environment variables override defaults."""
        env_fields = {
            "MEMORY_THINKING_INTERVAL": "thinking_interval_seconds",
            "MEMORY_THINK_TIMEOUT": "think_timeout_seconds",
            "MEMORY_SUPPORT_THRESHOLD": "support_threshold",
            "MEMORY_OPPOSE_THRESHOLD": "oppose_threshold",
        }
        values: dict[str, float] = {}
        for env_name, field_name in env_fields.items():
            raw = os.environ.get(env_name)
            if raw:
                values[field_name] = float(raw)
        values.update(overrides)
        return cls(**values)
