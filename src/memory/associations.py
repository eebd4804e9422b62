"""Word association ledger: per-word, per-clue support and risk."""

from __future__ import annotations

from collections.abc import Iterable

from src.engine import RiskLevel

from .models import AssociationStatus, TeamGameMemory, WordAssociation


def max_risk(a: RiskLevel, b: RiskLevel) -> RiskLevel:
    """Higher of two risk levels (Low < Medium < High)."""
    return a if a.rank >= b.rank else b


def association_status(
    revealed: bool,
    supporters: int,
    opposers: int,
) -> AssociationStatus:
    if revealed:
        return "guessed"
    if opposers > supporters:
        return "rejected"
    if supporters > 0:
        return "active"
    return "uncertain"


def _union(existing: list[str], new: Iterable[str]) -> list[str]:
    merged = list(existing)
    for item in new:
        if item not in merged:
            merged.append(item)
    return merged


def _apply_flags(assoc: WordAssociation, flags: dict[str, bool]) -> None:
    for name, value in flags.items():
        setattr(assoc, name, value)


def find_association(
    memory: TeamGameMemory, word: str, clue: str
) -> WordAssociation | None:
    for assoc in memory.word_associations.get(word, []):
        if assoc.clue == clue:
            return assoc
    return None


def upsert_association(
    memory: TeamGameMemory,
    word: str,
    clue: str,
    *,
    confidence: float,
    mentions: int,
    first_mentioned_at: float,
    last_mentioned_at: float,
    supporters: Iterable[str],
    opposers: Iterable[str],
    risk: RiskLevel,
) -> WordAssociation:
    """
    Record what a round said about ``word`` under ``clue``.

    An existing association is merged: confidence and timestamps take the
    max, mentions add up, supporters/opposers are unioned and risk only
    ever rises. A new association is appended to the word's sequence.
    """
    assoc = find_association(memory, word, clue)

    if assoc is None:
        assoc = WordAssociation(
            word=word,
            clue=clue,
            confidence=confidence,
            mention_count=mentions,
            first_mentioned_at=first_mentioned_at,
            last_mentioned_at=last_mentioned_at,
            supporters=_union([], supporters),
            opposers=_union([], opposers),
            risk=risk,
        )
        memory.word_associations.setdefault(word, []).append(assoc)
    else:
        assoc.confidence = max(assoc.confidence, confidence)
        assoc.mention_count += mentions
        assoc.last_mentioned_at = max(assoc.last_mentioned_at, last_mentioned_at)
        assoc.supporters = _union(assoc.supporters, supporters)
        assoc.opposers = _union(assoc.opposers, opposers)
        assoc.risk = max_risk(assoc.risk, risk)

    assoc.status = association_status(
        memory.is_revealed(word), len(assoc.supporters), len(assoc.opposers)
    )
    _apply_flags(assoc, memory.word_flags(word))
    return assoc


def refresh_associations(memory: TeamGameMemory) -> None:
    """Recompute status and word-type flags from the memory's current sets."""
    for word, associations in memory.word_associations.items():
        flags = memory.word_flags(word)
        revealed = memory.is_revealed(word)
        for assoc in associations:
            assoc.status = association_status(
                revealed, len(assoc.supporters), len(assoc.opposers)
            )
            _apply_flags(assoc, flags)


def refresh_related_words(memory: TeamGameMemory) -> None:
    """Link each association to the other words that share one of its clues."""
    words_by_clue: dict[str, set[str]] = {}
    for word, associations in memory.word_associations.items():
        for assoc in associations:
            words_by_clue.setdefault(assoc.clue, set()).add(word)

    for word, associations in memory.word_associations.items():
        for assoc in associations:
            assoc.related_words = sorted(words_by_clue[assoc.clue] - {word})
