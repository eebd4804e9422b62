"""Clue lifecycle tracking: active clues, archives and the +1 guess rule."""

from __future__ import annotations

import logging
import time

from src.engine import GuessOutcome, HistoryEntry, clue_key

from .models import ClueMemory, TeamGameMemory

logger = logging.getLogger(__name__)


def open_or_update_clue(
    memory: TeamGameMemory,
    word: str,
    number: int,
    timestamp: float | None = None,
) -> ClueMemory:
    """
    Get the active clue for ``word``/``number``, creating it if absent.

    A clue that was archived is moved back to the active set; the next
    archive sweep puts it back if all of its words are still revealed.
    """
    if not word or not word.strip():
        raise ValueError("Clue word must not be empty")
    if number < 0:
        raise ValueError(f"Clue number must not be negative, got {number}")

    key = clue_key(word, number)
    clue = memory.active_clues.get(key)
    if clue is not None:
        return clue

    archived = memory.archived_clue(key)
    if archived is not None:
        memory.successful_clues = [c for c in memory.successful_clues if c is not archived]
        memory.failed_clues = [c for c in memory.failed_clues if c is not archived]
        memory.active_clues[key] = archived
        return archived

    clue = ClueMemory(
        clue=word,
        number=number,
        timestamp=timestamp if timestamp is not None else time.time(),
    )
    clue.refresh_remaining()
    memory.active_clues[key] = clue
    logger.info(f"New active clue for {memory.team.value} in game {memory.game_id}: {key}")
    return clue


def is_resolved(memory: TeamGameMemory, clue: ClueMemory) -> bool:
    """A clue is resolved once every word suggested for it has been revealed."""
    return bool(clue.suggested_words) and all(
        memory.is_revealed(word) for word in clue.suggested_words
    )


def archive_clue(memory: TeamGameMemory, key: str) -> ClueMemory:
    clue = memory.active_clues.pop(key)
    if clue.success:
        memory.successful_clues.append(clue)
    else:
        memory.failed_clues.append(clue)
    logger.info(
        f"Archived clue {key} for {memory.team.value} in game {memory.game_id} "
        f"({'successful' if clue.success else 'failed'})"
    )
    return clue


def archive_resolved_clues(memory: TeamGameMemory) -> list[str]:
    """Archive every active clue whose suggested words are all revealed.

    Running out of guesses never archives a clue on its own, so an
    unresolved clue stays available for later turns.
    """
    resolved = [
        key for key, clue in memory.active_clues.items()
        if is_resolved(memory, clue)
    ]
    for key in resolved:
        archive_clue(memory, key)
    return resolved


def apply_history(memory: TeamGameMemory, history: list[HistoryEntry]) -> None:
    """
    Replay the authoritative transcript into the team's clue memory.

    Each guess is attributed to the clue it names, or else to the team's
    most recent clue at or before it. Clues missing from memory are
    recreated, which lets a fresh memory rebuild itself from the record.
    """
    team_entries = sorted(
        (e for e in history if e.team == memory.team),
        key=lambda e: e.timestamp,
    )

    clues: dict[str, HistoryEntry] = {}
    guesses: dict[str, list[HistoryEntry]] = {}
    latest_key: str | None = None
    correct_total = 0
    incorrect_total = 0

    for entry in team_entries:
        if entry.kind == "clue":
            if not entry.word or entry.number is None or entry.number < 0:
                logger.warning(f"Skipping unparseable clue entry: {entry.content!r}")
                continue
            latest_key = clue_key(entry.word, entry.number)
            clues.setdefault(latest_key, entry)
            guesses.setdefault(latest_key, [])
            continue

        if not entry.word or entry.result is None:
            continue

        if entry.result == GuessOutcome.CORRECT:
            correct_total += 1
        else:
            incorrect_total += 1

        target = entry.related_clue if entry.related_clue in clues else latest_key
        if target is not None:
            guesses[target].append(entry)

    for key, clue_entry in clues.items():
        clue = memory.active_clues.get(key) or memory.archived_clue(key)
        if clue is None:
            clue = open_or_update_clue(
                memory, clue_entry.word, clue_entry.number, clue_entry.timestamp
            )

        correct = [g.word for g in guesses[key] if g.result == GuessOutcome.CORRECT]
        wrong = [g.word for g in guesses[key] if g.result != GuessOutcome.CORRECT]

        for word in [*correct, *wrong]:
            if word not in clue.guessed_words:
                clue.guessed_words.append(word)
        clue.refresh_remaining()
        clue.success = clue.success or bool(correct)
        clue.failure = clue.failure or bool(wrong)

    memory.correct_guesses = correct_total
    memory.incorrect_guesses = incorrect_total

    archive_resolved_clues(memory)


def most_recent_active_clue(memory: TeamGameMemory) -> ClueMemory | None:
    if not memory.active_clues:
        return None
    return max(memory.active_clues.values(), key=lambda c: c.timestamp)


def find_active_clue(memory: TeamGameMemory, clue: str) -> ClueMemory | None:
    """Look up an active clue by key (``"OCEAN (2)"``) or by word (``"ocean"``)."""
    if clue in memory.active_clues:
        return memory.active_clues[clue]
    word = clue.strip().upper()
    matches = [c for c in memory.active_clues.values() if c.clue.upper() == word]
    if not matches:
        return None
    return max(matches, key=lambda c: c.timestamp)


def apply_turn_result(
    memory: TeamGameMemory,
    word: str,
    outcome: GuessOutcome,
    key: str | None = None,
) -> ClueMemory | None:
    """
    Attribute one guess to a clue.

    Uses the clue named by ``key`` (a clue key or bare clue word) or the
    team's most recent active clue. The clue stays active across turns
    until all of its suggested words are revealed. Returns the clue that
    was updated, or None.
    """
    if key:
        clue = find_active_clue(memory, key)
        if clue is None:
            logger.warning(f"Guess {word!r} names clue {key!r}, which is not active; not recorded")
            return None
    else:
        clue = most_recent_active_clue(memory)
        if clue is None:
            logger.debug(f"No active clue to attribute guess {word!r} to")
            return None

    clue.add_guess(word)
    if outcome == GuessOutcome.CORRECT:
        clue.success = True
    else:
        clue.failure = True

    if is_resolved(memory, clue):
        archive_clue(memory, clue.key)
    return clue
