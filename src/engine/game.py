"""Helpers over the authoritative game record.

The memory engine never mutates a record it is handed. The ``record_*``
helpers return updated copies and exist for the in-memory record provider,
scripts and tests, which stand in for the hosting game layer.
"""

from __future__ import annotations

import time

from .models import (
    CardType, DiscussionEntry, GameRecord, GuessOutcome, HistoryEntry, Team,
)


def clue_key(word: str, number: int) -> str:
    """Canonical key for a clue, e.g. ``"OCEAN (2)"``."""
    return f"{word} ({number})"


def team_words(record: GameRecord, team: Team) -> list[str]:
    """Get all words owned by a team."""
    return list(record.red_words if team == Team.RED else record.blue_words)


def opponent_words(record: GameRecord, team: Team) -> list[str]:
    """Get all words owned by the other team."""
    return team_words(record, team.other)


def get_unrevealed_words(record: GameRecord, team: Team) -> list[str]:
    """Get unrevealed words for a team."""
    revealed = set(record.revealed_cards)
    return [w for w in team_words(record, team) if w not in revealed]


def is_team_turn(record: GameRecord, team: Team) -> bool:
    return record.current_turn == team


def spymaster_model(record: GameRecord, team: Team) -> str | None:
    """Model configured as the team's spymaster, or None."""
    return record.red_spymaster if team == Team.RED else record.blue_spymaster


def classify_word(record: GameRecord, word: str) -> CardType | None:
    """Card type of a board word, None if the word is not on the board."""
    if word == record.assassin:
        return CardType.ASSASSIN
    if word in record.red_words:
        return CardType.RED
    if word in record.blue_words:
        return CardType.BLUE
    if word in record.neutral_words:
        return CardType.NEUTRAL
    return None


def latest_clue(record: GameRecord, team: Team) -> HistoryEntry | None:
    """Most recent clue given by a team."""
    for entry in reversed(record.history):
        if entry.kind == "clue" and entry.team == team:
            return entry
    return None


def create_game_record(
    game_id: int,
    red_words: list[str],
    blue_words: list[str],
    neutral_words: list[str],
    assassin: str,
    starting_team: Team = Team.RED,
    red_spymaster: str | None = None,
    blue_spymaster: str | None = None,
) -> GameRecord:
    """Create a fresh record with the board laid out in key order."""
    words = [*red_words, *blue_words, *neutral_words, assassin]
    if len(set(words)) != len(words):
        raise ValueError("Board words must be unique")

    return GameRecord(
        game_id=game_id,
        words=words,
        red_words=list(red_words),
        blue_words=list(blue_words),
        neutral_words=list(neutral_words),
        assassin=assassin,
        current_turn=starting_team,
        red_spymaster=red_spymaster,
        blue_spymaster=blue_spymaster,
    )


def record_clue(
    record: GameRecord,
    word: str,
    number: int,
    timestamp: float | None = None,
) -> GameRecord:
    """Append a clue for the team whose turn it is."""
    if record.winner is not None:
        raise ValueError("Game is already over")

    new_record = record.model_copy(deep=True)
    new_record.history.append(HistoryEntry(
        kind="clue",
        team=record.current_turn,
        timestamp=timestamp if timestamp is not None else time.time(),
        content=clue_key(word, number),
        word=word,
        number=number,
    ))
    return new_record


def record_guess(
    record: GameRecord,
    word: str,
    timestamp: float | None = None,
) -> tuple[GameRecord, GuessOutcome]:
    """
    Reveal a guessed word for the team whose turn it is.

    Applies the scoring the hosting game layer uses: +1 to the guessing team
    for its own word, +1 to the other team for theirs, nothing for neutral.
    A wrong guess or the assassin ends the turn; the assassin also ends the
    game in the other team's favour.

    Returns:
        (new_record, outcome)
    """
    if record.winner is not None:
        raise ValueError("Game is already over")

    card_type = classify_word(record, word)
    if card_type is None:
        raise ValueError(f"'{word}' is not on the board")
    if word in record.revealed_cards:
        raise ValueError(f"'{word}' is already revealed")

    team = record.current_turn
    own_type = CardType.RED if team == Team.RED else CardType.BLUE

    if card_type == CardType.ASSASSIN:
        outcome = GuessOutcome.ASSASSIN
    elif card_type == own_type:
        outcome = GuessOutcome.CORRECT
    else:
        outcome = GuessOutcome.WRONG

    clue = latest_clue(record, team)

    new_record = record.model_copy(deep=True)
    new_record.revealed_cards.append(word)
    new_record.history.append(HistoryEntry(
        kind="guess",
        team=team,
        timestamp=timestamp if timestamp is not None else time.time(),
        content=word,
        word=word,
        result=outcome,
        related_clue=clue.content if clue is not None else None,
    ))

    if card_type == CardType.RED:
        new_record.red_score += 1
    elif card_type == CardType.BLUE:
        new_record.blue_score += 1

    if outcome == GuessOutcome.ASSASSIN:
        new_record.winner = team.other
        return new_record, outcome

    for candidate in (Team.RED, Team.BLUE):
        if not get_unrevealed_words(new_record, candidate):
            new_record.winner = candidate
            return new_record, outcome

    if outcome == GuessOutcome.WRONG:
        new_record.current_turn = team.other

    return new_record, outcome


def end_turn(record: GameRecord) -> GameRecord:
    """End the current turn and switch to the other team."""
    new_record = record.model_copy(deep=True)
    new_record.current_turn = record.current_turn.other
    return new_record


def add_discussion_entry(record: GameRecord, entry: DiscussionEntry) -> GameRecord:
    """Append a discussion message to the record."""
    new_record = record.model_copy(deep=True)
    new_record.team_discussion.append(entry)
    return new_record


def format_transcript(history: list[HistoryEntry]) -> str:
    """Format the clue/guess transcript for prompts."""
    if not history:
        return "(No moves yet - this is the first turn)"

    lines = []
    for entry in history:
        if entry.kind == "clue":
            lines.append(f"{entry.team.value} Clue: {entry.word} ({entry.number})")
        else:
            result = entry.result.value.upper() if entry.result else "UNKNOWN"
            lines.append(f"{entry.team.value} guessed {entry.word} -> {result}")
    return "\n".join(lines)
