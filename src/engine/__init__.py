from .models import Team, CardType, GuessOutcome, RiskLevel, ConsensusLevel
from .models import HistoryEntry, DiscussionEntry, GameRecord, parse_clue_content
from .game import (
    clue_key, team_words, opponent_words, get_unrevealed_words, is_team_turn,
    spymaster_model, classify_word, latest_clue, create_game_record,
    record_clue, record_guess, end_turn, add_discussion_entry, format_transcript,
)

__all__ = [
    "Team", "CardType", "GuessOutcome", "RiskLevel", "ConsensusLevel",
    "HistoryEntry", "DiscussionEntry", "GameRecord", "parse_clue_content",
    "clue_key", "team_words", "opponent_words", "get_unrevealed_words", "is_team_turn",
    "spymaster_model", "classify_word", "latest_clue", "create_game_record",
    "record_clue", "record_guess", "end_turn", "add_discussion_entry", "format_transcript",
]
