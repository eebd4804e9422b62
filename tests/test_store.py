"""Tests for the team memory store."""

import threading

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.engine import (
    ConsensusLevel, DiscussionEntry, GuessOutcome, RiskLevel, Team,
    create_game_record, record_clue, record_guess,
)
from src.memory import (
    GameNotFoundError, MemoryConfig, TeamMemoryStore, ThinkingResult,
)


@pytest.fixture
def store():
    return TeamMemoryStore()


@pytest.fixture
def record():
    return create_game_record(
        game_id=1,
        red_words=["WAVE", "FISH", "SAND", "TREE"],
        blue_words=["BEAR", "MOON", "STAR"],
        neutral_words=["CAR", "BOOK"],
        assassin="BOMB",
        red_spymaster="red-model",
        blue_spymaster="blue-model",
    )


def say(agent, word=None, confidence=0.8, message=None, risk=RiskLevel.LOW, round=1, ts=1.0):
    return DiscussionEntry(
        team=Team.RED,
        agent_id=agent,
        message=message if message is not None else f"{word} fits",
        suggested_word=word,
        confidence=confidence,
        risk=risk,
        round=round,
        timestamp=ts,
    )


def ocean_round(round=1):
    return [
        say("x", "WAVE", 0.9, round=round, ts=1.0),
        say("y", "WAVE", 0.8, round=round, ts=2.0),
        say("z", "FISH", 0.7, message="FISH rather than WAVE", round=round, ts=3.0),
    ]


# ============================================================================
# Lifecycle
# ============================================================================

class TestLifecycle:
    def test_get_or_create_is_lazy_and_empty(self, store):
        assert not store.has_memory(1, Team.RED)
        memory = store.get_or_create(1, Team.RED)
        assert memory.active_clues == {}
        assert store.has_memory(1, Team.RED)

    def test_callers_receive_copies(self, store):
        memory = store.get_or_create(1, Team.RED)
        memory.revealed_cards.append("WAVE")
        assert store.snapshot(1, Team.RED).revealed_cards == []

    def test_queries_on_missing_game_raise(self, store):
        with pytest.raises(GameNotFoundError):
            store.get_active_clues(99, Team.RED)
        with pytest.raises(GameNotFoundError):
            store.get_spymaster_strategic_info(99, Team.BLUE)
        with pytest.raises(LookupError):
            store.snapshot(99, Team.RED)

    def test_reset(self, store, record):
        store.sync(1, record)
        store.reset(1)
        assert not store.has_memory(1, Team.RED)
        assert not store.has_memory(1, Team.BLUE)

    def test_reset_releases_locks(self, store, record):
        store.sync(1, record)
        store.sync(2, record)
        store.reset(1)
        assert store.tracked_keys() == [(2, Team.RED), (2, Team.BLUE)]
        store.reset(2)
        assert store.tracked_keys() == []


# ============================================================================
# Sync
# ============================================================================

class TestSync:
    def test_mirrors_record_for_both_teams(self, store, record):
        record = record_clue(record, "OCEAN", 2)
        record, _ = record_guess(record, "WAVE")
        store.sync(1, record)

        red = store.snapshot(1, Team.RED)
        blue = store.snapshot(1, Team.BLUE)
        assert red.team_words == ["WAVE", "FISH", "SAND", "TREE"]
        assert red.opponent_words == ["BEAR", "MOON", "STAR"]
        assert blue.team_words == red.opponent_words
        assert red.revealed_cards == blue.revealed_cards == ["WAVE"]
        assert red.scores[Team.RED] == blue.scores[Team.RED] == 1
        assert red.assassin_word == "BOMB"

        clue = red.active_clues["OCEAN (2)"]
        assert clue.guessed_words == ["WAVE"]
        assert clue.remaining_guesses == 2
        assert red.correct_guesses == 1
        assert blue.active_clues == {}

    def test_fresh_store_self_heals_from_record(self, record):
        record = record_clue(record, "OCEAN", 2)
        record, _ = record_guess(record, "WAVE")
        record, _ = record_guess(record, "CAR")

        store = TeamMemoryStore()
        store.sync(1, record)
        red = store.snapshot(1, Team.RED)
        assert red.active_clues["OCEAN (2)"].guessed_words == ["WAVE", "CAR"]
        assert red.incorrect_guesses == 1
        assert red.current_team == Team.BLUE

    def test_sync_does_not_mutate_record(self, store, record):
        before = record.model_dump()
        store.sync(1, record)
        store.apply_turn_result(1, Team.RED, "WAVE", GuessOutcome.CORRECT)
        assert record.model_dump() == before


# ============================================================================
# Discussion
# ============================================================================

class TestUpdateFromDiscussion:
    def test_round_outcome(self, store, record):
        store.sync(1, record)
        round_record = store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())

        assert round_record.clue == "OCEAN (2)"
        assert round_record.consensus.word == "WAVE"
        assert round_record.consensus.support_level == ConsensusLevel.MEDIUM
        assert round_record.consensus.supporters == ["x", "y"]
        assert len(round_record.conflicts) == 1

        memory = store.snapshot(1, Team.RED)
        assert memory.active_clues["OCEAN (2)"].suggested_words == ["WAVE", "FISH"]
        wave = memory.word_associations["WAVE"][0]
        assert wave.clue == "OCEAN"
        assert wave.supporters == ["x", "y"]
        assert wave.is_team_word
        assert wave.related_words == ["FISH"]
        assert set(memory.agent_personalities) == {"x", "y", "z"}

    def test_other_teams_and_rounds_ignored(self, store, record):
        store.sync(1, record)
        entries = ocean_round(round=1) + [
            say("w", "SAND", round=2),
            DiscussionEntry(team=Team.BLUE, agent_id="b", suggested_word="MOON", confidence=0.9),
        ]
        round_record = store.update_from_discussion(1, Team.RED, "OCEAN", 2, entries)
        assert set(round_record.word_suggestions) == {"WAVE", "FISH"}

    def test_revealed_cards_folded_in(self, store, record):
        store.sync(1, record)
        round_record = store.update_from_discussion(
            1, Team.RED, "OCEAN", 2, ocean_round(), revealed_cards=["WAVE"]
        )
        assert round_record.word_suggestions == ["FISH"]
        assert store.snapshot(1, Team.RED).is_revealed("WAVE")

    def test_associations_merge_across_rounds(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round(1), current_round=1)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round(2), current_round=2)

        memory = store.snapshot(1, Team.RED)
        assert len(memory.word_associations["WAVE"]) == 1
        assert memory.word_associations["WAVE"][0].mention_count == 4
        assert [r.round for r in memory.discussion_history] == [1, 2]
        assert store.get_discussion_summary(1, Team.RED, 2).round == 2
        assert store.get_discussion_summary(1, Team.RED, 5) is None

    def test_flags_exclusive_for_whole_vocabulary(self, store, record):
        store.sync(1, record)
        entries = ocean_round() + [say("w", "BOMB", 0.2), say("v", "ELSEWHERE", 0.7)]
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, entries)

        memory = store.snapshot(1, Team.RED)
        for word in memory.vocabulary():
            assert sum(memory.word_flags(word).values()) == 1
        for associations in memory.word_associations.values():
            for assoc in associations:
                flags = [assoc.is_team_word, assoc.is_opponent_word,
                         assoc.is_neutral_word, assoc.is_assassin]
                assert flags.count(True) == 1
        assert memory.word_associations["BOMB"][0].is_assassin


# ============================================================================
# Turn Results
# ============================================================================

class TestApplyTurnResult:
    def test_partial_guess_keeps_clue_active(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())

        clue = store.apply_turn_result(1, Team.RED, "WAVE", GuessOutcome.CORRECT, "OCEAN (2)")
        assert clue.remaining_guesses == 2
        assert clue.success

        memory = store.snapshot(1, Team.RED)
        assert "OCEAN (2)" in memory.active_clues
        assert memory.word_associations["WAVE"][0].status == "guessed"
        assert memory.scores[Team.RED] == 1
        assert store.snapshot(1, Team.BLUE).scores[Team.RED] == 1

    def test_clue_archived_when_suggestions_revealed(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())
        store.apply_turn_result(1, Team.RED, "WAVE", GuessOutcome.CORRECT)
        store.apply_turn_result(1, Team.RED, "FISH", GuessOutcome.CORRECT)

        memory = store.snapshot(1, Team.RED)
        assert memory.active_clues == {}
        assert [c.key for c in memory.successful_clues] == ["OCEAN (2)"]

    def test_wrong_guess_on_opponent_word(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())
        store.apply_turn_result(1, Team.RED, "MOON", GuessOutcome.WRONG)

        red = store.snapshot(1, Team.RED)
        assert red.scores == {Team.RED: 0, Team.BLUE: 1}
        assert red.current_team == Team.BLUE
        assert red.incorrect_guesses == 1
        assert red.active_clues["OCEAN (2)"].failure

    def test_wrong_guess_on_neutral_word_scores_nothing(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())
        store.apply_turn_result(1, Team.RED, "CAR", GuessOutcome.WRONG, "OCEAN (2)")

        red = store.snapshot(1, Team.RED)
        assert red.scores == {Team.RED: 0, Team.BLUE: 0}
        assert store.snapshot(1, Team.BLUE).scores == {Team.RED: 0, Team.BLUE: 0}
        assert red.incorrect_guesses == 1
        assert red.current_team == Team.BLUE

    def test_assassin_is_incorrect_and_passes_turn(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())
        clue = store.apply_turn_result(1, Team.RED, "BOMB", GuessOutcome.ASSASSIN)

        assert clue.failure
        for team in (Team.RED, Team.BLUE):
            memory = store.snapshot(1, team)
            assert memory.scores == {Team.RED: 0, Team.BLUE: 0}
            assert memory.current_team == Team.BLUE
            assert "BOMB" in memory.revealed_cards
        red = store.snapshot(1, Team.RED)
        assert red.incorrect_guesses == 1
        assert red.correct_guesses == 0

    def test_clue_named_by_word(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())

        clue = store.apply_turn_result(1, Team.RED, "WAVE", GuessOutcome.CORRECT, "ocean")
        assert clue.key == "OCEAN (2)"
        assert clue.guessed_words == ["WAVE"]

    def test_inactive_clue_key_not_recorded(self, store, record, caplog):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())

        with caplog.at_level("WARNING", logger="src.memory.clues"):
            assert store.apply_turn_result(1, Team.RED, "WAVE", GuessOutcome.CORRECT, "FOREST (1)") is None
        assert "not active" in caplog.text
        assert store.snapshot(1, Team.RED).active_clues["OCEAN (2)"].guessed_words == []

    def test_remaining_guesses_follow_plus_one_rule(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())
        for word in ["CAR", "BOOK", "STAR", "MOON"]:
            clue = store.apply_turn_result(1, Team.RED, word, GuessOutcome.WRONG, "OCEAN (2)")
            assert clue.remaining_guesses == max(0, clue.number + 1 - len(clue.guessed_words))
        assert "OCEAN (2)" in store.snapshot(1, Team.RED).active_clues

    def test_clue_never_both_active_and_archived(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())
        store.apply_turn_result(1, Team.RED, "WAVE", GuessOutcome.CORRECT)
        store.apply_turn_result(1, Team.RED, "FISH", GuessOutcome.CORRECT)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round(2), current_round=2)

        memory = store.snapshot(1, Team.RED)
        active = set(memory.active_clues)
        archived = [c.key for c in memory.successful_clues + memory.failed_clues]
        assert not active & set(archived)
        assert len(archived) == len(set(archived))


# ============================================================================
# Conflicts
# ============================================================================

class TestConflictResolution:
    def test_resolve_is_symmetric_and_one_shot(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())

        assert store.find_conflict(1, Team.RED, "FISH", "WAVE") == \
            store.find_conflict(1, Team.RED, "WAVE", "FISH")

        assert store.resolve_conflict(1, Team.RED, "FISH", "WAVE", "went with WAVE", "captain")
        assert not store.resolve_conflict(1, Team.RED, "WAVE", "FISH", "again", "captain")

        conflict = store.find_conflict(1, Team.RED, "WAVE", "FISH")
        assert conflict.resolved
        assert conflict.resolution == "went with WAVE"
        assert conflict.resolved_by == "captain"

    def test_unknown_pair_returns_false(self, store, record):
        store.sync(1, record)
        assert not store.resolve_conflict(1, Team.RED, "SAND", "TREE", "n/a", "captain")
        assert not store.resolve_conflict(42, Team.RED, "SAND", "TREE", "n/a", "captain")
        assert store.find_conflict(1, Team.RED, "SAND", "TREE") is None


# ============================================================================
# Queries
# ============================================================================

class TestQueries:
    def test_active_clues(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())
        store.update_from_discussion(
            1, Team.RED, "FOREST", 1, [say("x", "TREE", round=2, ts=10.0)], current_round=2
        )
        store.update_from_discussion(1, Team.RED, "NOTHING", 1, [], current_round=3)
        store.apply_turn_result(1, Team.RED, "WAVE", GuessOutcome.CORRECT, "OCEAN (2)")

        views = store.get_active_clues(1, Team.RED)
        assert [v.key for v in views] == ["FOREST (1)", "OCEAN (2)"]
        ocean = views[1]
        assert ocean.suggested_words == ["FISH"]
        assert ocean.guessed_words == ["WAVE"]
        assert ocean.remaining_guesses == 2

        assert [v.key for v in store.get_active_clues(1, Team.RED, "FOREST (1)")] == ["OCEAN (2)"]
        assert [v.key for v in store.get_active_clues(1, Team.RED, "OCEAN")] == ["FOREST (1)"]

    def test_rejected_words_hidden_from_active_clues(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, [
            say("x", "SAND", 0.1), say("y", "SAND", 0.2),
        ])
        assert store.get_active_clues(1, Team.RED) == []

    def test_strategic_info(self, store, record):
        record = record_clue(record, "OCEAN", 2)
        record, _ = record_guess(record, "WAVE")
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, [
            say("x", "WAVE"), say("y", "SAND"),
        ])
        store.apply_turn_result(1, Team.RED, "SAND", GuessOutcome.CORRECT, "OCEAN (2)")

        info = store.get_spymaster_strategic_info(1, Team.RED)
        assert [w.word for w in info.team_words if w.revealed] == ["WAVE", "SAND"]
        assert [w.word for w in info.neutral_words] == ["CAR", "BOOK"]
        assert info.assassin_word == "BOMB"
        assert [c.clue for c in info.successful_clues] == ["OCEAN"]
        assert info.successful_clues[0].words == ["WAVE", "SAND"]
        assert info.team_performance.correct_guess_rate == 1.0
        assert info.team_performance.average_guesses_per_clue == 2.0

    def test_strategic_info_includes_plan(self, store, record):
        store.sync(1, record)
        store.record_thinking(1, Team.BLUE, ThinkingResult(team=Team.BLUE, clue="SKY", number=2))
        info = store.get_spymaster_strategic_info(1, Team.BLUE)
        assert info.planned_clue.clue == "SKY"

    def test_unparsed_thinking_keeps_previous_plan(self, store, record):
        store.sync(1, record)
        store.record_thinking(1, Team.RED, ThinkingResult(team=Team.RED, clue="SEA", number=2))
        store.record_thinking(1, Team.RED, ThinkingResult(team=Team.RED, raw_response="hmm"))

        memory = store.snapshot(1, Team.RED)
        assert memory.planned_clue.clue == "SEA"
        assert len(memory.thinking_history) == 2

    def test_thinking_history_bounded(self, record):
        store = TeamMemoryStore(MemoryConfig(thinking_history_limit=3))
        store.sync(1, record)
        for n in range(5):
            store.record_thinking(1, Team.RED, ThinkingResult(team=Team.RED, clue=f"C{n}", number=1))
        memory = store.snapshot(1, Team.RED)
        assert [t.clue for t in memory.thinking_history] == ["C2", "C3", "C4"]
        assert memory.planned_clue.clue == "C4"

    def test_team_interactions(self, store, record):
        store.sync(1, record)
        for n in range(1, 5):
            store.update_from_discussion(1, Team.RED, "OCEAN", 2, [
                say("x", "WAVE", risk=RiskLevel.LOW, round=n),
                say("y", "WAVE", risk=RiskLevel.HIGH, round=n),
                say("z", "WAVE", risk=RiskLevel.MEDIUM, round=n),
                say("w", "FISH", risk=RiskLevel.LOW, round=n),
            ], current_round=n)

        analysis = store.analyze_team_interactions(1, Team.RED)
        assert ("x", "y") in analysis.strong_pairs
        assert ("x", "z") in analysis.strong_pairs
        assert ("w", "x") in analysis.conflicting_pairs
        assert set(analysis.influencers) == {"x", "y", "z"}
        assert analysis.risk_takers == ["x", "w"]
        assert analysis.conservatives == ["y"]
        assert analysis.balanced == ["z"]


# ============================================================================
# Concurrency
# ============================================================================

class TestConcurrency:
    def test_concurrent_writers_are_serialized(self, store, record):
        store.sync(1, record)
        store.update_from_discussion(1, Team.RED, "OCEAN", 2, ocean_round())

        def discuss(n):
            store.update_from_discussion(
                1, Team.RED, "OCEAN", 2, ocean_round(n), current_round=n
            )

        def guess(word):
            store.apply_turn_result(1, Team.RED, word, GuessOutcome.WRONG, "OCEAN (2)")

        threads = [threading.Thread(target=discuss, args=(n,)) for n in range(2, 12)]
        threads += [threading.Thread(target=guess, args=(w,)) for w in ["CAR", "BOOK", "STAR"]]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        memory = store.snapshot(1, Team.RED)
        assert len(memory.discussion_history) == 11
        clue = memory.active_clues["OCEAN (2)"]
        assert sorted(clue.guessed_words) == ["BOOK", "CAR", "STAR"]
        assert clue.remaining_guesses == 0
