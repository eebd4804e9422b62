"""Tests for the word association ledger."""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.engine import RiskLevel, Team
from src.memory.associations import (
    association_status, find_association, max_risk, refresh_associations,
    refresh_related_words, upsert_association,
)
from src.memory.models import TeamGameMemory


FLAG_NAMES = ("is_team_word", "is_opponent_word", "is_neutral_word", "is_assassin")


@pytest.fixture
def memory():
    return TeamGameMemory(
        game_id=1,
        team=Team.RED,
        board_words=["WAVE", "FISH", "BEAR", "CAR", "BOMB"],
        team_words=["WAVE", "FISH"],
        opponent_words=["BEAR"],
        assassin_word="BOMB",
    )


def upsert(memory, word, clue="OCEAN", **overrides):
    values = dict(
        confidence=0.8,
        mentions=1,
        first_mentioned_at=1.0,
        last_mentioned_at=1.0,
        supporters=["a"],
        opposers=[],
        risk=RiskLevel.LOW,
    )
    values.update(overrides)
    return upsert_association(memory, word, clue, **values)


class TestHelpers:
    def test_max_risk(self):
        assert max_risk(RiskLevel.LOW, RiskLevel.HIGH) == RiskLevel.HIGH
        assert max_risk(RiskLevel.HIGH, RiskLevel.MEDIUM) == RiskLevel.HIGH
        assert max_risk(RiskLevel.MEDIUM, RiskLevel.MEDIUM) == RiskLevel.MEDIUM

    @pytest.mark.parametrize("revealed,supporters,opposers,expected", [
        (True, 0, 3, "guessed"),
        (False, 1, 2, "rejected"),
        (False, 2, 1, "active"),
        (False, 1, 1, "active"),
        (False, 0, 0, "uncertain"),
    ])
    def test_status(self, revealed, supporters, opposers, expected):
        assert association_status(revealed, supporters, opposers) == expected


class TestUpsert:
    def test_creates_association(self, memory):
        assoc = upsert(memory, "WAVE")
        assert assoc.status == "active"
        assert assoc.is_team_word
        assert memory.word_associations["WAVE"] == [assoc]

    def test_merge_rules(self, memory):
        upsert(memory, "WAVE", confidence=0.9, risk=RiskLevel.HIGH, last_mentioned_at=5.0)
        assoc = upsert(
            memory, "WAVE",
            confidence=0.7,
            mentions=2,
            last_mentioned_at=3.0,
            supporters=["a", "b"],
            opposers=["c"],
            risk=RiskLevel.LOW,
        )

        assert assoc.confidence == 0.9
        assert assoc.mention_count == 3
        assert assoc.last_mentioned_at == 5.0
        assert assoc.first_mentioned_at == 1.0
        assert assoc.supporters == ["a", "b"]
        assert assoc.opposers == ["c"]
        assert assoc.risk == RiskLevel.HIGH

    def test_separate_associations_per_clue(self, memory):
        upsert(memory, "WAVE", clue="OCEAN")
        upsert(memory, "WAVE", clue="SURF")
        assert [a.clue for a in memory.word_associations["WAVE"]] == ["OCEAN", "SURF"]
        assert find_association(memory, "WAVE", "SURF").clue == "SURF"
        assert find_association(memory, "WAVE", "SKY") is None

    def test_rejected_when_opposed(self, memory):
        assoc = upsert(memory, "CAR", supporters=[], opposers=["a", "b"])
        assert assoc.status == "rejected"

    def test_revealed_word_is_guessed(self, memory):
        memory.revealed_cards.append("FISH")
        assert upsert(memory, "FISH").status == "guessed"


class TestFlags:
    def test_flags_exclusive_and_exhaustive(self, memory):
        upsert(memory, "ELSEWHERE")
        for word in memory.vocabulary():
            flags = memory.word_flags(word)
            assert sum(flags.values()) == 1, word

    def test_assassin_wins_over_team_membership(self, memory):
        memory.team_words.append("BOMB")
        assert memory.word_flags("BOMB")["is_assassin"]
        assert not memory.word_flags("BOMB")["is_team_word"]

    def test_refresh_follows_memory_state(self, memory):
        assoc = upsert(memory, "CAR")
        assert assoc.is_neutral_word

        memory.opponent_words.append("CAR")
        memory.revealed_cards.append("CAR")
        refresh_associations(memory)

        assert assoc.is_opponent_word
        assert not assoc.is_neutral_word
        assert assoc.status == "guessed"
        assert [getattr(assoc, name) for name in FLAG_NAMES].count(True) == 1


class TestRelatedWords:
    def test_words_sharing_a_clue_are_related(self, memory):
        upsert(memory, "WAVE", clue="OCEAN")
        upsert(memory, "FISH", clue="OCEAN")
        upsert(memory, "BEAR", clue="FOREST")
        refresh_related_words(memory)

        assert find_association(memory, "WAVE", "OCEAN").related_words == ["FISH"]
        assert find_association(memory, "FISH", "OCEAN").related_words == ["WAVE"]
        assert find_association(memory, "BEAR", "FOREST").related_words == []
