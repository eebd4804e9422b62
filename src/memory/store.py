"""Team memory store: one TeamGameMemory per (game, team)."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack, contextmanager
from typing import Iterator

from src.engine import (
    DiscussionEntry, GameRecord, GuessOutcome, HistoryEntry, Team,
    opponent_words, team_words,
)

from .associations import (
    find_association, refresh_associations, refresh_related_words, upsert_association,
)
from .clues import (
    apply_history, apply_turn_result, archive_resolved_clues, open_or_update_clue,
)
from .config import MemoryConfig
from .consensus import (
    DisagreementDetector, PhraseDisagreementDetector, analyze_round,
    build_round_record, select_round_entries, update_agent_personalities,
)
from .models import (
    ActiveClueView, ClueMemory, ClueOutcomeSummary, ConflictMemory,
    DiscussionRound, InteractionAnalysis, SpymasterStrategicInfo, TeamGameMemory,
    TeamPerformance, ThinkingResult, WordRevealStatus,
)

logger = logging.getLogger(__name__)

MemoryKey = tuple[int, Team]


class GameNotFoundError(LookupError):
    """No memory has been created for the requested game and team."""

    def __init__(self, game_id: int, team: Team):
        super().__init__(f"No memory for game {game_id} ({team.value})")
        self.game_id = game_id
        self.team = team


class TeamMemoryStore:
    """
    Owns every team's game memory for the lifetime of the process.

    Writes for the same (game, team) are serialized by a per-key lock.
    Operations touching both teams take the RED lock before the BLUE lock.
    Callers only ever receive copies of the stored state.
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        detector: DisagreementDetector | None = None,
    ):
        self.config = config or MemoryConfig()
        self.detector = detector or PhraseDisagreementDetector(
            self.config.disagreement_phrases
        )
        self._memories: dict[MemoryKey, TeamGameMemory] = {}
        self._locks: dict[MemoryKey, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    # Internal access

    def _lock_for(self, key: MemoryKey) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def _get_or_create(self, game_id: int, team: Team) -> TeamGameMemory:
        key = (game_id, team)
        with self._registry_lock:
            memory = self._memories.get(key)
            if memory is None:
                memory = TeamGameMemory(game_id=game_id, team=team)
                self._memories[key] = memory
            return memory

    def _require(self, game_id: int, team: Team) -> TeamGameMemory:
        memory = self._memories.get((game_id, team))
        if memory is None:
            raise GameNotFoundError(game_id, team)
        return memory

    @contextmanager
    def _locked(self, game_id: int, *teams: Team) -> Iterator[None]:
        ordered = [t for t in (Team.RED, Team.BLUE) if t in teams]
        with ExitStack() as stack:
            for team in ordered:
                stack.enter_context(self._lock_for((game_id, team)))
            yield

    # Lifecycle

    def get_or_create(self, game_id: int, team: Team) -> TeamGameMemory:
        """Return a snapshot of the team's memory, creating it empty if needed."""
        with self._locked(game_id, team):
            return self._get_or_create(game_id, team).model_copy(deep=True)

    def has_memory(self, game_id: int, team: Team) -> bool:
        return (game_id, team) in self._memories

    def tracked_keys(self) -> list[MemoryKey]:
        """Keys holding either a memory or a writer lock."""
        with self._registry_lock:
            keys = set(self._memories) | set(self._locks)
        return sorted(keys, key=lambda k: (k[0], k[1] is Team.BLUE))

    def snapshot(self, game_id: int, team: Team) -> TeamGameMemory:
        with self._locked(game_id, team):
            return self._require(game_id, team).model_copy(deep=True)

    def reset(self, game_id: int) -> None:
        """Forget both teams' memory for a game."""
        with self._locked(game_id, Team.RED, Team.BLUE):
            with self._registry_lock:
                for team in (Team.RED, Team.BLUE):
                    self._memories.pop((game_id, team), None)
                    self._locks.pop((game_id, team), None)
        logger.info(f"Cleared memory for game {game_id}")

    # Writes

    def sync(self, game_id: int, record: GameRecord) -> None:
        """
        Refresh both teams' memory from the authoritative record.

        Word sets, reveals, scores and the current turn are mirrored, then the
        record's transcript is replayed through the clue tracker.
        """
        logger.info(f"Syncing memory for game {game_id} with latest state")
        now = time.time()
        with self._locked(game_id, Team.RED, Team.BLUE):
            for team in (Team.RED, Team.BLUE):
                memory = self._get_or_create(game_id, team)
                memory.board_words = list(record.words)
                memory.team_words = team_words(record, team)
                memory.opponent_words = opponent_words(record, team)
                memory.revealed_cards = list(record.revealed_cards)
                memory.assassin_word = record.assassin
                memory.scores = {Team.RED: record.red_score, Team.BLUE: record.blue_score}
                memory.current_team = record.current_turn
                memory.last_update_time = now

                apply_history(memory, record.history)
                refresh_associations(memory)

    def update_from_discussion(
        self,
        game_id: int,
        team: Team,
        clue_word: str,
        clue_number: int,
        discussion: list[DiscussionEntry],
        transcript: list[HistoryEntry] | None = None,
        revealed_cards: list[str] | None = None,
        current_round: int = 1,
    ) -> DiscussionRound:
        """
        Fold one discussion round into the team's memory.

        Returns the DiscussionRound that was appended to the history.
        """
        logger.info(
            f"Updating discussion memory for {team.value} in game {game_id}, "
            f"clue {clue_word!r}, round {current_round}"
        )
        now = time.time()

        with self._locked(game_id, team):
            memory = self._get_or_create(game_id, team)

            for word in revealed_cards or []:
                if word not in memory.revealed_cards:
                    memory.revealed_cards.append(word)

            if transcript:
                apply_history(memory, transcript)
            clue = open_or_update_clue(memory, clue_word, clue_number, now)

            entries = select_round_entries(discussion, team, current_round)
            analysis = analyze_round(
                entries, set(memory.revealed_cards), self.config, self.detector
            )

            for word, support in analysis.suggestions.items():
                upsert_association(
                    memory,
                    word,
                    clue_word,
                    confidence=support.avg_confidence,
                    mentions=support.mentions,
                    first_mentioned_at=support.first_mentioned,
                    last_mentioned_at=support.last_mentioned,
                    supporters=support.supporters,
                    opposers=support.opposers,
                    risk=support.risk,
                )
                if word not in clue.suggested_words:
                    clue.suggested_words.append(word)

            clue.suggested_words.sort(
                key=lambda w: _association_rank(memory, w, clue_word), reverse=True
            )

            round_record = build_round_record(analysis, current_round, clue.key, now)
            memory.discussion_history.append(round_record)

            update_agent_personalities(memory, entries, clue_word, self.config)
            refresh_related_words(memory)
            refresh_associations(memory)
            archive_resolved_clues(memory)
            memory.last_update_time = now

            logger.debug(
                f"Round {current_round} consensus for {team.value}: "
                f"{round_record.consensus.word} ({round_record.consensus.support_level.value}), "
                f"{len(round_record.conflicts)} conflicts"
            )
            return round_record.model_copy(deep=True)

    def apply_turn_result(
        self,
        game_id: int,
        team: Team,
        word: str,
        outcome: GuessOutcome,
        clue: str | None = None,
    ) -> ClueMemory | None:
        """
        Record one guess by ``team``.

        ``clue`` is a clue key such as ``"OCEAN (2)"``; without it the guess
        is attributed to the team's most recent active clue. Score changes
        are mirrored into both teams' memories; the game-ending effect of the
        assassin is left to the game layer.
        """
        with self._locked(game_id, Team.RED, Team.BLUE):
            memory = self._get_or_create(game_id, team)
            opposing = self._get_or_create(game_id, team.other)
            both = (memory, opposing)

            for m in both:
                if word not in m.revealed_cards:
                    m.revealed_cards.append(word)

            if outcome == GuessOutcome.CORRECT:
                memory.correct_guesses += 1
                for m in both:
                    m.scores[team] += 1
            else:
                memory.incorrect_guesses += 1
                owned_by_opponent = word in memory.opponent_words or word in opposing.team_words
                if outcome == GuessOutcome.WRONG and owned_by_opponent:
                    for m in both:
                        m.scores[team.other] += 1
                for m in both:
                    m.current_team = team.other

            updated = apply_turn_result(memory, word, outcome, clue)

            for m in both:
                refresh_associations(m)
                archive_resolved_clues(m)
                m.last_update_time = time.time()

            logger.info(f"Turn result for {team.value} in game {game_id}: {word!r} -> {outcome.value}")
            return updated.model_copy(deep=True) if updated is not None else None

    def record_thinking(self, game_id: int, team: Team, result: ThinkingResult) -> None:
        """
        Append a background thinking result to the team's history.

        Only results that produced a clue replace the planned clue.
        """
        with self._locked(game_id, team):
            memory = self._get_or_create(game_id, team)
            if result.clue is not None:
                memory.planned_clue = result
            memory.thinking_history.append(result)
            del memory.thinking_history[:-self.config.thinking_history_limit]
            memory.last_update_time = time.time()

    def resolve_conflict(
        self,
        game_id: int,
        team: Team,
        word_a: str,
        word_b: str | None,
        resolution: str,
        resolved_by: str,
    ) -> bool:
        """
        Mark the conflict between two words as resolved.

        Returns False when no unresolved conflict exists for the pair, so a
        second call for the same pair returns False.
        """
        with self._locked(game_id, team):
            memory = self._memories.get((game_id, team))
            if memory is None:
                return False

            resolved = False
            for discussion_round in memory.discussion_history:
                for conflict in discussion_round.conflicts:
                    if conflict.resolved or not conflict.matches(word_a, word_b):
                        continue
                    conflict.resolved = True
                    conflict.resolution = resolution
                    conflict.resolved_by = resolved_by
                    resolved = True
            return resolved

    # Queries

    def find_conflict(
        self, game_id: int, team: Team, word_a: str, word_b: str | None
    ) -> ConflictMemory | None:
        """Most recent recorded conflict for an unordered pair of words."""
        with self._locked(game_id, team):
            memory = self._require(game_id, team)
            for discussion_round in reversed(memory.discussion_history):
                for conflict in discussion_round.conflicts:
                    if conflict.matches(word_a, word_b):
                        return conflict.model_copy(deep=True)
            return None

    def get_active_clues(
        self,
        game_id: int,
        team: Team,
        current_clue: str | None = None,
    ) -> list[ActiveClueView]:
        """
        Unresolved clues the team can still come back to, newest first.

        ``current_clue`` (a clue key or word) is left out. Only clues with at
        least one unrevealed, non-rejected suggested word are returned, even
        if their guesses are used up.
        """
        with self._locked(game_id, team):
            memory = self._require(game_id, team)
            views = []
            for key, clue in memory.active_clues.items():
                if current_clue is not None and current_clue in (key, clue.clue):
                    continue

                candidates = []
                for word in clue.suggested_words:
                    if memory.is_revealed(word):
                        continue
                    assoc = find_association(memory, word, clue.clue)
                    if assoc is not None and assoc.status not in ("active", "uncertain"):
                        continue
                    candidates.append((assoc.confidence if assoc else 0.0, word))
                if not candidates:
                    continue

                candidates.sort(key=lambda c: c[0], reverse=True)
                views.append(ActiveClueView(
                    clue=clue.clue,
                    number=clue.number,
                    key=key,
                    remaining_guesses=max(0, clue.number + 1 - len(clue.guessed_words)),
                    suggested_words=[word for _, word in candidates],
                    guessed_words=list(clue.guessed_words),
                    timestamp=clue.timestamp,
                ))

            views.sort(key=lambda v: v.timestamp, reverse=True)
            return views

    def get_discussion_summary(
        self, game_id: int, team: Team, round_number: int
    ) -> DiscussionRound | None:
        with self._locked(game_id, team):
            memory = self._require(game_id, team)
            for discussion_round in memory.discussion_history:
                if discussion_round.round == round_number:
                    return discussion_round.model_copy(deep=True)
            return None

    def analyze_team_interactions(self, game_id: int, team: Team) -> InteractionAnalysis:
        """Agent pairings, influencers and risk profiles for a team."""
        threshold = self.config.pair_agreement_threshold
        with self._locked(game_id, team):
            memory = self._require(game_id, team)
            result = InteractionAnalysis()

            for agent, personality in memory.agent_personalities.items():
                if personality.risk_tolerance == "conservative":
                    result.conservatives.append(agent)
                elif personality.risk_tolerance == "aggressive":
                    result.risk_takers.append(agent)
                else:
                    result.balanced.append(agent)

                for other, agreement in personality.agreement_with.items():
                    a, b = sorted((agent, other))
                    if agreement >= threshold and (a, b) not in result.strong_pairs:
                        result.strong_pairs.append((a, b))
                    elif agreement <= -threshold and (a, b) not in result.conflicting_pairs:
                        result.conflicting_pairs.append((a, b))

            suggested: dict[str, int] = {}
            accepted: dict[str, int] = {}
            for discussion_round in memory.discussion_history:
                for supporters in discussion_round.word_supporters.values():
                    for agent in supporters:
                        suggested[agent] = suggested.get(agent, 0) + 1
                consensus = discussion_round.consensus
                if consensus.reached and consensus.word:
                    for agent in consensus.supporters:
                        accepted[agent] = accepted.get(agent, 0) + 1

            for agent, count in suggested.items():
                if count < self.config.influencer_min_suggestions:
                    continue
                if accepted.get(agent, 0) / count >= self.config.influencer_acceptance_rate:
                    result.influencers.append(agent)

            return result

    def get_spymaster_strategic_info(self, game_id: int, team: Team) -> SpymasterStrategicInfo:
        """Board status, clue history and guessing performance for the spymaster."""
        with self._locked(game_id, team):
            memory = self._require(game_id, team)

            def status(words: list[str]) -> list[WordRevealStatus]:
                return [WordRevealStatus(word=w, revealed=memory.is_revealed(w)) for w in words]

            known = memory.board_words or list(memory.word_associations)
            neutral = [w for w in known if memory.word_flags(w)["is_neutral_word"]]

            correct = memory.correct_guesses
            total_guesses = correct + memory.incorrect_guesses
            total_clues = len(memory.successful_clues) + len(memory.failed_clues)

            return SpymasterStrategicInfo(
                team=team,
                team_words=status(memory.team_words),
                opponent_words=status(memory.opponent_words),
                neutral_words=status(neutral),
                assassin_word=memory.assassin_word,
                successful_clues=[
                    ClueOutcomeSummary(
                        clue=c.clue,
                        words=[w for w in c.guessed_words if w in memory.team_words],
                    )
                    for c in memory.successful_clues
                ],
                failed_clues=[
                    ClueOutcomeSummary(clue=c.clue, words=list(c.guessed_words))
                    for c in memory.failed_clues
                ],
                team_performance=TeamPerformance(
                    correct_guess_rate=correct / total_guesses if total_guesses else 0.0,
                    average_guesses_per_clue=correct / total_clues if total_clues else 0.0,
                ),
                planned_clue=(
                    memory.planned_clue.model_copy(deep=True) if memory.planned_clue else None
                ),
            )


def _association_rank(memory: TeamGameMemory, word: str, clue: str) -> tuple[int, float, int]:
    assoc = find_association(memory, word, clue)
    if assoc is None:
        return (0, 0.0, 0)
    return (len(assoc.supporters) - len(assoc.opposers), assoc.confidence, assoc.mention_count)
