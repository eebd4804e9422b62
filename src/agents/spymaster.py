"""Background spymaster thinking: plan the next clue before the team's turn."""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Callable

from pydantic import BaseModel

from src.core.llm import LLMProvider, create_provider
from src.engine import (
    GameRecord, Team, format_transcript, get_unrevealed_words, opponent_words,
    spymaster_model,
)
from src.memory.models import ActiveClueView, SpymasterStrategicInfo, ThinkingResult


class ParsedPlan(BaseModel):
    """Parsed clue plan from LLM response."""
    word: str
    number: int
    targets: list[str]
    reasoning: str


def load_prompt_template(name: str) -> str:
    """Load a prompt template from the prompts directory."""
    path = Path(__file__).parent / "prompts" / name
    with open(path, "r") as f:
        return f.read()


def parse_thinking_response(response: str) -> ParsedPlan | None:
    """
    Parse a planned clue from the LLM response.

    Expects CLUE and NUMBER lines; TARGETS and REASONING are optional.
    Brackets and case variations are tolerated.
    """
    clue_match = re.search(r"CLUE\s*:\s*\[?\s*([A-Za-z]+)\s*\]?", response, re.IGNORECASE)
    number_match = re.search(r"NUMBER\s*:\s*\[?\s*(\d+)\s*\]?", response, re.IGNORECASE)
    if not clue_match or not number_match:
        return None

    targets: list[str] = []
    targets_match = re.search(r"TARGETS\s*:\s*\[?(.+?)\]?\s*(?:\n|$)", response, re.IGNORECASE)
    if targets_match:
        targets = [
            w.strip().upper()
            for w in re.split(r"[,;]+", targets_match.group(1))
            if w.strip()
        ]

    reasoning_match = re.search(r"REASONING\s*:\s*(.+)", response, re.IGNORECASE | re.DOTALL)

    return ParsedPlan(
        word=clue_match.group(1).upper(),
        number=int(number_match.group(1)),
        targets=targets,
        reasoning=reasoning_match.group(1).strip() if reasoning_match else "",
    )


def format_active_clues(active_clues: list[ActiveClueView]) -> str:
    if not active_clues:
        return "(none)"
    return "\n".join(
        f"- {c.key}: still open {', '.join(c.suggested_words)} "
        f"({c.remaining_guesses} guesses left)"
        for c in active_clues
    )


def format_board_display(words: list[str], revealed: list[str]) -> str:
    """Format board words five per row, marking revealed ones."""
    lines = []
    for i in range(0, len(words), 5):
        row = [f"[{w}]" if w in revealed else w for w in words[i:i + 5]]
        lines.append("  ".join(row))
    return "\n".join(lines)


class SpymasterThinker:
    """Asks a team's spymaster model for its next clue.

    Providers are built per model name by ``provider_factory`` and reused.
    """

    def __init__(
        self,
        provider_factory: Callable[[str], LLMProvider] | None = None,
        temperature: float = 0.7,
    ):
        self._provider_factory = provider_factory or (
            lambda model: create_provider("openrouter", model=model)
        )
        self._providers: dict[str, LLMProvider] = {}
        self.temperature = temperature
        self.system_prompt = load_prompt_template("spymaster_thinking.md")
        self.turn_prompt_template = load_prompt_template("spymaster_thinking_turn.md")

    def provider_for(self, model: str) -> LLMProvider:
        provider = self._providers.get(model)
        if provider is None:
            provider = self._provider_factory(model)
            self._providers[model] = provider
        return provider

    def build_prompt(
        self,
        record: GameRecord,
        team: Team,
        strategic: SpymasterStrategicInfo | None = None,
        active_clues: list[ActiveClueView] | None = None,
    ) -> tuple[str, str]:
        """Build the system and user prompts."""
        revealed = record.revealed_cards
        opponents = [w for w in opponent_words(record, team) if w not in revealed]

        successful = "none"
        failed = "none"
        if strategic is not None:
            if strategic.successful_clues:
                successful = ", ".join(c.clue for c in strategic.successful_clues)
            if strategic.failed_clues:
                failed = ", ".join(c.clue for c in strategic.failed_clues)

        system = self.system_prompt.format(team=team.value)
        user = self.turn_prompt_template.format(
            board_words_display=format_board_display(record.words, revealed),
            team=team.value,
            opponent_team=team.other.value,
            remaining_words=", ".join(sorted(get_unrevealed_words(record, team))),
            opponent_words=", ".join(sorted(opponents)) or "(all revealed)",
            assassin_word=record.assassin,
            red_score=record.red_score,
            blue_score=record.blue_score,
            current_turn=record.current_turn.value,
            active_clues_display=format_active_clues(active_clues or []),
            successful_clues=successful,
            failed_clues=failed,
            transcript_display=format_transcript(record.history),
        )
        return system, user

    async def think(
        self,
        record: GameRecord,
        team: Team,
        strategic: SpymasterStrategicInfo | None = None,
        active_clues: list[ActiveClueView] | None = None,
    ) -> ThinkingResult:
        """
        Plan a clue for ``team``.

        An unparseable reply still produces a result (with ``clue`` None) so
        the raw text is kept. Provider errors propagate to the caller.
        """
        model = spymaster_model(record, team)
        if not model:
            raise ValueError(f"No spymaster model configured for {team.value}")

        system_prompt, user_prompt = self.build_prompt(record, team, strategic, active_clues)
        response = await self.provider_for(model).complete(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
        )

        parsed = parse_thinking_response(response.content)
        if parsed is None:
            return ThinkingResult(
                team=team,
                model=model,
                raw_response=response.content,
                latency_ms=response.latency_ms,
                timestamp=time.time(),
            )

        remaining = {w.upper(): w for w in get_unrevealed_words(record, team)}
        return ThinkingResult(
            team=team,
            clue=parsed.word,
            number=parsed.number,
            targets=[remaining[w] for w in parsed.targets if w in remaining],
            reasoning=parsed.reasoning,
            model=model,
            raw_response=response.content,
            latency_ms=response.latency_ms,
            timestamp=time.time(),
        )
