#!/usr/bin/env python3
"""Play a short scripted game and show what team memory makes of it."""

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

from src.agents import SpymasterThinker
from src.core import MockProvider, create_provider
from src.engine import (
    DiscussionEntry, RiskLevel, Team, create_game_record, record_clue, record_guess,
)
from src.memory import (
    BackgroundThinkingScheduler, InMemoryGameRecordProvider, MemoryConfig, TeamMemoryStore,
)


class Colors:
    RED = "\033[91m"
    BLUE = "\033[94m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    GRAY = "\033[90m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


def team_color(team: Team) -> str:
    return Colors.RED if team == Team.RED else Colors.BLUE


def header(title: str) -> None:
    print(f"\n{Colors.BOLD}{'=' * 60}{Colors.RESET}")
    print(f"{Colors.BOLD}{title}{Colors.RESET}")
    print("=" * 60)


MOCK_PLANS = [
    "CLUE: SEASIDE\nNUMBER: 2\nTARGETS: FISH, SAND\nREASONING: Both belong at the beach.",
    "CLUE: FOREST\nNUMBER: 2\nTARGETS: TREE, BEAR\nREASONING: Woodland words.",
]


def build_discussion(round_number: int) -> list[DiscussionEntry]:
    return [
        DiscussionEntry(
            team=Team.RED, agent_id="gpt-4o", message="WAVE fits OCEAN perfectly.",
            suggested_word="WAVE", confidence=0.9, risk=RiskLevel.LOW,
            round=round_number, timestamp=1.0,
        ),
        DiscussionEntry(
            team=Team.RED, agent_id="claude", message="Agreed on WAVE, and FISH too.",
            suggested_word="WAVE", confidence=0.8, risk=RiskLevel.LOW,
            round=round_number, timestamp=2.0,
        ),
        DiscussionEntry(
            team=Team.RED, agent_id="gemini",
            message="I'd go FISH rather than WAVE, WAVE is too risky.",
            suggested_word="FISH", confidence=0.7, risk=RiskLevel.MEDIUM,
            round=round_number, timestamp=3.0,
        ),
    ]


async def main() -> None:
    parser = argparse.ArgumentParser(description="Team memory walkthrough")
    parser.add_argument("--provider", default="mock", choices=["mock", "openrouter", "anthropic"])
    parser.add_argument("--model", default="anthropic/claude-3.5-sonnet")
    parser.add_argument("--interval", type=float, default=0.2, help="Thinking interval (seconds)")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.provider == "mock":
        provider_factory = lambda model: MockProvider(responses=MOCK_PLANS, model=model)
    else:
        provider_factory = lambda model: create_provider(args.provider, model=model)

    config = MemoryConfig.from_env(thinking_interval_seconds=args.interval)
    store = TeamMemoryStore(config)
    records = InMemoryGameRecordProvider()
    thinker = SpymasterThinker(provider_factory, temperature=config.thinking_temperature)
    thinking = BackgroundThinkingScheduler(store, records, thinker, config)

    record = create_game_record(
        game_id=1,
        red_words=["WAVE", "FISH", "SAND", "TREE"],
        blue_words=["BEAR", "MOON", "STAR"],
        neutral_words=["CAR", "BOOK"],
        assassin="BOMB",
        red_spymaster=args.model,
        blue_spymaster=args.model,
    )
    records.save_game(record)
    store.sync(1, record)

    header("RED gives OCEAN (2); BLUE's spymaster thinks in the background")
    record = record_clue(record, "OCEAN", 2)
    records.update_game(record)
    store.sync(1, record)
    await thinking.start(1, Team.BLUE)

    discussion_round = store.update_from_discussion(
        1, Team.RED, "OCEAN", 2, build_discussion(1), record.history, record.revealed_cards, 1
    )
    consensus = discussion_round.consensus
    print(f"Consensus: {Colors.GREEN}{consensus.word}{Colors.RESET} ({consensus.support_level.value})")
    print(f"  supporters: {', '.join(consensus.supporters)}")
    for conflict in discussion_round.conflicts:
        print(f"  {Colors.YELLOW}conflict{Colors.RESET} {conflict.word_a} vs {conflict.word_b} "
              f"({conflict.agent_a} vs {conflict.agent_b})")

    header("RED guesses")
    for word in ["WAVE", "CAR"]:
        record, outcome = record_guess(record, word)
        records.update_game(record)
        store.apply_turn_result(1, Team.RED, word, outcome, "OCEAN (2)")
        store.sync(1, record)
        print(f"{team_color(Team.RED)}RED{Colors.RESET} guessed {word} -> {outcome.value}")

    await asyncio.sleep(args.interval * 2.5)

    header("Unfinished RED clues")
    for clue in store.get_active_clues(1, Team.RED):
        print(f"{clue.key}: {', '.join(clue.suggested_words)} "
              f"({clue.remaining_guesses} guesses left)")

    header("BLUE spymaster summary")
    info = store.get_spymaster_strategic_info(1, Team.BLUE)
    remaining = [w.word for w in info.team_words if not w.revealed]
    print(f"Words left: {', '.join(remaining)}")
    if info.planned_clue is not None:
        plan = info.planned_clue
        print(f"Planned clue: {Colors.BOLD}{plan.clue} ({plan.number}){Colors.RESET} "
              f"-> {', '.join(plan.targets)}")
    print(f"{Colors.GRAY}{info.team_performance}{Colors.RESET}")

    header("RED interactions")
    print(store.analyze_team_interactions(1, Team.RED).model_dump_json(indent=2))

    await thinking.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
