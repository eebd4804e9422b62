from .spymaster import (
    ParsedPlan, SpymasterThinker, parse_thinking_response, format_active_clues,
)

__all__ = [
    "ParsedPlan", "SpymasterThinker", "parse_thinking_response", "format_active_clues",
]
