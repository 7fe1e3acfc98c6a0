"""Prompt templates and builders for LLM interactions."""

from callbridge.prompts.receptionist import (
    build_greeting_instructions,
    build_receptionist_prompt,
    build_summary_prompt,
)

__all__ = [
    "build_receptionist_prompt",
    "build_greeting_instructions",
    "build_summary_prompt",
]
