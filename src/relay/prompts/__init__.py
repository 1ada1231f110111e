"""Prompt templating for Relay jobs."""

from relay.prompts.templating import PromptBuilder, slugify

__all__ = ["PromptBuilder", "slugify"]
