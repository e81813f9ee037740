"""Prompt generation: BusinessContext -> factual / opinion / recommendation prompts."""
