"""Story line and documentation prompt generation."""

from .builder import NarrativeBuilder, NarrativeTemplates, dedupe_prompts

__all__ = ["NarrativeBuilder", "NarrativeTemplates", "dedupe_prompts"]
