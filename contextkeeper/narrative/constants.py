"""Default story and prompt templates for the narrative builder."""

from __future__ import annotations

ADDED_STORY = "✅ **New function/method added:** `{name}`."
REMOVED_STORY = "❌ **Function/method removed:** `{name}`."
SIGNATURE_STORY = "⚠️ **Signature changed for** `{name}`."
BODY_STORY = "💡 **Implementation changed inside:** `{name}`."

ADDED_PROMPT = "ACTION: Write documentation for the new `{name}` function/method in `{filename}`."
SIGNATURE_PROMPT = (
    "REVIEW: The signature for `{name}` in `{filename}` has changed. "
    "Ensure all calls are updated."
)

FILE_LINE = "File `{filename}` was {status}."
RENAMED_LINE = "File `{filename}` was renamed from `{previous_filename}`."
FALLBACK_LINE = (
    "File `{filename}` was {status}, but no high-level changes detected "
    "for `{extension}` files."
)
EMPTY_STORYLINE = "No files were analyzed."

FILE_BLOCK_TEMPLATE = "file_block.md.j2"


__all__ = [
    "ADDED_PROMPT",
    "ADDED_STORY",
    "BODY_STORY",
    "EMPTY_STORYLINE",
    "FALLBACK_LINE",
    "FILE_BLOCK_TEMPLATE",
    "FILE_LINE",
    "REMOVED_STORY",
    "RENAMED_LINE",
    "SIGNATURE_PROMPT",
    "SIGNATURE_STORY",
]
