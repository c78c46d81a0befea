"""Turns fingerprint diffs into story lines, prompts and the storyline document."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Mapping, Optional

from jinja2 import Environment, FileSystemLoader

from ..models import DiffResult, FileNarrative, FileReport, FileStatus
from . import constants


@dataclass(frozen=True)
class NarrativeTemplates:
    """Format strings used for each story line and prompt."""

    added_story: str = constants.ADDED_STORY
    removed_story: str = constants.REMOVED_STORY
    signature_story: str = constants.SIGNATURE_STORY
    body_story: str = constants.BODY_STORY
    added_prompt: str = constants.ADDED_PROMPT
    signature_prompt: str = constants.SIGNATURE_PROMPT
    file_line: str = constants.FILE_LINE
    renamed_line: str = constants.RENAMED_LINE
    fallback_line: str = constants.FALLBACK_LINE

    @classmethod
    def with_overrides(cls, overrides: Mapping[str, str] | None) -> "NarrativeTemplates":
        if not overrides:
            return cls()
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown narrative templates: {', '.join(unknown)}")
        return replace(cls(), **dict(overrides))


class NarrativeBuilder:
    """Renders per-file narratives and joins them into one storyline."""

    def __init__(
        self,
        templates: NarrativeTemplates | None = None,
        *,
        templates_dir: Path | None = None,
    ) -> None:
        self.templates = templates or NarrativeTemplates()
        self._env = self._create_env(templates_dir)

    def narrate(self, filename: str, status: FileStatus, diff: DiffResult) -> FileNarrative:
        """Return story lines and prompts grouped as added, removed, signature, body."""
        narrative = FileNarrative()
        values = {"filename": filename, "status": status.value}

        for name in sorted(diff.added):
            narrative.story_lines.append(self.templates.added_story.format(name=name, **values))
            narrative.prompts.append(self.templates.added_prompt.format(name=name, **values))
        for name in sorted(diff.removed):
            narrative.story_lines.append(self.templates.removed_story.format(name=name, **values))
        for name in sorted(diff.signature_changed):
            narrative.story_lines.append(
                self.templates.signature_story.format(name=name, **values)
            )
            narrative.prompts.append(self.templates.signature_prompt.format(name=name, **values))
        for name in sorted(diff.body_changed):
            narrative.story_lines.append(self.templates.body_story.format(name=name, **values))
        return narrative

    def file_line(
        self,
        filename: str,
        status: FileStatus,
        previous_filename: Optional[str] = None,
    ) -> str:
        """File-level line for removed and renamed files."""
        if status is FileStatus.RENAMED and previous_filename:
            return self.templates.renamed_line.format(
                filename=filename, status=status.value, previous_filename=previous_filename
            )
        return self.templates.file_line.format(filename=filename, status=status.value)

    def fallback_line(self, filename: str, status: FileStatus) -> str:
        extension = PurePosixPath(filename).suffix.lower() or "(no extension)"
        return self.templates.fallback_line.format(
            filename=filename, status=status.value, extension=extension
        )

    def render_storyline(self, reports: Iterable[FileReport]) -> str:
        template = self._env.get_template(constants.FILE_BLOCK_TEMPLATE)
        blocks: List[str] = []
        for report in reports:
            rendered = template.render(
                filename=report.filename,
                story_lines=report.story_lines,
                summary=report.summary or "",
            ).strip()
            if rendered:
                blocks.append(rendered)
        if not blocks:
            return constants.EMPTY_STORYLINE
        return "\n\n".join(blocks)

    @staticmethod
    def _create_env(templates_dir: Path | None) -> Environment:
        directories = []
        if templates_dir:
            directories.append(str(templates_dir))
        default_dir = str(Path(__file__).with_name("templates"))
        if default_dir not in directories:
            directories.append(default_dir)
        loader = FileSystemLoader(directories)
        return Environment(loader=loader, autoescape=False, trim_blocks=True, lstrip_blocks=True)


def dedupe_prompts(prompts: Iterable[str]) -> List[str]:
    """Drop repeated prompts, keeping the first occurrence of each."""
    seen: set[str] = set()
    ordered: List[str] = []
    for prompt in prompts:
        if prompt not in seen:
            ordered.append(prompt)
            seen.add(prompt)
    return ordered


__all__ = ["NarrativeBuilder", "NarrativeTemplates", "dedupe_prompts"]
