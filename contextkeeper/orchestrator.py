"""Pipeline orchestration: route files to extractors, diff, narrate, aggregate."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence

from .config import ConfigError, ContextKeeperConfig, default_config
from .differ import diff_fingerprints
from .extractors import ExtractionError, Extractor, ExtractorRegistry, build_registry
from .github.client import GitHubClient, GitHubContentFetcher
from .logging import get_logger
from .models import (
    AnalysisReport,
    ChangedFile,
    FileReport,
    FileStatus,
    FingerprintMap,
    PullRequestRef,
)
from .narrative import NarrativeBuilder, NarrativeTemplates, dedupe_prompts
from .reference import parse_reference


class ContentFetcher(Protocol):
    """Retrieves file contents; returns an empty string when unavailable."""

    def fetch(self, file: ChangedFile, revision: Optional[str] = None) -> str:
        """Head content when *revision* is None, otherwise content at *revision*."""


class AnalysisCancelled(RuntimeError):
    """Raised when a request is aborted before all files were analysed."""


class ExtractionDegraded(Exception):
    """Per-file failure that is recovered into a fallback story line."""


@dataclass
class _FileOutcome:
    report: FileReport
    raw_diff: str


class Orchestrator:
    """Coordinates the structural diff pipeline for one pull request at a time."""

    def __init__(
        self,
        config: ContextKeeperConfig | None = None,
        *,
        client: GitHubClient | None = None,
        narrative_builder: NarrativeBuilder | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.config = config or default_config()
        self.client = client or GitHubClient(self.config.github)
        if narrative_builder is None:
            try:
                templates = NarrativeTemplates.with_overrides(self.config.narrative.templates)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
            narrative_builder = NarrativeBuilder(
                templates, templates_dir=self.config.narrative.templates_dir
            )
        self.narrative_builder = narrative_builder
        self.max_workers = max_workers or self.config.analysis.max_workers
        self.logger = get_logger("orchestrator")

    def run(
        self,
        reference: str | PullRequestRef,
        *,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisReport:
        """Analyse the pull request behind *reference* end to end."""
        ref = parse_reference(reference) if isinstance(reference, str) else reference
        self.logger.info("Analysing pull request %s", ref)
        metadata = self.client.fetch_pull_request_metadata(ref)
        files = self.client.fetch_changed_files(ref)
        self.logger.debug(
            "Base revision %s, %d changed files", metadata.base_revision, len(files)
        )
        fetcher = GitHubContentFetcher(self.client, ref, head_revision=metadata.head_revision)
        return self.analyze(
            files,
            fetcher,
            base_revision=metadata.base_revision,
            cancel_event=cancel_event,
        )

    def analyze(
        self,
        files: Sequence[ChangedFile],
        fetcher: ContentFetcher,
        *,
        base_revision: str,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisReport:
        """Analyse *files* in order and aggregate storyline, prompts and raw diff."""
        cancel = cancel_event or threading.Event()
        registry = self._build_registry()

        def _task(file: ChangedFile) -> _FileOutcome:
            return self._analyze_file(file, fetcher, base_revision, registry, cancel)

        if self.max_workers <= 1 or len(files) <= 1:
            outcomes = [_task(file) for file in files]
        else:
            with ThreadPoolExecutor(
                max_workers=min(self.max_workers, len(files)),
                thread_name_prefix="contextkeeper",
            ) as pool:
                # map() yields in submission order regardless of completion order.
                outcomes = list(pool.map(_task, files))

        if cancel.is_set():
            raise AnalysisCancelled("Analysis was cancelled before completion")

        reports = [outcome.report for outcome in outcomes]
        degraded = sum(1 for report in reports if report.degraded)
        if degraded:
            self.logger.info("%d of %d files degraded to file-level reporting", degraded, len(reports))
        return AnalysisReport(
            storyline=self.narrative_builder.render_storyline(reports),
            prompts=dedupe_prompts(_flatten(report.prompts for report in reports)),
            raw_diff="".join(outcome.raw_diff for outcome in outcomes),
            files=reports,
        )

    # ------------------------------------------------------------------
    # Per-file pipeline

    def _analyze_file(
        self,
        file: ChangedFile,
        fetcher: ContentFetcher,
        base_revision: str,
        registry: ExtractorRegistry,
        cancel: threading.Event,
    ) -> _FileOutcome:
        raw_diff = f"--- Changes for {file.filename} ---\n{file.patch}\n\n"
        report = FileReport(filename=file.filename, status=file.status)

        if file.status.skips_symbols:
            report.summary = self.narrative_builder.file_line(
                file.filename, file.status, file.previous_filename
            )
            return _FileOutcome(report, raw_diff)

        try:
            self._extract_story(file, fetcher, base_revision, registry, cancel, report)
        except ExtractionDegraded as exc:
            self.logger.warning("Degraded analysis for %s: %s", file.filename, exc)
            report.degraded = True
            report.story_lines.clear()
            report.prompts.clear()

        if not report.story_lines:
            report.summary = self.narrative_builder.fallback_line(file.filename, file.status)
        return _FileOutcome(report, raw_diff)

    def _extract_story(
        self,
        file: ChangedFile,
        fetcher: ContentFetcher,
        base_revision: str,
        registry: ExtractorRegistry,
        cancel: threading.Event,
        report: FileReport,
    ) -> None:
        try:
            extractor = registry.for_filename(file.filename)
        except ExtractionError as exc:
            raise ExtractionDegraded(str(exc)) from exc
        except Exception as exc:
            raise ExtractionDegraded(f"extractor unavailable: {_describe(exc)}") from exc
        if extractor is None:
            self.logger.debug("No extractor for %s", file.filename)
            return

        after_content = self._fetch(fetcher, file, None, cancel)
        if not after_content:
            raise ExtractionDegraded("head content unavailable")
        after = self._extract(extractor, after_content, "head")

        before: FingerprintMap = {}
        if file.status is FileStatus.MODIFIED:
            before_content = self._fetch(fetcher, file, base_revision, cancel)
            if before_content:
                before = self._extract(extractor, before_content, "base")
            else:
                self.logger.debug("Base content unavailable for %s", file.filename)

        narrative = self.narrative_builder.narrate(
            file.filename, file.status, diff_fingerprints(before, after)
        )
        report.story_lines.extend(narrative.story_lines)
        report.prompts.extend(narrative.prompts)

    def _fetch(
        self,
        fetcher: ContentFetcher,
        file: ChangedFile,
        revision: Optional[str],
        cancel: threading.Event,
    ) -> str:
        if cancel.is_set():
            raise ExtractionDegraded("request cancelled")
        try:
            return fetcher.fetch(file, revision)
        except Exception as exc:
            raise ExtractionDegraded(f"content fetch failed: {exc}") from exc

    @staticmethod
    def _extract(extractor: Extractor, source: str, side: str) -> FingerprintMap:
        try:
            return extractor.extract(source)
        except ExtractionError as exc:
            raise ExtractionDegraded(f"{side} revision: {exc}") from exc
        except Exception as exc:
            raise ExtractionDegraded(f"{side} revision: extractor failed: {_describe(exc)}") from exc

    def _build_registry(self) -> ExtractorRegistry:
        try:
            return build_registry(
                self.config.extractors.enabled,
                self.config.extractors.extensions,
            )
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def _flatten(groups: Iterable[List[str]]) -> List[str]:
    flattened: List[str] = []
    for group in groups:
        flattened.extend(group)
    return flattened


__all__ = [
    "AnalysisCancelled",
    "ContentFetcher",
    "ExtractionDegraded",
    "Orchestrator",
]
