"""Tests for the per-request analysis pipeline."""

from __future__ import annotations

import threading
from typing import Callable

import pytest

from contextkeeper import extractors
from contextkeeper.config import ConfigError, ContextKeeperConfig, default_config
from contextkeeper.extractors import Extractor
from contextkeeper.github.client import PullRequestNotFound
from contextkeeper.models import (
    ChangedFile,
    FileStatus,
    FingerprintMap,
    PullRequestMetadata,
    PullRequestRef,
)
from contextkeeper.narrative import NarrativeBuilder, NarrativeTemplates
from contextkeeper.orchestrator import AnalysisCancelled, Orchestrator
from contextkeeper.reference import InvalidReference
from tests._fixtures.pull_request import StubContentFetcher, changed_file, source

_BASE = "base-sha"

_CALC_BEFORE = "<?php\nfunction add($a, $b) { return $a + $b; }\n"
_CALC_AFTER = "<?php\nfunction add($a, $b, $c) { return $a + $b + $c; }\n"


def test_signature_change_produces_story_and_review_prompt(orchestrator: Orchestrator) -> None:
    fetcher = StubContentFetcher(head={"calc.php": _CALC_AFTER}, base={"calc.php": _CALC_BEFORE})

    report = orchestrator.analyze([changed_file("calc.php")], fetcher, base_revision=_BASE)

    assert report.storyline == "In `calc.php`:\n- ⚠️ **Signature changed for** `add`."
    assert report.prompts == [
        "REVIEW: The signature for `add` in `calc.php` has changed. Ensure all calls are updated."
    ]
    assert fetcher.calls == [("calc.php", None), ("calc.php", _BASE)]


def test_body_change_has_no_prompt(orchestrator: Orchestrator) -> None:
    after = "<?php\nfunction add($a, $b) { return $b + $a; }\n"
    fetcher = StubContentFetcher(head={"calc.php": after}, base={"calc.php": _CALC_BEFORE})

    report = orchestrator.analyze([changed_file("calc.php")], fetcher, base_revision=_BASE)

    assert "💡 **Implementation changed inside:** `add`." in report.storyline
    assert report.prompts == []


def test_added_file_lists_every_function_without_fetching_base(orchestrator: Orchestrator) -> None:
    content = source(
        """
        <?php
        class Cart {
            public function total() { return 0; }
        }
        function helper() {}
        """
    )
    fetcher = StubContentFetcher(head={"cart.php": content})

    report = orchestrator.analyze(
        [changed_file("cart.php", status="added")], fetcher, base_revision=_BASE
    )

    assert report.files[0].story_lines == [
        "✅ **New function/method added:** `Cart::total`.",
        "✅ **New function/method added:** `helper`.",
    ]
    assert len(report.prompts) == 2
    assert fetcher.calls == [("cart.php", None)]


def test_removed_and_renamed_files_are_not_fetched(orchestrator: Orchestrator) -> None:
    renamed = ChangedFile(
        filename="src/new.php",
        status=FileStatus.RENAMED,
        patch="",
        previous_filename="src/old.php",
    )
    fetcher = StubContentFetcher()

    report = orchestrator.analyze(
        [changed_file("gone.php", status="removed", patch="@@ -1,3 +0,0 @@"), renamed],
        fetcher,
        base_revision=_BASE,
    )

    assert report.storyline == (
        "File `gone.php` was removed.\n\nFile `src/new.php` was renamed from `src/old.php`."
    )
    assert report.prompts == []
    assert fetcher.calls == []
    assert report.raw_diff == (
        "--- Changes for gone.php ---\n@@ -1,3 +0,0 @@\n\n"
        "--- Changes for src/new.php ---\n\n\n"
    )


def test_unmapped_extension_uses_fallback_line(orchestrator: Orchestrator) -> None:
    fetcher = StubContentFetcher(head={"README.md": "# Title"})

    report = orchestrator.analyze([changed_file("README.md")], fetcher, base_revision=_BASE)

    assert "no high-level changes detected" in report.storyline
    assert fetcher.calls == []


def test_empty_head_content_degrades_to_fallback(orchestrator: Orchestrator) -> None:
    fetcher = StubContentFetcher(base={"calc.php": _CALC_BEFORE})

    report = orchestrator.analyze([changed_file("calc.php")], fetcher, base_revision=_BASE)

    assert report.files[0].degraded
    assert report.storyline == (
        "File `calc.php` was modified, but no high-level changes detected for `.php` files."
    )
    assert report.prompts == []


def test_unavailable_base_treats_every_function_as_added(orchestrator: Orchestrator) -> None:
    fetcher = StubContentFetcher(head={"calc.php": _CALC_AFTER})

    report = orchestrator.analyze([changed_file("calc.php")], fetcher, base_revision=_BASE)

    assert report.files[0].story_lines == ["✅ **New function/method added:** `add`."]


def test_unchanged_structure_falls_back(orchestrator: Orchestrator) -> None:
    fetcher = StubContentFetcher(head={"calc.php": _CALC_BEFORE}, base={"calc.php": _CALC_BEFORE})

    report = orchestrator.analyze([changed_file("calc.php")], fetcher, base_revision=_BASE)

    assert not report.files[0].degraded
    assert "no high-level changes detected for `.php` files" in report.storyline


def test_parse_failure_is_isolated_to_its_file(orchestrator: Orchestrator) -> None:
    fetcher = StubContentFetcher(
        head={"broken.php": "<?php\nfunction broken( {\n", "calc.php": _CALC_AFTER},
        base={"broken.php": "<?php\n", "calc.php": _CALC_BEFORE},
    )

    report = orchestrator.analyze(
        [changed_file("broken.php"), changed_file("calc.php")], fetcher, base_revision=_BASE
    )

    broken, calc = report.files
    assert broken.degraded and broken.story_lines == []
    assert "no high-level changes detected" in (broken.summary or "")
    assert calc.story_lines == ["⚠️ **Signature changed for** `add`."]


def test_fetch_errors_are_isolated_to_their_file(orchestrator: Orchestrator) -> None:
    fetcher = StubContentFetcher(
        head={"calc.php": _CALC_AFTER},
        failures={"flaky.php": TimeoutError("timed out")},
    )

    report = orchestrator.analyze(
        [changed_file("flaky.php"), changed_file("calc.php", status="added")],
        fetcher,
        base_revision=_BASE,
    )

    assert report.files[0].degraded
    assert report.files[1].story_lines == ["✅ **New function/method added:** `add`."]


def test_prompts_are_deduplicated_across_files() -> None:
    builder = NarrativeBuilder(NarrativeTemplates(added_prompt="ACTION: Document `{name}`."))
    orchestrator = Orchestrator(default_config(), narrative_builder=builder, max_workers=1)
    content = "<?php\nfunction boot() {}\n"
    fetcher = StubContentFetcher(head={"a.php": content, "b.php": content})

    report = orchestrator.analyze(
        [changed_file("a.php", status="added"), changed_file("b.php", status="added")],
        fetcher,
        base_revision=_BASE,
    )

    assert report.prompts == ["ACTION: Document `boot`."]
    assert len(report.files[0].prompts) == len(report.files[1].prompts) == 1


def test_concurrent_analysis_preserves_input_order() -> None:
    orchestrator = Orchestrator(default_config(), max_workers=4)
    names = [f"f{index}.php" for index in range(4)]
    fetcher = StubContentFetcher(
        head={name: f"<?php\nfunction fn{index}() {{}}\n" for index, name in enumerate(names)},
        delays={"f0.php": 0.2, "f1.php": 0.1},
    )

    report = orchestrator.analyze(
        [changed_file(name, status="added") for name in names], fetcher, base_revision=_BASE
    )

    assert [item.filename for item in report.files] == names
    blocks = report.storyline.split("\n\n")
    assert [block.splitlines()[0] for block in blocks] == [f"In `{name}`:" for name in names]
    assert report.raw_diff.index("f0.php") < report.raw_diff.index("f3.php")


def test_cancelled_request_yields_no_partial_report(orchestrator: Orchestrator) -> None:
    cancel = threading.Event()
    cancel.set()
    fetcher = StubContentFetcher(head={"calc.php": _CALC_AFTER})

    with pytest.raises(AnalysisCancelled):
        orchestrator.analyze(
            [changed_file("calc.php")], fetcher, base_revision=_BASE, cancel_event=cancel
        )
    assert fetcher.calls == []


def test_empty_pull_request(orchestrator: Orchestrator) -> None:
    report = orchestrator.analyze([], StubContentFetcher(), base_revision=_BASE)

    assert report.storyline == "No files were analyzed."
    assert report.prompts == []
    assert report.raw_diff == ""


def test_disabled_language_falls_back(tmp_path) -> None:  # type: ignore[no-untyped-def]
    config = ContextKeeperConfig(root=tmp_path)
    config.extractors.enabled = ["python"]
    orchestrator = Orchestrator(config, max_workers=1)
    fetcher = StubContentFetcher(head={"calc.php": _CALC_AFTER})

    report = orchestrator.analyze([changed_file("calc.php")], fetcher, base_revision=_BASE)

    assert "no high-level changes detected" in report.storyline
    assert fetcher.calls == []


class _StubClient:
    def __init__(self, files: list[ChangedFile], contents: dict[tuple[str, str], str]) -> None:
        self.files = files
        self.contents = contents
        self.raw_requests: list[str] = []

    def fetch_pull_request_metadata(self, ref: PullRequestRef) -> PullRequestMetadata:
        if ref.number == 404:
            raise PullRequestNotFound(f"Pull request {ref} was not found", 404)
        return PullRequestMetadata(base_revision=_BASE, head_revision="head-sha")

    def fetch_changed_files(self, ref: PullRequestRef) -> list[ChangedFile]:
        return self.files

    def fetch_raw(self, url: str) -> str:
        self.raw_requests.append(url)
        return self.contents.get(("raw", url), "")

    def fetch_file_content(self, ref: PullRequestRef, filename: str, revision: str) -> str:
        return self.contents.get((revision, filename), "")


def test_run_fetches_through_the_client() -> None:
    file = changed_file("calc.php")
    client = _StubClient(
        [file],
        {("raw", file.raw_url or ""): _CALC_AFTER, (_BASE, "calc.php"): _CALC_BEFORE},
    )
    orchestrator = Orchestrator(default_config(), client=client, max_workers=1)  # type: ignore[arg-type]

    report = orchestrator.run("https://github.com/acme/widgets/pull/7")

    assert client.raw_requests == [file.raw_url]
    assert report.files[0].story_lines == ["⚠️ **Signature changed for** `add`."]
    assert report.to_dict()["raw_diff"] == "--- Changes for calc.php ---\n@@ -1 +1 @@\n\n"


def test_run_propagates_upstream_and_reference_errors() -> None:
    orchestrator = Orchestrator(default_config(), client=_StubClient([], {}), max_workers=1)  # type: ignore[arg-type]

    with pytest.raises(PullRequestNotFound):
        orchestrator.run("acme/widgets#404")
    with pytest.raises(InvalidReference):
        orchestrator.run("not a reference")


def test_unknown_extractor_or_template_is_a_config_error(tmp_path) -> None:  # type: ignore[no-untyped-def]
    config = ContextKeeperConfig(root=tmp_path)
    config.extractors.enabled = ["cobol"]
    orchestrator = Orchestrator(config, max_workers=1)

    with pytest.raises(ConfigError):
        orchestrator.analyze([], StubContentFetcher(), base_revision=_BASE)

    broken = ContextKeeperConfig(root=tmp_path)
    broken.narrative.templates = {"headline": "{name}"}
    with pytest.raises(ConfigError):
        Orchestrator(broken)


class _ExplodingExtractor(Extractor):
    def extract(self, source: str) -> FingerprintMap:
        raise ValueError("boom")


def _unloadable_extractor() -> Extractor:
    raise TypeError("plugin factory is broken")


@pytest.mark.parametrize("factory", [_ExplodingExtractor, _unloadable_extractor])
def test_unexpected_extractor_errors_degrade_only_their_file(
    monkeypatch: pytest.MonkeyPatch,
    orchestrator: Orchestrator,
    factory: Callable[[], Extractor],
) -> None:
    monkeypatch.setitem(extractors._BUILTIN_FACTORIES, "python", factory)
    fetcher = StubContentFetcher(
        head={"tool.py": "def run():\n    pass\n", "calc.php": _CALC_AFTER},
        base={"calc.php": _CALC_BEFORE},
    )

    report = orchestrator.analyze(
        [changed_file("tool.py"), changed_file("calc.php")], fetcher, base_revision=_BASE
    )

    tool, calc = report.files
    assert tool.degraded
    assert tool.summary == (
        "File `tool.py` was modified, but no high-level changes detected for `.py` files."
    )
    assert calc.story_lines == ["⚠️ **Signature changed for** `add`."]
