"""CLI entrypoints for contextkeeper commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import ConfigError, load_config
from .github.client import UpstreamUnavailable
from .logging import configure_logging
from .models import AnalysisReport
from .orchestrator import AnalysisCancelled, Orchestrator
from .reference import InvalidReference


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contextkeeper",
        description="Summarise pull requests as a storyline of function-level changes.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyse a GitHub pull request.",
    )
    _add_verbose_option(analyze_parser, suppress_default=True)
    analyze_parser.add_argument(
        "reference",
        help="Pull request URL (https://github.com/owner/repo/pull/123) or owner/repo#123.",
    )
    analyze_parser.add_argument(
        "--config",
        type=Path,
        default=Path("."),
        help="Path to .contextkeeper.yml or the directory containing it.",
    )
    analyze_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the storyline, prompts and raw diff as JSON.",
    )
    analyze_parser.add_argument(
        "--raw-diff",
        action="store_true",
        help="Append the raw patch text to the report.",
    )
    analyze_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Maximum number of files analysed concurrently.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for contextkeeper commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "analyze":
        if args.workers is not None and args.workers < 1:
            parser.exit(1, "--workers must be at least 1\n")
        try:
            config = load_config(args.config)
            orchestrator = Orchestrator(config, max_workers=args.workers)
            report = orchestrator.run(args.reference)
        except InvalidReference as exc:
            parser.exit(1, f"{exc}\n")
        except ConfigError as exc:
            parser.exit(1, f"Configuration error: {exc}\n")
        except UpstreamUnavailable as exc:
            parser.exit(1, f"GitHub API Error: {exc}\n")
        except AnalysisCancelled as exc:
            parser.exit(1, f"{exc}\n")
        if args.json:
            print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        else:
            print(_format_report(report, include_diff=bool(args.raw_diff)))
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _format_report(report: AnalysisReport, *, include_diff: bool = False) -> str:
    lines = [report.storyline, ""]
    if report.prompts:
        lines.append("Documentation prompts:")
        lines.extend(f"- {prompt}" for prompt in report.prompts)
    else:
        lines.append("No documentation prompts.")
    if include_diff:
        lines.extend(["", "Raw diff:", report.raw_diff.rstrip()])
    return "\n".join(lines)


if __name__ == "__main__":
    main(sys.argv[1:])
