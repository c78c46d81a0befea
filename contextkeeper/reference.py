"""Parsing of pull-request references supplied by callers."""

from __future__ import annotations

import re

from .models import PullRequestRef

_URL_PATTERN = re.compile(
    r"github\.com/(?P<owner>[^/\s]+)/(?P<repo>[^/\s]+)/pull/(?P<number>\d+)"
)
_SHORTHAND_PATTERN = re.compile(
    r"^(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+)#(?P<number>\d+)$"
)


class InvalidReference(ValueError):
    """Raised when a pull-request identifier cannot be understood."""


def parse_reference(value: str) -> PullRequestRef:
    """Parse a pull request URL or an ``owner/repo#number`` shorthand."""
    text = (value or "").strip()
    match = _URL_PATTERN.search(text) or _SHORTHAND_PATTERN.match(text)
    if match is None:
        raise InvalidReference(f"Invalid GitHub pull request reference: {value!r}")
    number = int(match.group("number"))
    if number <= 0:
        raise InvalidReference(f"Pull request number must be positive: {value!r}")
    return PullRequestRef(
        owner=match.group("owner"),
        repo=match.group("repo"),
        number=number,
    )


__all__ = ["InvalidReference", "parse_reference"]
