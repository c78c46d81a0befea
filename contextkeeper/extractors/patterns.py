"""Regex-based symbol extractor for languages without a parser profile."""

from __future__ import annotations

import re

from .base import Extractor
from ..models import FingerprintMap, SymbolFingerprint

_IDENTIFIER = r"[A-Za-z_$][\w$]*"

_DECLARATION_PATTERN = re.compile(
    # export async function name(
    rf"(?:export\s+)?(?:default\s+)?(?:async\s+)?\bfunction\b\s*\*?\s*({_IDENTIFIER})\s*\("
    # const name = async (a, b) =>   /   let name: Handler = value =>
    rf"|^[ \t]*(?:export\s+)?(?:const|let|var)\s+({_IDENTIFIER})(?:\s*:\s*[^=;]+?)?\s*=\s*"
    rf"(?:async\s*)?(?:\((?:[^()]|\([^()]*\))*\)(?:\s*:\s*[^=;{{]+?)?|{_IDENTIFIER})\s*=>",
    re.MULTILINE,
)


class PatternExtractor(Extractor):
    """Finds named function declarations and arrow-function bindings by name only.

    Every symbol maps to the constant signature ``function <name>()`` with no
    body hash, so two revisions of a file can only ever differ by added or
    removed names. Class methods, anonymous default exports and rebound names
    are not recognised.
    """

    def extract(self, source: str) -> FingerprintMap:
        structure: FingerprintMap = {}
        for match in _DECLARATION_PATTERN.finditer(source):
            name = next((group for group in match.groups() if group), None)
            if name:
                structure[name] = SymbolFingerprint(signature=f"function {name}()")
        return structure


__all__ = ["PatternExtractor"]
