"""Fingerprint comparison between two revisions of a file."""

from __future__ import annotations

from typing import Mapping, Set

from .models import DiffResult, SymbolFingerprint


def diff_fingerprints(
    before: Mapping[str, SymbolFingerprint],
    after: Mapping[str, SymbolFingerprint],
) -> DiffResult:
    """Classify every symbol key as added, removed, signature- or body-changed.

    A key whose signature and body both differ is reported only as a signature
    change. Body hashes are compared only when both sides carry one, so
    name-only fingerprints never yield a body change.
    """
    before_keys = set(before)
    after_keys = set(after)

    signature_changed: Set[str] = set()
    body_changed: Set[str] = set()
    for name in before_keys & after_keys:
        old, new = before[name], after[name]
        if old.signature != new.signature:
            signature_changed.add(name)
        elif (
            old.body_hash is not None
            and new.body_hash is not None
            and old.body_hash != new.body_hash
        ):
            body_changed.add(name)

    return DiffResult(
        added=frozenset(after_keys - before_keys),
        removed=frozenset(before_keys - after_keys),
        signature_changed=frozenset(signature_changed),
        body_changed=frozenset(body_changed),
    )


__all__ = ["diff_fingerprints"]
