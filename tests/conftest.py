from __future__ import annotations

import pytest

from contextkeeper.config import default_config
from contextkeeper.orchestrator import Orchestrator


class _OfflineClient:
    """Client double that fails loudly if a test reaches for the network."""

    def __getattr__(self, name: str):  # type: ignore[no-untyped-def]
        raise AssertionError(f"unexpected GitHub call: {name}")


@pytest.fixture
def orchestrator() -> Orchestrator:
    """Sequential orchestrator with default configuration and no network access."""
    return Orchestrator(default_config(), client=_OfflineClient(), max_workers=1)  # type: ignore[arg-type]
