"""Pull request storylines built from function-level structural diffs."""

from .differ import diff_fingerprints
from .models import AnalysisReport, ChangedFile, DiffResult, FileStatus, SymbolFingerprint
from .orchestrator import Orchestrator

__version__ = "0.1.0"

__all__ = [
    "AnalysisReport",
    "ChangedFile",
    "DiffResult",
    "FileStatus",
    "Orchestrator",
    "SymbolFingerprint",
    "diff_fingerprints",
]
