"""Base classes for symbol extractor plugins."""

from abc import ABC, abstractmethod

from ..models import FingerprintMap


class ExtractionError(RuntimeError):
    """Raised when source text cannot be turned into a fingerprint map."""


class Extractor(ABC):
    """Contract for extractors that fingerprint the callables of one source file."""

    #: Whether fingerprints carry body hashes (and signatures beyond the name).
    structural = False

    @abstractmethod
    def extract(self, source: str) -> FingerprintMap:
        """Return a fresh fingerprint map, or raise ExtractionError."""
