"""Symbol extractor implementations and the extension routing table."""

from __future__ import annotations

import threading
from importlib import metadata
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from .base import ExtractionError, Extractor
from .patterns import PatternExtractor
from .tree_sitter import TreeSitterExtractor

_ENTRY_POINT_GROUP = "contextkeeper.extractors"

_BUILTIN_FACTORIES: Dict[str, Callable[[], Extractor]] = {
    "php": lambda: TreeSitterExtractor("php"),
    "python": lambda: TreeSitterExtractor("python"),
    "javascript": PatternExtractor,
}

EXTENSION_TABLE: Dict[str, str] = {
    ".php": "php",
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "javascript",
    ".tsx": "javascript",
}


class ExtractorRegistry:
    """Request-scoped mapping from file extension to extractor instance.

    Extractors are instantiated lazily on first use and live only as long as
    the registry, so no parser state survives between requests.
    """

    def __init__(
        self,
        factories: Mapping[str, Callable[[], Extractor]],
        extensions: Mapping[str, str],
    ) -> None:
        self._factories = dict(factories)
        self._extensions = {
            _normalise_extension(ext): language
            for ext, language in extensions.items()
            if language in self._factories
        }
        self._instances: Dict[str, Extractor] = {}
        self._lock = threading.Lock()

    @property
    def languages(self) -> Sequence[str]:
        return sorted(self._factories)

    def language_for(self, filename: str) -> Optional[str]:
        return self._extensions.get(extension_of(filename))

    def for_filename(self, filename: str) -> Optional[Extractor]:
        """Return the extractor handling *filename*, or None for unmapped extensions."""
        language = self.language_for(filename)
        if language is None:
            return None
        with self._lock:
            instance = self._instances.get(language)
            if instance is None:
                instance = _coerce_extractor(self._factories[language]())
                self._instances[language] = instance
        return instance


def build_registry(
    enabled: Sequence[str] | None = None,
    extensions: Mapping[str, str] | None = None,
) -> ExtractorRegistry:
    """Return a fresh registry, honouring optional enabled languages and extension overrides."""

    factories: Dict[str, Callable[[], Extractor]] = dict(_BUILTIN_FACTORIES)
    for entry in _iter_entry_points():
        name = entry.name.lower()
        if name in factories:
            continue

        def _factory(entry: metadata.EntryPoint = entry) -> Extractor:
            try:
                loaded = entry.load()
            except Exception as exc:
                raise ExtractionError(
                    f"Failed to load extractor entry point '{entry.name}': {exc}"
                ) from exc
            return _coerce_extractor(loaded)

        factories[name] = _factory

    table = dict(EXTENSION_TABLE)
    for ext, language in (extensions or {}).items():
        key = language.lower()
        if key not in factories:
            raise ValueError(f"Unknown extractor '{language}' mapped to extension '{ext}'")
        table[_normalise_extension(ext)] = key

    if enabled is not None:
        enabled_set = {name.lower() for name in enabled}
        missing = enabled_set.difference(factories)
        if missing:
            raise ValueError(f"Unknown extractors requested: {', '.join(sorted(missing))}")
        factories = {name: factory for name, factory in factories.items() if name in enabled_set}

    return ExtractorRegistry(factories, table)


def extension_of(filename: str) -> str:
    return PurePosixPath(filename).suffix.lower()


def _normalise_extension(ext: str) -> str:
    cleaned = ext.strip().lower()
    return cleaned if cleaned.startswith(".") else f".{cleaned}"


def _coerce_extractor(obj: object) -> Extractor:
    if isinstance(obj, Extractor):
        return obj
    if isinstance(obj, type) and issubclass(obj, Extractor):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, Extractor):
            return instance
    raise TypeError("Extractor entry point must be an Extractor subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "EXTENSION_TABLE",
    "ExtractionError",
    "Extractor",
    "ExtractorRegistry",
    "PatternExtractor",
    "TreeSitterExtractor",
    "build_registry",
    "extension_of",
]
