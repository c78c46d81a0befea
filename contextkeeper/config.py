"""Configuration loading for contextkeeper (.contextkeeper.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".contextkeeper.yml"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class GitHubConfig:
    """Hosting API endpoints, credentials and request budgets."""

    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    token: Optional[str] = None
    user_agent: str = "Context-Keeper-App"
    request_timeout: float = 10.0
    max_retries: int = 2
    retry_backoff: float = 0.5
    max_pages: int = 30


@dataclass
class AnalysisConfig:
    """Per-request processing limits."""

    max_workers: int = 4


@dataclass
class ExtractorConfig:
    """Extractor enablement and extension routing overrides."""

    enabled: Optional[List[str]] = None
    extensions: Dict[str, str] = field(default_factory=dict)


@dataclass
class NarrativeConfig:
    """Story line template overrides."""

    templates_dir: Optional[Path] = None
    templates: Dict[str, str] = field(default_factory=dict)


@dataclass
class ContextKeeperConfig:
    """Represents the settings defined in .contextkeeper.yml."""

    root: Path
    github: GitHubConfig = field(default_factory=GitHubConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    extractors: ExtractorConfig = field(default_factory=ExtractorConfig)
    narrative: NarrativeConfig = field(default_factory=NarrativeConfig)


def default_config() -> ContextKeeperConfig:
    return ContextKeeperConfig(root=Path.cwd())


def load_config(config_path: Path) -> ContextKeeperConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ContextKeeperConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    github = GitHubConfig()
    github_data = _as_dict(data.get("github"))
    if github_data:
        github.api_url = (_as_str(github_data.get("api_url")) or github.api_url).rstrip("/")
        github.raw_url = (_as_str(github_data.get("raw_url")) or github.raw_url).rstrip("/")
        github.token = _as_str(github_data.get("token"))
        github.user_agent = _as_str(github_data.get("user_agent")) or github.user_agent
        github.request_timeout = _positive(
            _as_float(github_data.get("request_timeout")), github.request_timeout, "github.request_timeout"
        )
        github.max_retries = _non_negative(
            _as_int(github_data.get("max_retries")), github.max_retries, "github.max_retries"
        )
        github.retry_backoff = _non_negative(
            _as_float(github_data.get("retry_backoff")), github.retry_backoff, "github.retry_backoff"
        )
        github.max_pages = _positive(
            _as_int(github_data.get("max_pages")), github.max_pages, "github.max_pages"
        )

    analysis = AnalysisConfig()
    analysis_data = _as_dict(data.get("analysis"))
    if analysis_data:
        analysis.max_workers = _positive(
            _as_int(analysis_data.get("max_workers")), analysis.max_workers, "analysis.max_workers"
        )

    extractors = ExtractorConfig()
    extractor_data = _as_dict(data.get("extractors"))
    if extractor_data:
        if "enabled" in extractor_data:
            extractors.enabled = _as_str_list(extractor_data.get("enabled"))
        extractors.extensions = {
            str(ext): str(language)
            for ext, language in _as_dict(extractor_data.get("extensions")).items()
            if isinstance(language, str)
        }

    narrative = NarrativeConfig()
    narrative_data = _as_dict(data.get("narrative"))
    if narrative_data:
        templates_dir = _as_str(narrative_data.get("templates_dir"))
        narrative.templates_dir = root / templates_dir if templates_dir else None
        narrative.templates = {
            str(key): str(value)
            for key, value in _as_dict(narrative_data.get("templates")).items()
            if isinstance(value, str)
        }

    return ContextKeeperConfig(
        root=root,
        github=github,
        analysis=analysis,
        extractors=extractors,
        narrative=narrative,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _positive(value: Any, default: Any, key: str) -> Any:
    if value is None:
        return default
    if value <= 0:
        raise ConfigError(f"{key} must be greater than zero")
    return value


def _non_negative(value: Any, default: Any, key: str) -> Any:
    if value is None:
        return default
    if value < 0:
        raise ConfigError(f"{key} must not be negative")
    return value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "AnalysisConfig",
    "CONFIG_FILENAME",
    "ConfigError",
    "ContextKeeperConfig",
    "ExtractorConfig",
    "GitHubConfig",
    "NarrativeConfig",
    "default_config",
    "load_config",
]
