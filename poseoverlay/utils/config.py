from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Tuple

import yaml

DEFAULT_RUNTIME_CONFIG = Path("configs/runtime.yaml")
DEFAULT_SPORTS_CONFIG = Path("configs/sports.yaml")

_RUNTIME_SECTIONS = (
    "source",
    "sampling",
    "display",
    "render",
    "metrics",
    "feedback",
    "audio",
    "pose",
    "server",
    "logging",
)


class ConfigError(ValueError):
    pass


class SportId(str, Enum):
    GOLF = "golf"
    SPRINT = "sprint"
    CRICKET = "cricket"
    BASEBALL = "baseball"
    TENNIS = "tennis"
    SQUAT = "squat"


@dataclass
class RuntimeConfig:
    source: Dict[str, Any] = field(default_factory=dict)
    sampling: Dict[str, Any] = field(default_factory=dict)
    display: Dict[str, Any] = field(default_factory=dict)
    render: Dict[str, Any] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)
    feedback: Dict[str, Any] = field(default_factory=dict)
    audio: Dict[str, Any] = field(default_factory=dict)
    pose: Dict[str, Any] = field(default_factory=dict)
    server: Dict[str, Any] = field(default_factory=dict)
    logging: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SportProfile:
    sport: SportId
    title: str
    labels: Tuple[str, ...]
    thresholds: Mapping[str, Any]

    def threshold(self, key: str, default: Any = None) -> Any:
        return self.thresholds.get(key, default)


class SportCatalog:
    """Read-only lookup of sport profiles keyed by sport id."""

    def __init__(self, profiles: Mapping[SportId, SportProfile]) -> None:
        missing = [sport.value for sport in SportId if sport not in profiles]
        if missing:
            raise ConfigError(f"Missing sport profiles: {', '.join(missing)}")
        self._profiles: Mapping[SportId, SportProfile] = MappingProxyType(dict(profiles))

    def get(self, sport: SportId | str) -> SportProfile:
        try:
            return self._profiles[SportId(sport)]
        except ValueError as exc:
            raise ConfigError(f"Unsupported sport: {sport}") from exc

    def __iter__(self) -> Iterator[SportProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


def _read_yaml(path: Path | str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return data


def load_runtime_config(path: Path | str = DEFAULT_RUNTIME_CONFIG) -> RuntimeConfig:
    data = _read_yaml(path)
    sections: Dict[str, Dict[str, Any]] = {}
    for name in _RUNTIME_SECTIONS:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"{path}: section '{name}' must be a mapping")
        sections[name] = section
    return RuntimeConfig(**sections)


def parse_sport_profiles(data: Mapping[str, Any]) -> SportCatalog:
    profiles: Dict[SportId, SportProfile] = {}
    for key, entry in data.items():
        try:
            sport = SportId(key)
        except ValueError as exc:
            raise ConfigError(f"Unknown sport '{key}'") from exc
        if not isinstance(entry, dict):
            raise ConfigError(f"Sport '{key}' must be a mapping")
        labels = entry.get("metrics")
        if not labels or not all(isinstance(label, str) for label in labels):
            raise ConfigError(f"Sport '{key}' needs a non-empty 'metrics' label list")
        profiles[sport] = SportProfile(
            sport=sport,
            title=str(entry.get("title", sport.value.title())),
            labels=tuple(labels),
            thresholds=MappingProxyType(dict(entry.get("thresholds") or {})),
        )
    return SportCatalog(profiles)


def load_sport_profiles(path: Path | str = DEFAULT_SPORTS_CONFIG) -> SportCatalog:
    return parse_sport_profiles(_read_yaml(path))
