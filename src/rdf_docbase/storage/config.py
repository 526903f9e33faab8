"""
Store configuration.

Provides:
- Query execution settings (planner pool size, paging, timeouts)
- Store level settings (name, default graph)
- JSON persistence and environment overrides
- Configuration validation
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

ENV_PREFIX = "RDFDOCBASE_"

DEFAULT_GRAPH_IRI = "urn:x-arq:DefaultGraph"


class ConfigValidationError(Exception):
    """Configuration validation error."""
    pass


@dataclass
class QueryConfig:
    """Query execution configuration."""
    planner_workers: int = 4
    fetch_size: int = 1000
    default_timeout_seconds: Optional[float] = None
    explain_plans: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planner_workers": self.planner_workers,
            "fetch_size": self.fetch_size,
            "default_timeout_seconds": self.default_timeout_seconds,
            "explain_plans": self.explain_plans,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryConfig":
        return cls(
            planner_workers=data.get("planner_workers", 4),
            fetch_size=data.get("fetch_size", 1000),
            default_timeout_seconds=data.get("default_timeout_seconds"),
            explain_plans=data.get("explain_plans", False),
        )


@dataclass
class StoreConfig:
    """
    Complete configuration of a triple store.

    The default graph is the context used by writes and queries that do not
    name a graph.
    """
    name: str = "default"
    default_graph: str = DEFAULT_GRAPH_IRI
    query: QueryConfig = field(default_factory=QueryConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "default_graph": self.default_graph,
            "query": self.query.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreConfig":
        return cls(
            name=data.get("name", "default"),
            default_graph=data.get("default_graph", DEFAULT_GRAPH_IRI),
            query=QueryConfig.from_dict(data.get("query", {})),
        )

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "StoreConfig":
        """Load configuration from a JSON file, or the defaults if it does not exist."""
        path = Path(path)
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls.from_dict(data)
        return cls()

    @classmethod
    def from_env(cls, base: Optional["StoreConfig"] = None) -> "StoreConfig":
        """
        Build a configuration from RDFDOCBASE_* environment variables.

        Unset variables keep the value of ``base`` (or the defaults).
        """
        config = StoreConfig.from_dict(base.to_dict()) if base is not None else cls()

        config.name = os.getenv(ENV_PREFIX + "NAME", config.name)
        config.default_graph = os.getenv(ENV_PREFIX + "DEFAULT_GRAPH", config.default_graph)

        workers = os.getenv(ENV_PREFIX + "PLANNER_WORKERS")
        if workers is not None:
            config.query.planner_workers = _parse_env(workers, int, "PLANNER_WORKERS")
        fetch_size = os.getenv(ENV_PREFIX + "FETCH_SIZE")
        if fetch_size is not None:
            config.query.fetch_size = _parse_env(fetch_size, int, "FETCH_SIZE")
        timeout = os.getenv(ENV_PREFIX + "TIMEOUT_SECONDS")
        if timeout is not None:
            config.query.default_timeout_seconds = (
                _parse_env(timeout, float, "TIMEOUT_SECONDS") if timeout else None
            )
        explain = os.getenv(ENV_PREFIX + "EXPLAIN_PLANS")
        if explain is not None:
            config.query.explain_plans = explain.strip().lower() in ("1", "true", "yes", "on")

        return config


def _parse_env(value: str, converter, name: str):
    try:
        return converter(value)
    except ValueError:
        raise ConfigValidationError(f"Invalid value for {ENV_PREFIX}{name}: {value!r}")


class ConfigValidator:
    """Validates store configuration."""

    @staticmethod
    def validate(config: StoreConfig) -> List[str]:
        """
        Validate configuration.

        Returns list of error messages (empty if valid).
        """
        errors = []

        if not config.name:
            errors.append("name must not be empty")

        if not config.default_graph:
            errors.append("default_graph must not be empty")

        if config.query.planner_workers < 1:
            errors.append("planner_workers must be at least 1")

        if config.query.fetch_size < 1:
            errors.append("fetch_size must be at least 1")

        timeout = config.query.default_timeout_seconds
        if timeout is not None and timeout <= 0:
            errors.append("default_timeout_seconds must be positive")

        return errors

    @staticmethod
    def validate_or_raise(config: StoreConfig) -> None:
        """Validate configuration, raising on errors."""
        errors = ConfigValidator.validate(config)
        if errors:
            raise ConfigValidationError("; ".join(errors))
