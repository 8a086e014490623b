"""Shared fixtures for the scanner test suite."""

from typing import Any, Dict, Optional

import pytest

from cache.source_cache import SourceCache
from config.settings import ConfigManager


def entry(data: Any = None, err: Any = None) -> Dict[str, Any]:
    """Build one collected cache entry."""
    return {"err": err, "data": data}


def google_cache(project: Optional[str] = "my-project", **services: Dict[str, Any]) -> SourceCache:
    """A google cache with the projects:get entry populated plus any extra services."""
    raw: Dict[str, Any] = {}
    if project is not None:
        raw["projects"] = {"get": {"global": entry([{"name": project}])}}
    for service, calls in services.items():
        raw.setdefault(service, {}).update(calls)
    return SourceCache(raw)


@pytest.fixture
def config() -> ConfigManager:
    return ConfigManager()


@pytest.fixture
def make_config():
    def _make(**overrides) -> ConfigManager:
        return ConfigManager(overrides=overrides)
    return _make
