import json
import yaml
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Sequence
from pydantic import ValidationError
from models.base_models import CacheEntry


ENTRY_KEYS = frozenset({"err", "data"})


def _is_entry(node: Any) -> bool:
    return isinstance(node, Mapping) and bool(node) and ENTRY_KEYS.issuperset(node.keys())


def _freeze(node: Any) -> Any:
    """Converts leaves to CacheEntry and wraps every level in a read-only mapping."""
    if isinstance(node, CacheEntry):
        return node
    if _is_entry(node):
        return CacheEntry(**node)
    if isinstance(node, Mapping):
        return MappingProxyType({key: _freeze(value) for key, value in node.items()})
    return node


class SourceCache:
    """
    Read-only store of collected provider-API results addressed by
    [service, call, subkey?, region]. Built once before a scan.
    """

    def __init__(self, raw: Optional[Mapping[str, Any]] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        try:
            self._root = _freeze(raw or {})
        except ValidationError as e:
            raise ValueError(f"Malformed cache entry: {e}")

    @classmethod
    def from_file(cls, file_path: str) -> "SourceCache":
        """Loads a collector snapshot from JSON (or YAML for .yaml/.yml)."""
        path = Path(file_path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix in ('.yaml', '.yml'):
                    raw = yaml.safe_load(f)
                else:
                    raw = json.load(f)
        except FileNotFoundError:
            raise FileNotFoundError(f"Cache file '{file_path}' not found.")
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Could not parse cache file '{file_path}': {e}")

        if raw is not None and not isinstance(raw, Mapping):
            raise ValueError(f"Cache file '{file_path}' must contain a mapping at the top level.")

        cache = cls(raw)
        cache.logger.info(f"Loaded source cache from {file_path} ({len(cache.keys([]))} services)")
        return cache

    def _walk(self, path: Sequence[Any]) -> Any:
        node = self._root
        for segment in path:
            if not isinstance(node, Mapping):
                return None
            try:
                node = node.get(segment)
            except TypeError: # unhashable segment
                return None
            if node is None:
                return None
        return node

    def get(self, path: Sequence[Any]) -> Optional[CacheEntry]:
        """Returns the entry at path, or None when any segment is missing."""
        node = self._walk(path)
        return node if isinstance(node, CacheEntry) else None

    def keys(self, path: Sequence[Any]) -> List[str]:
        """Lists the children below a partial path (e.g. regions of a call)."""
        node = self._walk(path)
        if isinstance(node, Mapping):
            return list(node.keys())
        return []

    def __contains__(self, service: str) -> bool:
        return service in self._root
