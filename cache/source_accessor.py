import threading
from typing import Any, Dict, Optional, Sequence
from cache.source_cache import SourceCache
from models.base_models import CacheEntry


NO_DATA_MESSAGE = "Unable to obtain data"


class SourceTrace:
    """
    Records every cache path an invocation consulted, shaped like the cache.
    Used for debugging and audit output only.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tree: Dict[str, Any] = {}

    def record(self, path: Sequence[Any], entry: Optional[CacheEntry]):
        if not path:
            return
        keys = [str(segment) for segment in path]
        with self._lock:
            node = self._tree
            for key in keys[:-1]:
                child = node.get(key)
                if not isinstance(child, dict):
                    child = {}
                    node[key] = child
                node = child
            # Frozen entries are shared with the cache and dumped only on export
            node[keys[-1]] = entry

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return _copy_tree(self._tree)


def _copy_tree(node: Any) -> Any:
    if isinstance(node, dict):
        return {key: _copy_tree(value) for key, value in node.items()}
    if isinstance(node, CacheEntry):
        return node.model_dump()
    return node


class SourceAccessor:
    def __init__(self, cache: SourceCache, trace: SourceTrace):
        self.cache = cache
        self.trace = trace

    def add_source(self, path: Sequence[Any]) -> Optional[CacheEntry]:
        """
        Looks up a cache path and records the lookup in the trace.
        A None return means "not collected / not applicable" and should be
        treated as a soft skip by the caller.
        """
        entry = self.cache.get(path)
        self.trace.record(path, entry)
        return entry


def add_error(entry: Optional[CacheEntry]) -> str:
    """Renders the error carried by a cache entry as a readable message."""
    err = getattr(entry, 'err', None)
    if not err:
        return NO_DATA_MESSAGE
    if isinstance(err, str):
        return err
    if isinstance(err, (list, tuple)):
        parts = [str(item) for item in err if item]
        return "; ".join(parts) if parts else NO_DATA_MESSAGE
    if isinstance(err, dict):
        for key in ('message', 'code'):
            if err.get(key):
                return str(err[key])
        return NO_DATA_MESSAGE
    try:
        return str(err)
    except Exception:
        return NO_DATA_MESSAGE
