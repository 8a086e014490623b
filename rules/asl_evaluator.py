import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from cache.source_accessor import add_error
from cache.source_cache import SourceCache
from config.regions import RegionSet
from models.base_models import AslCondition, AslTree, Finding, FindingStatus
from plugins.result_recorder import ResultRecorder


RESOURCE_KEYS = ("arn", "name", "id", "user")
_MISSING = object()


class AslEvaluationError(ValueError):
    pass


def resolve_property(item: Any, property_path: str) -> Any:
    """Follows a dotted property path through nested mappings (missing -> _MISSING)."""
    node = item
    for part in property_path.split('.'):
        if isinstance(node, Mapping) and part in node:
            node = node[part]
        else:
            return _MISSING
    return node


def apply_transform(value: Any, transform: Optional[str]) -> Any:
    if transform is None or value is _MISSING:
        return value
    if transform == "STRING":
        if isinstance(value, bool):
            return "true" if value else "false"
        return "" if value is None else str(value)
    if transform == "NUMBER":
        try:
            return float(value)
        except (TypeError, ValueError):
            raise AslEvaluationError(f"Cannot convert {value!r} to a number")
    if transform == "BOOLEAN":
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)
    if transform == "LOWERCASE":
        return str(value).lower()
    if transform == "UPPERCASE":
        return str(value).upper()
    if transform == "COUNT":
        try:
            return len(value)
        except TypeError:
            raise AslEvaluationError(f"Cannot count {value!r}")
    raise AslEvaluationError(f"Unknown transform '{transform}'")


def compare(actual: Any, op: str, expected: Any) -> bool:
    if op == "ISEMPTY":
        return actual is _MISSING or actual in (None, "") or (hasattr(actual, '__len__') and len(actual) == 0)
    if op == "ISNOTEMPTY":
        return not compare(actual, "ISEMPTY", expected)
    if actual is _MISSING:
        return False
    if op == "ISTRUE":
        return actual is True
    if op == "ISFALSE":
        return actual is False
    if op == "EQ":
        return actual == expected
    if op == "NE":
        return actual != expected
    if op == "CONTAINS":
        return _contains(actual, expected)
    if op == "NOTCONTAINS":
        return not _contains(actual, expected)
    try:
        if op == "GT":
            return actual > expected
        if op == "GE":
            return actual >= expected
        if op == "LT":
            return actual < expected
        if op == "LE":
            return actual <= expected
    except TypeError:
        raise AslEvaluationError(f"Cannot compare {actual!r} {op} {expected!r}")
    raise AslEvaluationError(f"Unknown operator '{op}'")


def _contains(actual: Any, expected: Any) -> bool:
    try:
        return expected in actual
    except TypeError:
        raise AslEvaluationError(f"Cannot test membership of {expected!r} in {actual!r}")


def _describe(condition: AslCondition) -> str:
    if condition.value is None:
        return f"{condition.property} {condition.op}"
    return f"{condition.property} {condition.op} {condition.value!r}"


def _resource_of(item: Any) -> Optional[str]:
    if isinstance(item, Mapping):
        for key in RESOURCE_KEYS:
            if item.get(key):
                return str(item[key])
    return None


class AslEvaluator:
    """
    Evaluates declarative condition trees directly against the source cache,
    independently of any plugin's imperative check.
    """

    def __init__(self, cache: SourceCache, region_set: Optional[RegionSet] = None):
        self.cache = cache
        self.region_set = region_set or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def _service_key(self, service: str) -> Optional[str]:
        if service in self.cache:
            return service
        for key in self.cache.keys([]):
            if key.lower() == service.lower():
                return key
        return None

    def _regions_for(self, service_key: str, api_path: List[str]) -> Sequence[str]:
        present = self.cache.keys([service_key, *api_path])
        scoped = None
        for category in (f"{service_key}.{api_path[0]}", service_key, service_key.lower()):
            scoped = self.region_set.get(category)
            if scoped is not None:
                break
        if scoped is None:
            return present
        return [region for region in scoped if region in present]

    def _evaluate_item(self, item: Any, conditions: List[AslCondition], logical: str) -> Tuple[bool, List[str]]:
        outcomes = []
        failed = []
        for condition in conditions:
            actual = apply_transform(resolve_property(item, condition.property), condition.transform)
            passed = compare(actual, condition.op, condition.value)
            outcomes.append(passed)
            if not passed:
                failed.append(_describe(condition))
        verdict = all(outcomes) if logical == "AND" else any(outcomes)
        return verdict, failed

    def evaluate(self, tree: AslTree) -> List[Finding]:
        results = ResultRecorder()
        groups: Dict[Tuple[str, str], List[AslCondition]] = {}
        for condition in tree.conditions:
            groups.setdefault((condition.service, condition.api), []).append(condition)

        for (service, api), conditions in groups.items():
            service_key = self._service_key(service)
            if service_key is None:
                self.logger.debug(f"No cached data for {service}:{api}, skipping")
                continue

            # "instances:sql:list" addresses cache[instances][sql][list][region]
            api_path = api.split(':')
            for region in self._regions_for(service_key, api_path):
                entry = self.cache.get([service_key, *api_path, region])
                if entry is None:
                    continue
                if entry.err or entry.data is None:
                    results.add_result(FindingStatus.UNKNOWN,
                                       f"Unable to query {service}:{api}: {add_error(entry)}",
                                       region, extra={"error": entry.err})
                    continue

                items: Iterable[Any] = entry.data if isinstance(entry.data, list) else [entry.data]
                for item in items:
                    resource = _resource_of(item)
                    try:
                        passed, failed = self._evaluate_item(item, conditions, tree.logical)
                    except AslEvaluationError as e:
                        results.add_result(FindingStatus.UNKNOWN, f"Unable to evaluate conditions: {e}",
                                           region, resource)
                        continue
                    if passed:
                        results.add_result(FindingStatus.OK, "All conditions met", region, resource)
                    else:
                        results.add_result(FindingStatus.FAIL,
                                           f"Conditions not met: {', '.join(failed)}",
                                           region, resource, extra={"failed_conditions": failed})

        return results.findings
