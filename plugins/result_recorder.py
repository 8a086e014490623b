from typing import Any, Dict, Iterable, Iterator, List, Optional, Union
from models.base_models import Finding, FindingStatus


class ResultRecorder:
    """Append-only list of findings owned by one plugin (or one region task)."""

    def __init__(self):
        self._findings: List[Finding] = []

    def add_result(
        self,
        status: Union[int, FindingStatus],
        message: str,
        region: Optional[str] = "global",
        resource: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Finding:
        finding = Finding(
            status=status,
            message=message,
            region=region or "global",
            resource=resource,
            extra=dict(extra or {}),
        )
        self._findings.append(finding)
        return finding

    def extend(self, findings: Iterable[Finding]):
        self._findings.extend(findings)

    @property
    def findings(self) -> List[Finding]:
        return list(self._findings)

    def __len__(self) -> int:
        return len(self._findings)

    def __iter__(self) -> Iterator[Finding]:
        return iter(list(self._findings))
