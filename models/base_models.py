from enum import Enum, IntEnum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Literal, Any, Optional, Union


class FindingStatus(IntEnum):
    OK = 0
    WARN = 1
    FAIL = 2
    UNKNOWN = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class RegionState(str, Enum):
    PENDING = "PENDING"
    OK = "OK"
    EMPTY = "EMPTY"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class PluginState(str, Enum):
    NOT_RUN = "NOT_RUN"
    RUNNING = "RUNNING"
    AGGREGATED = "AGGREGATED"
    DONE = "DONE"
    DONE_WITH_FAULT = "DONE_WITH_FAULT"


class Finding(BaseModel):
    status: FindingStatus
    message: str
    region: str = "global"
    resource: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict) # Free-form context (e.g., upstream error)


class CacheEntry(BaseModel):
    """One collected provider-API response. Frozen for the lifetime of a scan."""
    model_config = ConfigDict(frozen=True)

    err: Union[None, str, List[Any], Dict[str, Any]] = None
    data: Any = None


class AslCondition(BaseModel):
    service: str
    api: str
    property: str
    transform: Optional[Literal["STRING", "NUMBER", "BOOLEAN", "LOWERCASE", "UPPERCASE", "COUNT"]] = None
    op: Literal[
        "EQ", "NE", "GT", "GE", "LT", "LE",
        "CONTAINS", "NOTCONTAINS",
        "ISEMPTY", "ISNOTEMPTY", "ISTRUE", "ISFALSE",
    ]
    value: Any = None


class AslTree(BaseModel):
    conditions: List[AslCondition]
    logical: Literal["AND", "OR"] = "AND"


class PluginDescriptor(BaseModel):
    title: str
    category: str
    description: str
    more_info: str = ""
    link: str = ""
    recommended_action: str = ""
    apis: List[str] = Field(default_factory=list) # e.g. "IAM:generateCredentialReport"
    compliance: Dict[str, str] = Field(default_factory=dict) # framework -> control text
    asl: Optional[AslTree] = None

    @field_validator('apis')
    def validate_apis(cls, v):
        for api in v:
            parts = api.split(':')
            if len(parts) < 2 or not all(parts):
                raise ValueError(f"API reference '{api}' must look like 'service:call'.")
        return v


class AslRuleDefinition(BaseModel):
    id: str
    title: str
    category: str = "Declarative"
    description: str = ""
    provider: Optional[str] = None
    compliance: Dict[str, str] = Field(default_factory=dict)
    asl: AslTree


class PluginResult(BaseModel):
    plugin_id: str
    error: Optional[str] = None
    findings: List[Finding] = Field(default_factory=list)
    source: Dict[str, Any] = Field(default_factory=dict) # Trace of every cache path consulted
    region_states: Dict[str, RegionState] = Field(default_factory=dict)


class ReportFinding(Finding):
    plugin_id: str
    title: str
    category: str
    compliance: Dict[str, str] = Field(default_factory=dict)


class PluginReport(BaseModel):
    plugin_id: str
    title: str
    category: str
    state: PluginState = PluginState.NOT_RUN
    error: Optional[str] = None
    findings: List[ReportFinding] = Field(default_factory=list)
    source: Dict[str, Any] = Field(default_factory=dict)
    region_states: Dict[str, RegionState] = Field(default_factory=dict)
    duration_seconds: float = 0.0


def _empty_stats() -> Dict[str, int]:
    return {status.label: 0 for status in FindingStatus}


class ScanReport(BaseModel):
    entries: List[PluginReport] = Field(default_factory=list)
    stats: Dict[Literal["ok", "warn", "fail", "unknown"], int] = Field(
        default_factory=_empty_stats
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def findings(self) -> List[ReportFinding]:
        return [finding for entry in self.entries for finding in entry.findings]

    def add_entry(self, entry: PluginReport):
        self.entries.append(entry)
        for finding in entry.findings:
            self.stats[finding.status.label] += 1

    def clear(self):
        """Resets all fields to their original default values"""
        for name, field in type(self).model_fields.items():
            if field.default_factory:
                # Re-run the factory to get a fresh list/dict
                setattr(self, name, field.default_factory())
            else:
                setattr(self, name, field.default)
