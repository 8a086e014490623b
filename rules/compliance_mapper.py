from typing import Dict, Iterable, List, Optional
from models.base_models import Finding, ReportFinding


def map_compliance(plugin_id: str, title: str, category: str,
                   compliance: Optional[Dict[str, str]], findings: Iterable[Finding]) -> List[ReportFinding]:
    """
    Joins a plugin's static compliance map onto each of its findings.
    The source findings are left untouched.
    """
    compliance = dict(compliance or {})
    return [
        ReportFinding(
            **finding.model_dump(),
            plugin_id=plugin_id,
            title=title,
            category=category,
            compliance=dict(compliance),
        )
        for finding in findings
    ]


def filter_by_framework(findings: Iterable[ReportFinding], framework: Optional[str]) -> List[ReportFinding]:
    """Keeps findings whose plugin maps to the framework (all findings when framework is None)."""
    if not framework:
        return list(findings)
    framework = framework.lower()
    return [
        finding for finding in findings
        if framework in {key.lower() for key in finding.compliance}
    ]
