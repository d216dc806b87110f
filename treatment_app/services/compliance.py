import logging
from typing import List, Optional, Union

from treatment_app.models.schemas import (
    ComplianceParameter,
    ComplianceResult,
    ComplianceStatus,
    DesignIssue,
    EffluentStandard,
    IssueSeverity,
    StandardLimit,
    UnitStatus,
    WaterQuality,
)
from treatment_app.services.standards import resolve_standard

logger = logging.getLogger(__name__)


def _format_limit(limit: StandardLimit) -> Union[float, str]:
    if limit.min is not None and limit.max is not None:
        return f"{limit.min:g}-{limit.max:g}"
    if limit.min is not None:
        return f">={limit.min:g}"
    return float(limit.max) if limit.max is not None else "n/a"


def _judge(value: Optional[float], limit: StandardLimit) -> ComplianceStatus:
    if value is None:
        return ComplianceStatus.UNKNOWN
    if limit.max is not None and value > limit.max:
        return ComplianceStatus.FAIL
    if limit.min is not None and value < limit.min:
        return ComplianceStatus.FAIL
    return ComplianceStatus.PASS


def evaluate_compliance(
    effluent: WaterQuality,
    standard: Union[str, EffluentStandard],
) -> ComplianceResult:
    std = resolve_standard(standard)
    parameters: List[ComplianceParameter] = []
    for limit in std.limits:
        value = getattr(effluent, limit.parameter, None)
        parameters.append(ComplianceParameter(
            parameter=limit.parameter,
            name=limit.name,
            value=value,
            limit=_format_limit(limit),
            unit=limit.unit,
            status=_judge(value, limit),
            required=limit.required,
        ))

    has_fail = any(p.status == ComplianceStatus.FAIL for p in parameters)
    missing_required = any(
        p.status == ComplianceStatus.UNKNOWN and p.required for p in parameters
    )
    is_compliant = not has_fail and not missing_required

    logger.debug(
        "Compliance vs %s: compliant=%s (%d parameters, %d unknown)",
        std.key, is_compliant, len(parameters),
        sum(1 for p in parameters if p.status == ComplianceStatus.UNKNOWN),
    )

    return ComplianceResult(
        standard=std.key,
        standard_name=std.name,
        is_compliant=is_compliant,
        parameters=parameters,
    )


def compliance_status(result: ComplianceResult) -> UnitStatus:
    if any(p.status == ComplianceStatus.FAIL for p in result.parameters):
        return UnitStatus.FAIL
    if not result.is_compliant:
        return UnitStatus.WARNING
    return UnitStatus.PASS


def compliance_issues(result: ComplianceResult) -> List[DesignIssue]:
    issues = []
    for p in result.parameters:
        if p.status == ComplianceStatus.FAIL:
            limit_value = p.limit if isinstance(p.limit, float) else None
            issues.append(DesignIssue(
                severity=IssueSeverity.CRITICAL,
                parameter=p.name,
                message=f"Effluent {p.name} outside {result.standard_name} limit ({p.limit} {p.unit})",
                current_value=p.value,
                recommended_value=limit_value,
                unit=p.unit,
                suggestion="Add or upgrade treatment units targeting this parameter",
            ))
        elif p.status == ComplianceStatus.UNKNOWN and p.required:
            issues.append(DesignIssue(
                severity=IssueSeverity.WARNING,
                parameter=p.name,
                message=f"Effluent {p.name} not computed but required by {result.standard_name}",
                unit=p.unit,
                suggestion=f"Provide influent {p.name} so the train can track it",
            ))
    return issues
