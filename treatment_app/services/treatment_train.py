import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from treatment_app.models.schemas import (
    DesignIssue,
    TreatmentSummary,
    TreatmentSystem,
    UnitConfig,
    UnitInstance,
    UnitStatus,
    WaterQuality,
)
from treatment_app.services.compliance import compliance_issues, compliance_status, evaluate_compliance
from treatment_app.services.design_criteria import apply_criteria_overrides
from treatment_app.services.energy_estimator import unit_daily_energy
from treatment_app.services.standards import resolve_standard
from treatment_app.services.unit_catalog import UNIT_COST_PARAMS
from treatment_app.services.unit_processes import evaluate_unit

logger = logging.getLogger(__name__)

STATUS_RANK = {
    UnitStatus.NOT_CONFIGURED: 0,
    UnitStatus.PASS: 1,
    UnitStatus.WARNING: 2,
    UnitStatus.FAIL: 3,
}


def worst_status(statuses: Iterable[UnitStatus]) -> UnitStatus:
    return max(statuses, key=STATUS_RANK.__getitem__, default=UnitStatus.NOT_CONFIGURED)


def _percent_change(before: Optional[float], after: Optional[float]) -> Optional[float]:
    if before is None or after is None:
        return None
    if before <= 0:
        return 0.0
    return round((before - after) / before * 100, 2)


def unit_land_area(unit: UnitInstance) -> float:
    if unit.status == UnitStatus.NOT_CONFIGURED:
        return 0.0
    footprint = unit.design_values.get("land_area", unit.design_values.get("surface_area", 0.0))
    by_flow = UNIT_COST_PARAMS[unit.unit_type.value]["land_area_per_m3_flow"] * unit.input_quality.flow
    return max(footprint, by_flow)


def _summarize(influent: WaterQuality, effluent: WaterQuality, units: List[UnitInstance]) -> TreatmentSummary:
    return TreatmentSummary(
        total_bod_removal=_percent_change(influent.bod, effluent.bod),
        total_cod_removal=_percent_change(influent.cod, effluent.cod),
        total_tss_removal=_percent_change(influent.tss, effluent.tss),
        total_ammonia_removal=_percent_change(influent.ammonia_n, effluent.ammonia_n),
        total_land_area=round(sum(unit_land_area(u) for u in units), 2),
        total_power=round(sum(unit_daily_energy(u) for u in units) / 24, 3),
        unit_count=len(units),
        failed_units=sum(1 for u in units if u.status == UnitStatus.FAIL),
        failed_simulations=sum(1 for u in units if u.simulation_failed),
    )


def compute_treatment_train(
    influent: WaterQuality,
    unit_configs: List[Union[UnitConfig, Dict[str, Any]]],
    target_standard: Any = "community",
    design_criteria: Optional[Dict[str, float]] = None,
) -> TreatmentSystem:
    """Pass the influent through each unit in order and assess the effluent.

    Raises ValueError for an unknown standard or criteria override path.
    Design problems never raise; they show up as issues and statuses.
    """
    standard = resolve_standard(target_standard)
    design_config = apply_criteria_overrides(design_criteria)
    configs = [c if isinstance(c, UnitConfig) else UnitConfig.model_validate(c) for c in unit_configs]

    units: List[UnitInstance] = []
    quality = influent
    for position, config in enumerate(configs):
        unit = evaluate_unit(config, quality, design_config, position)
        units.append(unit)
        quality = unit.output_quality

    compliance = evaluate_compliance(quality, standard)
    overall = worst_status([u.status for u in units] + [compliance_status(compliance)])

    system_issues: List[DesignIssue] = [issue for u in units for issue in u.issues]
    system_issues.extend(compliance_issues(compliance))
    summary = _summarize(influent, quality, units)

    logger.info(
        "Treatment train: %d units, effluent BOD %.1f mg/L, %s vs %s, status %s",
        len(units), quality.bod,
        "compliant" if compliance.is_compliant else "non-compliant",
        standard.key, overall.value,
    )

    return TreatmentSystem(
        influent=influent,
        units=units,
        target_standard=standard.key,
        effluent_quality=quality,
        compliance=compliance,
        overall_status=overall,
        system_issues=system_issues,
        summary=summary,
    )
