import copy
import logging
import math
from typing import Dict, List, Optional

from treatment_app.models.schemas import (
    EnergyConsumption,
    TreatmentSystem,
    UnitEnergy,
    UnitInstance,
    WaterQuality,
)
from treatment_app.services.sludge_estimator import estimate_sludge, is_included
from treatment_app.services.unit_catalog import UNIT_COST_PARAMS, UNIT_METADATA

logger = logging.getLogger(__name__)

ENERGY_CATEGORIES = ("aeration", "pumping", "mixing", "disinfection", "other")

DEFAULT_ENERGY_ASSUMPTIONS: List[dict] = [
    {"key": "electricity_rate", "parameter": "Electricity Rate", "value": 4.5, "unit": "THB/kWh", "source": "PEA/MEA industrial tariff", "category": "Energy", "description": "Average electricity cost per kilowatt-hour"},
    {"key": "sludge_handling_energy", "parameter": "Sludge Handling Energy", "value": 0.05, "unit": "kWh/kg DS", "source": "WEF MOP 8", "category": "Energy", "description": "Thickening, pumping and dewatering energy per kg of dry solids"},
    {"key": "lighting_fraction", "parameter": "Lighting & Buildings", "value": 2, "unit": "% of process energy", "source": "Engineering estimate", "category": "Energy", "description": "Site lighting, HVAC and controls as a share of process energy"},
]


def apply_assumption_overrides(assumptions: List[dict], overrides: Optional[Dict[str, float]]) -> List[dict]:
    """Copy the assumption list with override values applied by key.

    Raises ValueError for an unknown key or a non-numeric value.
    """
    result = copy.deepcopy(assumptions)
    if not overrides:
        return result
    by_key = {a["key"]: a for a in result}
    for key, raw_value in overrides.items():
        if key not in by_key:
            raise ValueError(f"Unknown assumption: {key!r}")
        try:
            value = float(str(raw_value).replace(",", ""))
        except (ValueError, TypeError):
            raise ValueError(f"Assumption {key!r} is not numeric: {raw_value!r}")
        if not math.isfinite(value) or value < 0:
            raise ValueError(f"Assumption {key!r} must be a non-negative number")
        by_key[key]["value"] = value
    return result


def get_val(assumptions: List[dict], key: str) -> float:
    for a in assumptions:
        if a.get("key") == key:
            return float(a.get("value", 0))
    return 0.0


def unit_daily_energy(unit: UnitInstance) -> float:
    """kWh/d drawn by one unit; zero for disabled or failed units."""
    if not is_included(unit):
        return 0.0
    power = unit.design_values.get("power_draw")
    if power is not None:
        kwh = power * 24
    else:
        kwh = UNIT_COST_PARAMS[unit.unit_type.value]["power_consumption"] * unit.input_quality.flow
    return kwh if math.isfinite(kwh) and kwh > 0 else 0.0


def estimate_energy(
    system: TreatmentSystem,
    influent: WaterQuality,
    overrides: Optional[Dict[str, float]] = None,
) -> EnergyConsumption:
    assumptions = apply_assumption_overrides(DEFAULT_ENERGY_ASSUMPTIONS, overrides)
    rate = get_val(assumptions, "electricity_rate")

    by_category = {c: 0.0 for c in ENERGY_CATEGORIES}
    per_unit = []
    for unit in system.units:
        category = UNIT_METADATA[unit.unit_type.value]["energy_category"]
        kwh = unit_daily_energy(unit)
        by_category[category] += kwh
        per_unit.append((unit, kwh, category))

    sludge = estimate_sludge(system, influent)
    sludge_handling = sludge.total_sludge * get_val(assumptions, "sludge_handling_energy")
    process = sum(by_category.values()) + sludge_handling
    lighting = process * get_val(assumptions, "lighting_fraction") / 100
    total = process + lighting

    bod_removed = (influent.bod - system.effluent_quality.bod) * influent.flow / 1000
    unit_energy = [
        UnitEnergy(
            unit_id=unit.id,
            unit_type=unit.unit_type,
            unit_name=unit.name,
            daily_consumption=round(kwh, 2),
            percentage=round(kwh / total * 100, 2) if total > 0 else 0.0,
            category=category,
            included=is_included(unit),
        )
        for unit, kwh, category in per_unit
    ]

    logger.debug("Energy: %.1f kWh/d total, %.1f kWh/d from biogas", total, sludge.energy_recovery)

    return EnergyConsumption(
        aeration=round(by_category["aeration"], 2),
        pumping=round(by_category["pumping"], 2),
        mixing=round(by_category["mixing"], 2),
        sludge_handling=round(sludge_handling, 2),
        disinfection=round(by_category["disinfection"], 2),
        lighting=round(lighting, 2),
        other=round(by_category["other"], 2),
        total_daily=round(total, 2),
        total_monthly=round(total * 30, 2),
        total_annual=round(total * 365, 2),
        daily_cost=round(total * rate, 2),
        monthly_cost=round(total * 30 * rate, 2),
        annual_cost=round(total * 365 * rate, 2),
        kwh_per_m3=round(total / influent.flow, 4) if influent.flow > 0 else 0.0,
        kwh_per_kg_bod=round(total / bod_removed, 4) if bod_removed > 0 else 0.0,
        biogas_energy=sludge.energy_recovery,
        net_energy=round(total - sludge.energy_recovery, 2),
        unit_energy=unit_energy,
        assumptions=assumptions,
    )
