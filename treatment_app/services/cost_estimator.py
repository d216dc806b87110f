import logging
import math
from typing import Dict, List, Optional

from treatment_app.models.schemas import CostEstimation, TreatmentSystem, UnitCost, UnitInstance
from treatment_app.services.energy_estimator import apply_assumption_overrides, get_val, unit_daily_energy
from treatment_app.services.sludge_estimator import estimate_sludge, is_included
from treatment_app.services.treatment_train import unit_land_area
from treatment_app.services.unit_catalog import UNIT_COST_PARAMS

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30

DEFAULT_COST_ASSUMPTIONS: List[dict] = [
    {"key": "electricity_rate", "parameter": "Electricity Rate", "value": 4.5, "unit": "THB/kWh", "source": "PEA/MEA industrial tariff", "category": "Energy", "description": "Average electricity cost per kilowatt-hour"},
    {"key": "labor_rate", "parameter": "Labour Rate", "value": 500, "unit": "THB/h", "source": "Regional operator wage", "category": "Labor", "description": "Loaded hourly cost of plant operators"},
    {"key": "land_cost", "parameter": "Land Cost", "value": 5000, "unit": "THB/m²", "source": "Regional average", "category": "Capital", "description": "Purchase price of land for the plant footprint"},
    {"key": "contingency", "parameter": "Contingency", "value": 15, "unit": "% of civil + equipment", "source": "Engineering estimate", "category": "Capital", "description": "Allowance for unforeseen construction costs"},
    {"key": "engineering", "parameter": "Engineering & Design", "value": 10, "unit": "% of civil + equipment", "source": "Industry standard", "category": "Capital", "description": "Design, permitting and construction supervision"},
    {"key": "installation", "parameter": "Installation", "value": 12, "unit": "% of equipment", "source": "Industry standard", "category": "Capital", "description": "Mechanical and electrical installation of equipment"},
    {"key": "sludge_disposal_cost", "parameter": "Sludge Disposal Cost", "value": 2.0, "unit": "THB/kg DS", "source": "Regional average", "category": "Disposal", "description": "Haulage and disposal of dewatered sludge"},
    {"key": "depreciation_years", "parameter": "Depreciation Period", "value": 20, "unit": "years", "source": "Straight-line", "category": "Capital", "description": "Service life used for annual depreciation"},
]


def _unit_land(unit: UnitInstance, design_flow: float) -> float:
    """Footprint of the unit as sized, scaled from its own flow to the design flow."""
    flow = unit.input_quality.flow
    if flow > 0:
        return unit_land_area(unit) * design_flow / flow
    return UNIT_COST_PARAMS[unit.unit_type.value]["land_area_per_m3_flow"] * design_flow


def estimate_cost(
    system: TreatmentSystem,
    design_flow: float,
    overrides: Optional[Dict[str, float]] = None,
) -> CostEstimation:
    """Capital, monthly operating and annualised cost of a treatment train.

    Raises ValueError for a negative or non-finite design flow.
    """
    if design_flow is None or not math.isfinite(design_flow) or design_flow < 0:
        raise ValueError(f"Design flow must be a non-negative number, got {design_flow!r}")
    assumptions = apply_assumption_overrides(DEFAULT_COST_ASSUMPTIONS, overrides)
    electricity_rate = get_val(assumptions, "electricity_rate")
    labor_rate = get_val(assumptions, "labor_rate")

    civil = equipment = land_area = 0.0
    electricity = chemicals = labor = maintenance = 0.0
    unit_costs = []

    for unit in system.units:
        included = is_included(unit)
        if not included:
            unit_costs.append(UnitCost(
                unit_id=unit.id, unit_type=unit.unit_type, unit_name=unit.name,
                capital_cost=0.0, operating_cost=0.0, included=False,
            ))
            continue
        params = UNIT_COST_PARAMS[unit.unit_type.value]
        values = unit.design_values
        structure = (params["base_cost"]
                     + values.get("volume", 0.0) * params["cost_per_m3"]
                     + values.get("surface_area", 0.0) * params["cost_per_m2"])
        unit_equipment = structure * params["equipment_factor"]

        unit_electricity = unit_daily_energy(unit) * electricity_rate * DAYS_PER_MONTH
        unit_chemicals = params["chemical_cost_per_m3"] * design_flow * DAYS_PER_MONTH
        unit_labor = params["labor_hours_per_day"] * labor_rate * DAYS_PER_MONTH
        unit_maintenance = unit_equipment * params["maintenance_factor"] / 12

        civil += structure
        equipment += unit_equipment
        land_area += _unit_land(unit, design_flow)
        electricity += unit_electricity
        chemicals += unit_chemicals
        labor += unit_labor
        maintenance += unit_maintenance

        unit_costs.append(UnitCost(
            unit_id=unit.id,
            unit_type=unit.unit_type,
            unit_name=unit.name,
            capital_cost=round(structure + unit_equipment, 2),
            operating_cost=round(unit_electricity + unit_chemicals + unit_labor + unit_maintenance, 2),
        ))

    engineering = (civil + equipment) * get_val(assumptions, "engineering") / 100
    installation = equipment * get_val(assumptions, "installation") / 100
    contingency = (civil + equipment) * get_val(assumptions, "contingency") / 100
    land_cost = land_area * get_val(assumptions, "land_cost")
    total_capital = civil + equipment + engineering + installation + contingency + land_cost

    sludge = estimate_sludge(system, system.influent)
    sludge_disposal = sludge.total_sludge * get_val(assumptions, "sludge_disposal_cost") * DAYS_PER_MONTH
    total_operating = electricity + chemicals + labor + maintenance + sludge_disposal

    annual_operating = total_operating * 12
    years = get_val(assumptions, "depreciation_years")
    annual_depreciation = total_capital / years if years > 0 else 0.0
    total_annual = annual_operating + annual_depreciation
    annual_volume = design_flow * 365

    logger.info(
        "Cost estimate: capital %.0f THB, operating %.0f THB/month for %.0f m³/d",
        total_capital, total_operating, design_flow,
    )

    return CostEstimation(
        civil_works=round(civil, 2),
        equipment=round(equipment, 2),
        engineering=round(engineering, 2),
        installation=round(installation, 2),
        contingency=round(contingency, 2),
        land_cost=round(land_cost, 2),
        total_capital=round(total_capital, 2),
        electricity=round(electricity, 2),
        chemicals=round(chemicals, 2),
        labor=round(labor, 2),
        maintenance=round(maintenance, 2),
        sludge_disposal=round(sludge_disposal, 2),
        total_operating=round(total_operating, 2),
        annual_operating=round(annual_operating, 2),
        annual_depreciation=round(annual_depreciation, 2),
        total_annual_cost=round(total_annual, 2),
        cost_per_m3=round(total_annual / annual_volume, 2) if annual_volume > 0 else 0.0,
        unit_costs=unit_costs,
        assumptions=assumptions,
    )
