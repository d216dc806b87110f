import logging
import math

from treatment_app.models.schemas import (
    SludgeProduction,
    TreatmentSystem,
    UnitInstance,
    UnitSludge,
    UnitStatus,
    WaterQuality,
)
from treatment_app.services.unit_catalog import UNIT_METADATA

logger = logging.getLogger(__name__)

# Solids content of each sludge stream, fraction of wet mass.
SOLIDS_FRACTION = {
    "primary": 0.04,
    "biological": 0.01,
    "chemical": 0.03,
    "tertiary": 0.01,
}
SLUDGE_DENSITY = 1000.0        # kg/m³
METHANE_FRACTION = 0.65
METHANE_ENERGY = 9.97          # kWh per m³ CH4
ELECTRICAL_EFFICIENCY = 0.35


def is_included(unit: UnitInstance) -> bool:
    return unit.status != UnitStatus.NOT_CONFIGURED and not unit.simulation_failed


def _finite(value: float) -> float:
    return value if math.isfinite(value) and value > 0 else 0.0


def estimate_sludge(system: TreatmentSystem, influent: WaterQuality) -> SludgeProduction:
    mass = {kind: 0.0 for kind in SOLIDS_FRACTION}
    biogas = 0.0
    breakdown = []

    for unit in system.units:
        sludge_type = UNIT_METADATA[unit.unit_type.value]["sludge_type"]
        included = is_included(unit)
        produced = _finite(unit.design_values.get("sludge_production", 0.0)) if included else 0.0
        if sludge_type in mass:
            mass[sludge_type] += produced
        else:
            produced = 0.0
        if included:
            biogas += _finite(unit.design_values.get("biogas_production", 0.0))
        breakdown.append(UnitSludge(
            unit_id=unit.id,
            unit_type=unit.unit_type,
            unit_name=unit.name,
            sludge_produced=round(produced, 2),
            sludge_type=sludge_type,
            included=included,
        ))

    volume = {
        kind: mass[kind] / (fraction * SLUDGE_DENSITY)
        for kind, fraction in SOLIDS_FRACTION.items()
    }
    total = sum(mass.values())
    energy = biogas * METHANE_FRACTION * METHANE_ENERGY * ELECTRICAL_EFFICIENCY

    logger.debug("Sludge: %.1f kg DS/d, biogas %.1f m³/d", total, biogas)

    return SludgeProduction(
        primary_sludge=round(mass["primary"], 2),
        primary_sludge_volume=round(volume["primary"], 3),
        biological_sludge=round(mass["biological"], 2),
        biological_sludge_volume=round(volume["biological"], 3),
        chemical_sludge=round(mass["chemical"], 2),
        chemical_sludge_volume=round(volume["chemical"], 3),
        tertiary_sludge=round(mass["tertiary"], 2),
        tertiary_sludge_volume=round(volume["tertiary"], 3),
        total_sludge=round(total, 2),
        total_sludge_volume=round(sum(volume.values()), 3),
        sludge_per_m3=round(total / influent.flow, 4) if influent.flow > 0 else 0.0,
        biogas_production=round(biogas, 2),
        methane_content=METHANE_FRACTION * 100 if biogas > 0 else 0.0,
        energy_recovery=round(energy, 2),
        unit_sludge=breakdown,
    )
