from typing import List

from treatment_app.models.schemas import UnitConfig, UnitType, WaterQuality
from treatment_app.services.unit_catalog import BIOLOGICAL_UNITS

DISINFECTION_UNITS = {UnitType.CHLORINATION, UnitType.UV_DISINFECTION}
SECONDARY_UNITS = BIOLOGICAL_UNITS | {"secondary_clarifier", "daf", "filtration"}


def validate_influent(influent: WaterQuality) -> List[dict]:
    warnings: List[dict] = []

    if influent.flow == 0:
        warnings.append({
            "field": "flow",
            "message": "Influent flow is zero; every unit will report no flow.",
            "severity": "warning",
        })
    if influent.cod > 0 and influent.bod > influent.cod:
        warnings.append({
            "field": "bod",
            "message": f"BOD ({influent.bod:g} mg/L) exceeds COD ({influent.cod:g} mg/L). Check the lab results.",
            "severity": "warning",
        })
    elif influent.cod > 0 and influent.bod / influent.cod < 0.3:
        warnings.append({
            "field": "bod",
            "message": (
                f"BOD/COD ratio {influent.bod / influent.cod:.2f} is low; the wastewater may be "
                "poorly biodegradable and biological units may underperform."
            ),
            "severity": "info",
        })
    if influent.ph is not None and not 6.0 <= influent.ph <= 9.0:
        warnings.append({
            "field": "ph",
            "message": f"Influent pH {influent.ph:g} is outside 6-9; neutralisation may be needed.",
            "severity": "warning",
        })
    if influent.ammonia_n is not None and influent.total_n is not None and influent.ammonia_n > influent.total_n:
        warnings.append({
            "field": "ammoniaN",
            "message": "Ammonia-N exceeds total N.",
            "severity": "warning",
        })
    if influent.ammonia_n is None and influent.total_n is None:
        warnings.append({
            "field": "totalN",
            "message": "No nitrogen data given; nitrogen results will not be reported.",
            "severity": "info",
        })
    return warnings


def validate_train_sequence(units: List[UnitConfig]) -> List[dict]:
    warnings: List[dict] = []
    seen_biological = False
    seen_secondary = False

    for position, unit in enumerate(units):
        if not unit.enabled:
            continue
        unit_type = unit.unit_type
        if unit_type == UnitType.SECONDARY_CLARIFIER and not seen_biological:
            warnings.append({
                "field": f"units[{position}]",
                "message": "Secondary clarifier has no upstream biological unit.",
                "severity": "warning",
            })
        if unit_type in DISINFECTION_UNITS and not seen_secondary:
            warnings.append({
                "field": f"units[{position}]",
                "message": "Disinfection is placed before secondary treatment; solids will shield pathogens.",
                "severity": "warning",
            })
        if unit_type.value in BIOLOGICAL_UNITS:
            seen_biological = True
        if unit_type.value in SECONDARY_UNITS:
            seen_secondary = True

    ids = [u.id for u in units if u.id]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        warnings.append({
            "field": "units",
            "message": f"Duplicate unit ids: {', '.join(duplicates)}",
            "severity": "warning",
        })
    return warnings
