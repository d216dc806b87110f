import math
import re
from typing import Any, Dict, List, Optional, Tuple

from treatment_app.models.schemas import DesignIssue, IssueSeverity, UnitType
from treatment_app.services.unit_catalog import get_default_design_params

CHOICE_PARAMS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "bar_screen": {"cleaning_type": ("manual", "mechanical")},
    "grit_chamber": {"chamber_type": ("horizontal_flow", "aerated")},
    "primary_clarifier": {"shape": ("circular", "rectangular")},
    "aeration_tank": {
        "process_type": ("conventional", "extended_aeration", "contact_stabilization", "step_feed", "complete_mix"),
        "aeration_type": ("fine_bubble", "coarse_bubble", "mechanical_surface", "jet"),
    },
    "secondary_clarifier": {"shape": ("circular", "rectangular")},
    "chlorination": {"chlorine_type": ("gas", "hypochlorite", "chlorine_dioxide")},
    "oil_separator": {"separator_type": ("api", "cpi")},
    "oxidation_pond": {"pond_type": ("facultative", "aerobic", "anaerobic", "maturation")},
    "trickling_filter": {
        "filter_type": ("low_rate", "high_rate", "super_rate", "roughing"),
        "media_type": ("rock", "plastic", "random_plastic"),
    },
    "mbr": {"membrane_type": ("hollow_fiber", "flat_sheet")},
    "filtration": {"filter_type": ("rapid_sand", "pressure", "multimedia", "membrane")},
}

# Geometry that only applies to one clarifier shape, so it may be absent from the defaults.
SHAPE_PARAMS = {"diameter", "length", "width"}

KEY_ALIASES = {
    "baffle_efficiency": "baffle_factor",
    "operating_temperature": "operating_temp",
    "side_water_depth": "sidewater_depth",
}


def to_snake_case(key: str) -> str:
    snake = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", key.strip()).lower()
    snake = snake.replace("-", "_").replace(" ", "_")
    return KEY_ALIASES.get(snake, snake)


def _parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        num = float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (ValueError, TypeError):
        return None
    return num if math.isfinite(num) else None


def _fallback_issue(key: str, value: Any, default: Any, reason: str) -> DesignIssue:
    return DesignIssue(
        severity=IssueSeverity.WARNING,
        parameter=key,
        message=f"{reason} ({value!r}); using default {default!r}",
        current_value=default if isinstance(default, (int, float)) and not isinstance(default, bool) else None,
        suggestion=f"Provide a valid value for {key}",
    )


def _shape_geometry(shape: str, defaults: Dict[str, Any]) -> Dict[str, float]:
    if "diameter" in defaults:
        area = math.pi * defaults["diameter"] ** 2 / 4
    else:
        area = defaults.get("length", 0.0) * defaults.get("width", 0.0)
    if shape == "circular":
        return {"diameter": 2 * math.sqrt(area / math.pi)}
    return {"length": math.sqrt(2 * area), "width": math.sqrt(area / 2)}


def resolve_design_params(
    unit_type,
    user_params: Optional[Dict[str, Any]],
    flow: float,
) -> Tuple[Dict[str, Any], List[DesignIssue]]:
    """Merge user design parameters over the flow-keyed defaults.

    Returns the resolved parameters plus warning issues for every value that
    fell back to its default or was ignored. Zero and negative numbers pass
    through untouched so the unit model can flag them.
    """
    key = unit_type.value if isinstance(unit_type, UnitType) else str(unit_type)
    defaults = get_default_design_params(key, flow)
    choices = CHOICE_PARAMS.get(key, {})
    resolved = dict(defaults)
    issues: List[DesignIssue] = []
    ignored: List[str] = []

    normalized = {to_snake_case(k): v for k, v in (user_params or {}).items()}

    shape = normalized.get("shape")
    shape = shape.strip().lower() if isinstance(shape, str) else shape
    if "shape" in choices and shape in choices["shape"] and shape != defaults.get("shape"):
        for k in SHAPE_PARAMS:
            resolved.pop(k, None)
        resolved.update(_shape_geometry(shape, defaults))

    for name, value in normalized.items():
        if name in choices:
            if isinstance(value, str) and value.strip().lower() in choices[name]:
                resolved[name] = value.strip().lower()
            else:
                issues.append(_fallback_issue(name, value, resolved[name], f"Unknown {name.replace('_', ' ')}"))
            continue
        if name not in defaults and not (name in SHAPE_PARAMS and "shape" in choices):
            ignored.append(name)
            continue
        num = _parse_number(value)
        if num is None:
            issues.append(_fallback_issue(name, value, resolved.get(name), "Non-numeric value"))
            continue
        resolved[name] = num

    if ignored:
        issues.append(DesignIssue(
            severity=IssueSeverity.WARNING,
            parameter="design_params",
            message=f"Ignored unknown design parameters: {', '.join(sorted(ignored))}",
            suggestion="Check parameter names against the unit's defaults",
        ))
    return resolved, issues
