"""
Unit process models.
Each model maps an input WaterQuality and resolved design parameters to an
output quality, removal efficiencies, design issues and computed design
values. Models are registered per UnitType; every type must have one.
"""
import logging
import math
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from treatment_app.models.schemas import (
    DesignIssue,
    IssueSeverity,
    RemovalEfficiency,
    SimulationSummary,
    UnitConfig,
    UnitInstance,
    UnitStatus,
    UnitType,
    WaterQuality,
)
from treatment_app.services.asm1 import (
    ReactorConfig,
    ReactorConfigurationError,
    SimulationError,
    fractionate_influent,
    simulate_reactor,
)
from treatment_app.services.design_criteria import (
    default_design_config,
    evaluate_criterion,
    get_unit_criteria,
)
from treatment_app.services.design_params import resolve_design_params
from treatment_app.services.unit_catalog import UNIT_METADATA

logger = logging.getLogger(__name__)

GRAVITY = 9.81
REMOVABLE = ("bod", "cod", "tss", "ammonia_n", "total_n", "total_p", "oil_grease")
CONCENTRATIONS = REMOVABLE + ("nitrate_n", "alkalinity")

# kg O2 per kWh, field conditions
AERATION_EFFICIENCY = {
    "fine_bubble": 1.8,
    "coarse_bubble": 1.0,
    "mechanical_surface": 1.4,
    "jet": 1.2,
}

# m, used to turn a tank volume into a plan area
TYPICAL_DEPTH = {"aeration_tank": 4.5, "sbr": 5.0, "mbr": 4.0}

BIOLOGICAL_P_UPTAKE = 0.02     # kg P per kg VSS wasted
UV_LAMP_SPACING = 0.15         # m
UV_DOSE_PER_LAMP_ROW = 20      # mJ/cm²
UV_LAMP_POWER = 150            # W
SBR_PHASES = {"fill": 0.25, "react": 0.35, "settle": 0.25, "decant": 0.10, "idle": 0.05}
SBR_DECANT_RATIO = 0.3
BIOGAS_PER_KG_COD = 0.35 / 0.65  # m³ biogas at 65 % CH4
PEAK_FACTOR = 2.5


class UnitOutcome(NamedTuple):
    output: WaterQuality
    removal: RemovalEfficiency
    issues: List[DesignIssue]
    design_values: Dict[str, float]
    simulation: Optional[SimulationSummary] = None
    simulation_failed: bool = False


UnitModel = Callable[[WaterQuality, Dict[str, Any], Dict[str, Any]], UnitOutcome]
UNIT_MODELS: Dict[UnitType, UnitModel] = {}


def unit_model(unit_type: UnitType):
    def register(fn: UnitModel) -> UnitModel:
        UNIT_MODELS[unit_type] = fn
        return fn
    return register


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clip(percent: float) -> float:
    if not math.isfinite(percent):
        return 0.0
    return min(max(percent, 0.0), 100.0)


def _percent_removed(before: Optional[float], after: float) -> float:
    if not before or before <= 0:
        return 0.0
    return _clip(100.0 * (1.0 - after / before))


def apply_removal(
    quality: WaterQuality,
    removal: Dict[str, float],
    config: Dict[str, Any],
) -> Tuple[WaterQuality, RemovalEfficiency]:
    """Apply percent removals to every tracked pollutant.

    Nitrogen and phosphorus bound to settled solids fall with TSS unless the
    caller gives an explicit removal for them. Untracked (None) values stay
    None and report zero removal.
    """
    pct = {k: _clip(float(v)) for k, v in removal.items()}
    nutrients = config["removal"]["solids_nutrients"]
    tss = pct.get("tss", 0.0)
    pct.setdefault("total_n", _clip(tss * nutrients["total_n_per_tss"]))
    pct.setdefault("total_p", _clip(tss * nutrients["total_p_per_tss"]))

    updates: Dict[str, float] = {}
    applied: Dict[str, float] = {}
    for name in REMOVABLE:
        value = getattr(quality, name)
        if value is None:
            applied[name] = 0.0
            continue
        r = pct.get(name, 0.0)
        updates[name] = value * (1.0 - r / 100.0)
        applied[name] = r
    return quality.model_copy(update=updates), RemovalEfficiency(**applied)


def zero_flow_quality(quality: WaterQuality) -> WaterQuality:
    updates = {
        name: 0.0 for name in CONCENTRATIONS if getattr(quality, name) is not None
    }
    updates["flow"] = 0.0
    return quality.model_copy(update=updates)


def _evaluate(criteria: Dict[str, dict], metrics: Dict[str, Optional[float]]) -> List[DesignIssue]:
    issues = []
    for name, value in metrics.items():
        issue = evaluate_criterion(criteria.get(name), value)
        if issue is not None:
            issues.append(issue)
    return issues


def _invalid_geometry(params: Dict[str, Any], names) -> Optional[DesignIssue]:
    bad = [n for n in names if not params.get(n) or params[n] <= 0]
    if not bad:
        return None
    return DesignIssue(
        severity=IssueSeverity.CRITICAL,
        parameter=bad[0],
        message=f"Invalid geometry: {', '.join(bad)} must be positive",
        current_value=params.get(bad[0]),
        suggestion="Enter positive dimensions for the unit",
    )


def _out_of_range(derived: Dict[str, float]) -> Optional[DesignIssue]:
    """Areas and volumes computed from valid inputs that overflowed or vanished."""
    bad = [n for n, v in derived.items() if not (math.isfinite(v) and v > 0)]
    if not bad:
        return None
    value = derived[bad[0]]
    return DesignIssue(
        severity=IssueSeverity.CRITICAL,
        parameter=bad[0],
        message=f"Invalid geometry: {', '.join(bad)} out of numeric range",
        current_value=value if math.isfinite(value) else None,
        suggestion="Enter realistic dimensions for the unit",
    )


def _degraded(quality: WaterQuality, issue: DesignIssue) -> UnitOutcome:
    return UnitOutcome(quality, RemovalEfficiency(), [issue], {})


def _rounded(values: Dict[str, float]) -> Dict[str, float]:
    return {
        k: round(float(v), 4)
        for k, v in values.items()
        if v is not None and math.isfinite(v)
    }


def _bod_removed(quality: WaterQuality, removal: RemovalEfficiency) -> float:
    """kg BOD removed per day."""
    return quality.bod * removal.bod / 100 * quality.flow / 1000


def _plan_area(params: Dict[str, Any]) -> Tuple[float, float]:
    """Surface area and weir length for a circular or rectangular tank."""
    if params.get("shape") == "circular":
        d = params["diameter"]
        return math.pi * d * d / 4, math.pi * d
    return params["length"] * params["width"], 2 * params["width"]


def _shape_dims(params: Dict[str, Any]) -> Tuple[str, ...]:
    if params.get("shape") == "circular":
        return ("diameter", "sidewater_depth")
    return ("length", "width", "sidewater_depth")


# ---------------------------------------------------------------------------
# Preliminary
# ---------------------------------------------------------------------------


@unit_model(UnitType.BAR_SCREEN)
def bar_screen(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("channel_width", "channel_depth", "bar_spacing", "bar_width", "screen_angle"))
    if invalid:
        return _degraded(q, invalid)
    Qs = q.flow / 86400
    width, depth = params["channel_width"], params["channel_depth"]
    spacing, bar_width = params["bar_spacing"], params["bar_width"]
    invalid = _out_of_range({"channel_area": width * depth})
    if invalid:
        return _degraded(q, invalid)

    approach = Qs / (width * depth)
    clear_ratio = spacing / (spacing + bar_width)
    through = approach / clear_ratio
    # Kirschmer, rectangular bars
    headloss = (1.43 * (bar_width / spacing) ** (4 / 3) * through * through / (2 * GRAVITY)
                * math.sin(math.radians(params["screen_angle"])))

    metrics = {"approach_velocity": approach, "through_velocity": through}
    if params.get("cleaning_type") == "manual":
        metrics["manual_bar_spacing"] = spacing
    issues = _evaluate(get_unit_criteria(config, "bar_screen"), metrics)

    table = config["removal"]["bar_screen"]
    if spacing < table["fine_spacing"]:
        row = table["fine"]
    elif spacing < table["medium_spacing"]:
        row = table["medium"]
    else:
        row = table["coarse"]
    output, removal = apply_removal(q, row, config)

    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "clear_ratio": clear_ratio,
        "headloss": headloss,
        "surface_area": width * 3.0,
        "volume": width * depth * 3.0,
    }))


@unit_model(UnitType.GRIT_CHAMBER)
def grit_chamber(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("length", "width", "depth"))
    if invalid:
        return _degraded(q, invalid)
    variant = params["chamber_type"]
    Qs = q.flow / 86400
    length, width, depth = params["length"], params["width"], params["depth"]
    volume = length * width * depth
    invalid = _out_of_range({"volume": volume, "surface_area": length * width, "cross_section": width * depth})
    if invalid:
        return _degraded(q, invalid)

    metrics = {"hrt": volume / Qs}  # s
    if variant == "aerated":
        metrics["surface_loading"] = q.flow / (length * width) / 24
    else:
        metrics["horizontal_velocity"] = Qs / (width * depth)
    issues = _evaluate(get_unit_criteria(config, "grit_chamber", variant), metrics)

    output, removal = apply_removal(q, config["removal"]["grit_chamber"][variant], config)
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "volume": volume,
        "surface_area": length * width,
        "grit_production": q.flow * 0.015,  # L/d at 15 L per 1000 m³
    }))


# ---------------------------------------------------------------------------
# Primary
# ---------------------------------------------------------------------------


@unit_model(UnitType.PRIMARY_CLARIFIER)
def primary_clarifier(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, _shape_dims(params))
    if invalid:
        return _degraded(q, invalid)
    area, weir_length = _plan_area(params)
    volume = area * params["sidewater_depth"]
    invalid = _out_of_range({"surface_area": area, "weir_length": weir_length, "volume": volume})
    if invalid:
        return _degraded(q, invalid)
    sor = q.flow / area
    hrt = volume / q.flow * 24

    metrics = {
        "surface_overflow_rate": sor,
        "hrt": hrt,
        "weir_loading": q.flow / weir_length,
        "sidewater_depth": params["sidewater_depth"],
    }
    issues = _evaluate(get_unit_criteria(config, "primary_clarifier"), metrics)

    table = config["removal"]["primary_clarifier"]
    if sor > table["overloaded_sor"] or hrt < table["overloaded_hrt"]:
        row = table["overloaded"]
    elif sor <= table["enhanced_max_sor"] and hrt >= table["enhanced_min_hrt"]:
        row = table["enhanced"]
    else:
        row = table["default"]
    row = {**row, "cod": row["bod"] * table["cod_to_bod"]}
    output, removal = apply_removal(q, row, config)

    sludge = (q.tss - output.tss) * q.flow / 1000  # kg DS/d
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "surface_area": area,
        "volume": volume,
        "sludge_production": sludge,
    }))


@unit_model(UnitType.OIL_SEPARATOR)
def oil_separator(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("length", "width", "depth"))
    if invalid:
        return _degraded(q, invalid)
    area = params["length"] * params["width"]
    volume = area * params["depth"]
    invalid = _out_of_range({"surface_area": area, "volume": volume})
    if invalid:
        return _degraded(q, invalid)
    hrt = volume / q.flow * 1440  # min
    loading = q.flow / area / 24

    metrics = {"hrt": hrt, "surface_loading": loading}
    issues = _evaluate(get_unit_criteria(config, "oil_separator"), metrics)

    table = config["removal"]["oil_separator"]
    good = hrt >= table["good_min_hrt"] and loading <= table["good_max_loading"]
    oil = table["good"] if good else table["normal"]
    output, removal = apply_removal(q, {
        "oil_grease": oil,
        "bod": oil * table["bod_factor"],
        "cod": oil * table["bod_factor"],
        "tss": oil * table["tss_factor"],
    }, config)

    oil_removed = ((q.oil_grease or 0.0) - (output.oil_grease or 0.0)) * q.flow / 1000
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "surface_area": area,
        "volume": volume,
        "oil_removed": oil_removed,
        "sludge_production": (q.tss - output.tss) * q.flow / 1000,
    }))


# ---------------------------------------------------------------------------
# Biological
# ---------------------------------------------------------------------------


def _simulation_failed(q: WaterQuality, issues: List[DesignIssue], values: Dict[str, float], message: str) -> UnitOutcome:
    issues.append(DesignIssue(
        severity=IssueSeverity.CRITICAL,
        parameter="Simulation",
        message="Simulation did not converge",
        suggestion=message,
    ))
    return UnitOutcome(q, RemovalEfficiency(), issues, _rounded(values), None, True)


@unit_model(UnitType.AERATION_TANK)
def aeration_tank(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("volume", "srt", "mlss"))
    if invalid:
        return _degraded(q, invalid)
    variant = params["process_type"]
    Q, V = q.flow, params["volume"]
    mlss, srt = params["mlss"], params["srt"]
    hrt = V / Q * 24
    mlvss = 0.75 * mlss
    bod_load = q.bod * Q / 1000  # kg/d

    metrics = {
        "fm_ratio": bod_load / (mlvss * V / 1000),
        "hrt": hrt,
        "srt": srt,
        "mlss": mlss,
        "dissolved_oxygen": params["target_do"],
        "volumetric_loading": bod_load / V,
        "srt_hrt_ratio": srt / (hrt / 24),
    }
    issues = _evaluate(get_unit_criteria(config, "aeration_tank", variant), metrics)
    values = {**metrics, "volume": V, "surface_area": V / TYPICAL_DEPTH["aeration_tank"]}

    reactor = ReactorConfig(
        volume=V,
        flow=Q,
        srt=srt,
        do_setpoint=params["target_do"],
        temperature=q.temperature if q.temperature is not None else 20.0,
        mlss_setpoint=mlss,
    )
    try:
        result = simulate_reactor(fractionate_influent(q), reactor)
    except ReactorConfigurationError as exc:
        issues.append(DesignIssue(
            severity=IssueSeverity.CRITICAL,
            parameter="Reactor",
            message=f"Invalid reactor configuration: {exc}",
            suggestion="Check volume, SRT, DO setpoint and temperature",
        ))
        return UnitOutcome(q, RemovalEfficiency(), issues, _rounded(values))
    except SimulationError as exc:
        logger.warning("Aeration tank simulation failed: %s", exc)
        return _simulation_failed(q, issues, values, str(exc))

    eff = result.effluent
    tracks_n = q.ammonia_n is not None or q.total_n is not None
    pct = {
        "bod": _percent_removed(q.bod, eff["bod"]),
        "cod": _percent_removed(q.cod, eff["cod"]),
        "tss": _percent_removed(q.tss, eff["tss"]),
        "ammonia_n": _percent_removed(q.ammonia_n, eff["ammonia_n"]),
        "total_n": _percent_removed(q.total_n, eff["total_n"]),
    }

    ml = result.mixed_liquor
    wasted_vss = result.sludge_production * (ml["mlvss"] / ml["mlss"] if ml["mlss"] > 0 else 0.0)
    p_uptake = BIOLOGICAL_P_UPTAKE * wasted_vss  # kg P/d
    if q.total_p:
        pct["total_p"] = _clip(100.0 * p_uptake * 1000 / Q / q.total_p)

    output, removal = apply_removal(q, pct, config)
    extra = {}
    if tracks_n:
        extra["nitrate_n"] = eff["nitrate_n"]
    if q.alkalinity is not None:
        extra["alkalinity"] = eff["alkalinity"]
    if extra:
        output = output.model_copy(update=extra)

    efficiency = AERATION_EFFICIENCY.get(params.get("aeration_type"), AERATION_EFFICIENCY["fine_bubble"])
    power = result.oxygen_demand / efficiency / 24  # kW
    simulation = SimulationSummary(
        mode=result.mode,
        converged=result.converged,
        steps=result.steps,
        simulated_days=result.simulated_days,
        step_size=result.step_size,
        temperature=result.temperature,
        state=result.state_dict(),
        mlss=ml["mlss"],
        mlvss=ml["mlvss"],
        oxygen_demand=result.oxygen_demand,
        sludge_production=result.sludge_production,
        performance=result.performance,
    )
    return UnitOutcome(output, removal, issues, _rounded({
        **values,
        "mlvss": mlvss,
        "simulated_mlss": ml["mlss"],
        "oxygen_demand": result.oxygen_demand,
        "power_draw": power,
        "sludge_production": result.sludge_production,
        "phosphorus_uptake": p_uptake,
    }), simulation)


@unit_model(UnitType.SBR)
def sbr(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("volume_per_reactor", "number_of_reactors", "cycle_time", "mlss"))
    if invalid:
        return _degraded(q, invalid)
    Q = q.flow
    per_reactor, reactors = params["volume_per_reactor"], params["number_of_reactors"]
    cycle = params["cycle_time"]
    total = per_reactor * reactors
    cycles_per_day = 24 / cycle
    capacity = per_reactor * SBR_DECANT_RATIO * cycles_per_day * reactors
    invalid = _out_of_range({"total_volume": total, "treatment_capacity": capacity})
    if invalid:
        return _degraded(q, invalid)
    mlvss = 0.75 * params["mlss"]

    metrics = {
        "capacity_ratio": capacity / Q,
        "settle_time": SBR_PHASES["settle"] * cycle * 60,
        "fm_ratio": q.bod * Q / (mlvss * total),
    }
    issues = _evaluate(get_unit_criteria(config, "sbr"), metrics)

    output, removal = apply_removal(q, config["removal"]["sbr"], config)
    sludge = config["sludge_yield"]["sbr"] * _bod_removed(q, removal)
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "total_volume": total,
        "volume": total,
        "surface_area": total / TYPICAL_DEPTH["sbr"],
        "treatment_capacity": capacity,
        "cycles_per_day": cycles_per_day,
        "hrt": total / Q * 24,
        "sludge_production": sludge,
    }))


@unit_model(UnitType.UASB)
def uasb(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("volume", "height"))
    if invalid:
        return _degraded(q, invalid)
    Q, V = q.flow, params["volume"]
    area = V / params["height"]
    invalid = _out_of_range({"surface_area": area})
    if invalid:
        return _degraded(q, invalid)

    metrics = {
        "hrt": V / Q * 24,
        "upflow_velocity": Q / area / 24,
        "organic_loading": q.cod * Q / 1000 / V,
        "temperature": params["operating_temp"],
    }
    issues = _evaluate(get_unit_criteria(config, "uasb"), metrics)

    table = config["removal"]["uasb"]
    good = metrics["hrt"] >= table["good_min_hrt"] and metrics["organic_loading"] <= table["good_max_olr"]
    cod = table["good"] if good else table["normal"]
    output, removal = apply_removal(q, {"cod": cod, "bod": cod, "tss": cod * table["tss_factor"]}, config)

    cod_removed = (q.cod - output.cod) * Q / 1000
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "volume": V,
        "surface_area": area,
        "cod_removed": cod_removed,
        "biogas_production": cod_removed * BIOGAS_PER_KG_COD,
        "methane_production": cod_removed * 0.35,
        "sludge_production": config["sludge_yield"]["uasb"] * _bod_removed(q, removal),
    }))


@unit_model(UnitType.OXIDATION_POND)
def oxidation_pond(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("surface_area", "depth"))
    if invalid:
        return _degraded(q, invalid)
    variant = params["pond_type"]
    area, depth = params["surface_area"], params["depth"]
    volume = area * depth
    invalid = _out_of_range({"volume": volume})
    if invalid:
        return _degraded(q, invalid)

    metrics = {
        "hrt": volume / q.flow,  # d
        "depth": depth,
        "bod_loading": q.bod * q.flow / 1000 / (area / 10000),  # kg/ha·d
    }
    issues = _evaluate(get_unit_criteria(config, "oxidation_pond", variant), metrics)

    table = config["removal"]["oxidation_pond"]
    if variant == "maturation":
        row = table["maturation"]
    elif variant == "facultative" and metrics["hrt"] >= table["facultative_long_hrt"]:
        row = table["facultative_long"]
    else:
        row = table["default"]
    output, removal = apply_removal(q, row, config)

    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "volume": volume,
        "surface_area": area,
        "land_area": area * 1.3,
    }))


@unit_model(UnitType.TRICKLING_FILTER)
def trickling_filter(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("diameter", "depth"))
    if invalid:
        return _degraded(q, invalid)
    R = params["recirculation_ratio"]
    if R < 0:
        return _degraded(q, DesignIssue(
            severity=IssueSeverity.CRITICAL,
            parameter="recirculation_ratio",
            message="Recirculation ratio cannot be negative",
            current_value=R,
            suggestion="Use a ratio of 0 or more",
        ))
    Q = q.flow
    area = math.pi * params["diameter"] * params["diameter"] / 4
    volume = area * params["depth"]
    invalid = _out_of_range({"surface_area": area, "volume": volume})
    if invalid:
        return _degraded(q, invalid)
    bod_load = q.bod * Q / 1000

    metrics = {
        "hydraulic_loading": Q * (1 + R) / area,
        "organic_loading": bod_load / volume,
    }
    issues = _evaluate(get_unit_criteria(config, "trickling_filter", params["filter_type"]), metrics)

    # NRC equation, single-stage
    table = config["removal"]["trickling_filter"]
    recirculation_factor = (1 + R) / (1 + 0.1 * R) ** 2
    efficiency = 100 / (1 + table["nrc_coefficient"] * math.sqrt(bod_load / (volume * recirculation_factor)))
    efficiency = min(max(efficiency, table["min"]), table["max"])
    output, removal = apply_removal(q, {
        "bod": efficiency,
        "cod": efficiency * table["cod_factor"],
        "tss": efficiency * table["tss_factor"],
    }, config)

    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "surface_area": area,
        "volume": volume,
        "recirculation_factor": recirculation_factor,
        "nrc_efficiency": efficiency,
        "sludge_production": config["sludge_yield"]["trickling_filter"] * _bod_removed(q, removal),
    }))


@unit_model(UnitType.MBR)
def mbr(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("tank_volume", "membrane_area", "mlss", "srt", "flux"))
    if invalid:
        return _degraded(q, invalid)
    Q, V = q.flow, params["tank_volume"]
    membrane_area = params["membrane_area"]
    mlvss = 0.8 * params["mlss"]
    actual_flux = Q * 1000 / 24 / membrane_area  # L/m²·h

    metrics = {
        "mlss": params["mlss"],
        "flux": params["flux"],
        "membrane_utilization": actual_flux / params["flux"],
        "srt": params["srt"],
        "hrt": V / Q * 24,
        "fm_ratio": q.bod * Q / (mlvss * V),
    }
    issues = _evaluate(get_unit_criteria(config, "mbr"), metrics)

    output, removal = apply_removal(q, config["removal"]["mbr"], config)
    process_air = V * 0.02            # m³/min
    scour_air = membrane_area * 0.01  # m³/min
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "actual_flux": actual_flux,
        "volume": V,
        "surface_area": V / TYPICAL_DEPTH["mbr"],
        "air_flow": process_air + scour_air,
        "power_draw": (process_air + scour_air) * 0.5,
        "sludge_production": config["sludge_yield"]["mbr"] * _bod_removed(q, removal),
    }))


# ---------------------------------------------------------------------------
# Secondary and tertiary
# ---------------------------------------------------------------------------


@unit_model(UnitType.SECONDARY_CLARIFIER)
def secondary_clarifier(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, _shape_dims(params) + ("mlss",))
    if invalid:
        return _degraded(q, invalid)
    Q = q.flow
    area, weir_length = _plan_area(params)
    depth = params["sidewater_depth"]
    invalid = _out_of_range({"surface_area": area, "weir_length": weir_length, "volume": area * depth})
    if invalid:
        return _degraded(q, invalid)
    R = max(params["return_ratio"], 0.0)
    total_flow = Q * (1 + R)
    mlss = params["mlss"]

    sor = Q / area
    solids = mlss * total_flow / 1000 / area / 24  # kg/m²·h
    metrics = {
        "surface_overflow_rate": sor,
        "peak_overflow_rate": sor * PEAK_FACTOR,
        "solids_loading": solids,
        "peak_solids_loading": solids * PEAK_FACTOR,
        "weir_loading": Q / weir_length,
        "sidewater_depth": depth,
    }
    criteria = get_unit_criteria(config, "secondary_clarifier")
    issues = _evaluate(criteria, metrics)

    overloaded = any(
        evaluate_criterion(criteria.get(name), metrics[name]) is not None
        for name in ("surface_overflow_rate", "solids_loading")
    )
    table = config["removal"]["secondary_clarifier"]
    output, removal = apply_removal(q, table["overloaded" if overloaded else "normal"], config)

    values = {
        **metrics,
        "surface_area": area,
        "volume": area * depth,
        "hrt": area * depth / total_flow * 24,
    }
    if R > 0:
        values["ras_concentration"] = mlss * (1 + R) / R
    return UnitOutcome(output, removal, issues, _rounded(values))


@unit_model(UnitType.DAF)
def daf(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("length", "width", "depth"))
    if invalid:
        return _degraded(q, invalid)
    area = params["length"] * params["width"]
    volume = area * params["depth"]
    invalid = _out_of_range({"surface_area": area, "volume": volume})
    if invalid:
        return _degraded(q, invalid)

    metrics = {
        "surface_loading": q.flow / area / 24,
        "hrt": volume / q.flow * 1440,
        "recycle_ratio": params["recycle_ratio"],
    }
    issues = _evaluate(get_unit_criteria(config, "daf"), metrics)

    output, removal = apply_removal(q, config["removal"]["daf"], config)
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "surface_area": area,
        "volume": volume,
        "solids_loading": q.tss * q.flow / 1000 / area / 24,
        "sludge_production": (q.tss - output.tss) * q.flow / 1000,
    }))


@unit_model(UnitType.FILTRATION)
def filtration(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    variant = params["filter_type"]
    required = ("total_area",) if variant == "membrane" else ("total_area", "media_depth")
    invalid = _invalid_geometry(params, required)
    if invalid:
        return _degraded(q, invalid)
    area = params["total_area"]

    metrics = {"filtration_rate": q.flow / area / 24}
    if variant != "membrane":
        metrics["media_depth"] = params["media_depth"]
    issues = _evaluate(get_unit_criteria(config, "filtration", variant), metrics)

    table = config["removal"]["filtration"]
    output, removal = apply_removal(q, table["membrane" if variant == "membrane" else "granular"], config)
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "surface_area": area,
        "volume": area * (params.get("media_depth") or 0.0),
        "sludge_production": (q.tss - output.tss) * q.flow / 1000,
    }))


@unit_model(UnitType.CHLORINATION)
def chlorination(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("tank_length", "tank_width", "tank_depth", "baffle_factor"))
    if invalid:
        return _degraded(q, invalid)
    area = params["tank_length"] * params["tank_width"]
    volume = area * params["tank_depth"]
    invalid = _out_of_range({"surface_area": area, "volume": volume})
    if invalid:
        return _degraded(q, invalid)
    hrt = volume / (q.flow / 1440)  # min
    contact = hrt * params["baffle_factor"]
    dose = params["chlorine_dose"]
    demand = 0.05 * q.bod + 0.02 * q.tss
    residual = dose - demand
    ct = max(residual, 0.0) * contact

    metrics = {
        "contact_time": contact,
        "chlorine_residual": residual,
        "ct_value": ct,
        "baffle_factor": params["baffle_factor"],
    }
    issues = _evaluate(get_unit_criteria(config, "chlorination"), metrics)

    output, removal = apply_removal(q, {}, config)
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "hrt": hrt,
        "volume": volume,
        "surface_area": area,
        "chlorine_demand": demand,
        # Collins-Selleck
        "log_inactivation": 3 * math.log10(1 + 0.23 * ct),
        "chlorine_usage": dose * q.flow / 1000,  # kg/d
    }))


@unit_model(UnitType.UV_DISINFECTION)
def uv_disinfection(q: WaterQuality, params: Dict[str, Any], config: Dict[str, Any]) -> UnitOutcome:
    invalid = _invalid_geometry(params, ("channel_length", "channel_width", "channel_depth"))
    if invalid:
        return _degraded(q, invalid)
    width = params["channel_width"]
    area = params["channel_length"] * width
    volume = area * params["channel_depth"]
    lamp_rows = width / UV_LAMP_SPACING
    invalid = _out_of_range({"surface_area": area, "volume": volume, "lamp_rows": lamp_rows})
    if invalid:
        return _degraded(q, invalid)
    dose = params["uv_dose"]

    metrics = {
        "uv_dose": dose,
        "uv_transmittance": params["uv_transmittance"],
        "contact_time": volume / (q.flow / 86400),  # s
    }
    issues = _evaluate(get_unit_criteria(config, "uv_disinfection"), metrics)

    lamps = math.ceil(lamp_rows) * math.ceil(max(dose, 0.0) / UV_DOSE_PER_LAMP_ROW)
    output, removal = apply_removal(q, {}, config)
    return UnitOutcome(output, removal, issues, _rounded({
        **metrics,
        "volume": volume,
        "surface_area": area,
        "lamp_count": lamps,
        "power_draw": lamps * UV_LAMP_POWER / 1000,
        "log_inactivation": min(6.0, max(dose, 0.0) / 10),
    }))


_missing = set(UnitType) - set(UNIT_MODELS)
if _missing:
    raise RuntimeError(f"No unit model registered for: {sorted(t.value for t in _missing)}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _status(issues: List[DesignIssue]) -> UnitStatus:
    if any(i.severity == IssueSeverity.CRITICAL for i in issues):
        return UnitStatus.FAIL
    if issues:
        return UnitStatus.WARNING
    return UnitStatus.PASS


def evaluate_unit(
    config: UnitConfig,
    input_quality: WaterQuality,
    design_config: Optional[Dict[str, Any]] = None,
    position: int = 0,
) -> UnitInstance:
    """Run one unit and package the result as a UnitInstance."""
    design_config = design_config or default_design_config()
    unit_type = config.unit_type
    meta = UNIT_METADATA[unit_type.value]
    unit_id = config.id or f"{unit_type.value}-{position}"
    params, param_issues = resolve_design_params(unit_type, config.design_params, input_quality.flow)

    if not config.enabled:
        outcome = UnitOutcome(input_quality, RemovalEfficiency(), [], {})
        status = UnitStatus.NOT_CONFIGURED
    elif input_quality.flow <= 0:
        outcome = UnitOutcome(zero_flow_quality(input_quality), RemovalEfficiency(), [DesignIssue(
            severity=IssueSeverity.WARNING,
            parameter="Flow",
            message="No flow reaches this unit",
            current_value=0.0,
            unit="m³/d",
            suggestion="Check the influent flow rate",
        )], {})
        status = _status(param_issues + outcome.issues)
    else:
        try:
            outcome = UNIT_MODELS[unit_type](input_quality, params, design_config)
        except ArithmeticError as exc:
            logger.warning("Unit %s (%s) model failed: %s", unit_id, unit_type.value, exc)
            outcome = _degraded(input_quality, DesignIssue(
                severity=IssueSeverity.CRITICAL,
                parameter="Geometry",
                message=f"Design values out of numeric range: {exc}",
                suggestion="Enter realistic dimensions for the unit",
            ))
        status = _status(param_issues + outcome.issues)

    issues = [] if not config.enabled else param_issues + outcome.issues
    issues = [i.model_copy(update={"unit_id": unit_id}) for i in issues]
    logger.debug("Unit %s (%s): %s with %d issues", unit_id, unit_type.value, status.value, len(issues))

    return UnitInstance(
        id=unit_id,
        unit_type=unit_type,
        name=config.name or meta["name"],
        category=meta["category"],
        position=position,
        design_params=params,
        input_quality=input_quality,
        output_quality=outcome.output,
        removal_efficiency=outcome.removal,
        status=status,
        issues=issues,
        design_values=outcome.design_values,
        simulation=outcome.simulation,
        simulation_failed=outcome.simulation_failed,
    )
