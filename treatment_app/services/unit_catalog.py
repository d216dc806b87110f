import math
from typing import Any, Dict, List

from treatment_app.models.schemas import UnitConfig, UnitType, WaterQuality, normalize_unit_type

EMPIRICAL = "empirical"
BIOLOGICAL_DYNAMIC = "biological-dynamic"

UNIT_METADATA: Dict[str, Dict[str, Any]] = {
    "bar_screen": {
        "name": "Bar Screen", "category": "preliminary", "icon": "🪤",
        "description": "Removes large solids and debris",
        "model": EMPIRICAL, "sludge_type": "none", "energy_category": "other",
        "typical_removal": {"bod": [5, 10], "cod": [5, 10], "tss": [5, 20]},
    },
    "grit_chamber": {
        "name": "Grit Chamber", "category": "preliminary", "icon": "⬛",
        "description": "Removes sand, grit and heavy particles",
        "model": EMPIRICAL, "sludge_type": "none", "energy_category": "other",
        "typical_removal": {"bod": [0, 5], "cod": [0, 5], "tss": [5, 15]},
    },
    "primary_clarifier": {
        "name": "Primary Clarifier", "category": "primary", "icon": "🔵",
        "description": "Settles suspended solids by gravity",
        "model": EMPIRICAL, "sludge_type": "primary", "energy_category": "pumping",
        "typical_removal": {"bod": [25, 40], "cod": [25, 35], "tss": [50, 70]},
    },
    "oil_separator": {
        "name": "Oil Separator", "category": "primary", "icon": "🛢️",
        "description": "Removes free oil and grease",
        "model": EMPIRICAL, "sludge_type": "primary", "energy_category": "other",
        "typical_removal": {"bod": [10, 20], "cod": [10, 20], "tss": [10, 30]},
    },
    "aeration_tank": {
        "name": "Aeration Tank", "category": "biological", "icon": "💨",
        "description": "Activated sludge biological treatment",
        "model": BIOLOGICAL_DYNAMIC, "sludge_type": "biological", "energy_category": "aeration",
        "typical_removal": {"bod": [85, 95], "cod": [80, 90], "tss": [85, 95]},
    },
    "sbr": {
        "name": "SBR", "category": "biological", "icon": "🔄",
        "description": "Sequencing Batch Reactor",
        "model": EMPIRICAL, "sludge_type": "biological", "energy_category": "aeration",
        "typical_removal": {"bod": [85, 98], "cod": [80, 95], "tss": [85, 98]},
    },
    "uasb": {
        "name": "UASB", "category": "biological", "icon": "🔥",
        "description": "Upflow Anaerobic Sludge Blanket",
        "model": EMPIRICAL, "sludge_type": "biological", "energy_category": "mixing",
        "typical_removal": {"bod": [60, 85], "cod": [60, 90], "tss": [50, 80]},
    },
    "oxidation_pond": {
        "name": "Oxidation Pond", "category": "biological", "icon": "🌿",
        "description": "Natural treatment lagoon",
        "model": EMPIRICAL, "sludge_type": "none", "energy_category": "other",
        "typical_removal": {"bod": [70, 90], "cod": [60, 80], "tss": [60, 85]},
    },
    "trickling_filter": {
        "name": "Trickling Filter", "category": "biological", "icon": "🗼",
        "description": "Fixed-film biological treatment",
        "model": EMPIRICAL, "sludge_type": "biological", "energy_category": "pumping",
        "typical_removal": {"bod": [65, 85], "cod": [60, 80], "tss": [60, 85]},
    },
    "mbr": {
        "name": "MBR", "category": "biological", "icon": "🔬",
        "description": "Membrane Bioreactor",
        "model": EMPIRICAL, "sludge_type": "biological", "energy_category": "aeration",
        "typical_removal": {"bod": [95, 99], "cod": [90, 98], "tss": [99, 100]},
    },
    "secondary_clarifier": {
        "name": "Secondary Clarifier", "category": "secondary", "icon": "🔷",
        "description": "Settles biological solids",
        "model": EMPIRICAL, "sludge_type": "none", "energy_category": "pumping",
        "typical_removal": {"bod": [0, 10], "cod": [0, 10], "tss": [85, 95]},
    },
    "daf": {
        "name": "DAF", "category": "secondary", "icon": "🫧",
        "description": "Dissolved Air Flotation",
        "model": EMPIRICAL, "sludge_type": "chemical", "energy_category": "pumping",
        "typical_removal": {"bod": [20, 50], "cod": [20, 50], "tss": [70, 95]},
    },
    "filtration": {
        "name": "Filtration", "category": "tertiary", "icon": "🔲",
        "description": "Removes remaining suspended solids",
        "model": EMPIRICAL, "sludge_type": "tertiary", "energy_category": "pumping",
        "typical_removal": {"bod": [20, 40], "cod": [20, 40], "tss": [50, 90]},
    },
    "chlorination": {
        "name": "Chlorination", "category": "tertiary", "icon": "🧴",
        "description": "Chemical disinfection",
        "model": EMPIRICAL, "sludge_type": "none", "energy_category": "disinfection",
        "typical_removal": {"bod": [0, 5], "cod": [0, 5], "tss": [0, 0]},
    },
    "uv_disinfection": {
        "name": "UV Disinfection", "category": "tertiary", "icon": "☀️",
        "description": "UV light disinfection",
        "model": EMPIRICAL, "sludge_type": "none", "energy_category": "disinfection",
        "typical_removal": {"bod": [0, 0], "cod": [0, 0], "tss": [0, 0]},
    },
}

BIOLOGICAL_UNITS = frozenset(k for k, v in UNIT_METADATA.items() if v["category"] == "biological")

PRESET_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "conventional_as": {
        "name": "Conventional Activated Sludge",
        "description": "Standard activated sludge process for municipal wastewater",
        "suitable_for": ["Municipal", "Domestic", "Medium-strength industrial"],
        "unit_types": ["bar_screen", "grit_chamber", "primary_clarifier", "aeration_tank", "secondary_clarifier", "chlorination"],
        "typical_capacity": "1,000-100,000 m³/day",
        "land_requirement": "medium", "energy_use": "medium", "complexity": "moderate",
    },
    "extended_aeration": {
        "name": "Extended Aeration",
        "description": "Low sludge production, suitable for smaller flows",
        "suitable_for": ["Small communities", "Resorts", "Schools", "Housing"],
        "unit_types": ["bar_screen", "grit_chamber", "aeration_tank", "secondary_clarifier", "uv_disinfection"],
        "unit_params": {"aeration_tank": {"process_type": "extended_aeration"}},
        "typical_capacity": "100-5,000 m³/day",
        "land_requirement": "low", "energy_use": "high", "complexity": "simple",
    },
    "sbr_system": {
        "name": "SBR System",
        "description": "Batch treatment with flexible operation",
        "suitable_for": ["Variable flows", "Industrial", "Small-medium municipal"],
        "unit_types": ["bar_screen", "grit_chamber", "sbr", "chlorination"],
        "typical_capacity": "500-20,000 m³/day",
        "land_requirement": "low", "energy_use": "medium", "complexity": "moderate",
    },
    "anaerobic_aerobic": {
        "name": "UASB + Aerobic Polishing",
        "description": "Energy-efficient train for high-strength wastewater",
        "suitable_for": ["Food industry", "Beverage", "Brewery", "Distillery"],
        "unit_types": ["bar_screen", "grit_chamber", "uasb", "aeration_tank", "secondary_clarifier", "chlorination"],
        "typical_capacity": "500-50,000 m³/day",
        "land_requirement": "low", "energy_use": "low", "complexity": "complex",
    },
    "pond_system": {
        "name": "Oxidation Pond System",
        "description": "Natural treatment with minimal energy",
        "suitable_for": ["Rural areas", "Agricultural", "Where land is available"],
        "unit_types": ["bar_screen", "grit_chamber", "oxidation_pond"],
        "typical_capacity": "100-10,000 m³/day",
        "land_requirement": "high", "energy_use": "low", "complexity": "simple",
    },
    "industrial_pretreat": {
        "name": "Industrial Pretreatment",
        "description": "Pretreatment before discharge to a municipal system",
        "suitable_for": ["Factories", "Food processing", "Manufacturing"],
        "unit_types": ["bar_screen", "oil_separator", "daf"],
        "typical_capacity": "50-5,000 m³/day",
        "land_requirement": "low", "energy_use": "low", "complexity": "simple",
    },
}

DEFAULT_INFLUENTS: Dict[str, Dict[str, float]] = {
    "domestic": {
        "flow": 1000, "bod": 200, "cod": 400, "tss": 220,
        "total_n": 40, "ammonia_n": 25, "total_p": 8, "ph": 7.0, "temperature": 25,
    },
    "industrial": {
        "flow": 500, "bod": 500, "cod": 1000, "tss": 400,
        "total_n": 50, "ammonia_n": 30, "total_p": 10, "ph": 6.5, "temperature": 30,
        "oil_grease": 50,
    },
    "combined": {
        "flow": 2000, "bod": 300, "cod": 600, "tss": 300,
        "total_n": 45, "ammonia_n": 28, "total_p": 9, "ph": 6.8, "temperature": 27,
    },
}

# Unit cost and resource factors (THB, 2024 prices).
# structure = base_cost + volume * cost_per_m3 + area * cost_per_m2
UNIT_COST_PARAMS: Dict[str, Dict[str, float]] = {
    "bar_screen": {
        "base_cost": 150000, "cost_per_m3": 5000, "cost_per_m2": 0, "equipment_factor": 0.6,
        "power_consumption": 0.01, "chemical_cost_per_m3": 0, "maintenance_factor": 0.03,
        "labor_hours_per_day": 0.5, "land_area_per_m3_flow": 0.01,
    },
    "grit_chamber": {
        "base_cost": 200000, "cost_per_m3": 8000, "cost_per_m2": 0, "equipment_factor": 0.3,
        "power_consumption": 0.02, "chemical_cost_per_m3": 0, "maintenance_factor": 0.02,
        "labor_hours_per_day": 0.5, "land_area_per_m3_flow": 0.02,
    },
    "primary_clarifier": {
        "base_cost": 500000, "cost_per_m3": 12000, "cost_per_m2": 25000, "equipment_factor": 0.25,
        "power_consumption": 0.03, "chemical_cost_per_m3": 0.5, "maintenance_factor": 0.02,
        "labor_hours_per_day": 1, "land_area_per_m3_flow": 0.05,
    },
    "oil_separator": {
        "base_cost": 300000, "cost_per_m3": 15000, "cost_per_m2": 0, "equipment_factor": 0.4,
        "power_consumption": 0.02, "chemical_cost_per_m3": 1, "maintenance_factor": 0.03,
        "labor_hours_per_day": 1, "land_area_per_m3_flow": 0.03,
    },
    "aeration_tank": {
        "base_cost": 800000, "cost_per_m3": 10000, "cost_per_m2": 0, "equipment_factor": 0.5,
        "power_consumption": 0.5, "chemical_cost_per_m3": 0.3, "maintenance_factor": 0.04,
        "labor_hours_per_day": 2, "land_area_per_m3_flow": 0.15,
    },
    "sbr": {
        "base_cost": 1200000, "cost_per_m3": 12000, "cost_per_m2": 0, "equipment_factor": 0.6,
        "power_consumption": 0.4, "chemical_cost_per_m3": 0.5, "maintenance_factor": 0.04,
        "labor_hours_per_day": 2, "land_area_per_m3_flow": 0.12,
    },
    "uasb": {
        "base_cost": 1500000, "cost_per_m3": 18000, "cost_per_m2": 0, "equipment_factor": 0.35,
        "power_consumption": 0.1, "chemical_cost_per_m3": 0.2, "maintenance_factor": 0.03,
        "labor_hours_per_day": 1.5, "land_area_per_m3_flow": 0.08,
    },
    "oxidation_pond": {
        "base_cost": 300000, "cost_per_m3": 3000, "cost_per_m2": 800, "equipment_factor": 0.1,
        "power_consumption": 0.05, "chemical_cost_per_m3": 0, "maintenance_factor": 0.01,
        "labor_hours_per_day": 0.5, "land_area_per_m3_flow": 2.0,
    },
    "trickling_filter": {
        "base_cost": 600000, "cost_per_m3": 8000, "cost_per_m2": 0, "equipment_factor": 0.4,
        "power_consumption": 0.15, "chemical_cost_per_m3": 0, "maintenance_factor": 0.03,
        "labor_hours_per_day": 1, "land_area_per_m3_flow": 0.1,
    },
    "mbr": {
        "base_cost": 2000000, "cost_per_m3": 25000, "cost_per_m2": 0, "equipment_factor": 0.7,
        "power_consumption": 0.8, "chemical_cost_per_m3": 2, "maintenance_factor": 0.06,
        "labor_hours_per_day": 2, "land_area_per_m3_flow": 0.05,
    },
    "secondary_clarifier": {
        "base_cost": 600000, "cost_per_m3": 12000, "cost_per_m2": 25000, "equipment_factor": 0.3,
        "power_consumption": 0.03, "chemical_cost_per_m3": 0, "maintenance_factor": 0.02,
        "labor_hours_per_day": 1, "land_area_per_m3_flow": 0.06,
    },
    "daf": {
        "base_cost": 800000, "cost_per_m3": 20000, "cost_per_m2": 0, "equipment_factor": 0.5,
        "power_consumption": 0.15, "chemical_cost_per_m3": 3, "maintenance_factor": 0.04,
        "labor_hours_per_day": 1.5, "land_area_per_m3_flow": 0.04,
    },
    "filtration": {
        "base_cost": 400000, "cost_per_m3": 15000, "cost_per_m2": 30000, "equipment_factor": 0.4,
        "power_consumption": 0.1, "chemical_cost_per_m3": 0.5, "maintenance_factor": 0.03,
        "labor_hours_per_day": 1, "land_area_per_m3_flow": 0.02,
    },
    "chlorination": {
        "base_cost": 200000, "cost_per_m3": 5000, "cost_per_m2": 0, "equipment_factor": 0.5,
        "power_consumption": 0.02, "chemical_cost_per_m3": 1.5, "maintenance_factor": 0.03,
        "labor_hours_per_day": 0.5, "land_area_per_m3_flow": 0.01,
    },
    "uv_disinfection": {
        "base_cost": 500000, "cost_per_m3": 8000, "cost_per_m2": 0, "equipment_factor": 0.8,
        "power_consumption": 0.08, "chemical_cost_per_m3": 0, "maintenance_factor": 0.05,
        "labor_hours_per_day": 0.5, "land_area_per_m3_flow": 0.005,
    },
}


def get_unit_metadata(unit_type) -> Dict[str, Any]:
    key = normalize_unit_type(getattr(unit_type, "value", unit_type))
    if key not in UNIT_METADATA:
        raise ValueError(f"Unknown unit type: {unit_type!r}")
    return UNIT_METADATA[key]


def get_default_influent(source: str = "domestic") -> WaterQuality:
    if source not in DEFAULT_INFLUENTS:
        raise ValueError(f"Unknown influent source: {source!r}")
    return WaterQuality(**DEFAULT_INFLUENTS[source])


def _aeration_defaults(flow: float, process_type: str = "conventional") -> Dict[str, Any]:
    hrt_h, srt_d, mlss = {
        "conventional": (6, 10, 3000),
        "extended_aeration": (24, 25, 3500),
        "contact_stabilization": (5, 10, 3000),
        "step_feed": (4, 10, 3500),
        "complete_mix": (4, 10, 3500),
    }[process_type]
    return {
        "process_type": process_type,
        "volume": flow * hrt_h / 24,
        "mlss": mlss,
        "srt": srt_d,
        "target_do": 2.0,
        "aeration_type": "fine_bubble",
        "return_ratio": 0.5,
    }


def get_default_design_params(unit_type, flow: float) -> Dict[str, Any]:
    """Flow-keyed default design parameters for a unit.

    Sizing targets the recommended loading rates, so a unit built from these
    defaults raises no design issues at domestic loads.
    """
    key = normalize_unit_type(getattr(unit_type, "value", unit_type))
    if key not in UNIT_METADATA:
        raise ValueError(f"Unknown unit type: {unit_type!r}")
    Q = max(float(flow), 0.0)
    Qs = Q / 86400  # m³/s

    if key == "bar_screen":
        area = Qs / 0.45 if Qs > 0 else 0.1
        width = math.sqrt(2 * area)
        return {
            "bar_spacing": 25,
            "bar_width": 10,
            "screen_angle": 75,
            "channel_width": width,
            "channel_depth": area / width,
            "cleaning_type": "mechanical" if Q > 500 else "manual",
        }
    if key == "grit_chamber":
        area = Qs / 0.3 if Qs > 0 else 0.1
        depth = math.sqrt(area / 1.5)
        return {
            "chamber_type": "horizontal_flow",
            "length": 18.0,
            "width": 1.5 * depth,
            "depth": depth,
        }
    if key == "primary_clarifier":
        if Q > 2000:
            return {
                "shape": "circular",
                "diameter": 2 * math.sqrt(Q / 36 / math.pi),
                "sidewater_depth": 3.5,
            }
        return {
            "shape": "rectangular",
            "length": math.sqrt(Q / 36 * 2),
            "width": math.sqrt(Q / 36 / 2),
            "sidewater_depth": 3.5,
        }
    if key == "aeration_tank":
        return _aeration_defaults(Q)
    if key == "secondary_clarifier":
        params = {"sidewater_depth": 4.0, "mlss": 3000, "return_ratio": 0.5}
        if Q > 2000:
            params.update(shape="circular", diameter=2 * math.sqrt(Q / 16 / math.pi))
        else:
            params.update(shape="rectangular", length=math.sqrt(Q / 16 * 2), width=math.sqrt(Q / 16 / 2))
        return params
    if key == "chlorination":
        return {
            "chlorine_type": "hypochlorite",
            "chlorine_dose": 2.0,
            "tank_length": math.sqrt(Q / 1440 * 30 * 3),
            "tank_width": math.sqrt(Q / 1440 * 30 / 3),
            "tank_depth": 2.0,
            "baffle_factor": 0.5,
        }
    if key == "oil_separator":
        return {"separator_type": "api", "length": 6.0, "width": 2.0, "depth": 1.5}
    if key == "uasb":
        return {"volume": Q * 8 / 24, "height": 6.0, "operating_temp": 30.0}
    if key == "sbr":
        return {"volume_per_reactor": Q * 0.5, "number_of_reactors": 2, "cycle_time": 6.0, "mlss": 3500}
    if key == "oxidation_pond":
        return {"pond_type": "facultative", "surface_area": Q * 15 / 1.5, "depth": 1.5}
    if key == "trickling_filter":
        area = Q * 2 / 25
        return {
            "filter_type": "high_rate",
            "diameter": 2 * math.sqrt(area / math.pi),
            "depth": 2.5,
            "media_type": "plastic",
            "recirculation_ratio": 1.0,
        }
    if key == "mbr":
        return {
            "membrane_type": "hollow_fiber",
            "tank_volume": Q * 6 / 24,
            "membrane_area": Q * 1000 / 24 / (0.7 * 20),
            "mlss": 10000,
            "srt": 25,
            "flux": 20,
        }
    if key == "daf":
        return {"length": 6.0, "width": 3.0, "depth": 2.0, "recycle_ratio": 10}
    if key == "filtration":
        return {"filter_type": "rapid_sand", "total_area": Q / 24 / 10, "media_depth": 0.8}
    if key == "uv_disinfection":
        return {
            "uv_dose": 50,
            "uv_transmittance": 65,
            "channel_length": 3.0,
            "channel_width": 1.0,
            "channel_depth": 0.5,
        }
    raise ValueError(f"No default design parameters for {unit_type!r}")


def list_presets() -> List[Dict[str, Any]]:
    return [
        {"id": preset_id, **{k: v for k, v in preset.items() if k != "unit_params"}}
        for preset_id, preset in PRESET_TEMPLATES.items()
    ]


def build_preset(preset_id: str, flow: float) -> List[UnitConfig]:
    if preset_id not in PRESET_TEMPLATES:
        raise ValueError(f"Unknown preset: {preset_id!r}")
    if not math.isfinite(flow) or flow < 0:
        raise ValueError("Flow must be a non-negative number")
    preset = PRESET_TEMPLATES[preset_id]
    unit_params = preset.get("unit_params", {})
    configs = []
    for position, unit_type in enumerate(preset["unit_types"]):
        params = get_default_design_params(unit_type, flow)
        overrides = unit_params.get(unit_type, {})
        if unit_type == "aeration_tank" and "process_type" in overrides:
            params = _aeration_defaults(flow, overrides["process_type"])
        configs.append(UnitConfig(
            id=f"{unit_type}-{position}",
            unit_type=UnitType(unit_type),
            name=UNIT_METADATA[unit_type]["name"],
            design_params=params,
        ))
    return configs
