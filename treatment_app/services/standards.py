from typing import List, Union

from treatment_app.models.schemas import EffluentStandard, StandardLimit

PCD_SOURCE = "PCD (Pollution Control Department)"

_PHYSICAL_LIMITS = [
    {"parameter": "ph", "name": "pH", "unit": "-", "min": 5.5, "max": 9.0},
    {"parameter": "temperature", "name": "Temperature", "unit": "°C", "max": 40},
]

EFFLUENT_STANDARDS = {
    "industrial_estate": {
        "name": "Type A - Industrial Estate",
        "aliases": ["type_a", "a"],
        "source": PCD_SOURCE,
        "description": "Discharge from industrial estates and large factories",
        "limits": [
            {"parameter": "bod", "name": "BOD", "unit": "mg/L", "max": 20, "required": True},
            {"parameter": "cod", "name": "COD", "unit": "mg/L", "max": 120, "required": True},
            {"parameter": "tss", "name": "TSS", "unit": "mg/L", "max": 50, "required": True},
            *_PHYSICAL_LIMITS,
            {"parameter": "oil_grease", "name": "Oil & Grease", "unit": "mg/L", "max": 5},
        ],
    },
    "general_industrial": {
        "name": "Type B - General Industrial",
        "aliases": ["type_b", "b"],
        "source": PCD_SOURCE,
        "description": "Discharge from general factories",
        "limits": [
            {"parameter": "bod", "name": "BOD", "unit": "mg/L", "max": 60, "required": True},
            {"parameter": "cod", "name": "COD", "unit": "mg/L", "max": 400, "required": True},
            {"parameter": "tss", "name": "TSS", "unit": "mg/L", "max": 150, "required": True},
            *_PHYSICAL_LIMITS,
            {"parameter": "oil_grease", "name": "Oil & Grease", "unit": "mg/L", "max": 15},
        ],
    },
    "community": {
        "name": "Type C - Community",
        "aliases": ["type_c", "c"],
        "source": PCD_SOURCE,
        "description": "Discharge from community wastewater treatment systems",
        "limits": [
            {"parameter": "bod", "name": "BOD", "unit": "mg/L", "max": 40, "required": True},
            {"parameter": "cod", "name": "COD", "unit": "mg/L", "max": 200, "required": True},
            {"parameter": "tss", "name": "TSS", "unit": "mg/L", "max": 70, "required": True},
            *_PHYSICAL_LIMITS,
        ],
    },
}


def normalize_standard_key(key: str) -> str:
    k = key.strip().lower().replace("-", "_").replace(" ", "_")
    if k in EFFLUENT_STANDARDS:
        return k
    for std_key, std in EFFLUENT_STANDARDS.items():
        if k in std["aliases"]:
            return std_key
    raise ValueError(f"Unknown effluent standard: {key!r}")


def get_standard(key: str) -> EffluentStandard:
    std_key = normalize_standard_key(key)
    std = EFFLUENT_STANDARDS[std_key]
    return EffluentStandard(
        key=std_key,
        name=std["name"],
        source=std["source"],
        description=std["description"],
        limits=[StandardLimit(**limit) for limit in std["limits"]],
    )


def resolve_standard(standard: Union[str, EffluentStandard, dict]) -> EffluentStandard:
    if isinstance(standard, EffluentStandard):
        return standard
    if isinstance(standard, dict):
        return EffluentStandard.model_validate(standard)
    return get_standard(standard)


def list_standards() -> List[EffluentStandard]:
    return [get_standard(key) for key in EFFLUENT_STANDARDS]
