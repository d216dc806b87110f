import copy
import math
from typing import Any, Dict, Optional

from treatment_app.models.schemas import DesignIssue, IssueSeverity

WEF = "WEF MOP 8"
TEN_STATES = "Ten States Standards"
METCALF = "Metcalf & Eddy, 5th ed."

THRESHOLD_KEYS = ("min_critical", "min_warning", "max_warning", "max_critical", "recommended")

# Each criterion: thresholds plus the message/suggestion emitted when the value
# falls below ("low") or above ("high") the range.
DEFAULT_DESIGN_CRITERIA: Dict[str, Dict[str, Any]] = {
    "bar_screen": {
        "approach_velocity": {
            "parameter": "Approach Velocity", "unit": "m/s", "source": WEF,
            "min_warning": 0.3, "max_critical": 0.6, "recommended": 0.45,
            "low": {"message": "Too low - grit may settle in the channel", "suggestion": "Reduce channel width or depth"},
            "high": {"message": "Too high - debris may be forced through the bars", "suggestion": "Increase channel cross-section"},
        },
        "through_velocity": {
            "parameter": "Velocity Through Bars", "unit": "m/s", "source": WEF,
            "max_warning": 1.2, "recommended": 0.9,
            "high": {"message": "High velocity through bars", "suggestion": "Increase bar spacing or channel width"},
        },
        "manual_bar_spacing": {
            "parameter": "Bar Spacing", "unit": "mm", "source": WEF,
            "min_warning": 6, "recommended": 25,
            "low": {"message": "Fine spacing with manual cleaning - frequent clogging", "suggestion": "Use mechanical cleaning for spacing below 6 mm"},
        },
    },
    "grit_chamber": {
        "variants": {
            "horizontal_flow": {
                "hrt": {
                    "parameter": "Detention Time", "unit": "s", "source": TEN_STATES,
                    "min_critical": 45, "max_warning": 90, "recommended": 60,
                    "low": {"message": "Too short - grit will not settle", "suggestion": "Increase chamber length"},
                    "high": {"message": "Long detention - organics may settle with grit", "suggestion": "Reduce chamber volume"},
                },
                "horizontal_velocity": {
                    "parameter": "Horizontal Velocity", "unit": "m/s", "source": TEN_STATES,
                    "min_warning": 0.15, "max_critical": 0.45, "recommended": 0.3,
                    "low": {"message": "Low velocity - organic solids will settle", "suggestion": "Reduce channel cross-section"},
                    "high": {"message": "Velocity too high - grit will be scoured", "suggestion": "Increase channel cross-section"},
                },
            },
            "aerated": {
                "hrt": {
                    "parameter": "Detention Time", "unit": "s", "source": WEF,
                    "min_warning": 120, "recommended": 180,
                    "low": {"message": "Short detention for aerated grit removal", "suggestion": "Increase chamber volume"},
                },
                "surface_loading": {
                    "parameter": "Surface Loading", "unit": "m³/m²·h", "source": WEF,
                    "max_warning": 30, "recommended": 20,
                    "high": {"message": "High surface loading - fine grit carry-over", "suggestion": "Increase chamber surface area"},
                },
            },
        },
    },
    "primary_clarifier": {
        "surface_overflow_rate": {
            "parameter": "Overflow Rate", "unit": "m³/m²·d", "source": TEN_STATES,
            "max_warning": 48, "max_critical": 60, "recommended": 36,
            "high": {"message": "High overflow rate - poor settling expected", "suggestion": "Increase surface area"},
        },
        "hrt": {
            "parameter": "HRT", "unit": "hours", "source": TEN_STATES,
            "min_critical": 1.5, "recommended": 2.0,
            "low": {"message": "Too short for adequate settling", "suggestion": "Increase volume (depth or area)"},
        },
        "weir_loading": {
            "parameter": "Weir Loading", "unit": "m³/m·d", "source": TEN_STATES,
            "max_warning": 250, "recommended": 186,
            "high": {"message": "High weir loading - may cause turbulence", "suggestion": "Extend weir length"},
        },
        "sidewater_depth": {
            "parameter": "Sidewater Depth", "unit": "m", "source": WEF,
            "min_warning": 3.0, "recommended": 3.5,
            "low": {"message": "Shallow - limited sludge storage", "suggestion": "Typical depth 3-5 m"},
        },
    },
    "aeration_tank": {
        "mlss": {
            "parameter": "MLSS", "unit": "mg/L", "source": WEF,
            "min_warning": 2000, "max_warning": 5000, "recommended": 3000,
            "low": {"message": "Low MLSS - limited treatment capacity", "suggestion": "Reduce sludge wasting"},
            "high": {"message": "High MLSS - secondary clarifier may be overloaded", "suggestion": "Increase sludge wasting"},
        },
        "dissolved_oxygen": {
            "parameter": "Dissolved Oxygen", "unit": "mg/L", "source": WEF,
            "min_warning": 1.5, "recommended": 2.0,
            "low": {"message": "Low DO setpoint - nitrification and settling may suffer", "suggestion": "Raise DO setpoint to 2 mg/L"},
        },
        "volumetric_loading": {
            "parameter": "Volumetric Loading", "unit": "kg BOD/m³·d", "source": METCALF,
            "max_warning": 1.5, "recommended": 0.6,
            "high": {"message": "High volumetric organic loading", "suggestion": "Increase tank volume"},
        },
        "srt_hrt_ratio": {
            "parameter": "SRT / HRT", "unit": "-", "source": METCALF,
            "min_critical": 1.0,
            "low": {"message": "SRT shorter than HRT - biomass cannot be retained", "suggestion": "Increase SRT or reduce tank volume"},
        },
        "variants": {
            "conventional": {
                "fm_ratio": {
                    "parameter": "F/M Ratio", "unit": "kg BOD/kg MLVSS·d", "source": METCALF,
                    "min_warning": 0.2, "max_critical": 0.6, "recommended": 0.4,
                    "low": {"message": "Low F/M - risk of filamentous bulking", "suggestion": "Reduce MLSS or tank volume"},
                    "high": {"message": "High F/M - incomplete treatment", "suggestion": "Increase MLSS or tank volume"},
                },
                "hrt": {
                    "parameter": "HRT", "unit": "hours", "source": METCALF,
                    "min_critical": 4, "recommended": 6,
                    "low": {"message": "HRT too short for conventional process", "suggestion": "Increase tank volume"},
                },
                "srt": {
                    "parameter": "SRT", "unit": "days", "source": METCALF,
                    "min_critical": 5, "max_warning": 15, "recommended": 10,
                    "low": {"message": "SRT too short - biomass washout risk", "suggestion": "Reduce sludge wasting"},
                    "high": {"message": "Long SRT for conventional process - pin floc likely", "suggestion": "Increase sludge wasting"},
                },
            },
            "extended_aeration": {
                "fm_ratio": {
                    "parameter": "F/M Ratio", "unit": "kg BOD/kg MLVSS·d", "source": METCALF,
                    "min_warning": 0.04, "max_critical": 0.15, "recommended": 0.1,
                    "low": {"message": "Very low F/M", "suggestion": "Reduce MLSS or tank volume"},
                    "high": {"message": "F/M too high for extended aeration", "suggestion": "Increase MLSS or tank volume"},
                },
                "hrt": {
                    "parameter": "HRT", "unit": "hours", "source": METCALF,
                    "min_critical": 18, "recommended": 24,
                    "low": {"message": "HRT too short for extended aeration", "suggestion": "Increase tank volume"},
                },
                "srt": {
                    "parameter": "SRT", "unit": "days", "source": METCALF,
                    "min_critical": 20, "max_warning": 40, "recommended": 25,
                    "low": {"message": "SRT too short for extended aeration", "suggestion": "Reduce sludge wasting"},
                    "high": {"message": "Very long SRT", "suggestion": "Increase sludge wasting"},
                },
            },
            "contact_stabilization": {
                "fm_ratio": {
                    "parameter": "F/M Ratio", "unit": "kg BOD/kg MLVSS·d", "source": METCALF,
                    "min_warning": 0.2, "max_critical": 0.6, "recommended": 0.4,
                    "low": {"message": "Low F/M", "suggestion": "Reduce MLSS"},
                    "high": {"message": "High F/M - incomplete treatment", "suggestion": "Increase MLSS or volume"},
                },
                "hrt": {
                    "parameter": "HRT", "unit": "hours", "source": METCALF,
                    "min_critical": 3, "recommended": 5,
                    "low": {"message": "Contact time too short", "suggestion": "Increase contact tank volume"},
                },
                "srt": {
                    "parameter": "SRT", "unit": "days", "source": METCALF,
                    "min_critical": 5, "max_warning": 15, "recommended": 10,
                    "low": {"message": "SRT too short", "suggestion": "Reduce sludge wasting"},
                    "high": {"message": "Long SRT", "suggestion": "Increase sludge wasting"},
                },
            },
            "step_feed": {
                "fm_ratio": {
                    "parameter": "F/M Ratio", "unit": "kg BOD/kg MLVSS·d", "source": METCALF,
                    "min_warning": 0.2, "max_critical": 0.5, "recommended": 0.35,
                    "low": {"message": "Low F/M", "suggestion": "Reduce MLSS"},
                    "high": {"message": "High F/M - incomplete treatment", "suggestion": "Increase MLSS or volume"},
                },
                "hrt": {
                    "parameter": "HRT", "unit": "hours", "source": METCALF,
                    "min_critical": 3, "recommended": 4,
                    "low": {"message": "HRT too short for step feed", "suggestion": "Increase tank volume"},
                },
                "srt": {
                    "parameter": "SRT", "unit": "days", "source": METCALF,
                    "min_critical": 5, "max_warning": 15, "recommended": 10,
                    "low": {"message": "SRT too short", "suggestion": "Reduce sludge wasting"},
                    "high": {"message": "Long SRT", "suggestion": "Increase sludge wasting"},
                },
            },
            "complete_mix": {
                "fm_ratio": {
                    "parameter": "F/M Ratio", "unit": "kg BOD/kg MLVSS·d", "source": METCALF,
                    "min_warning": 0.2, "max_critical": 0.6, "recommended": 0.4,
                    "low": {"message": "Low F/M", "suggestion": "Reduce MLSS"},
                    "high": {"message": "High F/M - incomplete treatment", "suggestion": "Increase MLSS or volume"},
                },
                "hrt": {
                    "parameter": "HRT", "unit": "hours", "source": METCALF,
                    "min_critical": 3, "recommended": 4,
                    "low": {"message": "HRT too short for complete mix", "suggestion": "Increase tank volume"},
                },
                "srt": {
                    "parameter": "SRT", "unit": "days", "source": METCALF,
                    "min_critical": 5, "max_warning": 15, "recommended": 10,
                    "low": {"message": "SRT too short", "suggestion": "Reduce sludge wasting"},
                    "high": {"message": "Long SRT", "suggestion": "Increase sludge wasting"},
                },
            },
        },
    },
    "secondary_clarifier": {
        "surface_overflow_rate": {
            "parameter": "Overflow Rate", "unit": "m³/m²·d", "source": TEN_STATES,
            "max_warning": 32, "max_critical": 48, "recommended": 24,
            "high": {"message": "High overflow rate - solids carry-over", "suggestion": "Increase surface area"},
        },
        "peak_overflow_rate": {
            "parameter": "Peak Overflow Rate", "unit": "m³/m²·d", "source": TEN_STATES,
            "max_warning": 48, "recommended": 40,
            "high": {"message": "Peak overflow rate too high", "suggestion": "Increase surface area for peak flow"},
        },
        "solids_loading": {
            "parameter": "Solids Loading", "unit": "kg/m²·h", "source": TEN_STATES,
            "max_warning": 6, "max_critical": 8, "recommended": 4,
            "high": {"message": "Solids loading too high - sludge blanket will rise", "suggestion": "Increase area or reduce MLSS"},
        },
        "peak_solids_loading": {
            "parameter": "Peak Solids Loading", "unit": "kg/m²·h", "source": TEN_STATES,
            "max_warning": 10, "recommended": 8,
            "high": {"message": "Peak solids loading too high", "suggestion": "Increase surface area"},
        },
        "weir_loading": {
            "parameter": "Weir Loading", "unit": "m³/m·d", "source": TEN_STATES,
            "max_warning": 186, "recommended": 125,
            "high": {"message": "High weir loading", "suggestion": "Add inboard launders"},
        },
        "sidewater_depth": {
            "parameter": "Sidewater Depth", "unit": "m", "source": WEF,
            "min_warning": 3.5, "recommended": 4.5,
            "low": {"message": "Shallow clarifier - limited blanket storage", "suggestion": "Typical depth 3.5-5 m"},
        },
    },
    "chlorination": {
        "contact_time": {
            "parameter": "Effective Contact Time", "unit": "min", "source": TEN_STATES,
            "min_critical": 15, "min_warning": 20, "recommended": 30,
            "low": {"message": "Contact time too short for disinfection", "suggestion": "Increase tank volume or improve baffling"},
        },
        "chlorine_residual": {
            "parameter": "Chlorine Residual", "unit": "mg/L", "source": WEF,
            "min_critical": 0.5, "max_warning": 2.0, "recommended": 1.0,
            "low": {"message": "Insufficient chlorine residual", "suggestion": "Increase chlorine dose"},
            "high": {"message": "High residual - dechlorination may be required", "suggestion": "Reduce chlorine dose"},
        },
        "ct_value": {
            "parameter": "CT Value", "unit": "mg·min/L", "source": WEF,
            "min_critical": 15, "recommended": 30,
            "low": {"message": "CT too low for coliform inactivation", "suggestion": "Increase dose or contact time"},
        },
        "baffle_factor": {
            "parameter": "Baffle Factor", "unit": "-", "source": WEF,
            "min_warning": 0.3, "recommended": 0.5,
            "low": {"message": "Poor baffling - short-circuiting likely", "suggestion": "Add serpentine baffles"},
        },
    },
    "uv_disinfection": {
        "uv_dose": {
            "parameter": "UV Dose", "unit": "mJ/cm²", "source": "NWRI Guidelines",
            "min_warning": 40, "recommended": 40,
            "low": {"message": "UV dose below guideline", "suggestion": "Add lamps or reduce flow per channel"},
        },
        "uv_transmittance": {
            "parameter": "UV Transmittance", "unit": "%", "source": "NWRI Guidelines",
            "min_critical": 55, "recommended": 65,
            "low": {"message": "UVT too low for effective UV disinfection", "suggestion": "Improve upstream filtration"},
        },
        "contact_time": {
            "parameter": "Contact Time", "unit": "s", "source": WEF,
            "min_warning": 5, "recommended": 10,
            "low": {"message": "Very short exposure time", "suggestion": "Lengthen UV channel"},
        },
    },
    "oil_separator": {
        "hrt": {
            "parameter": "HRT", "unit": "min", "source": "API 421",
            "min_critical": 15, "recommended": 20,
            "low": {"message": "Detention too short for oil separation", "suggestion": "Increase separator volume"},
        },
        "surface_loading": {
            "parameter": "Surface Loading", "unit": "m/h", "source": "API 421",
            "max_warning": 5, "recommended": 3,
            "high": {"message": "High surface loading - oil carry-over", "suggestion": "Increase separator area"},
        },
    },
    "uasb": {
        "hrt": {
            "parameter": "HRT", "unit": "hours", "source": METCALF,
            "min_critical": 4, "recommended": 6,
            "low": {"message": "HRT too short - sludge washout", "suggestion": "Increase reactor volume"},
        },
        "upflow_velocity": {
            "parameter": "Upflow Velocity", "unit": "m/h", "source": METCALF,
            "max_critical": 1.5, "recommended": 1.0,
            "high": {"message": "Upflow velocity too high - granule washout", "suggestion": "Increase reactor cross-section"},
        },
        "organic_loading": {
            "parameter": "Organic Loading", "unit": "kg COD/m³·d", "source": METCALF,
            "max_warning": 15, "recommended": 10,
            "high": {"message": "High organic loading", "suggestion": "Increase reactor volume"},
        },
        "temperature": {
            "parameter": "Temperature", "unit": "°C", "source": METCALF,
            "min_warning": 25, "recommended": 30,
            "low": {"message": "Low temperature - reduced methanogenic activity", "suggestion": "Increase HRT or heat the reactor"},
        },
    },
    "sbr": {
        "capacity_ratio": {
            "parameter": "Treatment Capacity Ratio", "unit": "-", "source": WEF,
            "min_critical": 1.0, "recommended": 1.2,
            "low": {"message": "Reactors cannot treat the daily flow", "suggestion": "Add reactors, enlarge volume or shorten cycle"},
        },
        "settle_time": {
            "parameter": "Settle Time", "unit": "min", "source": WEF,
            "min_warning": 45, "recommended": 60,
            "low": {"message": "Settle phase too short", "suggestion": "Lengthen cycle time"},
        },
        "fm_ratio": {
            "parameter": "F/M Ratio", "unit": "kg BOD/kg MLVSS·d", "source": WEF,
            "max_warning": 0.3, "recommended": 0.15,
            "high": {"message": "High F/M for SBR", "suggestion": "Increase reactor volume or MLSS"},
        },
    },
    "oxidation_pond": {
        "hrt": {
            "parameter": "HRT", "unit": "days", "source": METCALF,
            "min_critical": 5, "recommended": 15,
            "low": {"message": "Retention too short for pond treatment", "suggestion": "Increase pond area or depth"},
        },
        "variants": {
            "facultative": {
                "depth": {"parameter": "Depth", "unit": "m", "source": METCALF, "min_warning": 1.0, "max_warning": 2.5, "recommended": 1.5,
                          "low": {"message": "Shallow facultative pond", "suggestion": "Deepen pond"},
                          "high": {"message": "Deep facultative pond - anaerobic bottom layer", "suggestion": "Reduce depth"}},
                "bod_loading": {"parameter": "Surface BOD Loading", "unit": "kg/ha·d", "source": METCALF, "min_warning": 100, "max_warning": 400, "recommended": 250,
                                "low": {"message": "Lightly loaded pond", "suggestion": "Reduce pond area"},
                                "high": {"message": "Overloaded facultative pond - odour risk", "suggestion": "Increase pond area"}},
            },
            "aerobic": {
                "depth": {"parameter": "Depth", "unit": "m", "source": METCALF, "min_warning": 0.2, "max_warning": 0.5, "recommended": 0.4,
                          "low": {"message": "Very shallow aerobic pond", "suggestion": "Deepen pond"},
                          "high": {"message": "Too deep for an aerobic pond", "suggestion": "Reduce depth"}},
                "bod_loading": {"parameter": "Surface BOD Loading", "unit": "kg/ha·d", "source": METCALF, "min_warning": 200, "max_warning": 600, "recommended": 400,
                                "low": {"message": "Lightly loaded pond", "suggestion": "Reduce pond area"},
                                "high": {"message": "Overloaded aerobic pond", "suggestion": "Increase pond area"}},
            },
            "anaerobic": {
                "depth": {"parameter": "Depth", "unit": "m", "source": METCALF, "min_warning": 2.5, "max_warning": 5.0, "recommended": 3.5,
                          "low": {"message": "Shallow anaerobic pond", "suggestion": "Deepen pond"},
                          "high": {"message": "Very deep anaerobic pond", "suggestion": "Reduce depth"}},
                "bod_loading": {"parameter": "Surface BOD Loading", "unit": "kg/ha·d", "source": METCALF, "min_warning": 100, "max_warning": 400, "recommended": 300,
                                "low": {"message": "Lightly loaded anaerobic pond", "suggestion": "Reduce pond area"},
                                "high": {"message": "Overloaded anaerobic pond", "suggestion": "Increase pond area"}},
            },
            "maturation": {
                "depth": {"parameter": "Depth", "unit": "m", "source": METCALF, "min_warning": 1.0, "max_warning": 1.5, "recommended": 1.2,
                          "low": {"message": "Shallow maturation pond", "suggestion": "Deepen pond"},
                          "high": {"message": "Deep maturation pond - reduced sunlight penetration", "suggestion": "Reduce depth"}},
                "bod_loading": {"parameter": "Surface BOD Loading", "unit": "kg/ha·d", "source": METCALF, "min_warning": 0, "max_warning": 150, "recommended": 80,
                                "high": {"message": "Maturation pond receiving high organic load", "suggestion": "Add upstream treatment"}},
            },
        },
    },
    "trickling_filter": {
        "variants": {
            "low_rate": {
                "hydraulic_loading": {"parameter": "Hydraulic Loading", "unit": "m³/m²·d", "source": METCALF, "min_warning": 1, "max_warning": 4, "recommended": 2,
                                      "low": {"message": "Low hydraulic loading - poor media wetting", "suggestion": "Increase recirculation"},
                                      "high": {"message": "Hydraulic loading above low-rate range", "suggestion": "Increase filter area"}},
                "organic_loading": {"parameter": "Organic Loading", "unit": "kg BOD/m³·d", "source": METCALF, "min_warning": 0.08, "max_warning": 0.4, "recommended": 0.2,
                                    "low": {"message": "Underloaded filter", "suggestion": "Reduce media volume"},
                                    "high": {"message": "Organic loading above low-rate range", "suggestion": "Increase media volume"}},
            },
            "high_rate": {
                "hydraulic_loading": {"parameter": "Hydraulic Loading", "unit": "m³/m²·d", "source": METCALF, "min_warning": 10, "max_warning": 40, "recommended": 25,
                                      "low": {"message": "Low hydraulic loading - poor media wetting", "suggestion": "Increase recirculation"},
                                      "high": {"message": "Hydraulic loading above high-rate range", "suggestion": "Increase filter area"}},
                "organic_loading": {"parameter": "Organic Loading", "unit": "kg BOD/m³·d", "source": METCALF, "min_warning": 0.4, "max_warning": 1.6, "recommended": 0.8,
                                    "low": {"message": "Underloaded high-rate filter", "suggestion": "Reduce media volume"},
                                    "high": {"message": "Organic loading above high-rate range", "suggestion": "Increase media volume"}},
            },
            "super_rate": {
                "hydraulic_loading": {"parameter": "Hydraulic Loading", "unit": "m³/m²·d", "source": METCALF, "min_warning": 40, "max_warning": 200, "recommended": 80,
                                      "low": {"message": "Low hydraulic loading for super-rate media", "suggestion": "Increase recirculation"},
                                      "high": {"message": "Hydraulic loading above super-rate range", "suggestion": "Increase filter area"}},
                "organic_loading": {"parameter": "Organic Loading", "unit": "kg BOD/m³·d", "source": METCALF, "min_warning": 0.8, "max_warning": 4.8, "recommended": 2.0,
                                    "low": {"message": "Underloaded super-rate filter", "suggestion": "Reduce media volume"},
                                    "high": {"message": "Organic loading above super-rate range", "suggestion": "Increase media volume"}},
            },
            "roughing": {
                "hydraulic_loading": {"parameter": "Hydraulic Loading", "unit": "m³/m²·d", "source": METCALF, "min_warning": 40, "max_warning": 200, "recommended": 80,
                                      "low": {"message": "Low hydraulic loading for roughing filter", "suggestion": "Increase recirculation"},
                                      "high": {"message": "Hydraulic loading above roughing range", "suggestion": "Increase filter area"}},
                "organic_loading": {"parameter": "Organic Loading", "unit": "kg BOD/m³·d", "source": METCALF, "min_warning": 0.8, "max_warning": 6.0, "recommended": 3.0,
                                    "low": {"message": "Underloaded roughing filter", "suggestion": "Reduce media volume"},
                                    "high": {"message": "Organic loading above roughing range", "suggestion": "Increase media volume"}},
            },
        },
    },
    "mbr": {
        "mlss": {
            "parameter": "MLSS", "unit": "mg/L", "source": "Membrane manufacturer",
            "min_warning": 8000, "max_warning": 15000, "recommended": 10000,
            "low": {"message": "Low MLSS for MBR", "suggestion": "Reduce sludge wasting"},
            "high": {"message": "High MLSS - membrane fouling risk", "suggestion": "Increase sludge wasting"},
        },
        "flux": {
            "parameter": "Membrane Flux", "unit": "L/m²·h", "source": "Membrane manufacturer",
            "max_warning": 30, "recommended": 20,
            "high": {"message": "High flux - rapid fouling expected", "suggestion": "Add membrane area"},
        },
        "membrane_utilization": {
            "parameter": "Membrane Utilization", "unit": "-", "source": "Membrane manufacturer",
            "max_warning": 0.75, "max_critical": 0.9, "recommended": 0.7,
            "high": {"message": "Membrane capacity nearly exhausted", "suggestion": "Add membrane cassettes"},
        },
        "srt": {
            "parameter": "SRT", "unit": "days", "source": WEF,
            "min_warning": 15, "recommended": 25,
            "low": {"message": "Short SRT for MBR - fouling-prone sludge", "suggestion": "Reduce sludge wasting"},
        },
        "hrt": {
            "parameter": "HRT", "unit": "hours", "source": WEF,
            "min_warning": 4, "recommended": 6,
            "low": {"message": "Short HRT for MBR", "suggestion": "Increase bioreactor volume"},
        },
        "fm_ratio": {
            "parameter": "F/M Ratio", "unit": "kg BOD/kg MLVSS·d", "source": WEF,
            "max_warning": 0.2, "recommended": 0.1,
            "high": {"message": "High F/M for MBR", "suggestion": "Increase bioreactor volume"},
        },
    },
    "daf": {
        "surface_loading": {
            "parameter": "Surface Loading", "unit": "m/h", "source": WEF,
            "max_warning": 15, "recommended": 8,
            "high": {"message": "High hydraulic loading - float carry-under", "suggestion": "Increase DAF area"},
        },
        "hrt": {
            "parameter": "HRT", "unit": "min", "source": WEF,
            "min_warning": 20, "recommended": 30,
            "low": {"message": "Short flotation time", "suggestion": "Increase tank volume"},
        },
        "recycle_ratio": {
            "parameter": "Recycle Ratio", "unit": "%", "source": WEF,
            "min_warning": 5, "recommended": 15,
            "low": {"message": "Low recycle - insufficient air for flotation", "suggestion": "Increase pressurized recycle"},
        },
    },
    "filtration": {
        "media_depth": {
            "parameter": "Media Depth", "unit": "m", "source": TEN_STATES,
            "min_warning": 0.5, "recommended": 0.8,
            "low": {"message": "Shallow filter media - early breakthrough", "suggestion": "Increase media depth"},
        },
        "variants": {
            "rapid_sand": {
                "filtration_rate": {"parameter": "Filtration Rate", "unit": "m/h", "source": TEN_STATES, "min_warning": 5, "max_warning": 15, "recommended": 10,
                                    "low": {"message": "Oversized filter", "suggestion": "Reduce filter area"},
                                    "high": {"message": "Filtration rate too high - short runs", "suggestion": "Increase filter area"}},
            },
            "pressure": {
                "filtration_rate": {"parameter": "Filtration Rate", "unit": "m/h", "source": TEN_STATES, "min_warning": 5, "max_warning": 20, "recommended": 12,
                                    "low": {"message": "Oversized filter", "suggestion": "Reduce filter area"},
                                    "high": {"message": "Filtration rate too high - short runs", "suggestion": "Increase filter area"}},
            },
            "multimedia": {
                "filtration_rate": {"parameter": "Filtration Rate", "unit": "m/h", "source": TEN_STATES, "min_warning": 10, "max_warning": 25, "recommended": 15,
                                    "low": {"message": "Oversized filter", "suggestion": "Reduce filter area"},
                                    "high": {"message": "Filtration rate too high - short runs", "suggestion": "Increase filter area"}},
            },
            "membrane": {
                "filtration_rate": {"parameter": "Filtration Rate", "unit": "m/h", "source": "Membrane manufacturer", "min_warning": 20, "max_warning": 50, "recommended": 30,
                                    "low": {"message": "Oversized membrane system", "suggestion": "Reduce membrane area"},
                                    "high": {"message": "Membrane rate too high - fouling", "suggestion": "Increase membrane area"}},
            },
        },
    },
}

# Empirical removal tables (percent) and the thresholds that select a row.
REMOVAL_PERFORMANCE: Dict[str, Dict[str, Any]] = {
    "bar_screen": {
        "fine_spacing": 10, "medium_spacing": 25,
        "fine": {"bod": 10, "cod": 10, "tss": 20},
        "medium": {"bod": 7, "cod": 7, "tss": 15},
        "coarse": {"bod": 5, "cod": 5, "tss": 10},
    },
    "grit_chamber": {
        "horizontal_flow": {"bod": 2, "cod": 2, "tss": 10},
        "aerated": {"bod": 2, "cod": 2, "tss": 15},
    },
    "primary_clarifier": {
        "default": {"bod": 30, "tss": 55},
        "enhanced": {"bod": 35, "tss": 65},
        "overloaded": {"bod": 25, "tss": 45},
        "enhanced_max_sor": 32, "enhanced_min_hrt": 2.0,
        "overloaded_sor": 48, "overloaded_hrt": 1.5,
        "cod_to_bod": 0.85,
    },
    "secondary_clarifier": {
        "normal": {"bod": 5, "cod": 5, "tss": 90},
        "overloaded": {"bod": 5, "cod": 5, "tss": 75},
    },
    "oil_separator": {
        "good": 80, "normal": 60, "good_min_hrt": 20, "good_max_loading": 3,
        "bod_factor": 0.2, "tss_factor": 0.3,
    },
    "uasb": {
        "good": 80, "normal": 65, "good_min_hrt": 6, "good_max_olr": 10,
        "tss_factor": 0.8,
    },
    "sbr": {"bod": 92, "cod": 88, "tss": 94},
    "oxidation_pond": {
        "default": {"bod": 75, "cod": 65, "tss": 70},
        "facultative_long": {"bod": 85, "cod": 75, "tss": 80},
        "maturation": {"bod": 50, "cod": 40, "tss": 60},
        "facultative_long_hrt": 15,
    },
    "trickling_filter": {
        "nrc_coefficient": 0.4432, "min": 50, "max": 85,
        "cod_factor": 0.9, "tss_factor": 0.95,
    },
    "mbr": {"bod": 97, "cod": 95, "tss": 99.5},
    "daf": {"bod": 35, "cod": 30, "tss": 85, "oil_grease": 85},
    "filtration": {
        "membrane": {"bod": 50, "cod": 40, "tss": 99},
        "granular": {"bod": 30, "cod": 25, "tss": 70},
    },
    # Nutrients bound to captured solids: % TN / % TP removed per % TSS removed.
    "solids_nutrients": {"total_n_per_tss": 0.3, "total_p_per_tss": 0.2},
}

# Observed sludge yield, kg TSS per kg BOD removed, for empirical biological units.
SLUDGE_YIELD: Dict[str, float] = {
    "sbr": 0.5,
    "mbr": 0.3,
    "trickling_filter": 0.4,
    "uasb": 0.05,
    "oxidation_pond": 0.0,
}


def default_design_config() -> Dict[str, Any]:
    """A private copy of the built-in tables; callers may mutate it freely."""
    return copy.deepcopy({
        "criteria": DEFAULT_DESIGN_CRITERIA,
        "removal": REMOVAL_PERFORMANCE,
        "sludge_yield": SLUDGE_YIELD,
    })


def apply_criteria_overrides(overrides: Optional[Dict[str, float]]) -> Dict[str, Any]:
    """Return a design config with dotted-path overrides applied.

    Paths starting with ``removal.`` or ``sludge_yield.`` address the removal
    tables; any other path addresses the design criteria, e.g.
    ``primary_clarifier.surface_overflow_rate.max_warning``.
    """
    if not overrides:
        return default_design_config()

    config = default_design_config()
    for path, raw_value in overrides.items():
        try:
            value = float(str(raw_value).replace(",", ""))
        except (ValueError, TypeError):
            raise ValueError(f"Override {path!r} is not numeric: {raw_value!r}")
        if not math.isfinite(value):
            raise ValueError(f"Override {path!r} must be finite")

        parts = path.split(".")
        if parts[0] in ("removal", "sludge_yield"):
            node = config[parts[0]]
            parts = parts[1:]
        else:
            node = config["criteria"]
        if not parts:
            raise ValueError(f"Unknown design criteria path: {path!r}")

        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                raise ValueError(f"Unknown design criteria path: {path!r}")
            node = node[part]
        leaf = parts[-1]
        if not isinstance(node, dict):
            raise ValueError(f"Unknown design criteria path: {path!r}")
        if leaf not in node and leaf not in THRESHOLD_KEYS:
            raise ValueError(f"Unknown design criteria path: {path!r}")
        if isinstance(node.get(leaf), dict):
            raise ValueError(f"Override path {path!r} does not address a number")
        node[leaf] = value
    return config


def get_unit_criteria(config: Dict[str, Any], unit_type: str, variant: Optional[str] = None) -> Dict[str, dict]:
    unit_criteria = config["criteria"].get(unit_type, {})
    merged = {k: v for k, v in unit_criteria.items() if k != "variants"}
    if variant:
        merged.update(unit_criteria.get("variants", {}).get(variant, {}))
    return merged


def evaluate_criterion(criterion: Optional[dict], value: Optional[float]) -> Optional[DesignIssue]:
    if not criterion or value is None or not math.isfinite(value):
        return None

    side = None
    severity = None
    if criterion.get("min_critical") is not None and value < criterion["min_critical"]:
        side, severity = "low", IssueSeverity.CRITICAL
    elif criterion.get("min_warning") is not None and value < criterion["min_warning"]:
        side, severity = "low", IssueSeverity.WARNING
    elif criterion.get("max_critical") is not None and value > criterion["max_critical"]:
        side, severity = "high", IssueSeverity.CRITICAL
    elif criterion.get("max_warning") is not None and value > criterion["max_warning"]:
        side, severity = "high", IssueSeverity.WARNING

    if side is None:
        return None

    text = criterion.get(side) or {}
    default_message = "Below recommended range" if side == "low" else "Above recommended range"
    return DesignIssue(
        severity=severity,
        parameter=criterion.get("parameter", ""),
        message=text.get("message", default_message),
        current_value=round(value, 4),
        recommended_value=criterion.get("recommended"),
        unit=criterion.get("unit", ""),
        suggestion=text.get("suggestion", ""),
    )
