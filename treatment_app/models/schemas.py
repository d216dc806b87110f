"""
Pydantic models for the treatment-train engine.
These define the data shapes shared by the services and the API layer.
Attribute names are snake_case; every multi-word field also accepts its
camelCase alias on input.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class UnitType(str, Enum):
    BAR_SCREEN = "bar_screen"
    GRIT_CHAMBER = "grit_chamber"
    PRIMARY_CLARIFIER = "primary_clarifier"
    AERATION_TANK = "aeration_tank"
    SBR = "sbr"
    UASB = "uasb"
    OXIDATION_POND = "oxidation_pond"
    TRICKLING_FILTER = "trickling_filter"
    MBR = "mbr"
    SECONDARY_CLARIFIER = "secondary_clarifier"
    DAF = "daf"
    FILTRATION = "filtration"
    CHLORINATION = "chlorination"
    UV_DISINFECTION = "uv_disinfection"
    OIL_SEPARATOR = "oil_separator"


class UnitStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"
    NOT_CONFIGURED = "not_configured"


class IssueSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class ComplianceStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    UNKNOWN = "unknown"


def normalize_unit_type(value: Any) -> Any:
    """Accept 'bar-screen', 'Bar Screen' and 'bar_screen' alike."""
    if isinstance(value, str):
        return value.strip().lower().replace("-", "_").replace(" ", "_")
    return value


# ---------------------------------------------------------------------------
# Water quality
# ---------------------------------------------------------------------------

class WaterQuality(BaseModel):
    flow: float = Field(ge=0, alias="flowRate")          # m³/d
    bod: float = Field(ge=0)                              # mg/L
    cod: float = Field(ge=0)                              # mg/L
    tss: float = Field(ge=0)                              # mg/L
    ammonia_n: Optional[float] = Field(default=None, ge=0, alias="ammoniaN")
    nitrate_n: Optional[float] = Field(default=None, ge=0, alias="nitrateN")
    total_n: Optional[float] = Field(default=None, ge=0, alias="totalN")
    total_p: Optional[float] = Field(default=None, ge=0, alias="totalP")
    oil_grease: Optional[float] = Field(default=None, ge=0, alias="oilGrease")
    alkalinity: Optional[float] = Field(default=None, ge=0)  # mg/L as CaCO3
    ph: Optional[float] = Field(default=None, ge=0, le=14)
    dissolved_oxygen: Optional[float] = Field(default=None, ge=0, alias="dissolvedOxygen")
    temperature: Optional[float] = None                   # °C

    model_config = {"frozen": True, "populate_by_name": True, "allow_inf_nan": False}


# ---------------------------------------------------------------------------
# Unit results
# ---------------------------------------------------------------------------

class DesignIssue(BaseModel):
    severity: IssueSeverity
    parameter: str
    message: str
    current_value: Optional[float] = Field(default=None, alias="currentValue")
    recommended_value: Optional[float] = Field(default=None, alias="recommendedValue")
    unit: str = ""
    suggestion: str = ""
    unit_id: Optional[str] = Field(default=None, alias="unitId")

    model_config = {"frozen": True, "populate_by_name": True}


class RemovalEfficiency(BaseModel):
    """Percent removal per tracked pollutant, always within [0, 100]."""
    bod: float = 0.0
    cod: float = 0.0
    tss: float = 0.0
    ammonia_n: float = Field(default=0.0, alias="ammoniaN")
    total_n: float = Field(default=0.0, alias="totalN")
    total_p: float = Field(default=0.0, alias="totalP")
    oil_grease: float = Field(default=0.0, alias="oilGrease")

    model_config = {"frozen": True, "populate_by_name": True}


class SimulationSummary(BaseModel):
    mode: str
    converged: bool
    steps: int
    simulated_days: float = Field(alias="simulatedDays")
    step_size: float = Field(alias="stepSize")
    temperature: float
    state: Dict[str, float]
    mlss: float
    mlvss: float
    oxygen_demand: float = Field(alias="oxygenDemand")          # kg O2/d
    sludge_production: float = Field(alias="sludgeProduction")  # kg TSS/d
    performance: Dict[str, float] = Field(default_factory=dict)         # % removal

    model_config = {"frozen": True, "populate_by_name": True}


class UnitConfig(BaseModel):
    id: Optional[str] = None
    unit_type: UnitType = Field(alias="type")
    name: Optional[str] = None
    design_params: Dict[str, Any] = Field(default_factory=dict, alias="designParams")
    enabled: bool = True

    model_config = {"populate_by_name": True}

    @field_validator("unit_type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        return normalize_unit_type(value)


class UnitInstance(BaseModel):
    id: str
    unit_type: UnitType = Field(alias="type")
    name: str
    category: str
    position: int
    design_params: Dict[str, Any] = Field(alias="designParams")
    input_quality: WaterQuality = Field(alias="inputQuality")
    output_quality: WaterQuality = Field(alias="outputQuality")
    removal_efficiency: RemovalEfficiency = Field(alias="removalEfficiency")
    status: UnitStatus
    issues: List[DesignIssue] = Field(default_factory=list)
    design_values: Dict[str, float] = Field(default_factory=dict, alias="designValues")
    simulation: Optional[SimulationSummary] = None
    simulation_failed: bool = Field(default=False, alias="simulationFailed")

    model_config = {"frozen": True, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Standards and compliance
# ---------------------------------------------------------------------------

class StandardLimit(BaseModel):
    parameter: str
    name: str
    unit: str = "mg/L"
    max: Optional[float] = None
    min: Optional[float] = None
    required: bool = False

    model_config = {"frozen": True}


class EffluentStandard(BaseModel):
    key: str
    name: str
    source: str = ""
    description: str = ""
    limits: List[StandardLimit]

    model_config = {"frozen": True}


class ComplianceParameter(BaseModel):
    parameter: str
    name: str
    value: Optional[float] = None
    limit: Union[float, str]
    unit: str
    status: ComplianceStatus
    required: bool = False

    model_config = {"frozen": True}


class ComplianceResult(BaseModel):
    standard: str
    standard_name: str = Field(alias="standardName")
    is_compliant: bool = Field(alias="isCompliant")
    parameters: List[ComplianceParameter]

    model_config = {"frozen": True, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Treatment system
# ---------------------------------------------------------------------------

class TreatmentSummary(BaseModel):
    total_bod_removal: float = Field(alias="totalBodRemoval")
    total_cod_removal: float = Field(alias="totalCodRemoval")
    total_tss_removal: float = Field(alias="totalTssRemoval")
    total_ammonia_removal: Optional[float] = Field(default=None, alias="totalAmmoniaRemoval")
    total_land_area: float = Field(alias="totalLandArea")    # m²
    total_power: float = Field(alias="totalPower")           # kW
    unit_count: int = Field(alias="unitCount")
    failed_units: int = Field(alias="failedUnits")
    failed_simulations: int = Field(alias="failedSimulations")

    model_config = {"frozen": True, "populate_by_name": True}


class TreatmentSystem(BaseModel):
    influent: WaterQuality
    units: List[UnitInstance]
    target_standard: str = Field(alias="targetStandard")
    effluent_quality: WaterQuality = Field(alias="effluentQuality")
    compliance: ComplianceResult
    overall_status: UnitStatus = Field(alias="overallStatus")
    system_issues: List[DesignIssue] = Field(default_factory=list, alias="systemIssues")
    summary: TreatmentSummary

    model_config = {"frozen": True, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Resource estimates
# ---------------------------------------------------------------------------

class UnitCost(BaseModel):
    unit_id: str = Field(alias="unitId")
    unit_type: UnitType = Field(alias="unitType")
    unit_name: str = Field(alias="unitName")
    capital_cost: float = Field(alias="capitalCost")
    operating_cost: float = Field(alias="operatingCost")     # THB/month
    included: bool = True

    model_config = {"populate_by_name": True}


class CostEstimation(BaseModel):
    civil_works: float = Field(alias="civilWorks")
    equipment: float
    engineering: float
    installation: float
    contingency: float
    land_cost: float = Field(alias="landCost")
    total_capital: float = Field(alias="totalCapital")

    electricity: float
    chemicals: float
    labor: float
    maintenance: float
    sludge_disposal: float = Field(alias="sludgeDisposal")
    total_operating: float = Field(alias="totalOperating")   # THB/month

    annual_operating: float = Field(alias="annualOperating")
    annual_depreciation: float = Field(alias="annualDepreciation")
    total_annual_cost: float = Field(alias="totalAnnualCost")
    cost_per_m3: float = Field(alias="costPerM3")

    unit_costs: List[UnitCost] = Field(default_factory=list, alias="unitCosts")
    assumptions: List[dict] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class UnitSludge(BaseModel):
    unit_id: str = Field(alias="unitId")
    unit_type: UnitType = Field(alias="unitType")
    unit_name: str = Field(alias="unitName")
    sludge_produced: float = Field(alias="sludgeProduced")   # kg DS/d
    sludge_type: str = Field(alias="sludgeType")
    included: bool = True

    model_config = {"populate_by_name": True}


class SludgeProduction(BaseModel):
    primary_sludge: float = Field(alias="primarySludge")
    primary_sludge_volume: float = Field(alias="primarySludgeVolume")
    biological_sludge: float = Field(alias="biologicalSludge")
    biological_sludge_volume: float = Field(alias="biologicalSludgeVolume")
    chemical_sludge: float = Field(alias="chemicalSludge")
    chemical_sludge_volume: float = Field(alias="chemicalSludgeVolume")
    tertiary_sludge: float = Field(alias="tertiarySludge")
    tertiary_sludge_volume: float = Field(alias="tertiarySludgeVolume")
    total_sludge: float = Field(alias="totalSludge")
    total_sludge_volume: float = Field(alias="totalSludgeVolume")
    sludge_per_m3: float = Field(alias="sludgePerM3")        # kg DS/m³ treated

    biogas_production: float = Field(alias="biogasProduction")   # m³/d
    methane_content: float = Field(alias="methaneContent")       # %
    energy_recovery: float = Field(alias="energyRecovery")       # kWh/d

    unit_sludge: List[UnitSludge] = Field(default_factory=list, alias="unitSludge")

    model_config = {"populate_by_name": True}


class UnitEnergy(BaseModel):
    unit_id: str = Field(alias="unitId")
    unit_type: UnitType = Field(alias="unitType")
    unit_name: str = Field(alias="unitName")
    daily_consumption: float = Field(alias="dailyConsumption")   # kWh/d
    percentage: float
    category: str
    included: bool = True

    model_config = {"populate_by_name": True}


class EnergyConsumption(BaseModel):
    aeration: float
    pumping: float
    mixing: float
    sludge_handling: float = Field(alias="sludgeHandling")
    disinfection: float
    lighting: float
    other: float

    total_daily: float = Field(alias="totalDaily")
    total_monthly: float = Field(alias="totalMonthly")
    total_annual: float = Field(alias="totalAnnual")

    daily_cost: float = Field(alias="dailyCost")
    monthly_cost: float = Field(alias="monthlyCost")
    annual_cost: float = Field(alias="annualCost")

    kwh_per_m3: float = Field(alias="kWhPerM3")
    kwh_per_kg_bod: float = Field(alias="kWhPerKgBod")

    biogas_energy: float = Field(alias="biogasEnergy")
    net_energy: float = Field(alias="netEnergy")

    unit_energy: List[UnitEnergy] = Field(default_factory=list, alias="unitEnergy")
    assumptions: List[dict] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------

class TreatmentTrainRequest(BaseModel):
    influent: WaterQuality
    units: List[UnitConfig] = Field(default_factory=list)
    target_standard: Optional[str] = Field(default=None, alias="targetStandard")
    design_criteria: Optional[Dict[str, float]] = Field(default=None, alias="designCriteria")

    model_config = {"populate_by_name": True}


class EstimateRequest(TreatmentTrainRequest):
    design_flow: Optional[float] = Field(default=None, ge=0, alias="designFlow")
    cost_assumptions: Optional[Dict[str, float]] = Field(default=None, alias="costAssumptions")
    energy_assumptions: Optional[Dict[str, float]] = Field(default=None, alias="energyAssumptions")
