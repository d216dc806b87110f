import logging
import os
from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, HTTPException, Query

from treatment_app.api.validation import validate_influent, validate_train_sequence
from treatment_app.models.schemas import EstimateRequest, TreatmentSystem, TreatmentTrainRequest
from treatment_app.services.cost_estimator import estimate_cost
from treatment_app.services.energy_estimator import estimate_energy
from treatment_app.services.sludge_estimator import estimate_sludge
from treatment_app.services.standards import list_standards
from treatment_app.services.treatment_train import compute_treatment_train
from treatment_app.services.unit_catalog import (
    UNIT_METADATA,
    build_preset,
    get_default_design_params,
    list_presets,
)

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api")

DEFAULT_FLOW = 1000.0


def default_standard() -> str:
    return os.environ.get("DEFAULT_EFFLUENT_STANDARD", "community")


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _run_train(body: TreatmentTrainRequest) -> Tuple[TreatmentSystem, List[dict]]:
    standard = body.target_standard or default_standard()
    logger.info("Treatment train request: %d units, standard %s", len(body.units), standard)
    try:
        system = compute_treatment_train(body.influent, body.units, standard, body.design_criteria)
    except ValueError as e:
        logger.warning("Rejected treatment train request: %s", str(e))
        raise HTTPException(status_code=400, detail=str(e))
    warnings = validate_influent(body.influent) + validate_train_sequence(body.units)
    return system, warnings


def _design_flow(body: EstimateRequest) -> float:
    return body.design_flow if body.design_flow is not None else body.influent.flow


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@api_router.get("/unit-types")
async def get_unit_types():
    return [{"type": key, **meta} for key, meta in UNIT_METADATA.items()]


@api_router.get("/unit-types/{unit_type}/defaults")
async def get_unit_defaults(unit_type: str, flow: float = Query(DEFAULT_FLOW, ge=0)):
    try:
        return get_default_design_params(unit_type, flow)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@api_router.get("/standards")
async def get_standards():
    return [_dump(s) for s in list_standards()]


@api_router.get("/presets")
async def get_presets():
    return list_presets()


@api_router.get("/presets/{preset_id}")
async def get_preset(preset_id: str, flow: float = Query(DEFAULT_FLOW, ge=0)):
    try:
        units = build_preset(preset_id, flow)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"id": preset_id, "flow": flow, "units": [_dump(u) for u in units]}


# ---------------------------------------------------------------------------
# Treatment train and estimates
# ---------------------------------------------------------------------------


@api_router.post("/treatment-train")
def run_treatment_train(body: TreatmentTrainRequest):
    system, warnings = _run_train(body)
    return {"system": _dump(system), "warnings": warnings}


@api_router.post("/treatment-train/estimates")
def run_treatment_train_with_estimates(body: EstimateRequest):
    system, warnings = _run_train(body)
    try:
        cost = estimate_cost(system, _design_flow(body), body.cost_assumptions)
        energy = estimate_energy(system, body.influent, body.energy_assumptions)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    sludge = estimate_sludge(system, body.influent)
    return {
        "system": _dump(system),
        "cost": _dump(cost),
        "sludge": _dump(sludge),
        "energy": _dump(energy),
        "warnings": warnings,
    }


@api_router.post("/estimates/cost")
def run_cost_estimate(body: EstimateRequest):
    system, _ = _run_train(body)
    try:
        return _dump(estimate_cost(system, _design_flow(body), body.cost_assumptions))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@api_router.post("/estimates/sludge")
def run_sludge_estimate(body: EstimateRequest):
    system, _ = _run_train(body)
    return _dump(estimate_sludge(system, body.influent))


@api_router.post("/estimates/energy")
def run_energy_estimate(body: EstimateRequest):
    system, _ = _run_train(body)
    try:
        return _dump(estimate_energy(system, body.influent, body.energy_assumptions))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
