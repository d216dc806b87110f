import pytest

from treatment_app.models.schemas import UnitConfig, UnitType, WaterQuality
from treatment_app.services.design_criteria import default_design_config
from treatment_app.services.treatment_train import compute_treatment_train
from treatment_app.services.unit_catalog import build_preset, get_default_influent


@pytest.fixture
def domestic_influent() -> WaterQuality:
    return get_default_influent("domestic")


@pytest.fixture
def design_config():
    return default_design_config()


@pytest.fixture
def make_unit():
    def _make(unit_type, **params):
        return UnitConfig(unit_type=UnitType(unit_type), design_params=params)
    return _make


@pytest.fixture(scope="session")
def conventional_system():
    influent = get_default_influent("domestic")
    return compute_treatment_train(influent, build_preset("conventional_as", influent.flow), "community")


@pytest.fixture(scope="session")
def sbr_system():
    influent = get_default_influent("domestic")
    return compute_treatment_train(influent, build_preset("sbr_system", influent.flow), "community")
