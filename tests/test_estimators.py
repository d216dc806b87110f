import pytest

from treatment_app.models.schemas import UnitConfig, UnitStatus, UnitType, WaterQuality
from treatment_app.services.cost_estimator import estimate_cost
from treatment_app.services.energy_estimator import apply_assumption_overrides, DEFAULT_ENERGY_ASSUMPTIONS, estimate_energy, get_val
from treatment_app.services.sludge_estimator import estimate_sludge
from treatment_app.services.treatment_train import compute_treatment_train
from treatment_app.services.unit_catalog import build_preset, get_default_influent


@pytest.fixture(scope="module")
def failed_simulation_system():
    influent = get_default_influent("domestic")
    units = [
        UnitConfig(unit_type=UnitType.BAR_SCREEN),
        UnitConfig(unit_type=UnitType.AERATION_TANK, design_params={"volume": 0.001}),
        UnitConfig(unit_type=UnitType.SECONDARY_CLARIFIER),
    ]
    return compute_treatment_train(influent, units, "community")


@pytest.fixture
def empty_system(domestic_influent):
    return compute_treatment_train(domestic_influent, [])


class TestAssumptionOverrides:
    def test_override_applies_to_copy(self):
        result = apply_assumption_overrides(DEFAULT_ENERGY_ASSUMPTIONS, {"electricity_rate": "1,250"})
        assert get_val(result, "electricity_rate") == 1250.0
        assert get_val(DEFAULT_ENERGY_ASSUMPTIONS, "electricity_rate") == 4.5

    @pytest.mark.parametrize("overrides", [
        {"no_such_key": 1.0},
        {"electricity_rate": "cheap"},
        {"electricity_rate": -1.0},
        {"electricity_rate": float("inf")},
    ])
    def test_bad_overrides_raise(self, overrides):
        with pytest.raises(ValueError):
            apply_assumption_overrides(DEFAULT_ENERGY_ASSUMPTIONS, overrides)

    def test_missing_key_reads_zero(self):
        assert get_val([], "electricity_rate") == 0.0


class TestSludge:
    def test_conventional_produces_primary_and_biological(self, conventional_system):
        sludge = estimate_sludge(conventional_system, conventional_system.influent)
        assert sludge.primary_sludge > 0
        assert sludge.biological_sludge > 0
        assert sludge.total_sludge == pytest.approx(
            sludge.primary_sludge + sludge.biological_sludge
            + sludge.chemical_sludge + sludge.tertiary_sludge, abs=0.05,
        )
        assert sludge.primary_sludge_volume == pytest.approx(sludge.primary_sludge / 40, rel=1e-2)
        assert sludge.biogas_production == 0.0
        assert sludge.methane_content == 0.0

    def test_empty_system_has_no_sludge(self, empty_system, domestic_influent):
        sludge = estimate_sludge(empty_system, domestic_influent)
        assert sludge.total_sludge == 0.0
        assert sludge.unit_sludge == []

    def test_uasb_recovers_energy(self, make_unit):
        influent = WaterQuality(flow=500, bod=1500, cod=3000, tss=400, temperature=30)
        system = compute_treatment_train(influent, [make_unit("uasb")], "general_industrial")
        sludge = estimate_sludge(system, influent)
        assert sludge.biogas_production > 0
        assert sludge.methane_content == 65
        assert sludge.energy_recovery > 0

    def test_failed_simulation_is_excluded(self, failed_simulation_system):
        sludge = estimate_sludge(failed_simulation_system, failed_simulation_system.influent)
        entry = next(u for u in sludge.unit_sludge if u.unit_type == UnitType.AERATION_TANK)
        assert not entry.included
        assert entry.sludge_produced == 0.0


class TestEnergy:
    def test_categories_add_up(self, conventional_system):
        energy = estimate_energy(conventional_system, conventional_system.influent)
        parts = (energy.aeration + energy.pumping + energy.mixing + energy.sludge_handling
                 + energy.disinfection + energy.lighting + energy.other)
        assert energy.total_daily == pytest.approx(parts, abs=0.1)
        assert energy.aeration > 0
        assert energy.total_monthly == pytest.approx(energy.total_daily * 30, abs=1)
        assert energy.kwh_per_m3 > 0
        assert energy.net_energy == pytest.approx(energy.total_daily - energy.biogas_energy, abs=0.05)

    def test_unit_shares(self, conventional_system):
        energy = estimate_energy(conventional_system, conventional_system.influent)
        assert len(energy.unit_energy) == len(conventional_system.units)
        assert sum(u.percentage for u in energy.unit_energy) <= 100.5

    def test_rate_override_scales_cost(self, conventional_system):
        base = estimate_energy(conventional_system, conventional_system.influent)
        doubled = estimate_energy(conventional_system, conventional_system.influent, {"electricity_rate": 9.0})
        assert doubled.total_daily == base.total_daily
        assert doubled.daily_cost == pytest.approx(base.daily_cost * 2, rel=1e-3)

    def test_empty_system_uses_no_energy(self, empty_system, domestic_influent):
        energy = estimate_energy(empty_system, domestic_influent)
        assert energy.total_daily == 0.0
        assert energy.kwh_per_kg_bod == 0.0

    def test_failed_simulation_draws_nothing(self, failed_simulation_system):
        energy = estimate_energy(failed_simulation_system, failed_simulation_system.influent)
        entry = next(u for u in energy.unit_energy if u.unit_type == UnitType.AERATION_TANK)
        assert entry.daily_consumption == 0.0
        assert not entry.included


class TestCost:
    def test_capital_parts_add_up(self, conventional_system):
        cost = estimate_cost(conventional_system, conventional_system.influent.flow)
        parts = (cost.civil_works + cost.equipment + cost.engineering
                 + cost.installation + cost.contingency + cost.land_cost)
        assert cost.total_capital == pytest.approx(parts, abs=0.1)
        assert cost.total_capital > 0

    def test_operating_parts_add_up(self, conventional_system):
        cost = estimate_cost(conventional_system, conventional_system.influent.flow)
        parts = cost.electricity + cost.chemicals + cost.labor + cost.maintenance + cost.sludge_disposal
        assert cost.total_operating == pytest.approx(parts, abs=0.1)
        assert cost.annual_operating == pytest.approx(cost.total_operating * 12, abs=1)
        assert cost.annual_depreciation == pytest.approx(cost.total_capital / 20, abs=0.1)
        assert cost.cost_per_m3 > 0

    def test_unit_breakdown(self, conventional_system):
        cost = estimate_cost(conventional_system, conventional_system.influent.flow)
        assert [u.unit_id for u in cost.unit_costs] == [u.id for u in conventional_system.units]
        assert all(u.included for u in cost.unit_costs)

    def test_overrides(self, conventional_system):
        base = estimate_cost(conventional_system, 1000)
        pricier = estimate_cost(conventional_system, 1000, {"land_cost": 10000})
        assert pricier.land_cost == pytest.approx(base.land_cost * 2, rel=1e-6)
        assert get_val(pricier.assumptions, "land_cost") == 10000

    def test_unknown_override_raises(self, conventional_system):
        with pytest.raises(ValueError):
            estimate_cost(conventional_system, 1000, {"interest_rate": 5})

    @pytest.mark.parametrize("flow", [-1.0, float("nan")])
    def test_bad_design_flow_raises(self, conventional_system, flow):
        with pytest.raises(ValueError):
            estimate_cost(conventional_system, flow)

    def test_zero_design_flow(self, conventional_system):
        cost = estimate_cost(conventional_system, 0)
        assert cost.cost_per_m3 == 0.0

    def test_failed_simulation_is_excluded(self, failed_simulation_system):
        aeration = failed_simulation_system.units[1]
        assert aeration.status == UnitStatus.FAIL
        assert aeration.simulation_failed
        assert failed_simulation_system.summary.failed_simulations == 1
        cost = estimate_cost(failed_simulation_system, 1000)
        entry = next(u for u in cost.unit_costs if u.unit_type == UnitType.AERATION_TANK)
        assert not entry.included
        assert entry.capital_cost == 0.0
        assert entry.operating_cost == 0.0
        assert [u.included for u in cost.unit_costs] == [True, False, True]

    def test_land_cost_prices_the_system_footprint(self, domestic_influent):
        system = compute_treatment_train(
            domestic_influent, build_preset("pond_system", domestic_influent.flow), "community",
        )
        cost = estimate_cost(system, domestic_influent.flow)
        assert cost.land_cost == pytest.approx(system.summary.total_land_area * 5000, rel=1e-4)

    def test_land_cost_scales_with_design_flow(self, domestic_influent):
        system = compute_treatment_train(
            domestic_influent, build_preset("pond_system", domestic_influent.flow), "community",
        )
        base = estimate_cost(system, domestic_influent.flow)
        doubled = estimate_cost(system, domestic_influent.flow * 2)
        assert doubled.land_cost == pytest.approx(base.land_cost * 2, rel=1e-6)

    def test_empty_system_costs_nothing(self, empty_system):
        cost = estimate_cost(empty_system, 1000)
        assert cost.total_capital == 0.0
        assert cost.total_operating == 0.0
