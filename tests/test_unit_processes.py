import math

import pytest

from treatment_app.models.schemas import (
    IssueSeverity,
    UnitConfig,
    UnitStatus,
    UnitType,
    WaterQuality,
)
from treatment_app.services.treatment_train import compute_treatment_train
from treatment_app.services.unit_processes import UNIT_MODELS, apply_removal, evaluate_unit


def _critical(unit):
    return [i for i in unit.issues if i.severity == IssueSeverity.CRITICAL]


class TestRegistry:
    def test_every_unit_type_has_a_model(self):
        assert set(UNIT_MODELS) == set(UnitType)


class TestApplyRemoval:
    def test_zero_removal_leaves_output_equal(self, domestic_influent, design_config):
        output, removal = apply_removal(domestic_influent, {}, design_config)
        assert output == domestic_influent
        assert removal.bod == 0.0

    def test_removal_is_clipped(self, domestic_influent, design_config):
        output, removal = apply_removal(domestic_influent, {"bod": 140, "cod": -20}, design_config)
        assert removal.bod == 100.0
        assert output.bod == 0.0
        assert removal.cod == 0.0
        assert output.cod == domestic_influent.cod

    def test_nutrients_follow_solids(self, domestic_influent, design_config):
        output, removal = apply_removal(domestic_influent, {"tss": 50}, design_config)
        assert removal.total_n == pytest.approx(15.0)
        assert removal.total_p == pytest.approx(10.0)
        assert output.total_n == pytest.approx(40 * 0.85)
        assert output.ammonia_n == domestic_influent.ammonia_n

    def test_untracked_values_stay_none(self, design_config):
        quality = WaterQuality(flow=100, bod=200, cod=400, tss=200)
        output, removal = apply_removal(quality, {"tss": 50}, design_config)
        assert output.total_n is None
        assert output.total_p is None
        assert removal.total_n == 0.0


class TestDefaultsPassChecks:
    @pytest.mark.parametrize("unit_type", [
        t for t in UnitType if t not in (UnitType.AERATION_TANK, UnitType.CHLORINATION)
    ])
    def test_empirical_defaults_raise_no_critical_issue(self, unit_type, domestic_influent):
        unit = evaluate_unit(UnitConfig(unit_type=unit_type), domestic_influent)
        assert _critical(unit) == []
        assert unit.output_quality.flow == domestic_influent.flow


class TestEvaluateUnit:
    def test_disabled_unit_passes_through(self, domestic_influent):
        unit = evaluate_unit(UnitConfig(unit_type=UnitType.DAF, enabled=False), domestic_influent)
        assert unit.status == UnitStatus.NOT_CONFIGURED
        assert unit.output_quality == domestic_influent
        assert unit.issues == []

    def test_zero_flow_warns_and_zeroes(self):
        quality = WaterQuality(flow=0, bod=200, cod=400, tss=200, ph=7.0)
        unit = evaluate_unit(UnitConfig(unit_type=UnitType.PRIMARY_CLARIFIER), quality)
        assert unit.status == UnitStatus.WARNING
        assert unit.issues[0].message == "No flow reaches this unit"
        assert unit.output_quality.bod == 0.0
        assert unit.output_quality.total_n is None
        assert unit.output_quality.ph == 7.0

    def test_default_id_and_name(self, domestic_influent):
        unit = evaluate_unit(UnitConfig(unit_type="grit-chamber"), domestic_influent, position=3)
        assert unit.id == "grit_chamber-3"
        assert unit.name == "Grit Chamber"
        assert unit.category == "preliminary"

    def test_issues_carry_unit_id(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("bar_screen", channel_width=0.1), domestic_influent)
        assert unit.issues
        assert all(i.unit_id == unit.id for i in unit.issues)

    def test_zero_volume_aeration_tank_fails_with_full_effluent(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("aeration_tank", volume=0), domestic_influent)
        assert unit.status == UnitStatus.FAIL
        assert _critical(unit)
        assert unit.output_quality == domestic_influent
        assert unit.simulation is None
        assert not unit.simulation_failed

    def test_tiny_aeration_tank_fails_its_simulation(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("aeration_tank", volume=0.001), domestic_influent)
        assert unit.status == UnitStatus.FAIL
        assert unit.simulation_failed
        assert unit.simulation is None
        assert any(i.message == "Simulation did not converge" for i in _critical(unit))
        assert unit.output_quality == domestic_influent

    def test_arithmetic_error_in_model_is_contained(self, domestic_influent, monkeypatch):
        def overflowing(q, params, config):
            raise OverflowError("math range error")

        monkeypatch.setitem(UNIT_MODELS, UnitType.DAF, overflowing)
        unit = evaluate_unit(UnitConfig(unit_type=UnitType.DAF), domestic_influent)
        assert unit.status == UnitStatus.FAIL
        assert _critical(unit)[0].parameter == "Geometry"
        assert unit.output_quality == domestic_influent


class TestExtremeGeometry:
    @pytest.mark.parametrize("unit_type, params", [
        ("bar_screen", {"channel_width": 1e-200}),
        ("primary_clarifier", {"shape": "circular", "diameter": 1e-170}),
        ("primary_clarifier", {"shape": "circular", "diameter": 1e200}),
        ("uv_disinfection", {"channel_width": 1e308}),
        ("trickling_filter", {"diameter": 1e-170}),
        ("oxidation_pond", {"surface_area": 1e200, "depth": 1e200}),
        ("secondary_clarifier", {"shape": "circular", "diameter": 1e-170}),
    ])
    def test_train_survives_extreme_dimensions(self, domestic_influent, make_unit, unit_type, params):
        system = compute_treatment_train(
            domestic_influent, [make_unit(unit_type, **params), make_unit("chlorination")], "community",
        )
        first, second = system.units
        assert first.status == UnitStatus.FAIL
        assert _critical(first)
        assert all(math.isfinite(v) for v in first.design_values.values())
        assert second.input_quality == first.output_quality

    def test_vanishing_area_passes_influent_through(self, domestic_influent, make_unit):
        unit = evaluate_unit(
            make_unit("primary_clarifier", shape="circular", diameter=1e-170), domestic_influent,
        )
        assert unit.status == UnitStatus.FAIL
        assert "out of numeric range" in _critical(unit)[0].message
        assert unit.output_quality == domestic_influent
        assert unit.design_values == {}


class TestUnitModels:
    def test_bar_screen_fast_approach_is_critical(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("bar_screen", channel_width=0.05, channel_depth=0.2), domestic_influent)
        assert unit.status == UnitStatus.FAIL
        assert unit.design_values["approach_velocity"] > 0.6

    def test_bar_screen_removal_by_spacing(self, domestic_influent, make_unit):
        fine = evaluate_unit(make_unit("bar_screen", bar_spacing=6), domestic_influent)
        coarse = evaluate_unit(make_unit("bar_screen", bar_spacing=40), domestic_influent)
        assert fine.removal_efficiency.tss == 20
        assert coarse.removal_efficiency.tss == 10

    def test_aerated_grit_chamber(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("grit_chamber", chamber_type="aerated", length=10, width=3, depth=3), domestic_influent)
        assert unit.removal_efficiency.tss == 15
        assert "surface_loading" in unit.design_values

    def test_primary_clarifier_removal_and_sludge(self, domestic_influent):
        unit = evaluate_unit(UnitConfig(unit_type=UnitType.PRIMARY_CLARIFIER), domestic_influent)
        assert unit.removal_efficiency.bod == 30
        assert unit.removal_efficiency.cod == pytest.approx(25.5)
        tss_removed = domestic_influent.tss - unit.output_quality.tss
        assert unit.design_values["sludge_production"] == pytest.approx(tss_removed * 1000 / 1000, rel=1e-3)

    def test_overloaded_primary_clarifier(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("primary_clarifier", length=5, width=3), domestic_influent)
        assert unit.removal_efficiency.bod == 25
        assert unit.status == UnitStatus.FAIL

    def test_chlorination_leaves_quality_unchanged(self, make_unit):
        quality = WaterQuality(flow=1000, bod=10, cod=60, tss=10, total_n=10, total_p=2)
        unit = evaluate_unit(make_unit("chlorination"), quality)
        assert unit.output_quality == quality
        assert unit.design_values["chlorine_residual"] == pytest.approx(2.0 - 0.7)
        assert unit.design_values["log_inactivation"] > 0

    def test_chlorination_low_residual_critical(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("chlorination"), domestic_influent)
        assert any(i.parameter == "Chlorine Residual" for i in _critical(unit))

    def test_uv_lamp_count(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("uv_disinfection", channel_width=0.6, uv_dose=50), domestic_influent)
        assert unit.design_values["lamp_count"] == 4 * 3
        assert unit.design_values["power_draw"] == pytest.approx(12 * 0.15)

    def test_sbr_undersized_is_critical(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("sbr", volume_per_reactor=100), domestic_influent)
        assert unit.status == UnitStatus.FAIL
        assert unit.design_values["capacity_ratio"] == pytest.approx(100 * 0.3 * 4 * 2 / 1000)

    def test_trickling_filter_nrc_clamped(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("trickling_filter", diameter=100, depth=6), domestic_influent)
        assert unit.removal_efficiency.bod == 85

    def test_trickling_filter_negative_recirculation(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("trickling_filter", recirculation_ratio=-1), domestic_influent)
        assert unit.status == UnitStatus.FAIL
        assert unit.output_quality == domestic_influent

    def test_uasb_biogas(self, make_unit):
        quality = WaterQuality(flow=500, bod=1500, cod=3000, tss=400, temperature=30)
        unit = evaluate_unit(make_unit("uasb"), quality)
        cod_removed = (3000 - unit.output_quality.cod) * 500 / 1000
        assert unit.design_values["biogas_production"] == pytest.approx(cod_removed * 0.35 / 0.65, rel=1e-3)

    def test_oxidation_pond_long_hrt(self, domestic_influent):
        unit = evaluate_unit(UnitConfig(unit_type=UnitType.OXIDATION_POND), domestic_influent)
        assert unit.removal_efficiency.bod == 85
        assert unit.design_values["land_area"] > unit.design_values["surface_area"]

    def test_oil_separator_tracks_oil(self, make_unit):
        quality = WaterQuality(flow=200, bod=500, cod=1000, tss=400, oil_grease=100)
        unit = evaluate_unit(make_unit("oil_separator"), quality)
        assert unit.removal_efficiency.oil_grease in (60, 80)
        assert unit.output_quality.oil_grease < 100

    def test_mbr_overutilized_membrane(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("mbr", membrane_area=2000), domestic_influent)
        assert unit.status == UnitStatus.FAIL
        assert unit.design_values["membrane_utilization"] > 0.9

    def test_membrane_filtration_ignores_media_depth(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("filtration", filter_type="membrane", total_area=1.5, media_depth=0), domestic_influent)
        assert unit.removal_efficiency.tss == 99
        assert "media_depth" not in unit.design_values

    def test_secondary_clarifier_overloaded(self, domestic_influent, make_unit):
        unit = evaluate_unit(make_unit("secondary_clarifier", length=6, width=3), domestic_influent)
        assert unit.removal_efficiency.tss == 75
        assert math.isfinite(unit.design_values["ras_concentration"])
