import pytest

from treatment_app.models.schemas import UnitConfig, UnitStatus, UnitType, WaterQuality
from treatment_app.services.treatment_train import compute_treatment_train, worst_status
from treatment_app.services.unit_catalog import build_preset


class TestWorstStatus:
    def test_ordering(self):
        assert worst_status([UnitStatus.PASS, UnitStatus.FAIL, UnitStatus.WARNING]) == UnitStatus.FAIL
        assert worst_status([UnitStatus.NOT_CONFIGURED, UnitStatus.PASS]) == UnitStatus.PASS
        assert worst_status([]) == UnitStatus.NOT_CONFIGURED


class TestComputeTreatmentTrain:
    def test_empty_train_passes_influent_through(self, domestic_influent):
        system = compute_treatment_train(domestic_influent, [])
        assert system.units == []
        assert system.effluent_quality == domestic_influent
        assert system.summary.total_bod_removal == 0.0
        assert system.overall_status == UnitStatus.FAIL

    def test_conventional_train_meets_community_standard(self, conventional_system):
        system = conventional_system
        assert system.effluent_quality.bod <= 20
        assert system.compliance.is_compliant
        assert system.overall_status == UnitStatus.PASS
        assert system.summary.total_bod_removal > 80
        assert system.summary.total_power > 0
        assert system.summary.total_land_area > 0

    def test_conventional_train_runs_the_simulation(self, conventional_system):
        aeration = next(u for u in conventional_system.units if u.unit_type == UnitType.AERATION_TANK)
        assert aeration.simulation is not None
        assert aeration.simulation.converged
        assert not aeration.simulation_failed

    def test_units_chain_in_order(self, conventional_system):
        units = conventional_system.units
        for upstream, downstream in zip(units, units[1:]):
            assert downstream.input_quality == upstream.output_quality
        assert [u.position for u in units] == list(range(len(units)))

    def test_flow_is_conserved(self, sbr_system):
        for unit in sbr_system.units:
            assert unit.output_quality.flow == sbr_system.influent.flow

    def test_concentrations_never_increase(self, conventional_system):
        for unit in conventional_system.units:
            assert unit.output_quality.bod <= unit.input_quality.bod
            assert unit.output_quality.cod <= unit.input_quality.cod
            assert unit.output_quality.tss <= unit.input_quality.tss

    def test_repeat_runs_are_identical(self, domestic_influent, sbr_system):
        again = compute_treatment_train(
            domestic_influent, build_preset("sbr_system", domestic_influent.flow), "community",
        )
        assert again.model_dump() == sbr_system.model_dump()

    def test_system_issues_collect_unit_issues(self, domestic_influent, make_unit):
        system = compute_treatment_train(
            domestic_influent, [make_unit("bar_screen", channel_width=0.05, channel_depth=0.2)],
        )
        unit_issue_count = len(system.units[0].issues)
        assert unit_issue_count > 0
        assert system.system_issues[:unit_issue_count] == system.units[0].issues

    def test_unknown_standard_raises(self, domestic_influent):
        with pytest.raises(ValueError):
            compute_treatment_train(domestic_influent, [], "type_z")

    def test_dict_configs_accepted(self, domestic_influent):
        system = compute_treatment_train(
            domestic_influent,
            [{"type": "bar-screen"}, {"type": "grit_chamber", "designParams": {"chamberType": "aerated"}}],
        )
        assert [u.unit_type for u in system.units] == [UnitType.BAR_SCREEN, UnitType.GRIT_CHAMBER]
        assert system.units[1].design_params["chamber_type"] == "aerated"

    def test_disabled_unit_in_train(self, domestic_influent):
        configs = build_preset("conventional_as", domestic_influent.flow)
        configs[2] = configs[2].model_copy(update={"enabled": False})
        system = compute_treatment_train(domestic_influent, configs)
        primary = system.units[2]
        assert primary.status == UnitStatus.NOT_CONFIGURED
        assert primary.output_quality == primary.input_quality
        assert len(system.units) == len(configs)

    def test_criteria_override_raises_warning(self, domestic_influent):
        configs = build_preset("conventional_as", domestic_influent.flow)
        system = compute_treatment_train(
            domestic_influent, configs,
            design_criteria={"primary_clarifier.surface_overflow_rate.max_warning": 30},
        )
        primary = next(u for u in system.units if u.unit_type == UnitType.PRIMARY_CLARIFIER)
        assert primary.status == UnitStatus.WARNING

    def test_zero_volume_aeration_fails_but_train_continues(self, domestic_influent, make_unit):
        configs = [
            make_unit("bar_screen"),
            make_unit("aeration_tank", volume=0),
            make_unit("secondary_clarifier"),
        ]
        system = compute_treatment_train(domestic_influent, configs)
        assert len(system.units) == 3
        assert system.units[1].status == UnitStatus.FAIL
        assert system.overall_status == UnitStatus.FAIL
        assert system.summary.failed_units >= 1
        assert system.units[2].input_quality == system.units[1].output_quality

    def test_untracked_nitrogen_stays_unknown(self, make_unit):
        influent = WaterQuality(flow=1000, bod=200, cod=400, tss=220)
        system = compute_treatment_train(influent, [make_unit("primary_clarifier")])
        assert system.effluent_quality.total_n is None
        assert system.summary.total_ammonia_removal is None

    def test_accepts_unit_config_objects(self, domestic_influent):
        system = compute_treatment_train(domestic_influent, [UnitConfig(unit_type=UnitType.DAF)])
        assert system.units[0].name == "DAF"
