import pytest

from treatment_app.models.schemas import IssueSeverity
from treatment_app.services.design_criteria import (
    DEFAULT_DESIGN_CRITERIA,
    REMOVAL_PERFORMANCE,
    apply_criteria_overrides,
    default_design_config,
    evaluate_criterion,
    get_unit_criteria,
)
from treatment_app.services.design_params import resolve_design_params, to_snake_case
from treatment_app.services.unit_catalog import UNIT_METADATA, get_default_design_params


class TestEvaluateCriterion:
    criterion = {
        "parameter": "Approach Velocity", "unit": "m/s",
        "min_warning": 0.3, "max_critical": 0.6, "recommended": 0.45,
        "low": {"message": "Too slow", "suggestion": "Narrow the channel"},
        "high": {"message": "Too fast", "suggestion": "Widen the channel"},
    }

    def test_within_range_gives_no_issue(self):
        assert evaluate_criterion(self.criterion, 0.45) is None

    def test_boundary_values_pass(self):
        assert evaluate_criterion(self.criterion, 0.3) is None
        assert evaluate_criterion(self.criterion, 0.6) is None

    def test_low_value_is_warning(self):
        issue = evaluate_criterion(self.criterion, 0.2)
        assert issue.severity == IssueSeverity.WARNING
        assert issue.message == "Too slow"
        assert issue.recommended_value == 0.45
        assert issue.current_value == 0.2

    def test_high_value_is_critical(self):
        issue = evaluate_criterion(self.criterion, 0.9)
        assert issue.severity == IssueSeverity.CRITICAL
        assert issue.suggestion == "Widen the channel"

    def test_missing_criterion_or_value(self):
        assert evaluate_criterion(None, 1.0) is None
        assert evaluate_criterion(self.criterion, None) is None
        assert evaluate_criterion(self.criterion, float("nan")) is None


class TestUnitCriteria:
    def test_variant_merges_over_base(self, design_config):
        criteria = get_unit_criteria(design_config, "aeration_tank", "extended_aeration")
        assert "mlss" in criteria
        assert criteria["hrt"]["min_critical"] == 18
        assert "variants" not in criteria

    def test_without_variant_only_base(self, design_config):
        criteria = get_unit_criteria(design_config, "aeration_tank")
        assert "fm_ratio" not in criteria

    def test_every_unit_has_criteria_and_metadata(self):
        assert set(DEFAULT_DESIGN_CRITERIA) == set(UNIT_METADATA)


class TestCriteriaOverrides:
    def test_no_overrides_returns_defaults(self):
        config = apply_criteria_overrides(None)
        assert config["criteria"] == DEFAULT_DESIGN_CRITERIA
        assert config["criteria"] is not DEFAULT_DESIGN_CRITERIA

    def test_default_config_is_private(self):
        config = default_design_config()
        config["criteria"]["primary_clarifier"]["surface_overflow_rate"]["max_warning"] = 1
        config["removal"].clear()
        assert DEFAULT_DESIGN_CRITERIA["primary_clarifier"]["surface_overflow_rate"]["max_warning"] == 48
        assert REMOVAL_PERFORMANCE
        assert default_design_config()["criteria"] == DEFAULT_DESIGN_CRITERIA

    def test_override_applies_to_copy(self):
        config = apply_criteria_overrides({"primary_clarifier.surface_overflow_rate.max_warning": 30})
        assert config["criteria"]["primary_clarifier"]["surface_overflow_rate"]["max_warning"] == 30
        assert DEFAULT_DESIGN_CRITERIA["primary_clarifier"]["surface_overflow_rate"]["max_warning"] == 48

    def test_variant_path(self):
        path = "aeration_tank.variants.conventional.fm_ratio.min_warning"
        config = apply_criteria_overrides({path: "0.1"})
        assert config["criteria"]["aeration_tank"]["variants"]["conventional"]["fm_ratio"]["min_warning"] == 0.1

    def test_removal_path(self):
        config = apply_criteria_overrides({"removal.sbr.bod": 95})
        assert config["removal"]["sbr"]["bod"] == 95
        assert REMOVAL_PERFORMANCE["sbr"]["bod"] == 92

    def test_new_threshold_key_allowed(self):
        config = apply_criteria_overrides({"daf.hrt.max_warning": 60})
        assert config["criteria"]["daf"]["hrt"]["max_warning"] == 60

    @pytest.mark.parametrize("path", [
        "primary_clarifier.nonexistent.max_warning",
        "no_such_unit.hrt.min_warning",
        "primary_clarifier.hrt",
        "removal",
    ])
    def test_bad_path_raises(self, path):
        with pytest.raises(ValueError):
            apply_criteria_overrides({path: 1.0})

    def test_non_numeric_raises(self):
        with pytest.raises(ValueError):
            apply_criteria_overrides({"daf.hrt.min_warning": "soon"})


class TestDesignParams:
    def test_camel_case_keys_normalized(self):
        assert to_snake_case("barSpacing") == "bar_spacing"
        assert to_snake_case("sideWaterDepth") == "sidewater_depth"
        assert to_snake_case("baffleEfficiency") == "baffle_factor"

    def test_user_values_override_defaults(self):
        params, issues = resolve_design_params("bar_screen", {"barSpacing": "12"}, 1000)
        assert params["bar_spacing"] == 12.0
        assert issues == []

    def test_non_numeric_falls_back_with_warning(self):
        params, issues = resolve_design_params("daf", {"length": "long"}, 1000)
        assert params["length"] == get_default_design_params("daf", 1000)["length"]
        assert len(issues) == 1
        assert issues[0].severity == IssueSeverity.WARNING

    def test_unknown_choice_falls_back(self):
        params, issues = resolve_design_params("aeration_tank", {"processType": "magic"}, 1000)
        assert params["process_type"] == "conventional"
        assert issues[0].parameter == "process_type"

    def test_unknown_keys_reported_once(self):
        _, issues = resolve_design_params("uasb", {"colour": "blue", "flavour": 3}, 1000)
        assert len(issues) == 1
        assert "colour" in issues[0].message and "flavour" in issues[0].message

    def test_zero_and_negative_pass_through(self):
        params, issues = resolve_design_params("aeration_tank", {"volume": 0, "srt": -2}, 1000)
        assert params["volume"] == 0.0
        assert params["srt"] == -2.0
        assert issues == []

    def test_shape_switch_recomputes_geometry(self):
        params, _ = resolve_design_params("primary_clarifier", {"shape": "circular"}, 1000)
        assert params["shape"] == "circular"
        assert "diameter" in params
        assert "length" not in params
