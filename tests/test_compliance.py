import pytest

from treatment_app.models.schemas import (
    ComplianceStatus,
    EffluentStandard,
    IssueSeverity,
    StandardLimit,
    UnitStatus,
    WaterQuality,
)
from treatment_app.services.compliance import (
    compliance_issues,
    compliance_status,
    evaluate_compliance,
)
from treatment_app.services.standards import (
    get_standard,
    list_standards,
    normalize_standard_key,
    resolve_standard,
)


def _param(result, parameter):
    return next(p for p in result.parameters if p.parameter == parameter)


class TestStandards:
    def test_three_standards_available(self):
        keys = [s.key for s in list_standards()]
        assert keys == ["industrial_estate", "general_industrial", "community"]

    @pytest.mark.parametrize("alias, key", [
        ("Type-C", "community"),
        ("a", "industrial_estate"),
        ("General Industrial", "general_industrial"),
    ])
    def test_aliases_resolve(self, alias, key):
        assert normalize_standard_key(alias) == key

    def test_unknown_standard_raises(self):
        with pytest.raises(ValueError):
            get_standard("type_z")

    def test_custom_standard_passes_through(self):
        custom = EffluentStandard(
            key="strict", name="Strict",
            limits=[StandardLimit(parameter="bod", name="BOD", max=5, required=True)],
        )
        assert resolve_standard(custom) is custom


class TestEvaluateCompliance:
    def test_clean_effluent_passes(self):
        effluent = WaterQuality(flow=1000, bod=10, cod=60, tss=15, ph=7.2, temperature=28)
        result = evaluate_compliance(effluent, "community")
        assert result.is_compliant
        assert compliance_status(result) == UnitStatus.PASS
        assert compliance_issues(result) == []

    def test_exceedance_fails(self):
        effluent = WaterQuality(flow=1000, bod=55, cod=60, tss=15)
        result = evaluate_compliance(effluent, "community")
        assert not result.is_compliant
        assert _param(result, "bod").status == ComplianceStatus.FAIL
        assert compliance_status(result) == UnitStatus.FAIL
        issue = compliance_issues(result)[0]
        assert issue.severity == IssueSeverity.CRITICAL
        assert issue.recommended_value == 40

    def test_ph_range_formatted(self):
        effluent = WaterQuality(flow=1000, bod=10, cod=60, tss=15, ph=4.0)
        result = evaluate_compliance(effluent, "community")
        ph = _param(result, "ph")
        assert ph.limit == "5.5-9"
        assert ph.status == ComplianceStatus.FAIL

    def test_optional_unknown_stays_compliant(self):
        effluent = WaterQuality(flow=1000, bod=10, cod=60, tss=15)
        result = evaluate_compliance(effluent, "industrial_estate")
        assert _param(result, "oil_grease").status == ComplianceStatus.UNKNOWN
        assert result.is_compliant
        assert compliance_status(result) == UnitStatus.PASS

    def test_required_unknown_is_not_compliant(self):
        standard = EffluentStandard(
            key="nutrients", name="Nutrient Limits",
            limits=[
                StandardLimit(parameter="bod", name="BOD", max=20, required=True),
                StandardLimit(parameter="total_n", name="Total Nitrogen", max=10, required=True),
            ],
        )
        effluent = WaterQuality(flow=1000, bod=10, cod=60, tss=15)
        result = evaluate_compliance(effluent, standard)
        assert not result.is_compliant
        assert compliance_status(result) == UnitStatus.WARNING
        issues = compliance_issues(result)
        assert len(issues) == 1
        assert issues[0].severity == IssueSeverity.WARNING
