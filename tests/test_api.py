import pytest
from fastapi.testclient import TestClient

from treatment_app.main import app

INFLUENT = {
    "flowRate": 1000, "bod": 200, "cod": 400, "tss": 220,
    "totalN": 40, "ammoniaN": 25, "totalP": 8, "ph": 7.0, "temperature": 25,
}


@pytest.fixture(scope="module")
def client():
    return TestClient(app)


@pytest.fixture(scope="module")
def sbr_units(client):
    response = client.get("/api/presets/sbr_system", params={"flow": 1000})
    assert response.status_code == 200
    return response.json()["units"]


class TestRoot:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"


class TestCatalog:
    def test_unit_types(self, client):
        response = client.get("/api/unit-types")
        assert response.status_code == 200
        types = response.json()
        assert len(types) == 15
        bar = next(t for t in types if t["type"] == "bar_screen")
        assert bar["sludgeType"]
        assert "sludge_type" not in bar

    def test_unit_defaults_are_camel_case(self, client):
        response = client.get("/api/unit-types/bar-screen/defaults", params={"flow": 500})
        assert response.status_code == 200
        assert response.json()["barSpacing"] == 25

    def test_unknown_unit_type(self, client):
        assert client.get("/api/unit-types/lagoon_of_doom/defaults").status_code == 400

    def test_negative_flow_rejected(self, client):
        assert client.get("/api/unit-types/sbr/defaults", params={"flow": -5}).status_code == 422

    def test_standards(self, client):
        standards = client.get("/api/standards").json()
        community = next(s for s in standards if s["key"] == "community")
        bod = next(limit for limit in community["limits"] if limit["parameter"] == "bod")
        assert bod["max"] == 40
        assert bod["required"] is True

    def test_presets(self, client):
        presets = client.get("/api/presets").json()
        assert {p["id"] for p in presets} >= {"conventional_as", "sbr_system", "pond_system"}
        assert all("unitParams" not in p for p in presets)

    def test_preset_units(self, sbr_units):
        assert [u["type"] for u in sbr_units] == ["bar_screen", "grit_chamber", "sbr", "chlorination"]
        assert "designParams" in sbr_units[2]

    def test_unknown_preset(self, client):
        assert client.get("/api/presets/moon_base").status_code == 400


class TestTreatmentTrain:
    def test_preset_round_trip(self, client, sbr_units):
        response = client.post("/api/treatment-train", json={
            "influent": INFLUENT, "units": sbr_units, "targetStandard": "type_c",
        })
        assert response.status_code == 200
        system = response.json()["system"]
        assert system["targetStandard"] == "community"
        assert system["overallStatus"] in ("pass", "warning", "fail")
        assert len(system["units"]) == 4
        assert system["effluentQuality"]["bod"] < INFLUENT["bod"]
        assert "removalEfficiency" in system["units"][0]
        assert system["units"][2]["designValues"]["capacityRatio"] > 0

    def test_default_standard_from_environment(self, client, monkeypatch):
        monkeypatch.setenv("DEFAULT_EFFLUENT_STANDARD", "industrial_estate")
        response = client.post("/api/treatment-train", json={"influent": INFLUENT, "units": []})
        assert response.json()["system"]["targetStandard"] == "industrial_estate"

    def test_sequence_warnings(self, client):
        response = client.post("/api/treatment-train", json={
            "influent": INFLUENT,
            "units": [{"type": "chlorination"}, {"type": "secondary_clarifier"}],
        })
        warnings = response.json()["warnings"]
        messages = [w["message"] for w in warnings]
        assert any("Secondary clarifier" in m for m in messages)
        assert any("Disinfection" in m for m in messages)

    def test_sequence_warning_indexes_the_submitted_list(self, client):
        response = client.post("/api/treatment-train", json={
            "influent": INFLUENT,
            "units": [{"type": "daf", "enabled": False}, {"type": "chlorination"}],
        })
        warnings = response.json()["warnings"]
        disinfection = next(w for w in warnings if "Disinfection" in w["message"])
        assert disinfection["field"] == "units[1]"

    def test_simulation_summary_is_camel_case(self, client):
        response = client.post("/api/treatment-train", json={
            "influent": INFLUENT, "units": [{"type": "aeration_tank"}],
        })
        simulation = response.json()["system"]["units"][0]["simulation"]
        assert simulation["oxygenDemand"] > 0
        assert "ammoniaN" in simulation["performance"]
        assert "S_NH" in simulation["state"]

    def test_unknown_standard(self, client):
        response = client.post("/api/treatment-train", json={
            "influent": INFLUENT, "units": [], "targetStandard": "type_z",
        })
        assert response.status_code == 400

    def test_unknown_unit_type(self, client):
        response = client.post("/api/treatment-train", json={
            "influent": INFLUENT, "units": [{"type": "teleporter"}],
        })
        assert response.status_code == 422

    def test_invalid_influent(self, client):
        response = client.post("/api/treatment-train", json={
            "influent": {**INFLUENT, "bod": -1}, "units": [],
        })
        assert response.status_code == 422

    def test_bad_criteria_override(self, client):
        response = client.post("/api/treatment-train", json={
            "influent": INFLUENT, "units": [],
            "designCriteria": {"primary_clarifier.nonexistent.max_warning": 1},
        })
        assert response.status_code == 400


class TestEstimates:
    def test_combined_estimates(self, client, sbr_units):
        response = client.post("/api/treatment-train/estimates", json={
            "influent": INFLUENT, "units": sbr_units,
        })
        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"system", "cost", "sludge", "energy", "warnings"}
        assert body["cost"]["totalCapital"] > 0
        assert body["energy"]["kWhPerM3"] > 0
        assert body["sludge"]["biologicalSludge"] > 0

    def test_cost_with_overrides(self, client, sbr_units):
        base = client.post("/api/estimates/cost", json={"influent": INFLUENT, "units": sbr_units}).json()
        pricier = client.post("/api/estimates/cost", json={
            "influent": INFLUENT, "units": sbr_units, "costAssumptions": {"labor_rate": 1000},
        }).json()
        assert pricier["labor"] == pytest.approx(base["labor"] * 2, rel=1e-6)

    def test_unknown_assumption(self, client, sbr_units):
        response = client.post("/api/estimates/energy", json={
            "influent": INFLUENT, "units": sbr_units, "energyAssumptions": {"solar_bonus": 1},
        })
        assert response.status_code == 400

    def test_negative_design_flow(self, client):
        response = client.post("/api/estimates/cost", json={
            "influent": INFLUENT, "units": [], "designFlow": -10,
        })
        assert response.status_code == 422

    def test_sludge_estimate(self, client, sbr_units):
        response = client.post("/api/estimates/sludge", json={"influent": INFLUENT, "units": sbr_units})
        assert response.status_code == 200
        assert len(response.json()["unitSludge"]) == 4
