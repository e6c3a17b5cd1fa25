"""HTTP tests for the FastAPI app."""
import pytest
from fastapi.testclient import TestClient

from circularmetal.backend.config import Settings
from circularmetal.backend.main import create_app

PRIMARY_ALUMINIUM = {
    "metal": "aluminium",
    "recycledContentFraction": {"value": 0, "isEstimated": False},
    "transportDistanceKm": {"value": 100, "isEstimated": False},
    "energyMix": {"gridFraction": {"value": 1.0, "isEstimated": False}},
    "endOfLifeRecoveryRate": {"value": 0.8, "isEstimated": True, "confidence": 0.6},
}


@pytest.fixture
def client():
    with TestClient(create_app(Settings())) as c:
        yield c


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok", "factors_loaded": True, "models_loaded": True, "circularity_policy": "three-term",
    }


def test_compute_lca(client):
    response = client.post("/api/lca", json=PRIMARY_ALUMINIUM)

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["totalCO2e_kg"] == pytest.approx(21.31)
    assert body["summary"]["circularityIndex"] == 51
    assert isinstance(body["summary"]["circularityIndex"], int)
    assert [n["name"] for n in body["sankey"]["nodes"]][0] == "Virgin Material"
    assert (1, 2) not in [(link["source"], link["target"]) for link in body["sankey"]["links"]]


def test_compute_lca_is_idempotent(client):
    first = client.post("/api/lca", json=PRIMARY_ALUMINIUM).json()
    second = client.post("/api/lca", json=PRIMARY_ALUMINIUM).json()

    assert first == second


def test_unknown_metal_is_a_client_error(client):
    response = client.post("/api/lca", json={**PRIMARY_ALUMINIUM, "metal": "steel"})

    assert response.status_code == 400
    assert "steel" in response.json()["detail"]


def test_out_of_range_fraction_is_rejected(client):
    payload = {**PRIMARY_ALUMINIUM, "recycledContentFraction": {"value": 1.2, "isEstimated": False}}

    response = client.post("/api/lca", json=payload)

    assert response.status_code == 422


def test_impute_fills_recycling_rate(client):
    project = {"material": "Aluminium", "product_type": "Beverage Can", "region": "EU",
               "end_of_life_recycling_rate": None}

    response = client.post("/api/impute", json={"project": project})

    assert response.status_code == 200
    body = response.json()
    assert [m["method"] for m in body["imputation_meta"]] == ["decision-tree"]
    assert body["imputation_meta"][0]["field"] == "end_of_life_recycling_rate"
    assert body["project_imputed"]["end_of_life_recycling_rate"] == pytest.approx(0.74)
    assert "summary" in body["project_imputed"]["results"]


def test_impute_without_material_degrades_gracefully(client):
    response = client.post("/api/impute", json={"project": {"recycledContent": 30, "recyclingRate": None}})

    assert response.status_code == 200
    body = response.json()
    assert "end_of_life_recycling_rate" not in body["project_imputed"]
    assert [m["method"] for m in body["imputation_meta"]] == ["linear-regression"]


def test_impute_rejects_invalid_values(client):
    response = client.post("/api/impute", json={"project": {"material": "Copper", "recycledContent": 150}})

    assert response.status_code == 422
    assert response.json()["detail"]["fields"] == ["recycledContent"]


def test_recommendations(client):
    response = client.post("/api/recommendations", json=PRIMARY_ALUMINIUM)

    assert response.status_code == 200
    assert [r["id"] for r in response.json()] == ["increase-recycling", "improve-energy-mix", "enhance-recovery"]


def test_compare(client):
    body = {
        "projectA": {"inputs": {"recycledContent": 75}, "outputs": {"totalCO2e_kg": 10.0, "circularityIndex": 70.0}},
        "projectB": {"inputs": {"recycledContent": 95}, "outputs": {"totalCO2e_kg": 7.5, "circularityIndex": 80.0}},
    }

    response = client.post("/api/compare", json=body)

    assert response.status_code == 200
    assert response.json()["deltas"] == {
        "gwp_difference": -2.5, "gwp_delta_percent": -25.0, "circularity_score_difference": 10.0,
    }


def test_compare_without_outputs(client):
    response = client.post("/api/compare", json={"projectA": {}, "projectB": {"outputs": {}}})

    assert response.status_code == 422


def test_four_term_policy_from_settings():
    with TestClient(create_app(Settings(circularity_policy="four-term"))) as c:
        assert c.get("/health").json()["circularity_policy"] == "four-term"
        payload = {**PRIMARY_ALUMINIUM, "recycledContentFraction": {"value": 0.50625},
                   "endOfLifeRecoveryRate": {"value": 0.0}}
        # 0.4 * 0.50625 + 0.2 * 0.9 + 0.1 * 0.95 = 0.4775
        assert c.post("/api/lca", json=payload).json()["summary"]["circularityIndex"] == 48


def test_broken_artifact_stops_startup(tmp_path):
    app = create_app(Settings(factors_path=tmp_path / "missing.json"))

    with pytest.raises(Exception):
        with TestClient(app):
            pass


@pytest.mark.parametrize("bad", ["NaN", "Infinity", "-inf"])
def test_non_finite_distance_is_rejected(client, bad):
    payload = {**PRIMARY_ALUMINIUM, "transportDistanceKm": {"value": bad, "isEstimated": False}}

    response = client.post("/api/lca", json=payload)

    assert response.status_code == 422


def test_impute_rejects_non_finite_values(client):
    response = client.post("/api/impute", json={"project": {"material": "Copper", "transportDistance": "nan"}})

    assert response.status_code == 422
    assert response.json()["detail"]["fields"] == ["transportDistance"]


def test_compare_rejects_non_numeric_outputs(client):
    body = {
        "projectA": {"outputs": {"totalCO2e_kg": "abc", "circularityIndex": 70.0}},
        "projectB": {"outputs": {"totalCO2e_kg": 7.5, "circularityIndex": 80.0}},
    }

    response = client.post("/api/compare", json=body)

    assert response.status_code == 422
    assert response.json()["detail"]["fields"] == ["projectA.outputs.totalCO2e_kg"]
