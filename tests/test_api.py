"""Tests for the census API endpoints (no Gemini calls)."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.config import Settings, get_settings
from app.main import app
from app.services.boundary_service import BOUNDARY_LOAD_ERROR_MESSAGE
from app.services.dashboard_session import SessionStore, get_session_store
from app.services.density_source import get_density_source
from tests.conftest import SAMPLE_PROFILE, StaticDensitySource, district_scores


client = TestClient(app)


@pytest.fixture(autouse=True)
def overrides(boundary_file):
    source = StaticDensitySource(district_scores(CW=85, E=30, KT=60))
    store = SessionStore()
    settings = Settings(
        boundary_geojson_path=str(boundary_file),
        boundary_geojson_fallback_path=str(boundary_file),
    )
    app.dependency_overrides[get_density_source] = lambda: source
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    yield
    app.dependency_overrides.clear()


def start_session(**extra) -> dict:
    response = client.post("/api/census/sessions", json={"profile": SAMPLE_PROFILE, **extra})
    assert response.status_code == 201
    return response.json()


def test_health():
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_metrics():
    data = client.get("/api/census/metrics").json()
    assert [m["key"] for m in data["dashboard"]] == [
        "age", "ethnicity", "industry", "housingType", "maritalStatus",
    ]
    assert data["visualizationOptions"][2] == {"key": "gender", "label": "Gender Ratio"}


def test_regions():
    data = client.get("/api/census/regions").json()
    assert len(data["districts"]) == 18
    assert data["districts"][0]["code"] == "CW"
    assert len(data["subRegions"]) == 60


def test_regions_for_district():
    data = client.get("/api/census/regions?district=KT").json()
    assert [r["id"] for r in data["subRegions"]] == ["KT_1", "KT_2", "KT_3"]
    assert client.get("/api/census/regions?district=XX").status_code == 404


def test_densities():
    response = client.post(
        "/api/census/densities",
        json={"profile": SAMPLE_PROFILE, "attribute": "maritalStatus"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["source"] == "static"
    assert {d["id"] for d in data["districts"]} == {"CW", "E", "KT"}


def test_densities_unknown_attribute():
    response = client.post(
        "/api/census/densities",
        json={"profile": SAMPLE_PROFILE, "attribute": "shoeSize"},
    )
    assert response.status_code == 422


def test_create_session():
    data = start_session()
    assert data["metric"] == {"key": "age", "label": "Age"}
    assert data["status"] == "ready"
    assert data["loading"] is False
    assert len(data["subRegions"]) == 60
    assert data["insight"]["sentence"] == "Your profile (65) shows high correlation with residents in CW."
    assert data["view"] == {"k": 1.0, "x": 0.0, "y": 0.0}
    assert data["labelsVisible"] is False


def test_create_session_with_metric():
    data = start_session(metric="maritalStatus")
    assert data["metric"]["label"] == "Marital"
    assert data["insight"]["userValue"] == "Married"


def test_create_session_unknown_metric():
    response = client.post("/api/census/sessions", json={"profile": SAMPLE_PROFILE, "metric": "shoeSize"})
    assert response.status_code == 400


def test_unknown_session():
    assert client.get("/api/census/sessions/nope").status_code == 404
    assert client.post("/api/census/sessions/nope/metric", json={"key": "age"}).status_code == 404


def test_get_and_delete_session():
    session_id = start_session()["sessionId"]
    assert client.get(f"/api/census/sessions/{session_id}").json()["sessionId"] == session_id

    assert client.delete(f"/api/census/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/census/sessions/{session_id}").status_code == 404


def test_select_metric():
    session_id = start_session()["sessionId"]
    response = client.post(f"/api/census/sessions/{session_id}/metric", json={"key": "maritalStatus"})
    assert response.status_code == 200
    data = response.json()
    assert data["metric"]["key"] == "maritalStatus"
    assert data["insight"]["userValue"] == "Married"


def test_select_metric_without_waiting():
    session_id = start_session()["sessionId"]
    response = client.post(
        f"/api/census/sessions/{session_id}/metric?wait=false",
        json={"key": "housingType"},
    )
    assert response.status_code == 202
    data = response.json()
    assert data["loading"] is True
    assert data["metric"]["key"] == "housingType"
    # Previous density set is still served
    assert len(data["districts"]) == 3


def test_select_unknown_metric():
    session_id = start_session()["sessionId"]
    response = client.post(f"/api/census/sessions/{session_id}/metric", json={"key": "shoeSize"})
    assert response.status_code == 400


def test_view_gestures():
    session_id = start_session()["sessionId"]
    url = f"/api/census/sessions/{session_id}/view"

    data = client.post(url, json={"action": "zoom", "factor": 4, "centerX": 150, "centerY": 150}).json()
    assert data["view"]["k"] == 4
    assert data["labelsVisible"] is True

    data = client.post(url, json={"action": "reset"}).json()
    assert data["view"] == {"k": 1.0, "x": 0.0, "y": 0.0}
    assert data["labelsVisible"] is False

    data = client.post(url, json={"action": "pan", "dx": 500}).json()
    assert data["view"]["x"] == 100


def test_stylized_svg():
    session_id = start_session()["sessionId"]
    response = client.get(f"/api/census/sessions/{session_id}/map.svg")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("image/svg+xml")
    assert response.text.startswith("<svg")
    assert response.text.count("<path ") == 60


def test_geo_map_flow():
    session_id = start_session()["sessionId"]
    base = f"/api/census/sessions/{session_id}"

    assert client.get(f"{base}/geo-map").status_code == 409
    assert client.post(f"{base}/features/CW101/hover").status_code == 409

    data = client.post(f"{base}/boundaries/load").json()
    assert data == {"status": "ready", "featureCount": 3, "error": None}

    data = client.post(f"{base}/features/CW101/hover").json()
    assert data["popupOpen"] is True
    assert data["density"] == 85
    assert data["style"]["color"] == "#FFE082"

    data = client.post(f"{base}/features/CW101/leave").json()
    assert data["popupOpen"] is False
    assert data["style"] == {
        "fillColor": "#b30000",
        "weight": 1.0,
        "opacity": 1.0,
        "color": "white",
        "fillOpacity": 0.7,
    }

    assert client.post(f"{base}/features/E201/click").json()["popupOpen"] is True
    assert client.post(f"{base}/features/NOPE/click").status_code == 404
    assert client.post(f"{base}/features/CW101/poke").status_code == 422

    response = client.get(f"{base}/geo-map")
    assert response.status_code == 200
    assert "CW101" in response.text


def test_boundary_load_failure(tmp_path):
    app.dependency_overrides[get_settings] = lambda: Settings(
        boundary_geojson_path=str(tmp_path / "missing.geojson"),
        boundary_geojson_fallback_path=str(tmp_path / "missing.geojson.geojson"),
    )
    session_id = start_session()["sessionId"]
    base = f"/api/census/sessions/{session_id}"

    data = client.post(f"{base}/boundaries/load").json()
    assert data["status"] == "failed"
    assert data["error"] == BOUNDARY_LOAD_ERROR_MESSAGE

    response = client.get(f"{base}/geo-map")
    assert response.status_code == 503
    assert response.json()["detail"] == BOUNDARY_LOAD_ERROR_MESSAGE
    assert client.get(f"{base}/boundaries").json()["status"] == "failed"
