"""Tests for cmmcalc.web.routes.legacy - floor-area estimator routes."""

import pytest


@pytest.fixture
def estimate_payload() -> dict:
    return {
        "structure_type": "RC",
        "floor_count": 3,
        "floor_area": 100,
        "profile_code": "RC_2_3F",
    }


class TestProfiles:
    def test_list_by_structure_type(self, client):
        response = client.get("/cmm/profiles", params={"structure_type": "RB"})

        assert response.status_code == 200
        assert [p["code"] for p in response.json()] == ["RB_3F", "RB_WAREHOUSE"]

    def test_list_all(self, client):
        assert len(client.get("/cmm/profiles").json()) == 13

    def test_get_profile(self, client):
        response = client.get("/cmm/profiles/SC_FACTORY")

        assert response.status_code == 200
        profile = response.json()
        assert profile["structure_type"] == "SC"
        assert profile["steel_factor"] == 120
        assert profile["is_system_default"] is True

    def test_unknown_profile_returns_404(self, client):
        response = client.get("/cmm/profiles/NOPE")

        assert response.status_code == 404
        assert response.json()["entity"] == "BuildingProfile"


class TestCalculate:
    def test_calculate(self, client, estimate_payload):
        response = client.post("/cmm/calculate", json=estimate_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["result_id"] is None
        assert data["total_area"] == 300.0
        assert data["total_area_ping"] == 90.75
        assert data["rebar"] == {"category": "REBAR", "quantity": 30000.0, "unit": "kg", "per_sqm": 100.0}
        assert data["steel"] is None
        assert data["profile_used"]["code"] == "RC_2_3F"

    def test_calculate_and_save(self, client, estimate_payload):
        response = client.post("/cmm/calculate/save", json=estimate_payload)

        assert response.status_code == 200
        assert response.json()["result_id"] is not None

    @pytest.mark.parametrize(
        "override",
        [{"floor_count": 0}, {"floor_count": 101}, {"floor_area": 0}, {"structure_type": "XX"}],
    )
    def test_invalid_request_rejected(self, client, estimate_payload, override):
        estimate_payload.update(override)

        assert client.post("/cmm/calculate", json=estimate_payload).status_code == 422

    def test_unknown_profile_code_returns_404(self, client, estimate_payload):
        estimate_payload["profile_code"] = "NOPE"

        assert client.post("/cmm/calculate", json=estimate_payload).status_code == 404
