"""Tests for cmmcalc.web.routes.rulesets - rule set routes."""


class TestRuleSetRoutes:
    def test_list_rule_sets(self, client):
        response = client.get("/cmm/rulesets")

        assert response.status_code == 200
        rule_sets = response.json()
        assert [rs["version"] for rs in rule_sets] == ["v1.0"]
        assert rule_sets[0]["is_current"] is True

    def test_get_current(self, client):
        response = client.get("/cmm/rulesets/current")

        assert response.status_code == 200
        assert response.json()["version"] == "v1.0"

    def test_get_current_without_rule_sets_returns_404(self, empty_client):
        response = empty_client.get("/cmm/rulesets/current")

        assert response.status_code == 404
        assert response.json()["entity"] == "RuleSet"

    def test_set_current(self, client):
        response = client.put("/cmm/rulesets/v1.0/current", json={"updated_by": "qs-lead"})

        assert response.status_code == 200
        assert response.json()["version"] == "v1.0"
        assert response.json()["is_current"] is True

    def test_set_current_without_body(self, client):
        assert client.put("/cmm/rulesets/v1.0/current").status_code == 200

    def test_set_current_unknown_version_returns_404(self, client):
        response = client.put("/cmm/rulesets/v9.9/current")

        assert response.status_code == 404
        assert client.get("/cmm/rulesets/current").json()["version"] == "v1.0"
