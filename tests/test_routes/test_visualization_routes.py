"""
Tests for the visualization blueprint.
"""

ROWS = [{"team": "Kitchen", "orders": 12}, {"team": "Bar", "orders": 7}]


class TestCharts:
    def test_create_export_delete(self, client, user_headers):
        response = client.post(
            "/api/visualization/chart",
            json={"data": ROWS, "options": {"type": "pie", "x_field": "team", "y_field": "orders"}},
            headers=user_headers,
        )
        assert response.status_code == 201
        chart = response.get_json()["data"]["chart"]
        assert chart["chartType"] == "pie"

        export = client.get(
            f"/api/visualization/export/chart/{chart['filename']}", headers=user_headers
        )
        assert export.status_code == 200
        assert export.mimetype == "text/html"
        assert "attachment" in export.headers["Content-Disposition"]

        listing = client.get("/api/visualization/list?type=chart", headers=user_headers)
        names = [f["filename"] for f in listing.get_json()["data"]["items"]["charts"]]
        assert chart["filename"] in names

        response = client.delete(
            f"/api/visualization/chart/{chart['filename']}", headers=user_headers
        )
        assert response.status_code == 200
        missing = client.get(
            f"/api/visualization/export/chart/{chart['filename']}", headers=user_headers
        )
        assert missing.status_code == 404

    def test_unsupported_type(self, client, user_headers):
        response = client.post(
            "/api/visualization/chart",
            json={"data": ROWS, "options": {"type": "hologram"}},
            headers=user_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["message"] == "Unsupported chart type: hologram"

    def test_unknown_kind(self, client, user_headers):
        response = client.get("/api/visualization/list?type=movie", headers=user_headers)
        assert response.status_code == 400


class TestDiagrams:
    def test_create_diagram(self, client, user_headers):
        response = client.post(
            "/api/visualization/diagram",
            json={
                "data": {
                    "nodes": [{"id": "order"}, {"id": "cook"}, {"id": "serve"}],
                    "edges": [{"from": "order", "to": "cook"}, {"from": "cook", "to": "serve"}],
                },
                "options": {"type": "process"},
            },
            headers=user_headers,
        )
        assert response.status_code == 201
        metadata = response.get_json()["data"]["diagram"]["metadata"]
        assert metadata["nodes"] == 3
        assert metadata["edges"] == 2

    def test_bad_edges(self, client, user_headers):
        response = client.post(
            "/api/visualization/diagram",
            json={"data": {"nodes": [{"id": "a"}], "edges": [{"from": "a"}]}},
            headers=user_headers,
        )
        assert response.status_code == 400


class TestCatalog:
    def test_types(self, client, user_headers):
        charts = client.get("/api/visualization/chart-types", headers=user_headers).get_json()
        diagrams = client.get("/api/visualization/diagram-types", headers=user_headers).get_json()
        assert "polarArea" in charts["data"]["types"]
        assert diagrams["data"]["types"] == ["flowchart", "orgchart", "timeline", "process", "tree"]

    def test_stats(self, client, user_headers):
        stats = client.get("/api/visualization/stats", headers=user_headers).get_json()["data"]
        assert set(stats["byType"]) == {"charts", "diagrams"}
        assert stats["total"] == sum(stats["byType"].values())
