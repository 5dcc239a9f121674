"""Tests for the statistics API endpoints."""

from __future__ import annotations


async def complete(api_client, user_id, points):
    response = await api_client.post(
        "/rankings/update", json={"points": points, "completedOnTime": True}, headers={"X-User-Id": user_id}
    )
    assert response.status_code == 200


class TestPointsHistory:
    async def test_history_by_day(self, api_client, user_headers, date_provider):
        await complete(api_client, "alice", 10)
        date_provider.advance_days(2)
        await complete(api_client, "alice", 15)
        await complete(api_client, "alice", 5)

        response = await api_client.get("/stats/points-history", params={"days": 7}, headers=user_headers)

        assert response.status_code == 200
        assert response.json()["history"] == [
            {"date": "2024-01-15", "points": 10, "tasks": 1},
            {"date": "2024-01-17", "points": 20, "tasks": 2},
        ]

    async def test_days_out_of_range(self, api_client, user_headers):
        response = await api_client.get("/stats/points-history", params={"days": 400}, headers=user_headers)

        assert response.status_code == 422


class TestCompare:
    async def test_compare_with_contact(self, api_client, user_headers, make_contacts):
        await make_contacts(("bob", "alice"))
        await complete(api_client, "alice", 40)
        await complete(api_client, "bob", 10)

        response = await api_client.get("/stats/compare/bob", headers=user_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["points_difference"] == 30
        assert data["user"]["badge_count"] == 1
        assert data["other"]["user_id"] == "bob"

    async def test_compare_with_stranger_is_forbidden(self, api_client, user_headers):
        response = await api_client.get("/stats/compare/mallory", headers=user_headers)

        assert response.status_code == 403
        assert response.json()["type"] == "forbidden_error"
        assert response.json()["detail"] == "You can only compare stats with your contacts."
