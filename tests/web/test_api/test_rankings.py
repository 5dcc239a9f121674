"""Tests for the rankings API endpoints."""

from __future__ import annotations


def completion(points, **flags):
    return {"points": points, **(flags or {"completedOnTime": True})}


class TestRecordCompletion:
    """Test cases for POST /rankings/update."""

    async def test_records_completion(self, api_client, user_headers):
        response = await api_client.post("/rankings/update", json=completion(25), headers=user_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["aggregate"]["user_id"] == "alice"
        assert data["aggregate"]["total_points"] == 25
        assert data["aggregate"]["tasks_on_time"] == 1
        assert data["aggregate"]["current_streak"] == 1
        assert data["aggregate"]["last_completion_day"] == "2024-01-15"
        assert data["new_badges"] == ["first_task"]

    async def test_early_flag_wins_over_on_time(self, api_client, user_headers):
        response = await api_client.post(
            "/rankings/update",
            json=completion(10, completedOnTime=True, completedEarly=True),
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json()["aggregate"]["tasks_early"] == 1
        assert response.json()["aggregate"]["tasks_on_time"] == 0

    async def test_conflicting_flags_are_rejected(self, api_client, user_headers):
        response = await api_client.post(
            "/rankings/update",
            json=completion(10, completedLate=True, completedEarly=True),
            headers=user_headers,
        )

        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"

    async def test_missing_flags_are_rejected(self, api_client, user_headers):
        response = await api_client.post("/rankings/update", json={"points": 10}, headers=user_headers)

        assert response.status_code == 400

    async def test_negative_points_fail_request_validation(self, api_client, user_headers):
        response = await api_client.post("/rankings/update", json=completion(-1), headers=user_headers)

        assert response.status_code == 422
        assert response.json()["type"] == "validation_error"

    async def test_requires_user_header(self, api_client):
        response = await api_client.post("/rankings/update", json=completion(10))

        assert response.status_code == 401


class TestRankings:
    async def test_global_ranking(self, api_client):
        for user_id, points in (("alice", 30), ("bob", 50)):
            await api_client.post("/rankings/update", json=completion(points), headers={"X-User-Id": user_id})

        response = await api_client.get("/rankings/global")

        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 2
        assert [(row["rank"], row["user_id"]) for row in data["rankings"]] == [(1, "bob"), (2, "alice")]

    async def test_global_ranking_paging_limits(self, api_client):
        response = await api_client.get("/rankings/global", params={"limit": 0})

        assert response.status_code == 422

    async def test_contacts_ranking_marks_current_user(self, api_client, user_headers, make_contacts):
        await make_contacts(("alice", "bob"))
        for user_id, points in (("alice", 30), ("bob", 50), ("carol", 90)):
            await api_client.post("/rankings/update", json=completion(points), headers={"X-User-Id": user_id})

        response = await api_client.get("/rankings/contacts", headers=user_headers)

        rows = response.json()["rankings"]
        assert [(row["user_id"], row["is_current_user"]) for row in rows] == [("bob", False), ("alice", True)]

    async def test_my_position(self, api_client, user_headers):
        await api_client.post("/rankings/update", json=completion(10), headers=user_headers)
        await api_client.post("/rankings/update", json=completion(99), headers={"X-User-Id": "bob"})

        response = await api_client.get("/rankings/my-position", headers=user_headers)

        assert response.json() == {
            "user_id": "alice",
            "rank": 2,
            "total_points": 10,
            "tasks_completed": 1,
            "total_users": 2,
        }

    async def test_my_position_without_completions(self, api_client, user_headers):
        response = await api_client.get("/rankings/my-position", headers=user_headers)

        assert response.json()["rank"] is None


class TestGroupScores:
    async def test_adjust_and_read_group_ranking(self, api_client, user_headers):
        await api_client.patch(
            "/rankings/group/lab-1/scores", json={"userId": "bob", "points": 5}, headers=user_headers
        )
        response = await api_client.patch(
            "/rankings/group/lab-1/scores", json={"userId": "alice", "points": 8}, headers=user_headers
        )

        assert response.status_code == 200
        assert response.json()["rankings"] == [
            {"rank": 1, "user_id": "alice", "score": 8},
            {"rank": 2, "user_id": "bob", "score": 5},
        ]

        response = await api_client.get("/rankings/group/lab-1", headers=user_headers)
        assert response.json()["group_id"] == "lab-1"
        assert len(response.json()["rankings"]) == 2

    async def test_score_never_negative(self, api_client, user_headers):
        response = await api_client.patch(
            "/rankings/group/lab-1/scores", json={"userId": "bob", "points": -50}, headers=user_headers
        )

        assert response.json()["rankings"] == [{"rank": 1, "user_id": "bob", "score": 0}]


class TestBadgeCatalog:
    async def test_lists_badges(self, api_client):
        response = await api_client.get("/rankings/badges")

        assert response.status_code == 200
        ids = [badge["id"] for badge in response.json()["badges"]]
        assert "first_task" in ids
        assert len(ids) == 9
