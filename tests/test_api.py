import os
import sys
import unittest

from fastapi.testclient import TestClient
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import EngineAPI


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_engine.db"
        self.yaml_path = "test_engine_settings.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = EngineAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def _start(self, planned_sets: int = 3) -> int:
        resp = self.client.post(
            "/sessions",
            params={
                "user_id": "u1",
                "workout_id": "push",
                "planned_sets": planned_sets,
                "planned_duration_seconds": 1800,
            },
        )
        self.assertEqual(resp.status_code, 200)
        return resp.json()["id"]

    def _log(self, sid: int, **params):
        query = {
            "exercise_id": "bench",
            "planned_reps": 5,
            "actual_reps": 5,
            "weight": 100.0,
            "rpe": 8,
        }
        query.update(params)
        return self.client.post(f"/sessions/{sid}/sets", params=query)

    def test_full_workflow(self) -> None:
        sid = self._start(planned_sets=4)
        self.assertEqual(self.client.get(f"/sessions/{sid}").json()["status"], "active")
        self.assertEqual(self._log(sid).status_code, 200)
        self.assertEqual(self._log(sid).status_code, 200)

        resp = self.client.get(f"/sessions/{sid}/live_stats")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["completion_percentage"], 50)
        self.assertEqual(resp.json()["sets_total"], 4)

        self.assertEqual(self._log(sid, rpe=9).status_code, 200)
        resp = self.client.get(f"/sessions/{sid}/live_stats")
        self.assertEqual(resp.json()["sets_completed"], 3)

        resp = self.client.post(f"/sessions/{sid}/complete")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["session"]["status"], "completed")
        self.assertEqual(data["total_reps"], 15)
        self.assertEqual(data["exercise_breakdown"][0]["exercise_id"], "bench")
        self.assertTrue(0 <= data["performance"]["final_score"] <= 100)
        self.assertEqual(data["comparison"]["trend"], "stable")
        new_ids = [a["id"] for a in data["new_achievements"]]
        self.assertIn("first_workout", new_ids)
        self.assertIn("ton_lifted", new_ids)

        self.assertEqual(self.client.post(f"/sessions/{sid}/complete").status_code, 409)
        self.assertEqual(self.client.get(f"/sessions/{sid}/live_stats").status_code, 409)
        self.assertEqual(self._log(sid).status_code, 409)

        summary = self.client.get(f"/sessions/{sid}/summary").json()
        self.assertEqual(summary["performance"], data["performance"])

        achievements = self.client.get("/users/u1/achievements").json()
        self.assertEqual({a["id"] for a in achievements}, set(new_ids))
        stats = self.client.get("/users/u1/achievements/stats").json()
        self.assertEqual(stats["total_achievements"], len(new_ids))

        streaks = self.client.get("/users/u1/streaks").json()
        self.assertEqual(streaks, {"current_streak": 1, "best_streak": 1})

    def test_missing_session(self) -> None:
        self.assertEqual(self.client.get("/sessions/42").status_code, 404)
        self.assertEqual(self.client.get("/sessions/42/live_stats").status_code, 404)
        self.assertEqual(self.client.get("/sessions/42/summary").status_code, 404)
        self.assertEqual(self.client.post("/sessions/42/complete").status_code, 404)
        self.assertEqual(self.client.post("/sessions/42/abandon").status_code, 404)
        self.assertEqual(self._log(42).status_code, 404)

    def test_summary_of_active_session(self) -> None:
        sid = self._start()
        self.assertEqual(self.client.get(f"/sessions/{sid}/summary").status_code, 409)

    def test_abandon(self) -> None:
        sid = self._start()
        self.assertEqual(self.client.post(f"/sessions/{sid}/abandon").status_code, 200)
        self.assertEqual(self.client.post(f"/sessions/{sid}/abandon").status_code, 409)
        self.assertEqual(self.client.post(f"/sessions/{sid}/complete").status_code, 409)

    def test_invalid_input(self) -> None:
        sid = self._start()
        self.assertEqual(self._log(sid, rpe=12).status_code, 400)
        resp = self.client.post(
            "/sessions",
            params={"user_id": "u1", "workout_id": "push", "planned_sets": -2},
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.get("/users/u1/recommendations/bench", params={"reason": "bulk"})
        self.assertEqual(resp.status_code, 400)

    def test_recommendation_without_history(self) -> None:
        resp = self.client.get("/users/u1/recommendations/bench")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["rationale"], "maintain")
        rest = self.client.get("/users/u1/rest/bench", params={"set_number": 1, "rpe": 8})
        self.assertEqual(rest.json()["recommended_rest_seconds"], 90)
        orm = self.client.get("/users/u1/one_rep_max/bench").json()
        self.assertEqual(orm["sets_used"], 0)

    def test_rest_rejects_set_zero(self) -> None:
        resp = self.client.get("/users/u1/rest/bench", params={"set_number": 0})
        self.assertEqual(resp.status_code, 400)

    def test_achievement_progress(self) -> None:
        sid = self._start(planned_sets=1)
        self._log(sid)
        self.client.post(f"/sessions/{sid}/complete")
        resp = self.client.get("/users/u1/achievements/progress")
        self.assertEqual(resp.status_code, 200)
        items = {a["id"]: a for a in resp.json()}
        self.assertEqual(len(items), len(self.api.gamification.engine.catalog))
        self.assertTrue(items["first_workout"]["unlocked"])
        self.assertEqual(items["first_workout"]["progress"], 100)
        self.assertFalse(items["tenth_workout"]["unlocked"])
        self.assertEqual(items["tenth_workout"]["progress"], 10.0)
        self.assertIsNone(items["tenth_workout"]["unlocked_at"])

    def test_evaluate_achievements(self) -> None:
        body = {"user_id": "u9", "total_workouts_completed": 10, "current_streak": 7}
        first = self.client.post("/achievements/evaluate", json=body).json()
        second = self.client.post("/achievements/evaluate", json=body).json()
        self.assertEqual(first, second)
        ids = {a["id"] for a in first}
        self.assertTrue({"first_workout", "tenth_workout", "week_streak"} <= ids)
        # evaluation alone never persists unlocks
        self.assertEqual(self.client.get("/users/u9/achievements").json(), [])

    def test_catalog(self) -> None:
        resp = self.client.get("/achievements", params={"category": "streak"})
        self.assertEqual({a["id"] for a in resp.json()}, {"week_streak", "month_streak"})
        self.assertTrue(all("color" in a for a in resp.json()))

    def test_compute_streaks(self) -> None:
        resp = self.client.post(
            "/streaks",
            json=["2024-03-13", "2024-03-14", "2024-03-15"],
            params={"today": "2024-03-15"},
        )
        self.assertEqual(resp.json(), {"current_streak": 3, "best_streak": 3})

    def test_custom_catalog_from_settings(self) -> None:
        catalog = "test_engine_catalog.yaml"
        with open(catalog, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                [
                    {
                        "id": "warmup",
                        "category": "special",
                        "title": "Warm Up",
                        "conditions": [["sets_completed", ">=", 1]],
                    }
                ],
                f,
            )
        with open(self.yaml_path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"achievement_catalog": catalog}, f)
        try:
            api = EngineAPI(db_path=self.db_path, yaml_path=self.yaml_path)
            client = TestClient(api.app)
            ids = [a["id"] for a in client.get("/achievements").json()]
            self.assertEqual(ids, ["warmup"])
        finally:
            os.remove(catalog)

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
