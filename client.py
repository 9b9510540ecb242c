import requests
from typing import Optional


class EngineClient:
    """Simple REST client for the workout performance API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")

    def start_session(
        self,
        user_id: str,
        workout_id: str,
        planned_sets: int = 0,
        planned_duration_seconds: int = 0,
    ) -> int:
        resp = requests.post(
            f"{self.base_url}/sessions",
            params={
                "user_id": user_id,
                "workout_id": workout_id,
                "planned_sets": planned_sets,
                "planned_duration_seconds": planned_duration_seconds,
            },
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def log_set(
        self,
        session_id: int,
        exercise_id: str,
        planned_reps: int,
        actual_reps: int,
        weight: float,
        rpe: Optional[int] = None,
        **params,
    ) -> int:
        query = {
            "exercise_id": exercise_id,
            "planned_reps": planned_reps,
            "actual_reps": actual_reps,
            "weight": weight,
            **params,
        }
        if rpe is not None:
            query["rpe"] = rpe
        resp = requests.post(f"{self.base_url}/sessions/{session_id}/sets", params=query)
        resp.raise_for_status()
        return resp.json()["id"]

    def live_stats(self, session_id: int) -> dict:
        resp = requests.get(f"{self.base_url}/sessions/{session_id}/live_stats")
        resp.raise_for_status()
        return resp.json()

    def complete_session(self, session_id: int) -> dict:
        resp = requests.post(f"{self.base_url}/sessions/{session_id}/complete")
        resp.raise_for_status()
        return resp.json()

    def summary(self, session_id: int) -> dict:
        resp = requests.get(f"{self.base_url}/sessions/{session_id}/summary")
        resp.raise_for_status()
        return resp.json()

    def recommendation(self, user_id: str, exercise_id: str, reason: str = "preference") -> dict:
        resp = requests.get(
            f"{self.base_url}/users/{user_id}/recommendations/{exercise_id}",
            params={"reason": reason},
        )
        resp.raise_for_status()
        return resp.json()

    def achievements(self, user_id: str) -> list:
        resp = requests.get(f"{self.base_url}/users/{user_id}/achievements")
        resp.raise_for_status()
        return resp.json()

    def streaks(self, user_id: str) -> dict:
        resp = requests.get(f"{self.base_url}/users/{user_id}/streaks")
        resp.raise_for_status()
        return resp.json()

    def achievement_progress(self, user_id: str) -> list:
        resp = requests.get(f"{self.base_url}/users/{user_id}/achievements/progress")
        resp.raise_for_status()
        return resp.json()
