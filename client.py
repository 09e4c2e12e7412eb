import datetime
import requests
from typing import Optional, Union


class WorkoutClient:
    """Simple REST client for the workout API.

    ``session`` may be any object with the ``requests.Session`` call
    interface, which lets tests pass a FastAPI ``TestClient``.
    """

    def __init__(
        self,
        user_id: str,
        base_url: str = "http://localhost:8000",
        session=None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.session = session or requests.Session()

    @property
    def _headers(self) -> dict:
        return {"X-User-Id": self.user_id}

    @staticmethod
    def _timestamp(value: Union[str, datetime.datetime]) -> str:
        return value.isoformat() if isinstance(value, datetime.datetime) else value

    def list_workouts(
        self, date: Optional[datetime.date] = None, limit: Optional[int] = None
    ) -> list:
        params: dict = {}
        if date is not None:
            params["date"] = date.isoformat()
        if limit is not None:
            params["limit"] = limit
        resp = self.session.get(
            f"{self.base_url}/workouts", params=params, headers=self._headers
        )
        resp.raise_for_status()
        return resp.json()

    def get_workout(self, workout_id: int) -> Optional[dict]:
        resp = self.session.get(
            f"{self.base_url}/workouts/{workout_id}", headers=self._headers
        )
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def create_workout(
        self, started_at: Union[str, datetime.datetime], notes: Optional[str] = None
    ) -> dict:
        body = {"started_at": self._timestamp(started_at)}
        if notes is not None:
            body["notes"] = notes
        resp = self.session.post(
            f"{self.base_url}/workouts", json=body, headers=self._headers
        )
        resp.raise_for_status()
        return resp.json()

    def update_workout(self, workout_id: int, **fields) -> Optional[dict]:
        body = {
            key: self._timestamp(value) if key.endswith("_at") else value
            for key, value in fields.items()
        }
        resp = self.session.put(
            f"{self.base_url}/workouts/{workout_id}", json=body, headers=self._headers
        )
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def delete_workout(self, workout_id: int) -> bool:
        resp = self.session.delete(
            f"{self.base_url}/workouts/{workout_id}", headers=self._headers
        )
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True
