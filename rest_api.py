import datetime
import logging
from typing import Optional

from fastapi import (
    Body,
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Request,
)
from fastapi.responses import JSONResponse

from config import APP_VERSION, YamlConfig, configure_logging
from db import Database
from errors import StorageUnavailable, WorkoutValidationError
from workout_service import WorkoutService

logger = logging.getLogger(__name__)


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """Identity is checked upstream; the header only carries the result."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


class WorkoutAPI:
    """Provides REST endpoints for workout logging."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        yaml_path: str = "settings.yaml",
    ) -> None:
        self.config = YamlConfig(yaml_path)
        self.settings = self.config.settings()
        if db_path is not None:
            self.settings = self.settings.model_copy(update={"db_path": db_path})
        configure_logging(self.settings.log_level)
        self.db_path = self.settings.db_path
        self.service = WorkoutService(self.db_path, self.settings)
        self.app = FastAPI(
            title="Workout Log API",
            description="REST API for logging workouts, exercises and sets",
            version=APP_VERSION,
        )
        self._setup_routes()

    def _setup_routes(self) -> None:
        @self.app.exception_handler(StorageUnavailable)
        async def storage_unavailable(request: Request, exc: StorageUnavailable):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            return JSONResponse(
                status_code=503, content={"detail": "storage unavailable, retry later"}
            )

        @self.app.get("/health")
        def health():
            """Return API and database connection status."""
            try:
                Database(self.db_path)
                return {"status": "ok"}
            except StorageUnavailable as e:
                raise HTTPException(status_code=503, detail=str(e))

        @self.app.get("/workouts")
        def list_workouts(
            date: Optional[datetime.date] = None,
            limit: Optional[int] = None,
            user_id: str = Depends(current_user),
        ):
            try:
                if date is not None:
                    return self.service.get_by_date_range(user_id, date)
                return self.service.list_recent(user_id, limit)
            except WorkoutValidationError as e:
                raise HTTPException(status_code=422, detail=e.to_dict())

        @self.app.get("/workouts/{workout_id}")
        def get_workout(workout_id: int, user_id: str = Depends(current_user)):
            tree = self.service.get_by_id(workout_id, user_id)
            if tree is None:
                raise HTTPException(status_code=404, detail="workout not found")
            return tree

        @self.app.post("/workouts")
        def create_workout(
            payload: dict = Body(...), user_id: str = Depends(current_user)
        ):
            try:
                return self.service.create_workout(user_id, payload)
            except WorkoutValidationError as e:
                raise HTTPException(status_code=422, detail=e.to_dict())

        @self.app.put("/workouts/{workout_id}")
        def update_workout(
            workout_id: int,
            payload: dict = Body(...),
            user_id: str = Depends(current_user),
        ):
            try:
                tree = self.service.update_workout(workout_id, user_id, payload)
            except WorkoutValidationError as e:
                raise HTTPException(status_code=422, detail=e.to_dict())
            if tree is None:
                raise HTTPException(status_code=404, detail="workout not found")
            return tree

        @self.app.delete("/workouts/{workout_id}")
        def delete_workout(workout_id: int, user_id: str = Depends(current_user)):
            if not self.service.delete_workout(workout_id, user_id):
                raise HTTPException(status_code=404, detail="workout not found")
            return {"status": "deleted"}


api = WorkoutAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
