import os
import sys
import sqlite3
import logging
import datetime
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    AsyncBaseRepository,
    AsyncWorkoutRepository,
    ExerciseRepository,
    SetRepository,
    WorkoutExerciseRepository,
    WorkoutRepository,
)
from errors import StorageUnavailable, WorkoutValidationError
from workout_service import AsyncWorkoutService, WorkoutService

UTC = datetime.timezone.utc


class NumberRepository(AsyncBaseRepository):
    async def init_db(self) -> None:
        async with self._async_connection() as conn:
            await conn.execute("CREATE TABLE IF NOT EXISTS numbers (val INTEGER)")

    async def add(self, val: int) -> int:
        return await self.execute("INSERT INTO numbers (val) VALUES (?)", (val,))

    async def all(self):
        rows = await self.fetch_all("SELECT val FROM numbers")
        return [r[0] for r in rows]


def _populate(db_file: str) -> int:
    """Build a workout with two exercises using the sync repositories."""
    wid = WorkoutRepository(db_file).create(
        "u1", datetime.datetime(2025, 9, 1, 8, 30, tzinfo=UTC), "legs"
    )
    exercises = ExerciseRepository(db_file)
    workout_exercises = WorkoutExerciseRepository(db_file)
    sets = SetRepository(db_file)
    deadlift = workout_exercises.add(wid, "u1", exercises.add("Deadlift"), 2)
    squat = workout_exercises.add(wid, "u1", exercises.add("Back Squat"), 1)
    sets.add(squat, "u1", 2, 5, 120.0)
    sets.add(squat, "u1", 1, 8, 60.0, warmup=True)
    sets.add(deadlift, "u1", 1, 3, 180.0)
    return wid


@pytest.mark.asyncio
async def test_async_repository(tmp_path):
    repo = NumberRepository(str(tmp_path / "test.db"))
    await repo.init_db()
    await repo.add(5)
    assert await repo.all() == [5]


@pytest.mark.asyncio
async def test_async_workout_repo_matches_sync(tmp_path):
    db_file = str(tmp_path / "workout.db")
    wid = _populate(db_file)
    repo = AsyncWorkoutRepository(db_file)

    tree = await repo.fetch_tree(wid, "u1")

    assert tree == WorkoutRepository(db_file).fetch_tree(wid, "u1")
    assert [we.exercise.name for we in tree.exercises] == ["Back Squat", "Deadlift"]
    assert [s.set_number for s in tree.exercises[0].sets] == [1, 2]
    assert await repo.fetch_tree(wid, "u2") is None


@pytest.mark.asyncio
async def test_async_workout_repo_crud(tmp_path):
    db_file = str(tmp_path / "workout.db")
    repo = AsyncWorkoutRepository(db_file)
    started = datetime.datetime(2025, 9, 1, 8, 30, tzinfo=UTC)
    wid = await repo.create("u1", started)
    assert wid == 1

    assert await repo.update(wid, "u2", {"notes": "no"}) is None
    tree = await repo.update(wid, "u1", {"notes": "done", "duration": 2700})
    assert tree.notes == "done"
    assert tree.duration == 2700

    with pytest.raises(WorkoutValidationError):
        await repo.update(wid, "u1", {"completed_at": started - datetime.timedelta(seconds=1)})

    rows = await repo.fetch_trees_between(
        "u1", started.replace(hour=0, minute=0), started.replace(hour=23, minute=59)
    )
    assert [t.id for t in rows] == [wid]
    assert await repo.delete(wid, "u2") is False
    assert await repo.delete(wid, "u1") is True
    assert await repo.fetch_recent("u1") == []


@pytest.mark.asyncio
async def test_async_service_parity(tmp_path):
    db_file = str(tmp_path / "workout.db")
    wid = _populate(db_file)
    sync_service = WorkoutService(db_file)
    async_service = AsyncWorkoutService(db_file)

    day = datetime.date(2025, 9, 1)
    assert await async_service.get_by_date_range("u1", day) == sync_service.get_by_date_range("u1", day)
    assert await async_service.list_recent("u1", 5) == sync_service.list_recent("u1", 5)

    tree = await async_service.get_by_id(wid, "u1")
    assert tree.summary.total_sets == 3
    assert tree.summary.working_sets == 2
    assert tree.summary.exercises[0].label == "2 sets × 5 reps @ 120 kg"


@pytest.mark.asyncio
async def test_async_service_validation_and_updates(tmp_path):
    service = AsyncWorkoutService(str(tmp_path / "workout.db"))
    created = await service.create_workout("u1", {"started_at": "2025-09-01T08:30:00Z"})

    with pytest.raises(WorkoutValidationError) as exc:
        await service.update_workout(created.id, "u1", {"duration": 0})
    assert exc.value.field == "duration"

    assert await service.update_workout(created.id, "u2", {"notes": "x"}) is None
    updated = await service.update_workout(created.id, "u1", {"notes": "x"})
    assert updated.notes == "x"
    assert updated.started_at == created.started_at
    assert await service.delete_workout(created.id, "u1") is True


@pytest.mark.asyncio
async def test_async_storage_failure(tmp_path):
    db_file = str(tmp_path / "workout.db")
    service = AsyncWorkoutService(db_file)
    await service.create_workout("u1", {"started_at": "2025-09-01T08:30:00Z"})
    conn = sqlite3.connect(db_file)
    conn.execute("DROP TABLE workout_exercises;")
    conn.commit()
    conn.close()
    with pytest.raises(StorageUnavailable):
        await service.list_recent("u1")


@pytest.mark.asyncio
async def test_async_mutations_are_logged(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="workout_service")
    service = AsyncWorkoutService(str(tmp_path / "workout.db"))
    created = await service.create_workout("u1", {"started_at": "2025-09-01T08:30:00Z"})
    await service.update_workout(created.id, "u1", {"notes": "x"})
    await service.update_workout(created.id, "u2", {"notes": "y"})
    await service.delete_workout(created.id, "u1")

    messages = [r.getMessage() for r in caplog.records if r.name == "workout_service"]
    assert f"created workout {created.id} for u1" in messages
    assert f"updated workout {created.id} fields ['notes']" in messages
    assert f"update of workout {created.id} for u2 matched nothing" in messages
    assert f"deleted workout {created.id} for u1" in messages
