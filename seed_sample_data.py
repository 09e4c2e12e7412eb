import datetime
import sys
from typing import Optional

from db import ExerciseRepository, SetRepository, WorkoutExerciseRepository
from workout_service import WorkoutService

SHARED_EXERCISES = [
    ("Bench Press", "chest", "pectorals", "barbell"),
    ("Back Squat", "legs", "quadriceps", "barbell"),
    ("Deadlift", "back", "hamstrings", "barbell"),
    ("Pull Up", "back", "latissimus dorsi", "bodyweight"),
]


def seed(db_path: str = "workout.db", user_id: str = "demo-user") -> Optional[int]:
    """Insert the shared catalog and one sample workout for ``user_id``."""
    service = WorkoutService(db_path)
    if service.list_recent(user_id, limit=1):
        print("Database already contains workouts")
        return None

    exercises = ExerciseRepository(db_path)
    ids = {e.name: e.id for e in exercises.fetch_visible(user_id)}
    for name, category, muscle_group, equipment in SHARED_EXERCISES:
        if name not in ids:
            ids[name] = exercises.add(name, None, category, muscle_group, equipment)

    started = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    tree = service.create_workout(
        user_id, {"started_at": started, "notes": "Sample session"}
    )
    workout_exercises = WorkoutExerciseRepository(db_path)
    sets = SetRepository(db_path)

    bench = workout_exercises.add(tree.id, user_id, ids["Bench Press"], 1)
    sets.add(bench, user_id, 1, 10, 40.0, warmup=True)
    sets.add(bench, user_id, 2, 5, 100.0, rpe=8)
    sets.add(bench, user_id, 3, 5, 105.0, rpe=9)

    pull_up = workout_exercises.add(tree.id, user_id, ids["Pull Up"], 2)
    sets.add(pull_up, user_id, 1, 8, 0.0)
    sets.add(pull_up, user_id, 2, 6, 0.0, rir=1)

    service.update_workout(
        tree.id,
        user_id,
        {"completed_at": started + datetime.timedelta(minutes=45), "duration": 45 * 60},
    )
    print("Seed data inserted")
    return tree.id


if __name__ == "__main__":
    seed(sys.argv[1] if len(sys.argv) > 1 else "workout.db")
