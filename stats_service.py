from __future__ import annotations

import math
from typing import List, Optional

from models import ExerciseSummary, WorkoutExercise, WorkoutSummary, WorkoutTree


def _format_number(value: float) -> str:
    """Render 100.0 as ``100`` and 62.5 as ``62.5``."""
    if float(value).is_integer():
        return str(int(value))
    return str(float(value))


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def exercise_summary(
    workout_exercise: WorkoutExercise, weight_unit: str = "kg"
) -> ExerciseSummary:
    """Split the sets of one exercise into warmup and working sets.

    The reps line lists the reps of every working set and the weight of the
    first one, e.g. ``5, 5, 3 reps @ 100 kg``. It is ``None`` when every set
    is a warmup set. A working weight of zero (bodyweight) drops the
    ``@ weight`` part.
    """
    sets = workout_exercise.sets
    working = [s for s in sets if not s.is_warmup]
    reps = [s.reps for s in working]
    first_working_weight: Optional[float] = working[0].weight if working else None
    reps_line: Optional[str] = None
    if working:
        reps_line = f"{', '.join(str(r) for r in reps)} reps"
        if first_working_weight:
            reps_line += f" @ {_format_number(first_working_weight)} {weight_unit}"
    label = _plural(len(sets), "set")
    if reps_line:
        label += f" × {reps_line}"
    return ExerciseSummary(
        workout_exercise_id=workout_exercise.id,
        exercise_id=workout_exercise.exercise_id,
        name=workout_exercise.exercise.name,
        total_sets=len(sets),
        warmup_sets=len(sets) - len(working),
        working_sets=len(working),
        working_reps=reps,
        first_working_weight=first_working_weight,
        reps_line=reps_line,
        label=label,
    )


def workout_summary(tree: WorkoutTree, weight_unit: str = "kg") -> WorkoutSummary:
    """Compute display counts for one loaded workout without touching storage."""
    exercises: List[ExerciseSummary] = [
        exercise_summary(we, weight_unit) for we in tree.exercises
    ]
    duration_minutes = None
    if tree.duration:
        duration_minutes = math.floor(tree.duration / 60 + 0.5)
    return WorkoutSummary(
        workout_id=tree.id,
        total_exercises=len(exercises),
        total_sets=sum(e.total_sets for e in exercises),
        working_sets=sum(e.working_sets for e in exercises),
        warmup_sets=sum(e.warmup_sets for e in exercises),
        duration_minutes=duration_minutes,
        in_progress=tree.completed_at is None,
        exercises=exercises,
    )
