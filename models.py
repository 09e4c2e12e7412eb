from __future__ import annotations

import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Shared(BaseModel):
    """Catalog entry visible to every user."""

    kind: Literal["shared"] = "shared"


class Owned(BaseModel):
    """Catalog entry private to a single user."""

    kind: Literal["owned"] = "owned"
    user_id: str


ExerciseOwner = Annotated[Union[Shared, Owned], Field(discriminator="kind")]


def owner_from_column(user_id: Optional[str]) -> Union[Shared, Owned]:
    return Shared() if user_id is None else Owned(user_id=user_id)


def owner_to_column(owner: Union[Shared, Owned]) -> Optional[str]:
    return owner.user_id if isinstance(owner, Owned) else None


class Exercise(BaseModel):
    id: int
    name: str
    owner: ExerciseOwner = Field(default_factory=Shared)
    category: Optional[str] = None
    muscle_group: Optional[str] = None
    equipment: Optional[str] = None
    description: Optional[str] = None
    is_archived: bool = False

    def visible_to(self, user_id: str) -> bool:
        return isinstance(self.owner, Shared) or self.owner.user_id == user_id


class WorkoutSet(BaseModel):
    id: int
    workout_exercise_id: int
    set_number: int
    reps: int
    weight: float
    rpe: Optional[float] = None
    rir: Optional[int] = None
    is_warmup: bool = False
    is_drop_set: bool = False
    notes: Optional[str] = None
    created_at: Optional[datetime.datetime] = None


class WorkoutExercise(BaseModel):
    id: int
    workout_id: int
    exercise_id: int
    order: int
    notes: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    exercise: Exercise
    sets: List[WorkoutSet] = Field(default_factory=list)


class Workout(BaseModel):
    id: int
    user_id: str
    started_at: datetime.datetime
    completed_at: Optional[datetime.datetime] = None
    duration: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


class ExerciseSummary(BaseModel):
    workout_exercise_id: int
    exercise_id: int
    name: str
    total_sets: int
    warmup_sets: int
    working_sets: int
    working_reps: List[int] = Field(default_factory=list)
    first_working_weight: Optional[float] = None
    reps_line: Optional[str] = None
    label: str


class WorkoutSummary(BaseModel):
    workout_id: int
    total_exercises: int
    total_sets: int
    working_sets: int
    warmup_sets: int
    duration_minutes: Optional[int] = None
    in_progress: bool
    exercises: List[ExerciseSummary] = Field(default_factory=list)


class WorkoutTree(Workout):
    """A workout with its exercises and their sets in display order."""

    exercises: List[WorkoutExercise] = Field(default_factory=list)
    summary: Optional[WorkoutSummary] = None
