from __future__ import annotations

import datetime
import logging
from typing import Any, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from db import AsyncWorkoutRepository, WorkoutRepository
from errors import WorkoutValidationError
from models import WorkoutTree
from settings_schema import SettingsSchema
from stats_service import workout_summary
from workout_schema import WorkoutCreate, WorkoutUpdate, parse_input

logger = logging.getLogger(__name__)

DateLike = Union[datetime.date, datetime.datetime]


def day_bounds(
    day: DateLike, timezone: str = "UTC"
) -> Tuple[datetime.datetime, datetime.datetime]:
    """Return the half-open ``[start, next start)`` of the calendar day.

    Aware datetimes are first converted to ``timezone`` so the day is the one
    the caller sees locally. Both bounds are UTC. An unknown zone, or a day
    whose bounds fall outside the datetime range, raises
    ``WorkoutValidationError``.
    """
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError, TypeError, OSError):
        raise WorkoutValidationError("timezone", f"unknown timezone {timezone!r}")
    try:
        if isinstance(day, datetime.datetime):
            if day.tzinfo is not None:
                day = day.astimezone(tz)
            day = day.date()
        start = datetime.datetime.combine(day, datetime.time.min, tzinfo=tz)
        end = datetime.datetime.combine(
            day + datetime.timedelta(days=1), datetime.time.min, tzinfo=tz
        )
        return start.astimezone(datetime.timezone.utc), end.astimezone(datetime.timezone.utc)
    except OverflowError:
        raise WorkoutValidationError("date", "out of range")


class _WorkoutServiceBase:
    def __init__(self, settings: Optional[SettingsSchema] = None) -> None:
        self.settings = settings or SettingsSchema()

    @staticmethod
    def _check_user(user_id: str) -> None:
        if not isinstance(user_id, str) or not user_id:
            raise WorkoutValidationError("user_id", "is required")

    @staticmethod
    def _check_limit(limit: Optional[int]) -> None:
        if limit is None:
            return
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise WorkoutValidationError("limit", "must be a positive integer")

    def _parse(self, model, data: Any):
        return parse_input(
            model,
            data,
            timezone=self.settings.timezone,
            notes_max_length=self.settings.notes_max_length,
        )

    def _bounds(self, day: DateLike, timezone: Optional[str]):
        if not isinstance(day, datetime.date):
            raise WorkoutValidationError("date", "must be a date")
        return day_bounds(day, timezone or self.settings.timezone)

    def _summarize(self, tree: Optional[WorkoutTree]) -> Optional[WorkoutTree]:
        if tree is not None:
            tree.summary = workout_summary(tree, self.settings.weight_unit)
        return tree


class WorkoutService(_WorkoutServiceBase):
    """Query and mutate workouts on behalf of one caller at a time.

    Every method takes the caller's ``user_id``; workouts owned by someone
    else behave exactly like missing ones. Trees come back with their
    ``summary`` filled in.
    """

    def __init__(
        self,
        db_path: str = "workout.db",
        settings: Optional[SettingsSchema] = None,
        workout_repo: Optional[WorkoutRepository] = None,
    ) -> None:
        super().__init__(settings)
        self.workouts = workout_repo or WorkoutRepository(db_path)

    def get_by_id(self, workout_id: int, user_id: str) -> Optional[WorkoutTree]:
        self._check_user(user_id)
        logger.debug("loading workout %s for %s", workout_id, user_id)
        return self._summarize(self.workouts.fetch_tree(workout_id, user_id))

    def get_by_date_range(
        self, user_id: str, date: DateLike, timezone: Optional[str] = None
    ) -> List[WorkoutTree]:
        self._check_user(user_id)
        start, end = self._bounds(date, timezone)
        logger.debug("loading workouts for %s in [%s, %s)", user_id, start, end)
        trees = self.workouts.fetch_trees_between(user_id, start, end)
        return [self._summarize(t) for t in trees]

    def list_recent(self, user_id: str, limit: Optional[int] = None) -> List[WorkoutTree]:
        self._check_user(user_id)
        self._check_limit(limit)
        trees = self.workouts.fetch_recent(user_id, limit)
        return [self._summarize(t) for t in trees]

    def create_workout(self, user_id: str, data: Any) -> WorkoutTree:
        self._check_user(user_id)
        payload = self._parse(WorkoutCreate, data)
        workout_id = self.workouts.create(user_id, payload.started_at, payload.notes)
        logger.info("created workout %s for %s", workout_id, user_id)
        return self._summarize(self.workouts.fetch_tree(workout_id, user_id))

    def update_workout(
        self, workout_id: int, user_id: str, data: Any
    ) -> Optional[WorkoutTree]:
        """Apply a partial update; ``None`` means no such workout for this user."""
        self._check_user(user_id)
        changes = self._parse(WorkoutUpdate, data).changes()
        tree = self.workouts.update(workout_id, user_id, changes)
        if tree is None:
            logger.info("update of workout %s for %s matched nothing", workout_id, user_id)
            return None
        logger.info("updated workout %s fields %s", workout_id, sorted(changes))
        return self._summarize(tree)

    def delete_workout(self, workout_id: int, user_id: str) -> bool:
        self._check_user(user_id)
        deleted = self.workouts.delete(workout_id, user_id)
        if deleted:
            logger.info("deleted workout %s for %s", workout_id, user_id)
        return deleted


class AsyncWorkoutService(_WorkoutServiceBase):
    """Async counterpart of :class:`WorkoutService` backed by aiosqlite."""

    def __init__(
        self,
        db_path: str = "workout.db",
        settings: Optional[SettingsSchema] = None,
        workout_repo: Optional[AsyncWorkoutRepository] = None,
    ) -> None:
        super().__init__(settings)
        self.workouts = workout_repo or AsyncWorkoutRepository(db_path)

    async def get_by_id(self, workout_id: int, user_id: str) -> Optional[WorkoutTree]:
        self._check_user(user_id)
        logger.debug("loading workout %s for %s", workout_id, user_id)
        return self._summarize(await self.workouts.fetch_tree(workout_id, user_id))

    async def get_by_date_range(
        self, user_id: str, date: DateLike, timezone: Optional[str] = None
    ) -> List[WorkoutTree]:
        self._check_user(user_id)
        start, end = self._bounds(date, timezone)
        logger.debug("loading workouts for %s in [%s, %s)", user_id, start, end)
        trees = await self.workouts.fetch_trees_between(user_id, start, end)
        return [self._summarize(t) for t in trees]

    async def list_recent(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[WorkoutTree]:
        self._check_user(user_id)
        self._check_limit(limit)
        trees = await self.workouts.fetch_recent(user_id, limit)
        return [self._summarize(t) for t in trees]

    async def create_workout(self, user_id: str, data: Any) -> WorkoutTree:
        self._check_user(user_id)
        payload = self._parse(WorkoutCreate, data)
        workout_id = await self.workouts.create(user_id, payload.started_at, payload.notes)
        logger.info("created workout %s for %s", workout_id, user_id)
        return self._summarize(await self.workouts.fetch_tree(workout_id, user_id))

    async def update_workout(
        self, workout_id: int, user_id: str, data: Any
    ) -> Optional[WorkoutTree]:
        self._check_user(user_id)
        changes = self._parse(WorkoutUpdate, data).changes()
        tree = await self.workouts.update(workout_id, user_id, changes)
        if tree is None:
            logger.info("update of workout %s for %s matched nothing", workout_id, user_id)
            return None
        logger.info("updated workout %s fields %s", workout_id, sorted(changes))
        return self._summarize(tree)

    async def delete_workout(self, workout_id: int, user_id: str) -> bool:
        self._check_user(user_id)
        deleted = await self.workouts.delete(workout_id, user_id)
        if deleted:
            logger.info("deleted workout %s for %s", workout_id, user_id)
        return deleted
