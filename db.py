import sqlite3
import aiosqlite
import datetime
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from errors import ExerciseInUseError, StorageUnavailable, WorkoutValidationError
from models import (
    Exercise,
    Owned,
    Shared,
    WorkoutExercise,
    WorkoutSet,
    WorkoutTree,
    owner_from_column,
    owner_to_column,
)

logger = logging.getLogger(__name__)

_NOW_SQL = "(strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))"
_CHUNK_SIZE = 500


def to_db_timestamp(value: datetime.datetime) -> str:
    """Normalise to fixed-width UTC text (four-digit year, microseconds).

    Text order then equals chronological order.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    return datetime.datetime.fromisoformat(value)


def _now() -> str:
    return to_db_timestamp(datetime.datetime.now(datetime.timezone.utc))


def _chunks(ids: Sequence[int], size: int = _CHUNK_SIZE) -> Iterator[Sequence[int]]:
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "exercises": (
            f"""CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    user_id TEXT,
                    category TEXT,
                    muscle_group TEXT,
                    equipment TEXT,
                    description TEXT,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
                    updated_at TEXT NOT NULL DEFAULT {_NOW_SQL}
                );""",
            [
                "id",
                "name",
                "user_id",
                "category",
                "muscle_group",
                "equipment",
                "description",
                "is_archived",
                "created_at",
                "updated_at",
            ],
        ),
        "workouts": (
            f"""CREATE TABLE workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    duration INTEGER,
                    notes TEXT,
                    created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
                    updated_at TEXT NOT NULL DEFAULT {_NOW_SQL}
                );""",
            [
                "id",
                "user_id",
                "started_at",
                "completed_at",
                "duration",
                "notes",
                "created_at",
                "updated_at",
            ],
        ),
        "workout_exercises": (
            f"""CREATE TABLE workout_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    notes TEXT,
                    created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
                    UNIQUE (workout_id, position),
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE RESTRICT
                );""",
            ["id", "workout_id", "exercise_id", "position", "notes", "created_at"],
        ),
        "sets": (
            f"""CREATE TABLE sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps INTEGER NOT NULL CHECK (reps >= 0),
                    weight REAL NOT NULL CHECK (weight >= 0),
                    rpe REAL,
                    rir INTEGER,
                    is_warmup INTEGER NOT NULL DEFAULT 0,
                    is_drop_set INTEGER NOT NULL DEFAULT 0,
                    notes TEXT,
                    created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
                    UNIQUE (workout_exercise_id, set_number),
                    FOREIGN KEY(workout_exercise_id) REFERENCES workout_exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_exercise_id",
                "set_number",
                "reps",
                "weight",
                "rpe",
                "rir",
                "is_warmup",
                "is_drop_set",
                "notes",
                "created_at",
            ],
        ),
    }

    _INDEXES = [
        "CREATE INDEX IF NOT EXISTS exercises_user_id_idx ON exercises(user_id);",
        "CREATE INDEX IF NOT EXISTS exercises_category_idx ON exercises(category);",
        "CREATE INDEX IF NOT EXISTS workouts_user_id_idx ON workouts(user_id);",
        "CREATE INDEX IF NOT EXISTS workouts_started_at_idx ON workouts(started_at);",
        "CREATE INDEX IF NOT EXISTS workouts_user_started_idx ON workouts(user_id, started_at);",
        "CREATE INDEX IF NOT EXISTS workout_exercises_workout_id_idx ON workout_exercises(workout_id);",
        "CREATE INDEX IF NOT EXISTS sets_workout_exercise_id_idx ON sets(workout_exercise_id);",
    ]

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            logger.error("cannot open database %s: %s", self._db_path, e)
            raise StorageUnavailable(str(e)) from e
        try:
            connection.execute("PRAGMA foreign_keys=on;")
            yield connection
            connection.commit()
        except sqlite3.IntegrityError:
            connection.rollback()
            raise
        except sqlite3.Error as e:
            connection.rollback()
            logger.exception("database operation failed on %s", self._db_path)
            raise StorageUnavailable(str(e)) from e
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep child foreign keys pointing at the original table names
            conn.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            for statement in self._INDEXES:
                conn.execute(statement)
            conn.execute("PRAGMA legacy_alter_table=off;")
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("migrating table %s: %s -> %s", table, existing_cols, columns)
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        # columns missing from the old table fall back to their DEFAULT clause
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;")
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def execute_rowcount(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


def _integrity_error(e: sqlite3.IntegrityError, field: str, reason: str) -> Exception:
    """Map a constraint the caller can fix to a validation error."""
    if "UNIQUE" in str(e) or "CHECK" in str(e):
        return WorkoutValidationError(field, reason)
    logger.error("unexpected integrity error: %s", e)
    return StorageUnavailable(str(e))


# ---------------------------------------------------------------------------
# Workout tree loading
# ---------------------------------------------------------------------------

_WORKOUT_COLUMNS = (
    "w.id, w.user_id, w.started_at, w.completed_at, w.duration, w.notes, "
    "w.created_at, w.updated_at"
)

_EXERCISE_ROWS_SQL = (
    "SELECT we.id, we.workout_id, we.exercise_id, we.position, we.notes, we.created_at, "
    "e.name, e.user_id, e.category, e.muscle_group, e.equipment, e.description, e.is_archived "
    "FROM workout_exercises we "
    "JOIN workouts w ON we.workout_id = w.id "
    "JOIN exercises e ON we.exercise_id = e.id "
    "WHERE w.user_id = ? AND we.workout_id IN ({placeholders}) "
    "ORDER BY we.workout_id, we.position, we.id;"
)

_SET_COLUMNS = (
    "s.id, s.workout_exercise_id, s.set_number, s.reps, s.weight, s.rpe, s.rir, "
    "s.is_warmup, s.is_drop_set, s.notes, s.created_at"
)

_SET_ROWS_SQL = (
    f"SELECT {_SET_COLUMNS} "
    "FROM sets s "
    "JOIN workout_exercises we ON s.workout_exercise_id = we.id "
    "JOIN workouts w ON we.workout_id = w.id "
    "WHERE w.user_id = ? AND we.workout_id IN ({placeholders}) "
    "ORDER BY s.workout_exercise_id, s.set_number, s.id;"
)


def _workout_query(where: str, limit: Optional[int]) -> str:
    query = (
        f"SELECT {_WORKOUT_COLUMNS} FROM workouts w WHERE {where} "
        "ORDER BY w.started_at DESC, w.id DESC"
    )
    if limit is not None:
        query += " LIMIT ?"
    return query + ";"


def _child_queries(user_id: str, ids: Sequence[int]) -> Iterator[Tuple[str, str, Tuple]]:
    for chunk in _chunks(ids):
        placeholders = ", ".join("?" for _ in chunk)
        params = (user_id, *chunk)
        yield (
            _EXERCISE_ROWS_SQL.format(placeholders=placeholders),
            _SET_ROWS_SQL.format(placeholders=placeholders),
            params,
        )


def _set_from_row(row: Tuple) -> WorkoutSet:
    (
        sid,
        workout_exercise_id,
        set_number,
        reps,
        weight,
        rpe,
        rir,
        is_warmup,
        is_drop_set,
        notes,
        created_at,
    ) = row
    return WorkoutSet(
        id=sid,
        workout_exercise_id=workout_exercise_id,
        set_number=set_number,
        reps=reps,
        weight=float(weight),
        rpe=rpe,
        rir=rir,
        is_warmup=bool(is_warmup),
        is_drop_set=bool(is_drop_set),
        notes=notes,
        created_at=from_db_timestamp(created_at),
    )


def _workout_exercise_from_row(row: Tuple, sets: List[WorkoutSet]) -> WorkoutExercise:
    (
        weid,
        workout_id,
        exercise_id,
        position,
        notes,
        created_at,
        name,
        owner,
        category,
        muscle_group,
        equipment,
        description,
        is_archived,
    ) = row
    return WorkoutExercise(
        id=weid,
        workout_id=workout_id,
        exercise_id=exercise_id,
        order=position,
        notes=notes,
        created_at=from_db_timestamp(created_at),
        exercise=Exercise(
            id=exercise_id,
            name=name,
            owner=owner_from_column(owner),
            category=category,
            muscle_group=muscle_group,
            equipment=equipment,
            description=description,
            is_archived=bool(is_archived),
        ),
        sets=sets,
    )


def _assemble_trees(
    workout_rows: List[Tuple], exercise_rows: List[Tuple], set_rows: List[Tuple]
) -> List[WorkoutTree]:
    """Nest rows into trees, keeping the ORDER BY sequence of every level."""
    sets_by_parent: Dict[int, List[WorkoutSet]] = {}
    for row in set_rows:
        entry = _set_from_row(row)
        sets_by_parent.setdefault(entry.workout_exercise_id, []).append(entry)
    exercises_by_workout: Dict[int, List[WorkoutExercise]] = {}
    for row in exercise_rows:
        entry = _workout_exercise_from_row(row, sets_by_parent.get(row[0], []))
        exercises_by_workout.setdefault(entry.workout_id, []).append(entry)
    trees = []
    for wid, user_id, started, completed, duration, notes, created, updated in workout_rows:
        trees.append(
            WorkoutTree(
                id=wid,
                user_id=user_id,
                started_at=from_db_timestamp(started),
                completed_at=from_db_timestamp(completed),
                duration=duration,
                notes=notes,
                created_at=from_db_timestamp(created),
                updated_at=from_db_timestamp(updated),
                exercises=exercises_by_workout.get(wid, []),
            )
        )
    return trees


_UPDATABLE_COLUMNS = ("started_at", "completed_at", "duration", "notes")


def _update_statement(
    workout_id: int, user_id: str, fields: dict
) -> Tuple[str, Tuple]:
    """Build one conditional UPDATE matching id, owner and start/finish order."""
    assignments: List[str] = []
    params: List[Union[str, int, None]] = []
    values: Dict[str, Union[str, int, None]] = {}
    for column in _UPDATABLE_COLUMNS:
        if column not in fields:
            continue
        value = fields[column]
        if isinstance(value, datetime.datetime):
            value = to_db_timestamp(value)
        values[column] = value
        assignments.append(f"{column} = ?")
        params.append(value)
    assignments.append("updated_at = ?")
    params.append(_now())
    new_completed = values.get("completed_at")
    new_started = values.get("started_at")
    query = (
        f"UPDATE workouts SET {', '.join(assignments)} "
        "WHERE id = ? AND user_id = ? "
        "AND (COALESCE(?, completed_at) IS NULL "
        "OR COALESCE(?, completed_at) >= COALESCE(?, started_at));"
    )
    params.extend([workout_id, user_id, new_completed, new_completed, new_started])
    return query, tuple(params)


def _order_violation(fields: dict) -> WorkoutValidationError:
    if "completed_at" in fields:
        return WorkoutValidationError("completed_at", "must not be before started_at")
    return WorkoutValidationError("started_at", "must not be after completed_at")


class WorkoutRepository(BaseRepository):
    """Repository for workout table operations, scoped to one user per call."""

    def _load_trees(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        where: str,
        params: Tuple,
        limit: Optional[int] = None,
    ) -> List[WorkoutTree]:
        if limit is not None:
            params = params + (limit,)
        workout_rows = conn.execute(_workout_query(where, limit), params).fetchall()
        exercise_rows: List[Tuple] = []
        set_rows: List[Tuple] = []
        ids = [row[0] for row in workout_rows]
        for exercise_sql, set_sql, child_params in _child_queries(user_id, ids):
            exercise_rows.extend(conn.execute(exercise_sql, child_params).fetchall())
            set_rows.extend(conn.execute(set_sql, child_params).fetchall())
        return _assemble_trees(workout_rows, exercise_rows, set_rows)

    def create(
        self,
        user_id: str,
        started_at: datetime.datetime,
        notes: Optional[str] = None,
    ) -> int:
        now = _now()
        return self.execute(
            "INSERT INTO workouts (user_id, started_at, notes, created_at, updated_at) VALUES (?, ?, ?, ?, ?);",
            (user_id, to_db_timestamp(started_at), notes, now, now),
        )

    def fetch_tree(self, workout_id: int, user_id: str) -> Optional[WorkoutTree]:
        with self._connection() as conn:
            trees = self._load_trees(
                conn, user_id, "w.id = ? AND w.user_id = ?", (workout_id, user_id)
            )
        return trees[0] if trees else None

    def fetch_trees_between(
        self,
        user_id: str,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> List[WorkoutTree]:
        """Return trees with ``start <= started_at < end``, newest first."""
        with self._connection() as conn:
            return self._load_trees(
                conn,
                user_id,
                "w.user_id = ? AND w.started_at >= ? AND w.started_at < ?",
                (user_id, to_db_timestamp(start), to_db_timestamp(end)),
            )

    def fetch_recent(self, user_id: str, limit: Optional[int] = None) -> List[WorkoutTree]:
        with self._connection() as conn:
            return self._load_trees(conn, user_id, "w.user_id = ?", (user_id,), limit)

    def update(self, workout_id: int, user_id: str, fields: dict) -> Optional[WorkoutTree]:
        """Apply ``fields`` in one conditional write.

        Returns ``None`` when no workout with this id belongs to ``user_id``.
        Raises ``WorkoutValidationError`` when the write would leave
        ``completed_at`` before ``started_at``.
        """
        query, params = _update_statement(workout_id, user_id, fields)
        with self._connection() as conn:
            cursor = conn.execute(query, params)
            if cursor.rowcount == 0:
                owned = conn.execute(
                    "SELECT 1 FROM workouts WHERE id = ? AND user_id = ?;",
                    (workout_id, user_id),
                ).fetchone()
                if owned is None:
                    return None
                raise _order_violation(fields)
            trees = self._load_trees(
                conn, user_id, "w.id = ? AND w.user_id = ?", (workout_id, user_id)
            )
        return trees[0] if trees else None

    def delete(self, workout_id: int, user_id: str) -> bool:
        count = self.execute_rowcount(
            "DELETE FROM workouts WHERE id = ? AND user_id = ?;",
            (workout_id, user_id),
        )
        return count > 0


class WorkoutExerciseRepository(BaseRepository):
    """Repository for exercises performed within a workout."""

    def add(
        self,
        workout_id: int,
        user_id: str,
        exercise_id: int,
        order: int,
        notes: Optional[str] = None,
    ) -> Optional[int]:
        """Attach an exercise to a workout owned by ``user_id``.

        The exercise must be shared or owned by the same user. Returns the new
        id, or ``None`` when the workout or exercise is not visible.
        """
        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO workout_exercises (workout_id, exercise_id, position, notes, created_at) "
                    "SELECT w.id, e.id, ?, ?, ? FROM workouts w, exercises e "
                    "WHERE w.id = ? AND w.user_id = ? "
                    "AND e.id = ? AND (e.user_id IS NULL OR e.user_id = ?);",
                    (order, notes, _now(), workout_id, user_id, exercise_id, user_id),
                )
                return cursor.lastrowid if cursor.rowcount else None
        except sqlite3.IntegrityError as e:
            raise _integrity_error(e, "order", "already used in this workout") from e

    def fetch_detail(self, workout_exercise_id: int, user_id: str) -> Optional[WorkoutExercise]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT we.id, we.workout_id, we.exercise_id, we.position, we.notes, we.created_at, "
                "e.name, e.user_id, e.category, e.muscle_group, e.equipment, e.description, e.is_archived "
                "FROM workout_exercises we "
                "JOIN workouts w ON we.workout_id = w.id "
                "JOIN exercises e ON we.exercise_id = e.id "
                "WHERE we.id = ? AND w.user_id = ?;",
                (workout_exercise_id, user_id),
            ).fetchall()
            if not rows:
                return None
            set_rows = conn.execute(
                f"SELECT {_SET_COLUMNS} FROM sets s WHERE s.workout_exercise_id = ? "
                "ORDER BY s.set_number, s.id;",
                (workout_exercise_id,),
            ).fetchall()
        return _workout_exercise_from_row(rows[0], [_set_from_row(r) for r in set_rows])


class SetRepository(BaseRepository):
    """Repository for sets table operations."""

    def add(
        self,
        workout_exercise_id: int,
        user_id: str,
        set_number: int,
        reps: int,
        weight: float,
        rpe: Optional[float] = None,
        rir: Optional[int] = None,
        warmup: bool = False,
        drop_set: bool = False,
        notes: Optional[str] = None,
    ) -> Optional[int]:
        if reps < 0:
            raise WorkoutValidationError("reps", "must be non-negative")
        if weight < 0:
            raise WorkoutValidationError("weight", "must be non-negative")
        if rpe is not None and not 1 <= rpe <= 10:
            raise WorkoutValidationError("rpe", "must be between 1 and 10")
        if rir is not None and rir < 0:
            raise WorkoutValidationError("rir", "must be non-negative")
        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO sets (workout_exercise_id, set_number, reps, weight, rpe, rir, is_warmup, is_drop_set, notes, created_at) "
                    "SELECT we.id, ?, ?, ?, ?, ?, ?, ?, ?, ? FROM workout_exercises we "
                    "JOIN workouts w ON we.workout_id = w.id "
                    "WHERE we.id = ? AND w.user_id = ?;",
                    (
                        set_number,
                        reps,
                        weight,
                        rpe,
                        rir,
                        int(warmup),
                        int(drop_set),
                        notes,
                        _now(),
                        workout_exercise_id,
                        user_id,
                    ),
                )
                return cursor.lastrowid if cursor.rowcount else None
        except sqlite3.IntegrityError as e:
            raise _integrity_error(e, "set_number", "already used for this exercise") from e

    def fetch_detail(self, set_id: int, user_id: str) -> Optional[WorkoutSet]:
        rows = self.fetch_all(
            f"SELECT {_SET_COLUMNS} FROM sets s "
            "JOIN workout_exercises we ON s.workout_exercise_id = we.id "
            "JOIN workouts w ON we.workout_id = w.id "
            "WHERE s.id = ? AND w.user_id = ?;",
            (set_id, user_id),
        )
        return _set_from_row(rows[0]) if rows else None


class ExerciseRepository(BaseRepository):
    """Repository for the shared and per-user exercise catalog."""

    _COLUMNS = "id, name, user_id, category, muscle_group, equipment, description, is_archived"

    @staticmethod
    def _from_row(row: Tuple) -> Exercise:
        eid, name, owner, category, muscle_group, equipment, description, archived = row
        return Exercise(
            id=eid,
            name=name,
            owner=owner_from_column(owner),
            category=category,
            muscle_group=muscle_group,
            equipment=equipment,
            description=description,
            is_archived=bool(archived),
        )

    def add(
        self,
        name: str,
        owner: Union[Shared, Owned, None] = None,
        category: Optional[str] = None,
        muscle_group: Optional[str] = None,
        equipment: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        if not name or not name.strip():
            raise WorkoutValidationError("name", "must not be empty")
        now = _now()
        return self.execute(
            "INSERT INTO exercises (name, user_id, category, muscle_group, equipment, description, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                name.strip(),
                owner_to_column(owner or Shared()),
                category,
                muscle_group,
                equipment,
                description,
                now,
                now,
            ),
        )

    def fetch_detail(self, exercise_id: int) -> Optional[Exercise]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM exercises WHERE id = ?;", (exercise_id,)
        )
        return self._from_row(rows[0]) if rows else None

    def fetch_visible(self, user_id: str, include_archived: bool = False) -> List[Exercise]:
        """Return shared exercises plus those owned by ``user_id``, by name."""
        query = (
            f"SELECT {self._COLUMNS} FROM exercises "
            "WHERE (user_id IS NULL OR user_id = ?)"
        )
        if not include_archived:
            query += " AND is_archived = 0"
        query += " ORDER BY name COLLATE NOCASE, id;"
        return [self._from_row(r) for r in self.fetch_all(query, (user_id,))]

    def archive(self, exercise_id: int, owner: Union[Shared, Owned]) -> bool:
        count = self.execute_rowcount(
            "UPDATE exercises SET is_archived = 1, updated_at = ? WHERE id = ? AND user_id IS ?;",
            (_now(), exercise_id, owner_to_column(owner)),
        )
        return count > 0

    def delete(self, exercise_id: int, owner: Union[Shared, Owned]) -> bool:
        try:
            count = self.execute_rowcount(
                "DELETE FROM exercises WHERE id = ? AND user_id IS ?;",
                (exercise_id, owner_to_column(owner)),
            )
        except sqlite3.IntegrityError as e:
            if "FOREIGN KEY" in str(e):
                raise ExerciseInUseError("exercise is referenced by workouts") from e
            raise StorageUnavailable(str(e)) from e
        return count > 0


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        try:
            conn = await aiosqlite.connect(self._db_path)
        except sqlite3.Error as e:
            logger.error("cannot open database %s: %s", self._db_path, e)
            raise StorageUnavailable(str(e)) from e
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        except sqlite3.IntegrityError:
            await conn.rollback()
            raise
        except sqlite3.Error as e:
            await conn.rollback()
            logger.exception("database operation failed on %s", self._db_path)
            raise StorageUnavailable(str(e)) from e
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.lastrowid

    async def execute_rowcount(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return list(rows)


class AsyncWorkoutRepository(AsyncBaseRepository):
    """Async repository for workout table operations."""

    async def _load_trees(
        self,
        conn: aiosqlite.Connection,
        user_id: str,
        where: str,
        params: Tuple,
        limit: Optional[int] = None,
    ) -> List[WorkoutTree]:
        if limit is not None:
            params = params + (limit,)
        cursor = await conn.execute(_workout_query(where, limit), params)
        workout_rows = list(await cursor.fetchall())
        exercise_rows: List[Tuple] = []
        set_rows: List[Tuple] = []
        ids = [row[0] for row in workout_rows]
        for exercise_sql, set_sql, child_params in _child_queries(user_id, ids):
            cursor = await conn.execute(exercise_sql, child_params)
            exercise_rows.extend(await cursor.fetchall())
            cursor = await conn.execute(set_sql, child_params)
            set_rows.extend(await cursor.fetchall())
        return _assemble_trees(workout_rows, exercise_rows, set_rows)

    async def create(
        self,
        user_id: str,
        started_at: datetime.datetime,
        notes: Optional[str] = None,
    ) -> int:
        now = _now()
        return await self.execute(
            "INSERT INTO workouts (user_id, started_at, notes, created_at, updated_at) VALUES (?, ?, ?, ?, ?);",
            (user_id, to_db_timestamp(started_at), notes, now, now),
        )

    async def fetch_tree(self, workout_id: int, user_id: str) -> Optional[WorkoutTree]:
        async with self._async_connection() as conn:
            trees = await self._load_trees(
                conn, user_id, "w.id = ? AND w.user_id = ?", (workout_id, user_id)
            )
        return trees[0] if trees else None

    async def fetch_trees_between(
        self,
        user_id: str,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> List[WorkoutTree]:
        async with self._async_connection() as conn:
            return await self._load_trees(
                conn,
                user_id,
                "w.user_id = ? AND w.started_at >= ? AND w.started_at < ?",
                (user_id, to_db_timestamp(start), to_db_timestamp(end)),
            )

    async def fetch_recent(self, user_id: str, limit: Optional[int] = None) -> List[WorkoutTree]:
        async with self._async_connection() as conn:
            return await self._load_trees(conn, user_id, "w.user_id = ?", (user_id,), limit)

    async def update(self, workout_id: int, user_id: str, fields: dict) -> Optional[WorkoutTree]:
        query, params = _update_statement(workout_id, user_id, fields)
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            if cursor.rowcount == 0:
                cursor = await conn.execute(
                    "SELECT 1 FROM workouts WHERE id = ? AND user_id = ?;",
                    (workout_id, user_id),
                )
                if await cursor.fetchone() is None:
                    return None
                raise _order_violation(fields)
            trees = await self._load_trees(
                conn, user_id, "w.id = ? AND w.user_id = ?", (workout_id, user_id)
            )
        return trees[0] if trees else None

    async def delete(self, workout_id: int, user_id: str) -> bool:
        count = await self.execute_rowcount(
            "DELETE FROM workouts WHERE id = ? AND user_id = ?;",
            (workout_id, user_id),
        )
        return count > 0
