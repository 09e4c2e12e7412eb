import os
import sqlite3
import sys
import datetime

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, WorkoutRepository


class TestSchemaMigration:
    def _create_legacy(self, db_file) -> None:
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE workouts (id INTEGER PRIMARY KEY AUTOINCREMENT, user_id TEXT NOT NULL, "
            "started_at TEXT NOT NULL, completed_at TEXT, notes TEXT, "
            "created_at TEXT NOT NULL, updated_at TEXT NOT NULL)"
        )
        conn.execute(
            "INSERT INTO workouts (user_id, started_at, notes, created_at, updated_at) VALUES "
            "('u1', '2025-09-01T08:30:00.000000+00:00', 'legacy', "
            "'2025-09-01T08:30:00.000000+00:00', '2025-09-01T08:30:00.000000+00:00')"
        )
        conn.execute(Database._TABLE_DEFINITIONS["workout_exercises"][0])
        conn.execute("CREATE TABLE workouts_old (id INTEGER)")
        conn.commit()
        conn.close()

    def test_adds_missing_columns_and_keeps_rows(self, tmp_path):
        db_file = tmp_path / "test.db"
        self._create_legacy(db_file)

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='workouts_old'"
        )
        assert cur.fetchone() is None
        cols = [row[1] for row in conn.execute("PRAGMA table_info(workouts)").fetchall()]
        assert "duration" in cols
        conn.close()

        tree = WorkoutRepository(str(db_file)).fetch_tree(1, "u1")
        assert tree.notes == "legacy"
        assert tree.duration is None

    def test_child_foreign_keys_still_reference_workouts(self, tmp_path):
        db_file = tmp_path / "test.db"
        self._create_legacy(db_file)

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        sql = conn.execute(
            "SELECT sql FROM sqlite_master WHERE type='table' AND name='workout_exercises'"
        ).fetchone()[0]
        conn.close()
        assert "REFERENCES workouts(id)" in sql
        assert "workouts_old" not in sql

    def test_current_schema_is_left_alone(self, tmp_path):
        db_file = str(tmp_path / "test.db")
        repo = WorkoutRepository(db_file)
        wid = repo.create("u1", datetime.datetime(2025, 9, 1, tzinfo=datetime.timezone.utc))
        Database(db_file)
        assert WorkoutRepository(db_file).fetch_tree(wid, "u1") is not None
