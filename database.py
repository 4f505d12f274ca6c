import sqlite3
from datetime import datetime, date, timedelta
from contextlib import contextmanager

SCHEMA = {
    "tasks": """
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            type TEXT NOT NULL DEFAULT 'daily',
            priority TEXT NOT NULL DEFAULT 'normal',
            scheduled_date TEXT,
            scheduled_time TEXT,
            duration_minutes INTEGER,
            completed BOOLEAN NOT NULL DEFAULT 0,
            completed_at TEXT,
            created_at TEXT,
            updated_at TEXT
        )
    """,
    "exams": """
        CREATE TABLE IF NOT EXISTS exams (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            subject TEXT,
            exam_date TEXT NOT NULL,
            exam_time TEXT,
            notes TEXT,
            created_at TEXT
        )
    """,
    "skills": """
        CREATE TABLE IF NOT EXISTS skills (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            target_minutes_daily INTEGER NOT NULL DEFAULT 30,
            streak_count INTEGER NOT NULL DEFAULT 0,
            last_practiced_at TEXT,
            created_at TEXT
        )
    """,
    "skill_logs": """
        CREATE TABLE IF NOT EXISTS skill_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            skill_id INTEGER NOT NULL,
            duration_minutes INTEGER NOT NULL,
            notes TEXT,
            practiced_at TEXT,
            FOREIGN KEY (skill_id) REFERENCES skills(id)
        )
    """,
    "focus_sessions": """
        CREATE TABLE IF NOT EXISTS focus_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            duration_minutes INTEGER NOT NULL,
            session_type TEXT NOT NULL DEFAULT 'focus',
            completed BOOLEAN NOT NULL DEFAULT 0,
            started_at TEXT,
            ended_at TEXT
        )
    """,
    "profiles": """
        CREATE TABLE IF NOT EXISTS profiles (
            id INTEGER PRIMARY KEY,
            full_name TEXT,
            daily_focus_minutes INTEGER NOT NULL DEFAULT 25,
            notification_enabled BOOLEAN NOT NULL DEFAULT 1,
            snooze_duration INTEGER NOT NULL DEFAULT 5,
            created_at TEXT,
            updated_at TEXT
        )
    """,
    "daily_reviews": """
        CREATE TABLE IF NOT EXISTS daily_reviews (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            review_date TEXT NOT NULL,
            all_completed BOOLEAN NOT NULL DEFAULT 0,
            tasks_completed INTEGER,
            tasks_total INTEGER,
            focus_minutes INTEGER,
            notes TEXT,
            created_at TEXT,
            UNIQUE (user_id, review_date)
        )
    """,
}


class DataStoreError(Exception):
    """A backend read or write failed."""


def _now() -> datetime:
    from config import TIMEZONE
    return datetime.now(TIMEZONE)


def _today() -> str:
    return _now().date().isoformat()


class Database:
    """Tabular store over SQLite. Every row is owned by a user id."""

    def __init__(self, path: str):
        self.path = path
        self._columns = {}

    @contextmanager
    def get_conn(self):
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as e:
            raise DataStoreError(str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise DataStoreError(str(e)) from e
        finally:
            conn.close()

    def init_db(self):
        with self.get_conn() as conn:
            for ddl in SCHEMA.values():
                conn.execute(ddl)
            for table in SCHEMA:
                rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
                self._columns[table] = {r["name"] for r in rows}

    def _check(self, table: str, columns) -> str:
        if not self._columns:
            self.init_db()
        if table not in self._columns:
            raise DataStoreError(f"Unknown table {table!r}")
        unknown = set(columns) - self._columns[table]
        if unknown:
            raise DataStoreError(f"Unknown columns for {table}: {', '.join(sorted(unknown))}")
        return "id" if table == "profiles" else "user_id"

    # Generic CRUD

    def select(self, table: str, user_id: int, eq: dict = None, gte: dict = None,
               order_by: str = None, descending: bool = False, limit: int = None) -> list:
        eq = dict(eq or {})
        gte = dict(gte or {})
        owner = self._check(table, list(eq) + list(gte) + ([order_by] if order_by else []))
        clauses = [f"{owner} = ?"]
        params = [user_id]
        for col, value in eq.items():
            clauses.append(f"{col} = ?")
            params.append(value)
        for col, value in gte.items():
            clauses.append(f"{col} >= ?")
            params.append(value)
        sql = f"SELECT * FROM {table} WHERE {' AND '.join(clauses)}"
        if order_by:
            sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}, id"
        if limit:
            sql += f" LIMIT {int(limit)}"
        with self.get_conn() as conn:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]

    def insert(self, table: str, row: dict) -> dict:
        self._check(table, row)
        cols = list(row)
        placeholders = ",".join("?" * len(cols))
        with self.get_conn() as conn:
            cur = conn.execute(
                f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders})",
                [row[c] for c in cols]
            )
            created = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (cur.lastrowid,)).fetchone()
        return dict(created)

    def update(self, table: str, user_id: int, row_id: int, patch: dict) -> dict:
        owner = self._check(table, patch)
        if not patch:
            raise DataStoreError("Nothing to update")
        assignments = ", ".join(f"{c} = ?" for c in patch)
        with self.get_conn() as conn:
            conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ? AND {owner} = ?",
                [*patch.values(), row_id, user_id]
            )
            row = conn.execute(
                f"SELECT * FROM {table} WHERE id = ? AND {owner} = ?", (row_id, user_id)
            ).fetchone()
        return dict(row) if row else None

    def delete(self, table: str, user_id: int, row_id: int) -> bool:
        owner = self._check(table, [])
        with self.get_conn() as conn:
            cur = conn.execute(f"DELETE FROM {table} WHERE id = ? AND {owner} = ?", (row_id, user_id))
            return cur.rowcount > 0

    # Tasks

    def tasks_for_day(self, user_id: int, day: str = None) -> list:
        return self.select("tasks", user_id, eq={"scheduled_date": day or _today()}, order_by="scheduled_time")

    def upcoming_tasks(self, user_id: int, day: str = None) -> list:
        day = day or _today()
        tomorrow = (date.fromisoformat(day) + timedelta(days=1)).isoformat()
        return self.select("tasks", user_id, gte={"scheduled_date": tomorrow}, order_by="scheduled_date")

    def add_task(self, user_id: int, title: str, scheduled_date: str = None,
                 task_type: str = "daily", priority: str = None, scheduled_time: str = None) -> dict:
        if priority is None:
            priority = "high" if task_type == "exam" else "normal"
        return self.insert("tasks", {
            "user_id": user_id,
            "title": title,
            "type": task_type,
            "priority": priority,
            "scheduled_date": scheduled_date or _today(),
            "scheduled_time": scheduled_time,
            "completed": 0,
            "created_at": _now().isoformat(),
        })

    def toggle_task(self, user_id: int, task_id: int):
        rows = self.select("tasks", user_id, eq={"id": task_id})
        if not rows:
            return None
        done = not rows[0]["completed"]
        return self.update("tasks", user_id, task_id, {
            "completed": int(done),
            "completed_at": _now().isoformat() if done else None,
            "updated_at": _now().isoformat(),
        })

    def move_task_to(self, user_id: int, task_id: int, day: str):
        return self.update("tasks", user_id, task_id, {
            "scheduled_date": day,
            "completed": 0,
            "completed_at": None,
            "updated_at": _now().isoformat(),
        })

    def incomplete_high_priority(self, user_id: int, day: str = None) -> list:
        return self.select("tasks", user_id, eq={
            "scheduled_date": day or _today(), "priority": "high", "completed": 0
        }, order_by="scheduled_time")

    # Exams

    def upcoming_exams(self, user_id: int, today: str = None) -> list:
        return self.select("exams", user_id, gte={"exam_date": today or _today()}, order_by="exam_date")

    def add_exam(self, user_id: int, title: str, exam_date: str, subject: str = None) -> dict:
        date.fromisoformat(exam_date)
        return self.insert("exams", {
            "user_id": user_id,
            "title": title,
            "subject": subject,
            "exam_date": exam_date,
            "created_at": _now().isoformat(),
        })

    # Skills

    def skills(self, user_id: int) -> list:
        return self.select("skills", user_id, order_by="created_at")

    def add_skill(self, user_id: int, name: str, target_minutes: int = 30) -> dict:
        return self.insert("skills", {
            "user_id": user_id,
            "name": name,
            "target_minutes_daily": target_minutes,
            "created_at": _now().isoformat(),
        })

    # Focus sessions

    def log_focus_session(self, user_id: int, duration_minutes: int, ended_at: datetime = None) -> dict:
        ended_at = ended_at or _now()
        return self.insert("focus_sessions", {
            "user_id": user_id,
            "duration_minutes": duration_minutes,
            "session_type": "focus",
            "completed": 1,
            "started_at": (ended_at - timedelta(minutes=duration_minutes)).isoformat(),
            "ended_at": ended_at.isoformat(),
        })

    def focus_minutes_on(self, user_id: int, day: str = None) -> int:
        day = day or _today()
        with self.get_conn() as conn:
            row = conn.execute("""
                SELECT COALESCE(SUM(duration_minutes), 0) AS total
                FROM focus_sessions
                WHERE user_id = ? AND completed = 1 AND substr(ended_at, 1, 10) = ?
            """, (user_id, day)).fetchone()
        return row["total"]

    # Profiles

    def get_profile(self, user_id: int, full_name: str = None) -> dict:
        rows = self.select("profiles", user_id)
        if rows:
            return rows[0]
        now = _now().isoformat()
        return self.insert("profiles", {
            "id": user_id,
            "full_name": full_name,
            "created_at": now,
            "updated_at": now,
        })

    def update_profile(self, user_id: int, **patch) -> dict:
        self.get_profile(user_id)
        return self.update("profiles", user_id, user_id, {**patch, "updated_at": _now().isoformat()})

    # Daily reviews

    def upsert_daily_review(self, user_id: int, review_date: str, **fields) -> dict:
        row = {"user_id": user_id, "review_date": review_date, **fields}
        self._check("daily_reviews", row)
        cols = list(row)
        updates = ", ".join(f"{c} = excluded.{c}" for c in fields) or "review_date = excluded.review_date"
        with self.get_conn() as conn:
            conn.execute(f"""
                INSERT INTO daily_reviews ({', '.join(cols)}, created_at)
                VALUES ({','.join('?' * len(cols))}, ?)
                ON CONFLICT (user_id, review_date) DO UPDATE SET {updates}
            """, [*row.values(), _now().isoformat()])
            created = conn.execute(
                "SELECT * FROM daily_reviews WHERE user_id = ? AND review_date = ?",
                (user_id, review_date)
            ).fetchone()
        return dict(created)

    def completed_review_dates(self, user_id: int, limit: int = 30) -> list:
        rows = self.select("daily_reviews", user_id, order_by="review_date", descending=True, limit=limit)
        return [r["review_date"] for r in rows if r["all_completed"]]

    def day_summary(self, user_id: int, day: str = None) -> dict:
        day = day or _today()
        tasks = self.tasks_for_day(user_id, day)
        completed = [t for t in tasks if t["completed"]]
        return {
            "date": day,
            "tasks_total": len(tasks),
            "tasks_completed": len(completed),
            "tasks_skipped": len(tasks) - len(completed),
            "focus_minutes": self.focus_minutes_on(user_id, day),
        }
