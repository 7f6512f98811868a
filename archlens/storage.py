"""
SQLite persistence for components, runs, findings, feedback and
model performance history.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Type, Union

from .architecture.models import (
    AnalysisRun,
    Component,
    ComponentUpgrade,
    Issue,
    OptimizationOpportunity,
    Pattern,
)
from .exceptions import PersistenceError, FeedbackPersistenceError
from .learning.models import FeedbackRecord, LearningMetrics
from .utils import logger, ensure_directory


ENTITY_TABLES = {
    'issues': Issue,
    'patterns': Pattern,
    'opportunities': OptimizationOpportunity,
    'upgrades': ComponentUpgrade,
}

FEEDBACK_COLUMNS = (
    'id', 'reference_id', 'reference_type', 'feedback_type', 'rating',
    'corrected_data', 'comments', 'user_id', 'processed_for_training',
    'stale_reference', 'created_at',
)

HISTORY_COLUMNS = (
    'id', 'model_type', 'version', 'training_samples', 'accuracy_before',
    'accuracy_after', 'precision', 'recall', 'f1_score', 'duration', 'recorded_at',
)


class AnalysisStore:
    """Database for analysis runs and the feedback training corpus."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        ensure_directory(self.db_path.parent)
        self._init_db()

    @contextmanager
    def _connect(self, error: Type[PersistenceError] = PersistenceError) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise error(f"Cannot open database {self.db_path}", {'reason': str(e)}) from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise error("Database operation failed", {'reason': str(e)}) from e
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS components (
                    path TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    metrics TEXT NOT NULL,
                    dependencies TEXT NOT NULL,
                    dependents TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    last_modified TEXT,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id TEXT PRIMARY KEY,
                    run_number INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)

            for table in ENTITY_TABLES:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        run_id TEXT,
                        status TEXT,
                        data TEXT NOT NULL
                    )
                """)
                conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_run ON {table}(run_id)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS feedback (
                    id TEXT PRIMARY KEY,
                    reference_id TEXT NOT NULL,
                    reference_type TEXT NOT NULL,
                    feedback_type TEXT NOT NULL,
                    rating INTEGER NOT NULL,
                    corrected_data TEXT NOT NULL,
                    comments TEXT,
                    user_id TEXT,
                    processed_for_training INTEGER NOT NULL DEFAULT 0,
                    stale_reference INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS ml_performance_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    model_type TEXT NOT NULL,
                    version TEXT NOT NULL,
                    training_samples INTEGER NOT NULL,
                    accuracy_before REAL NOT NULL,
                    accuracy_after REAL NOT NULL,
                    precision REAL NOT NULL,
                    recall REAL NOT NULL,
                    f1_score REAL NOT NULL,
                    duration REAL NOT NULL,
                    recorded_at TEXT NOT NULL
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_feedback_processed ON feedback(processed_for_training)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_feedback_reference ON feedback(reference_type, feedback_type)")

    # Components

    def upsert_component(self, component: Component):
        """Insert or replace a component keyed by its path."""
        data = component.to_dict()
        with self._connect() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO components VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                data['path'],
                data['name'],
                data['type'],
                json.dumps(data['metrics']),
                json.dumps(data['dependencies']),
                json.dumps(data['dependents']),
                data['size'],
                data['last_modified'],
                datetime.now().isoformat(),
            ))

    def get_components(self) -> List[Component]:
        with self._connect() as conn:
            cursor = conn.execute("SELECT * FROM components ORDER BY path")
            return [
                Component.from_dict({
                    'path': row[0],
                    'name': row[1],
                    'type': row[2],
                    'metrics': json.loads(row[3]),
                    'dependencies': json.loads(row[4]),
                    'dependents': json.loads(row[5]),
                    'size': row[6],
                    'last_modified': row[7],
                })
                for row in cursor
            ]

    # Runs

    def next_run_number(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COALESCE(MAX(run_number), 0) FROM runs").fetchone()
            return row[0] + 1

    def save_run(self, run: AnalysisRun):
        """Insert a run, or update it by id."""
        with self._connect() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO runs VALUES (?, ?, ?, ?)
            """, (run.id, run.run_number, run.status.value, json.dumps(run.to_dict())))

    def get_run(self, run_id: str) -> Optional[AnalysisRun]:
        with self._connect() as conn:
            row = conn.execute("SELECT data FROM runs WHERE id = ?", (run_id,)).fetchone()
        return AnalysisRun.from_dict(json.loads(row[0])) if row else None

    def list_runs(self, limit: int = 20) -> List[AnalysisRun]:
        """Most recent runs first."""
        with self._connect() as conn:
            cursor = conn.execute(
                "SELECT data FROM runs ORDER BY run_number DESC LIMIT ?", (limit,)
            )
            return [AnalysisRun.from_dict(json.loads(row[0])) for row in cursor]

    # Issues, patterns, opportunities, upgrades

    def save_entity(self, table: str, entity: Any):
        """Insert or replace one run-owned entity."""
        status = getattr(entity, 'status', None)
        status = getattr(status, 'value', status)
        with self._connect() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {table} VALUES (?, ?, ?, ?)",
                (entity.id, entity.run_id, status, json.dumps(entity.to_dict())),
            )

    def get_entity(self, table: str, entity_id: str) -> Optional[Any]:
        with self._connect() as conn:
            row = conn.execute(f"SELECT data FROM {table} WHERE id = ?", (entity_id,)).fetchone()
        return ENTITY_TABLES[table].from_dict(json.loads(row[0])) if row else None

    def get_entities(self, table: str, run_id: str) -> List[Any]:
        with self._connect() as conn:
            cursor = conn.execute(f"SELECT data FROM {table} WHERE run_id = ? ORDER BY rowid", (run_id,))
            return [ENTITY_TABLES[table].from_dict(json.loads(row[0])) for row in cursor]

    def save_issue(self, issue: Issue):
        self.save_entity('issues', issue)

    def save_pattern(self, pattern: Pattern):
        self.save_entity('patterns', pattern)

    def save_opportunity(self, opportunity: OptimizationOpportunity):
        self.save_entity('opportunities', opportunity)

    def save_upgrade(self, upgrade: ComponentUpgrade):
        self.save_entity('upgrades', upgrade)

    def get_issues(self, run_id: str) -> List[Issue]:
        return self.get_entities('issues', run_id)

    def get_patterns(self, run_id: str) -> List[Pattern]:
        return self.get_entities('patterns', run_id)

    def get_opportunities(self, run_id: str) -> List[OptimizationOpportunity]:
        return self.get_entities('opportunities', run_id)

    def get_upgrades(self, run_id: str) -> List[ComponentUpgrade]:
        return self.get_entities('upgrades', run_id)

    # Feedback

    def add_feedback(self, record: FeedbackRecord):
        """Add a feedback entry."""
        data = record.to_dict()
        with self._connect(FeedbackPersistenceError) as conn:
            conn.execute("""
                INSERT INTO feedback VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                data['id'],
                data['reference_id'],
                data['reference_type'],
                data['feedback_type'],
                data['rating'],
                json.dumps(data['corrected_data']),
                data['comments'],
                data['user_id'],
                int(data['processed_for_training']),
                int(data['stale_reference']),
                data['created_at'],
            ))

    def _feedback_query(self, where: str = "", params: tuple = (), limit: Optional[int] = None) -> List[FeedbackRecord]:
        sql = f"SELECT {', '.join(FEEDBACK_COLUMNS)} FROM feedback {where} ORDER BY created_at"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        with self._connect(FeedbackPersistenceError) as conn:
            records = []
            for row in conn.execute(sql, params):
                data = dict(zip(FEEDBACK_COLUMNS, row))
                data['corrected_data'] = json.loads(data['corrected_data'])
                records.append(FeedbackRecord.from_dict(data))
            return records

    def get_feedback(self) -> List[FeedbackRecord]:
        return self._feedback_query()

    def get_unprocessed_feedback(self, limit: int = 1000) -> List[FeedbackRecord]:
        return self._feedback_query("WHERE processed_for_training = 0", limit=limit)

    def get_similar_feedback(self, reference_type: str, feedback_type: str,
                             since: datetime) -> List[FeedbackRecord]:
        """Feedback with the same reference and feedback type since a point in time."""
        return self._feedback_query(
            "WHERE reference_type = ? AND feedback_type = ? AND created_at >= ?",
            (reference_type, feedback_type, since.isoformat()),
        )

    def mark_feedback_processed(self, ids: List[str]):
        if not ids:
            return
        with self._connect(FeedbackPersistenceError) as conn:
            conn.executemany(
                "UPDATE feedback SET processed_for_training = 1 WHERE id = ?",
                [(feedback_id,) for feedback_id in ids],
            )

    # Model performance history

    def add_performance(self, metrics: LearningMetrics) -> int:
        """Append one history entry and return its id."""
        data = metrics.to_dict()
        with self._connect() as conn:
            cursor = conn.execute(f"""
                INSERT INTO ml_performance_history ({', '.join(HISTORY_COLUMNS[1:])})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, tuple(data[column] for column in HISTORY_COLUMNS[1:]))
            return cursor.lastrowid

    def get_performance_history(self, model_type: Optional[str] = None,
                                limit: int = 50) -> List[LearningMetrics]:
        """Most recent entries first."""
        sql = f"SELECT {', '.join(HISTORY_COLUMNS)} FROM ml_performance_history"
        params: tuple = ()
        if model_type:
            sql += " WHERE model_type = ?"
            params = (model_type,)
        sql += " ORDER BY id DESC LIMIT ?"
        with self._connect() as conn:
            return [
                LearningMetrics.from_dict(dict(zip(HISTORY_COLUMNS, row)))
                for row in conn.execute(sql, params + (limit,))
            ]

    def latest_performance(self, model_type: str) -> Optional[LearningMetrics]:
        history = self.get_performance_history(model_type, limit=1)
        return history[0] if history else None


def safe_call(action: str, func, *args, **kwargs) -> bool:
    """Run a persistence call, logging instead of raising on failure."""
    try:
        func(*args, **kwargs)
        return True
    except PersistenceError as e:
        logger.error(f"Failed to {action}: {e}")
        return False
