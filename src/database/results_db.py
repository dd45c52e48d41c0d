"""
===============================================================================
GRAPH KERNEL BENCHMARK - Results Database Interface
===============================================================================
SQLite-backed storage for benchmark sessions, their validation outcome, every
configuration run and every timed trial.

Uses sqlite3 for writes and pandas for analysis queries.  The schema in
schema.sql (next to this module) is applied when the database is opened; all
statements are idempotent, so reopening an existing file is safe.

Usage:
    from database.results_db import ResultsDatabase

    with ResultsDatabase("output/benchmarks.db") as db:
        session = BenchmarkSession(graph, kernel, env, settings, results_db=db)
        session.run()
        df = db.query_runs()

===============================================================================
"""

import math
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd


_MODULE_DIR = Path(__file__).resolve().parent
_SCHEMA_PATH = _MODULE_DIR / "schema.sql"

_TABLES = ["sessions", "validations", "runs", "trials"]


def _enum_label(value: Any) -> str:
    return getattr(value, "name", str(value))


class ResultsDatabase:
    """SQLite store for benchmark results.

    Parameters
    ----------
    db_path : str or Path
        Database file, created if missing.  ``":memory:"`` keeps everything
        in memory (handy for tests).
    schema_path : str or Path, optional
        Override path to the SQL schema file.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        schema_path: Optional[Union[str, Path]] = None,
    ) -> None:
        self.db_path = str(db_path)
        self.schema_path = Path(schema_path) if schema_path else _SCHEMA_PATH

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self.create_tables()

    # =========================================================================
    # Schema Management
    # =========================================================================

    def create_tables(self) -> None:
        """Apply schema.sql.

        Raises
        ------
        FileNotFoundError
            If the schema file cannot be found.
        """
        if not self.schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {self.schema_path}")
        self._conn.executescript(self.schema_path.read_text(encoding="utf-8"))
        self._conn.commit()

    # =========================================================================
    # Insert Operations
    # =========================================================================

    def insert_session(self, kernel: str, graph, max_threads: int, trials: int) -> int:
        """Record a new session and return its ``session_id``."""
        cursor = self._conn.execute(
            "INSERT INTO sessions (started_at, kernel, graph_name, n_vertices, "
            "n_edges, max_threads, trials) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                datetime.now().isoformat(timespec="seconds"), kernel, graph.name,
                int(graph.n_vertices), int(graph.n_edges), int(max_threads), int(trials),
            ),
        )
        self._conn.commit()
        return cursor.lastrowid

    def insert_validation(self, session_id: int, result) -> int:
        error = result.max_abs_error
        cursor = self._conn.execute(
            "INSERT INTO validations (session_id, passed, max_abs_error, tolerance) "
            "VALUES (?, ?, ?, ?)",
            (session_id, int(result.passed), None if math.isnan(error) else error, result.tolerance),
        )
        self._conn.commit()
        return cursor.lastrowid

    def insert_run(self, session_id: int, run) -> int:
        """Insert a run together with all of its trials; returns ``run_id``."""
        cfg = run.configuration
        cursor = self._conn.execute(
            "INSERT INTO runs (session_id, engine_mode, thread_count, variant, "
            "sort_policy, average_seconds) VALUES (?, ?, ?, ?, ?, ?)",
            (
                session_id, cfg.engine_mode.value, int(cfg.thread_count),
                _enum_label(cfg.variant), _enum_label(cfg.sort_policy),
                float(run.average_seconds),
            ),
        )
        run_id = cursor.lastrowid
        self._conn.executemany(
            "INSERT INTO trials (run_id, trial_index, elapsed_seconds) VALUES (?, ?, ?)",
            [(run_id, m.trial_index, float(m.elapsed_seconds)) for m in run.measurements],
        )
        self._conn.commit()
        return run_id

    def mark_best(self, session_id: int, best) -> None:
        """Point the session at the stored run matching the best configuration."""
        cfg = best.configuration
        row = self._conn.execute(
            "SELECT run_id FROM runs WHERE session_id = ? AND engine_mode = ? "
            "AND thread_count = ? AND variant = ? AND sort_policy = ? "
            "ORDER BY run_id LIMIT 1",
            (
                session_id, cfg.engine_mode.value, int(cfg.thread_count),
                _enum_label(cfg.variant), _enum_label(cfg.sort_policy),
            ),
        ).fetchone()
        self._conn.execute(
            "UPDATE sessions SET best_run_id = ?, best_seconds = ? WHERE session_id = ?",
            (row["run_id"] if row else None, float(best.average_seconds), session_id),
        )
        self._conn.commit()

    # =========================================================================
    # Query Operations
    # =========================================================================

    def query_runs(self, session_id: Optional[int] = None) -> pd.DataFrame:
        """Runs, optionally of one session, ordered by insertion."""
        query = "SELECT * FROM runs"
        params: tuple = ()
        if session_id is not None:
            query += " WHERE session_id = ?"
            params = (session_id,)
        return pd.read_sql_query(query + " ORDER BY run_id", self._conn, params=params)

    def query_trials(self, run_id: int) -> pd.DataFrame:
        return pd.read_sql_query(
            "SELECT trial_index, elapsed_seconds FROM trials WHERE run_id = ? "
            "ORDER BY trial_index",
            self._conn, params=(run_id,),
        )

    def get_session(self, session_id: int) -> Dict[str, Any]:
        row = self._conn.execute(
            "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
        ).fetchone()
        if row is None:
            raise KeyError(f"No session with id {session_id}")
        return dict(row)

    def get_table_sizes(self) -> Dict[str, int]:
        return {
            t: self._conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0]
            for t in _TABLES
        }

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def close(self) -> None:
        """Commit and close the connection."""
        if self._conn:
            self._conn.commit()
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "ResultsDatabase":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        sizes = self.get_table_sizes() if self._conn else {}
        return f"ResultsDatabase(path='{self.db_path}', total_rows={sum(sizes.values())})"
