"""
database - SQLite persistence of benchmark sessions, runs and trials.
"""

from database.results_db import ResultsDatabase

__all__ = ["ResultsDatabase"]
