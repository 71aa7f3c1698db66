"""
Database utilities for the scoring engine.

Provides the score store contract with a PostgreSQL implementation and a
mock in-memory implementation for development/testing.
"""

from rfp_utils.db.connection import get_db_connection, init_db
from rfp_utils.db.score_store import (
    ScoreStore,
    MockScoreStore,
    PostgresScoreStore,
    get_score_store,
)

__all__ = [
    "get_db_connection",
    "init_db",
    "ScoreStore",
    "MockScoreStore",
    "PostgresScoreStore",
    "get_score_store",
]
