"""
Database operations for Epoch Atlas.
PostgreSQL via psycopg2; one JSONB progress document per user.
"""

import json
import logging
from typing import Optional, Dict, Any
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor

from config import DATABASE_URL

logger = logging.getLogger(__name__)


@contextmanager
def get_db(database_url: Optional[str] = None):
    """Get a database connection with automatic cleanup."""
    url = database_url or DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL environment variable not set")

    conn = psycopg2.connect(url)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


class Storage:
    """Database storage operations."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url

    # ==================== Progress Saves ====================

    def save_progress(self, user_id: str, player_name: Optional[str],
                      state: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace a user's progress document."""
        with get_db(self.database_url) as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("""
                    INSERT INTO progress_saves (user_id, player_name, state, saved_at)
                    VALUES (%s, %s, %s, NOW())
                    ON CONFLICT (user_id) DO UPDATE SET
                        player_name = EXCLUDED.player_name,
                        state = EXCLUDED.state,
                        saved_at = NOW()
                    RETURNING *
                """, (user_id, player_name, json.dumps(state)))
                return dict(cur.fetchone())

    def load_progress(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Load a user's progress document."""
        with get_db(self.database_url) as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    "SELECT * FROM progress_saves WHERE user_id = %s LIMIT 1",
                    (user_id,)
                )
                result = cur.fetchone()
                return dict(result) if result else None

    def delete_progress(self, user_id: str) -> bool:
        """Delete a user's progress document."""
        with get_db(self.database_url) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM progress_saves WHERE user_id = %s",
                    (user_id,)
                )
                return cur.rowcount > 0


storage = Storage()
