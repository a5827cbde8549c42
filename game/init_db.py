"""
Initialize database tables for Epoch Atlas.
Run this once to create the required tables in your Postgres database.
"""

import os
import sys

import psycopg2

DATABASE_URL = os.environ.get('DATABASE_URL')

SCHEMA = """
-- Progress saves: one document per user (cursors, round records, alias)
CREATE TABLE IF NOT EXISTS progress_saves (
    user_id VARCHAR PRIMARY KEY,
    player_name VARCHAR,
    state JSONB NOT NULL,
    saved_at TIMESTAMP DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_progress_saves_saved_at ON progress_saves(saved_at);
"""


def init_db():
    if not DATABASE_URL:
        print("ERROR: DATABASE_URL environment variable not set")
        sys.exit(1)

    print("Connecting to database...")
    conn = psycopg2.connect(DATABASE_URL)
    cur = conn.cursor()

    print("Creating tables...")
    cur.execute(SCHEMA)
    conn.commit()

    print("Done! Tables created/updated successfully.")

    cur.close()
    conn.close()


if __name__ == "__main__":
    init_db()
