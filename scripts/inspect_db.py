from __future__ import annotations

import os
import sqlite3
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)


def main() -> None:
    db_path = os.getenv("SQLITE_PATH", "docflow.db")
    conn = sqlite3.connect(db_path)
    try:
        print("DB:", db_path)
        print("Tables:")
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ):
            count = conn.execute(f"SELECT COUNT(*) FROM {row[0]}").fetchone()
            print("-", row[0], count[0] if count else 0)

        print("\nSessions:")
        for row in conn.execute(
            """
            SELECT session_id, owner_id, state, processed_pages, total_pages, expires_at
            FROM sessions ORDER BY created_at DESC LIMIT 10
            """
        ):
            print(row)

        print("\nJobs by state:")
        for row in conn.execute("SELECT state, COUNT(*) FROM jobs GROUP BY state ORDER BY state"):
            print(row)

        print("\nCleanup logs:")
        for row in conn.execute(
            """
            SELECT started_at, status, sessions_expired, jobs_expired, blobs_deleted
            FROM cleanup_logs ORDER BY started_at DESC LIMIT 5
            """
        ):
            print(row)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
