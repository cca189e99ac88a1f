"""
Check the Supabase connection and that every Quizya table is reachable.
Run after executing the SQL from init_db.py.

Run: python check_supabase.py
"""
import logging
import sys

from db import get_supabase_uncached
from engine import (
    ATTENDANCE_RECORDS_TABLE,
    ATTENDANCE_SESSIONS_TABLE,
    EXAM_SESSIONS_TABLE,
    EXAMS_TABLE,
    QUESTIONS_TABLE,
)

TABLES = (EXAMS_TABLE, QUESTIONS_TABLE, EXAM_SESSIONS_TABLE, ATTENDANCE_SESSIONS_TABLE, ATTENDANCE_RECORDS_TABLE)

logger = logging.getLogger(__name__)


def check_tables(client, tables=TABLES) -> dict:
    """{table: row count or None if the table could not be read}."""
    counts = {}
    for name in tables:
        try:
            response = client.table(name).select("id", count="exact").limit(1).execute()
            counts[name] = response.count if response.count is not None else len(response.data or [])
        except Exception as e:
            logger.error(f"{name}: {e}")
            counts[name] = None
    return counts


def main():
    print("Testing Supabase connection...")
    try:
        client = get_supabase_uncached()
    except ValueError as e:
        print(f"✗ {e}")
        print("Check .env has SUPABASE_URL and SUPABASE_KEY")
        sys.exit(1)
    print("✓ Client created successfully")

    counts = check_tables(client)
    for name, count in counts.items():
        if count is None:
            print(f"✗ {name} table missing or not readable")
        else:
            print(f"✓ {name} table exists (rows: {count})")

    if any(c is None for c in counts.values()):
        print("\nRun `python init_db.py` and paste the SQL into the Supabase SQL Editor.")
        sys.exit(1)
    print("\n=== All checks passed! ===")
    print("\nReady to run:")
    print("  streamlit run app.py")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    main()
