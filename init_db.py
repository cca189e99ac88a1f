"""Initialize Supabase schema for Quizya.

Run: python init_db.py            (print SQL to paste into the Supabase SQL Editor)
     python init_db.py --apply    (execute via an `exec_sql` RPC, if the project defines one)
"""
import argparse
import logging
import sys

SCHEMA_SQL = """
-- Exams created by teachers
CREATE TABLE IF NOT EXISTS exams (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title TEXT NOT NULL,
    description TEXT,
    duration_minutes INT NOT NULL DEFAULT 60,
    total_questions INT NOT NULL DEFAULT 0,
    passing_score INT NOT NULL DEFAULT 50,
    is_public BOOLEAN NOT NULL DEFAULT FALSE,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    room_code VARCHAR(12) UNIQUE,
    created_by UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Questions belonging to an exam
CREATE TABLE IF NOT EXISTS questions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    exam_id UUID NOT NULL REFERENCES exams(id) ON DELETE CASCADE,
    question_text TEXT NOT NULL,
    question_type VARCHAR(20) NOT NULL CHECK (question_type IN ('multiple_choice', 'true_false', 'short_answer', 'essay')),
    options JSONB,
    correct_answer TEXT NOT NULL,
    points INT NOT NULL DEFAULT 1,
    order_index INT NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- One attempt at an exam, by a student or a guest
CREATE TABLE IF NOT EXISTS exam_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    exam_id UUID NOT NULL REFERENCES exams(id) ON DELETE CASCADE,
    student_id UUID REFERENCES auth.users(id) ON DELETE SET NULL,
    guest_name TEXT,
    guest_email TEXT,
    is_guest BOOLEAN NOT NULL DEFAULT FALSE,
    started_at TIMESTAMPTZ,
    submitted_at TIMESTAMPTZ,
    score NUMERIC,
    total_points INT NOT NULL DEFAULT 0,
    status VARCHAR(20) NOT NULL DEFAULT 'not_started' CHECK (status IN ('not_started', 'in_progress', 'completed')),
    answers JSONB,
    grading_status VARCHAR(20) NOT NULL DEFAULT 'auto' CHECK (grading_status IN ('auto', 'pending', 'graded')),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Classroom attendance sessions (auto_close_duration_minutes = 0 disables auto-close)
CREATE TABLE IF NOT EXISTS attendance_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    teacher_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    module_name TEXT,
    started_at TIMESTAMPTZ DEFAULT NOW(),
    ended_at TIMESTAMPTZ,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    auto_close_duration_minutes INT NOT NULL DEFAULT 0 CHECK (auto_close_duration_minutes >= 0),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS attendance_records (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    session_id UUID NOT NULL REFERENCES attendance_sessions(id) ON DELETE CASCADE,
    student_name TEXT NOT NULL,
    student_email TEXT,
    check_in_time TIMESTAMPTZ DEFAULT NOW()
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_exams_created_by ON exams(created_by);
CREATE INDEX IF NOT EXISTS idx_questions_exam_id ON questions(exam_id);
CREATE INDEX IF NOT EXISTS idx_exam_sessions_exam_id ON exam_sessions(exam_id);
CREATE INDEX IF NOT EXISTS idx_exam_sessions_guest_email ON exam_sessions(guest_email);
CREATE INDEX IF NOT EXISTS idx_attendance_sessions_teacher_id ON attendance_sessions(teacher_id);
CREATE INDEX IF NOT EXISTS idx_attendance_records_session_id ON attendance_records(session_id)
"""

logger = logging.getLogger(__name__)


def split_statements(sql: str) -> list[str]:
    """Split a script on ';' and drop empty and comment-only chunks."""
    statements = []
    for chunk in sql.split(";"):
        lines = [ln for ln in chunk.strip().splitlines() if ln.strip() and not ln.strip().startswith("--")]
        if lines:
            statements.append("\n".join(lines))
    return statements


def apply_schema(client, sql: str = SCHEMA_SQL) -> int:
    """Run each statement through the exec_sql RPC. Returns the number executed."""
    statements = split_statements(sql)
    for i, stmt in enumerate(statements, 1):
        logger.info("Executing statement %d/%d: %s...", i, len(statements), stmt.splitlines()[0][:60])
        client.rpc("exec_sql", {"query": stmt}).execute()
    return len(statements)


def main():
    parser = argparse.ArgumentParser(description="Create the Quizya tables in Supabase.")
    parser.add_argument("--apply", action="store_true", help="Execute via the exec_sql RPC instead of printing")
    args = parser.parse_args()

    if not args.apply:
        print("Run this SQL in Supabase SQL Editor (https://app.supabase.com > SQL Editor > New Query):\n")
        print(SCHEMA_SQL)
        return

    from db import get_supabase_uncached

    try:
        n = apply_schema(get_supabase_uncached())
    except Exception as e:
        logger.error(f"Schema initialization failed: {e}")
        print("\nRun without --apply and paste the SQL into the Supabase SQL Editor instead.")
        sys.exit(1)
    print(f"\n✓ Schema initialization complete ({n} statements)")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    main()
