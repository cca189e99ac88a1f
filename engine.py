"""Shared constants: tables, statuses, storage key. No UI."""
# Auto-close: a duration of 0 (or unset) means the session never auto-closes.

EXAMS_TABLE = "exams"
QUESTIONS_TABLE = "questions"
EXAM_SESSIONS_TABLE = "exam_sessions"
ATTENDANCE_SESSIONS_TABLE = "attendance_sessions"
ATTENDANCE_RECORDS_TABLE = "attendance_records"

STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

GUEST_SESSION_KEY = "guestExamSession"

RECENT_EXAMS_LIMIT = 5
DEFAULT_AUTO_CLOSE_MINUTES = 0
MAX_NAME_LENGTH = 100
MAX_STRING_LENGTH = 255

QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer", "essay")
ESSAY = "essay"
GRADING_PENDING = "pending"
GRADING_AUTO = "auto"
GRADING_GRADED = "graded"

ROOM_CODE_LENGTH = 6
ROOM_CODE_ATTEMPTS = 10
