"""Input validation for form and API payloads."""
import re
from typing import Optional

from engine import ESSAY, MAX_NAME_LENGTH, MAX_STRING_LENGTH, QUESTION_TYPES

# Basic xxx@yyy.zzz shape only
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email) -> bool:
    if not email or not isinstance(email, str):
        return False
    return bool(EMAIL_RE.match(email.strip()))


def sanitize_string(value, max_length: int = MAX_STRING_LENGTH) -> str:
    """Trim and cut to max_length. Anything that is not a non-empty string becomes ''."""
    if not value or not isinstance(value, str):
        return ""
    return value.strip()[:max_length]


def is_valid_student_name(name) -> bool:
    """2 to MAX_NAME_LENGTH characters after trimming; longer names are rejected, not cut."""
    if not name or not isinstance(name, str):
        return False
    return 2 <= len(name.strip()) <= MAX_NAME_LENGTH


def validate_guest_info(name, email) -> Optional[str]:
    """First problem with a guest's name/email, or None if both are fine."""
    if not sanitize_string(name):
        return "Name is required"
    if not sanitize_string(email):
        return "Email is required"
    if not is_valid_email(email):
        return "Please enter a valid email address"
    return None


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_exam(payload: dict) -> Optional[str]:
    """First problem with an exam definition (title, duration, passing score), or None."""
    if not sanitize_string(payload.get("title")):
        return "Title is required"
    duration = payload.get("duration_minutes", 60)
    if not _is_number(duration) or duration <= 0:
        return "Duration must be a positive number of minutes"
    passing = payload.get("passing_score", 50)
    if not _is_number(passing) or not 0 <= passing <= 100:
        return "Passing score must be between 0 and 100"
    return None


def validate_question(question, position: int) -> Optional[str]:
    """First problem with one authored question, or None. position is 1-based for messages."""
    if not isinstance(question, dict):
        return f"Question {position} is malformed"
    if not sanitize_string(question.get("question_text")):
        return f"Question {position} needs text"
    qtype = question.get("question_type")
    if qtype not in QUESTION_TYPES:
        return f"Question {position} has an unknown type"
    if qtype == "multiple_choice":
        options = question.get("options")
        if not isinstance(options, list) or len(options) < 2:
            return f"Question {position} needs at least two options"
    if qtype != ESSAY and not sanitize_string(question.get("correct_answer")):
        return f"Question {position} needs a correct answer"
    points = question.get("points", 1)
    if points is not None and (not _is_number(points) or points < 0):
        return f"Question {position} has invalid points"
    return None


def error_response(message: str, status: int, **extra) -> dict:
    return {"body": {"error": message, **extra}, "status": status}


def ok_response(body: dict, status: int = 200) -> dict:
    return {"body": body, "status": status}
