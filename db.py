"""Supabase CRUD for exams, exam sessions and attendance. Client is cached via Streamlit."""
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

import streamlit as st
from dotenv import load_dotenv
from supabase import create_client, Client

from engine import (
    ATTENDANCE_RECORDS_TABLE,
    ATTENDANCE_SESSIONS_TABLE,
    DEFAULT_AUTO_CLOSE_MINUTES,
    EXAM_SESSIONS_TABLE,
    EXAMS_TABLE,
    QUESTIONS_TABLE,
    STATUS_COMPLETED,
)

load_dotenv()

logger = logging.getLogger(__name__)


def _env_client(key_var: str = "SUPABASE_KEY") -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get(key_var)
    if not url or not key:
        raise ValueError(f"SUPABASE_URL and {key_var} must be set")
    return create_client(url, key)


@st.cache_resource
def get_supabase() -> Client:
    """Anon client shared by the Streamlit process (public reads, sign-in)."""
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts (no Streamlit context)."""
    return _env_client()


def get_admin_client() -> Client:
    """Service-role client. Bypasses row-level security; only used for guest joins."""
    return _env_client("SUPABASE_SERVICE_ROLE_KEY")


def get_user_client() -> Client:
    """Per-tab client holding the signed-in teacher's auth session."""
    if "supabase_user_client" not in st.session_state:
        st.session_state["supabase_user_client"] = _env_client()
    return st.session_state["supabase_user_client"]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(response) -> Optional[Dict]:
    data = response.data or []
    return data[0] if data else None


# --- Auth ---

def get_current_user(client: Client):
    """Signed-in user or None. Auth errors are treated as signed out."""
    try:
        response = client.auth.get_user()
    except Exception as e:
        logger.warning(f"Could not resolve current user: {e}")
        return None
    return getattr(response, "user", None) if response else None


def sign_in(client: Client, email: str, password: str):
    response = client.auth.sign_in_with_password({"email": email, "password": password})
    return response.user


def sign_out(client: Client) -> None:
    try:
        client.auth.sign_out()
    except Exception as e:
        logger.warning(f"Sign-out failed: {e}")


# --- Exams ---

def get_exams_by_teacher(client: Client, teacher_id: UUID | str, columns: str = "id, title, created_at") -> List[Dict]:
    try:
        response = (
            client.table(EXAMS_TABLE)
            .select(columns)
            .eq("created_by", str(teacher_id))
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []
    except Exception as e:
        logger.error(f"Error fetching exams for teacher {teacher_id}: {e}")
        return []


def get_exam(client: Client, exam_id: UUID | str) -> Optional[Dict]:
    try:
        return _first(client.table(EXAMS_TABLE).select("*").eq("id", str(exam_id)).limit(1).execute())
    except Exception as e:
        logger.error(f"Error fetching exam {exam_id}: {e}")
        return None


def get_active_exam_by_room_code(client: Client, room_code: str) -> Optional[Dict]:
    try:
        response = (
            client.table(EXAMS_TABLE)
            .select("*")
            .eq("room_code", room_code)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        return _first(response)
    except Exception as e:
        logger.error(f"Error looking up room code {room_code}: {e}")
        return None


def get_questions_for_exam(client: Client, exam_id: UUID | str, columns: str = "*") -> List[Dict]:
    try:
        response = (
            client.table(QUESTIONS_TABLE)
            .select(columns)
            .eq("exam_id", str(exam_id))
            .order("order_index")
            .execute()
        )
        return response.data or []
    except Exception as e:
        logger.error(f"Error fetching questions for exam {exam_id}: {e}")
        return []


def create_exam(client: Client, row: Dict) -> Optional[Dict]:
    try:
        return _first(client.table(EXAMS_TABLE).insert(row).execute())
    except Exception as e:
        logger.error(f"Error creating exam: {e}")
        return None


def create_questions(client: Client, rows: List[Dict], chunk_size: int = 200) -> List[Dict]:
    """Bulk insert questions in chunks. Returns the rows that were stored."""
    created = []
    n_chunks = (len(rows) + chunk_size - 1) // chunk_size
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        try:
            response = client.table(QUESTIONS_TABLE).insert(chunk).execute()
            created.extend(response.data or [])
            logger.info("Inserted question chunk %d/%d (%d rows)", i // chunk_size + 1, n_chunks, len(chunk))
        except Exception as e:
            logger.error(f"Error inserting question chunk: {e}")
    return created


def room_code_taken(client: Client, room_code: str) -> bool:
    try:
        response = client.table(EXAMS_TABLE).select("id").eq("room_code", room_code).limit(1).execute()
        return bool(response.data)
    except Exception as e:
        logger.error(f"Error checking room code {room_code}: {e}")
        return False


# --- Exam sessions ---

def get_completed_sessions(client: Client, exam_ids: List[str], columns: str = "id, score, created_at, exam_id") -> List[Dict]:
    """Completed exam sessions for the given exams. Empty input short-circuits."""
    if not exam_ids:
        return []
    try:
        response = (
            client.table(EXAM_SESSIONS_TABLE)
            .select(columns)
            .in_("exam_id", [str(i) for i in exam_ids])
            .eq("status", STATUS_COMPLETED)
            .execute()
        )
        return response.data or []
    except Exception as e:
        logger.error(f"Error fetching completed sessions: {e}")
        return []


def find_guest_exam_session(client: Client, exam_id: UUID | str, guest_email: str) -> Optional[Dict]:
    try:
        response = (
            client.table(EXAM_SESSIONS_TABLE)
            .select("*")
            .eq("exam_id", str(exam_id))
            .eq("guest_email", guest_email)
            .eq("is_guest", True)
            .limit(1)
            .execute()
        )
        return _first(response)
    except Exception as e:
        logger.error(f"Error looking up guest session: {e}")
        return None


def get_exam_session(client: Client, session_id: UUID | str) -> Optional[Dict]:
    try:
        return _first(client.table(EXAM_SESSIONS_TABLE).select("*").eq("id", str(session_id)).limit(1).execute())
    except Exception as e:
        logger.error(f"Error fetching exam session {session_id}: {e}")
        return None


def create_exam_session(client: Client, row: Dict) -> Optional[Dict]:
    try:
        return _first(client.table(EXAM_SESSIONS_TABLE).insert(row).execute())
    except Exception as e:
        logger.error(f"Error creating exam session: {e}")
        return None


def update_exam_session(client: Client, session_id: UUID | str, updates: Dict) -> Optional[Dict]:
    try:
        return _first(client.table(EXAM_SESSIONS_TABLE).update(updates).eq("id", str(session_id)).execute())
    except Exception as e:
        logger.error(f"Error updating exam session {session_id}: {e}")
        return None


def get_exam_sessions_for_exam(client: Client, exam_id: UUID | str) -> List[Dict]:
    """Every attempt at an exam, newest first."""
    try:
        response = (
            client.table(EXAM_SESSIONS_TABLE)
            .select("*")
            .eq("exam_id", str(exam_id))
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []
    except Exception as e:
        logger.error(f"Error fetching sessions for exam {exam_id}: {e}")
        return []


# --- Attendance ---

def create_attendance_session(
    client: Client,
    teacher_id: UUID | str,
    title: str,
    module_name: str | None = None,
    auto_close_duration_minutes: int = DEFAULT_AUTO_CLOSE_MINUTES,
) -> Optional[Dict]:
    row = {
        "teacher_id": str(teacher_id),
        "title": title,
        "module_name": module_name,
        "auto_close_duration_minutes": auto_close_duration_minutes or DEFAULT_AUTO_CLOSE_MINUTES,
        "is_active": True,
        "started_at": now_iso(),
    }
    try:
        return _first(client.table(ATTENDANCE_SESSIONS_TABLE).insert(row).execute())
    except Exception as e:
        logger.error(f"Error creating attendance session: {e}")
        return None


def get_attendance_session(client: Client, session_id: UUID | str) -> Optional[Dict]:
    try:
        return _first(client.table(ATTENDANCE_SESSIONS_TABLE).select("*").eq("id", str(session_id)).limit(1).execute())
    except Exception as e:
        logger.error(f"Error fetching attendance session {session_id}: {e}")
        return None


def get_teacher_attendance_sessions(client: Client, teacher_id: UUID | str) -> List[Dict]:
    try:
        response = (
            client.table(ATTENDANCE_SESSIONS_TABLE)
            .select("*")
            .eq("teacher_id", str(teacher_id))
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []
    except Exception as e:
        logger.error(f"Error fetching attendance sessions for teacher {teacher_id}: {e}")
        return []


def end_attendance_session(client: Client, session_id: UUID | str) -> Optional[Dict]:
    updates = {"is_active": False, "ended_at": now_iso()}
    try:
        return _first(client.table(ATTENDANCE_SESSIONS_TABLE).update(updates).eq("id", str(session_id)).execute())
    except Exception as e:
        logger.error(f"Error ending attendance session {session_id}: {e}")
        return None


def get_attendance_records(client: Client, session_ids: List[str]) -> List[Dict]:
    if not session_ids:
        return []
    try:
        response = (
            client.table(ATTENDANCE_RECORDS_TABLE)
            .select("*")
            .in_("session_id", [str(i) for i in session_ids])
            .order("check_in_time", desc=True)
            .execute()
        )
        return response.data or []
    except Exception as e:
        logger.error(f"Error fetching attendance records: {e}")
        return []


def has_checked_in(client: Client, session_id: UUID | str, student_name: str, student_email: str | None = None) -> bool:
    """True if a record for this student already exists in the session."""
    try:
        q = (
            client.table(ATTENDANCE_RECORDS_TABLE)
            .select("id", count="exact")
            .eq("session_id", str(session_id))
            .eq("student_name", student_name)
        )
        if student_email:
            q = q.eq("student_email", student_email)
        response = q.execute()
        count = response.count if response.count is not None else len(response.data or [])
        return count > 0
    except Exception as e:
        logger.error(f"Error checking duplicate attendance: {e}")
        return False


def create_attendance_record(client: Client, session_id: UUID | str, student_name: str, student_email: str | None = None) -> Optional[Dict]:
    row = {
        "session_id": str(session_id),
        "student_name": student_name,
        "student_email": student_email,
        "check_in_time": now_iso(),
    }
    try:
        return _first(client.table(ATTENDANCE_RECORDS_TABLE).insert(row).execute())
    except Exception as e:
        logger.error(f"Error creating attendance record: {e}")
        return None
