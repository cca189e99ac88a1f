"""
Request handlers: check the signed-in user, query Supabase, shape a JSON body.

Every handler returns {"body": dict, "status": int}. Unexpected errors are
logged and mapped to 500 so the calling page never crashes.
"""
import logging
import secrets
import string
from datetime import datetime
from typing import Dict, Optional

import db
from engine import (
    GRADING_AUTO,
    GRADING_GRADED,
    GRADING_PENDING,
    MAX_NAME_LENGTH,
    RECENT_EXAMS_LIMIT,
    ROOM_CODE_ATTEMPTS,
    ROOM_CODE_LENGTH,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_NOT_STARTED,
)
from quizya.guest_session import GuestSessionData, GuestSessionResolver
from quizya.scoring import (
    aggregate,
    attendance_by_student,
    exam_breakdown,
    exam_statistics,
    grade_answers,
    regrade_essays,
)
from quizya.session_timing import has_auto_closed
from quizya.validation import (
    error_response,
    is_valid_email,
    is_valid_student_name,
    ok_response,
    sanitize_string,
    validate_exam,
    validate_guest_info,
    validate_question,
)

logger = logging.getLogger(__name__)

UNAUTHORIZED = "Unauthorized"


# ============= Analytics =============

def dashboard_analytics(client) -> Dict:
    """Exam count, completed-session count and average score for the signed-in teacher."""
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)
        exams = db.get_exams_by_teacher(client, user.id)
        sessions = db.get_completed_sessions(client, [e["id"] for e in exams])
        summary = aggregate(sessions)
        return ok_response({
            "totalExams": len(exams),
            "totalSessions": summary["count"],
            "avgScore": summary["average_score"],
        })
    except Exception as e:
        logger.error(f"Error fetching dashboard analytics: {e}")
        return error_response("Failed to fetch analytics", 500)


def teacher_analytics(client) -> Dict:
    """Dashboard numbers plus distinct students and a per-exam breakdown of recent exams."""
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)
        exams = db.get_exams_by_teacher(client, user.id)
        sessions = db.get_completed_sessions(
            client,
            [e["id"] for e in exams],
            columns="id, score, created_at, exam_id, student_id, guest_email",
        )
        summary = aggregate(sessions)
        students = {s.get("student_id") or s.get("guest_email") for s in sessions}
        students.discard(None)
        return ok_response({
            "totalExams": len(exams),
            "totalStudents": len(students),
            "totalSessions": summary["count"],
            "avgScore": summary["average_score"],
            "recentExams": exam_breakdown(exams, sessions, limit=RECENT_EXAMS_LIMIT),
        })
    except Exception as e:
        logger.error(f"Error fetching teacher analytics: {e}")
        return error_response("Failed to fetch analytics", 500)


def attendance_analytics(client) -> Dict:
    """Per-student attendance across all of the teacher's sessions."""
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)
        sessions = db.get_teacher_attendance_sessions(client, user.id)
        if not sessions:
            return ok_response({"analytics": [], "totalSessions": 0})
        records = db.get_attendance_records(client, [s["id"] for s in sessions])
        return ok_response({
            "analytics": attendance_by_student(sessions, records),
            "totalSessions": len(sessions),
        })
    except Exception as e:
        logger.error(f"Error in attendance analytics: {e}")
        return error_response("Internal server error", 500)


# ============= Attendance =============

def close_expired_attendance_sessions(client, now: Optional[datetime] = None) -> Dict:
    """End every active session of the teacher whose auto-close deadline has passed."""
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)
        closed = []
        for s in db.get_teacher_attendance_sessions(client, user.id):
            if not s.get("is_active"):
                continue
            if has_auto_closed(s.get("started_at"), s.get("auto_close_duration_minutes"), now=now):
                if db.end_attendance_session(client, s["id"]):
                    closed.append(s["id"])
        if closed:
            logger.info("Auto-closed %d attendance session(s)", len(closed))
        return ok_response({"closed": closed})
    except Exception as e:
        logger.error(f"Error closing expired attendance sessions: {e}")
        return error_response("Internal server error", 500)


def check_in(client, payload: Dict, now: Optional[datetime] = None) -> Dict:
    """Record a student's attendance in an open session."""
    session_id = sanitize_string(payload.get("sessionId"))
    student_name = sanitize_string(payload.get("studentName"))
    student_email = sanitize_string(payload.get("studentEmail")) or None

    if not session_id:
        return error_response("Session ID is required", 400)
    if not is_valid_student_name(student_name):
        return error_response("Student name must be between 2 and 100 characters", 400)
    if student_email and not is_valid_email(student_email):
        return error_response("Please enter a valid email address", 400)

    try:
        session = db.get_attendance_session(client, session_id)
        if not session:
            return error_response("Session not found", 404)
        if not session.get("is_active"):
            return error_response("This attendance session is closed", 409)
        if has_auto_closed(session.get("started_at"), session.get("auto_close_duration_minutes"), now=now):
            db.end_attendance_session(client, session_id)
            return error_response("This attendance session has auto-closed", 410)
        if db.has_checked_in(client, session_id, student_name, student_email):
            return error_response("Attendance already recorded", 409)

        record = db.create_attendance_record(client, session_id, student_name, student_email)
        if not record:
            return error_response("Failed to record attendance", 500)
        return ok_response({"record": record}, status=201)
    except Exception as e:
        logger.error(f"Error in attendance check-in: {e}")
        return error_response("Internal server error", 500)


# ============= Exams =============

def guest_join(client, admin_client, payload: Dict, resolver: Optional[GuestSessionResolver] = None) -> Dict:
    """
    Join an active exam by room code without an account.

    The exam lookup runs with the caller's client; session reads and writes use
    the service-role client because guests have no row-level identity. An
    existing session for the same exam and email is returned instead of a new one.
    """
    room_code = sanitize_string(payload.get("roomCode")).upper()
    guest_name = sanitize_string(payload.get("guestName"), MAX_NAME_LENGTH)
    guest_email = sanitize_string(payload.get("guestEmail"))

    if not room_code or not guest_name or not guest_email:
        return error_response("Room code, guest name, and guest email are required", 400)
    problem = validate_guest_info(guest_name, guest_email)
    if problem:
        return error_response(problem, 400)

    try:
        exam = db.get_active_exam_by_room_code(client, room_code)
        if not exam:
            return error_response("Invalid room code or exam not found", 404)

        session = db.find_guest_exam_session(admin_client, exam["id"], guest_email)
        message = "Returning to existing exam session"
        if not session:
            questions = db.get_questions_for_exam(admin_client, exam["id"], columns="points")
            total_points = sum((q.get("points") or 0) for q in questions)
            session = db.create_exam_session(admin_client, {
                "exam_id": exam["id"],
                "guest_name": guest_name,
                "guest_email": guest_email,
                "is_guest": True,
                "total_points": total_points,
                "status": STATUS_NOT_STARTED,
            })
            if not session:
                return error_response("Failed to create exam session", 500)
            message = "Successfully joined exam as guest"

        if resolver is not None:
            resolver.save_guest_session(GuestSessionData(
                sessionId=session["id"],
                examId=exam["id"],
                guestName=guest_name,
                guestEmail=guest_email,
            ))
        return ok_response({"exam": exam, "session": session, "message": message})
    except Exception as e:
        logger.error(f"Error in guest join: {e}")
        return error_response("Internal server error", 500)


def start_exam(client, session_id: str) -> Dict:
    """Move a not_started session to in_progress and stamp started_at. Idempotent."""
    try:
        session = db.get_exam_session(client, session_id)
        if not session:
            return error_response("Session not found", 404)
        if session.get("status") != STATUS_NOT_STARTED:
            return ok_response({"session": session})
        updated = db.update_exam_session(client, session_id, {
            "status": STATUS_IN_PROGRESS,
            "started_at": db.now_iso(),
        })
        if not updated:
            return error_response("Failed to start exam", 500)
        return ok_response({"session": updated})
    except Exception as e:
        logger.error(f"Error starting exam session {session_id}: {e}")
        return error_response("Internal server error", 500)


def submit_exam(client, session_id: str, answers: Dict[str, str], resolver: Optional[GuestSessionResolver] = None) -> Dict:
    """Grade and complete an exam session. Clears the guest record on success."""
    try:
        session = db.get_exam_session(client, session_id)
        if not session:
            return error_response("Session not found", 404)
        if session.get("status") == STATUS_COMPLETED:
            return error_response("Exam already submitted", 409)

        questions = db.get_questions_for_exam(client, session["exam_id"])
        score, graded = grade_answers(questions, answers)
        pending = any(g["needs_review"] for g in graded)
        updated = db.update_exam_session(client, session_id, {
            "status": STATUS_COMPLETED,
            "submitted_at": db.now_iso(),
            "answers": graded,
            "score": score,
            "grading_status": GRADING_PENDING if pending else GRADING_AUTO,
        })
        if not updated:
            return error_response("Failed to submit exam", 500)

        if resolver is not None:
            resolver.clear_guest_session()
        logger.info(f"Exam session {session_id} submitted: {score}/{session.get('total_points')}")
        return ok_response({"session": updated, "score": score, "totalPoints": session.get("total_points")})
    except Exception as e:
        logger.error(f"Error submitting exam session {session_id}: {e}")
        return error_response("Internal server error", 500)


# ============= Exam authoring =============

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _new_room_code(client) -> Optional[str]:
    for _ in range(ROOM_CODE_ATTEMPTS):
        code = "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
        if not db.room_code_taken(client, code):
            return code
    return None


def _owned_exam(client, user, exam_id) -> tuple:
    """(exam, None) when the user created the exam, else (None, error response)."""
    exam = db.get_exam(client, exam_id)
    if not exam:
        return None, error_response("Exam not found", 404)
    if exam.get("created_by") != user.id:
        return None, error_response(UNAUTHORIZED, 403)
    return exam, None


def list_exams(client) -> Dict:
    """All exams created by the signed-in teacher, newest first."""
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)
        exams = db.get_exams_by_teacher(
            client, user.id,
            columns="id, title, room_code, is_active, duration_minutes, passing_score, total_questions, created_at",
        )
        return ok_response({"exams": exams})
    except Exception as e:
        logger.error(f"Error fetching exams: {e}")
        return error_response("Failed to fetch exams", 500)


def create_exam(client, payload: Dict) -> Dict:
    """
    Create an exam and its questions for the signed-in teacher.

    The exam gets a fresh room code. Questions are stored in the order given,
    with points defaulting to 1. If the question insert fails part way the
    exam is still returned, with questionsFailed counting the rows lost.
    """
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)

        problem = validate_exam(payload)
        if problem:
            return error_response(problem, 400)
        questions = payload.get("questions") or []
        if not isinstance(questions, list):
            return error_response("Questions must be a list", 400)
        for i, q in enumerate(questions, 1):
            problem = validate_question(q, i)
            if problem:
                return error_response(problem, 400)

        room_code = _new_room_code(client)
        if not room_code:
            return error_response("Could not allocate a room code", 500)

        exam = db.create_exam(client, {
            "title": sanitize_string(payload.get("title")),
            "description": sanitize_string(payload.get("description"), 2000) or None,
            "duration_minutes": payload.get("duration_minutes", 60),
            "passing_score": payload.get("passing_score", 50),
            "is_active": bool(payload.get("is_active", True)),
            "total_questions": len(questions),
            "room_code": room_code,
            "created_by": user.id,
        })
        if not exam:
            return error_response("Failed to create exam", 500)

        rows = [
            {
                "exam_id": exam["id"],
                "question_text": q["question_text"].strip(),
                "question_type": q["question_type"],
                "options": q.get("options"),
                "correct_answer": sanitize_string(q.get("correct_answer")),
                "order_index": i,
                "points": q.get("points") or 1,
            }
            for i, q in enumerate(questions)
        ]
        created = db.create_questions(client, rows) if rows else []
        if len(created) < len(rows):
            logger.warning(f"Exam {exam['id']} created with {len(created)}/{len(rows)} questions")
        logger.info(f"Exam {exam['id']} created with room code {room_code}")
        return ok_response(
            {"exam": exam, "questions": created, "questionsFailed": len(rows) - len(created)},
            status=201,
        )
    except Exception as e:
        logger.error(f"Error creating exam: {e}")
        return error_response("Failed to create exam", 500)


def exam_results(client, exam_id: str) -> Dict:
    """Attempts, pass/fail statistics and per-question correctness for one of the teacher's exams."""
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)
        exam, problem = _owned_exam(client, user, exam_id)
        if problem:
            return problem
        sessions = db.get_exam_sessions_for_exam(client, exam_id)
        questions = db.get_questions_for_exam(client, exam_id)
        return ok_response({
            "exam": exam,
            "sessions": sessions,
            **exam_statistics(exam, sessions, questions),
        })
    except Exception as e:
        logger.error(f"Error fetching results for exam {exam_id}: {e}")
        return error_response("Failed to fetch exam results", 500)


def grade_essays(client, session_id: str, essay_grades) -> Dict:
    """
    Award teacher-assigned points to essay answers of a submitted session.

    essay_grades is a list of {"question_id", "points_earned"}. The session
    score is recomputed from every answer and grading_status becomes "graded".
    """
    try:
        user = db.get_current_user(client)
        if not user:
            return error_response(UNAUTHORIZED, 401)
        if not isinstance(essay_grades, list):
            return error_response("essay_grades must be a list", 400)
        grade_map = {}
        for g in essay_grades:
            points = g.get("points_earned") if isinstance(g, dict) else None
            if not isinstance(points, (int, float)) or isinstance(points, bool) or points < 0:
                return error_response("Each essay grade needs a question_id and non-negative points_earned", 400)
            grade_map[g.get("question_id")] = points

        session = db.get_exam_session(client, session_id)
        if not session:
            return error_response("Session not found", 404)
        _, problem = _owned_exam(client, user, session["exam_id"])
        if problem:
            return problem

        questions = db.get_questions_for_exam(client, session["exam_id"], columns="id, question_type, points")
        score, answers = regrade_essays(session.get("answers") or [], questions, grade_map)
        pending = any(a.get("needs_review") for a in answers)
        updated = db.update_exam_session(client, session_id, {
            "answers": answers,
            "score": score,
            "grading_status": GRADING_PENDING if pending else GRADING_GRADED,
            "updated_at": db.now_iso(),
        })
        if not updated:
            return error_response("Failed to update grades", 500)
        logger.info(f"Essays graded for session {session_id}: score {score}")
        return ok_response({"session": updated})
    except Exception as e:
        logger.error(f"Error grading essays for session {session_id}: {e}")
        return error_response("Failed to grade essays", 500)
