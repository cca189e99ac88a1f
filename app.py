"""Quizya: exams, attendance and analytics on Supabase."""
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

import db
from engine import ESSAY, GRADING_PENDING, QUESTION_TYPES, STATUS_COMPLETED
from quizya import handlers
from quizya.guest_session import GuestSessionResolver, default_storage
from quizya.session_timing import auto_close_countdown, has_auto_closed, remaining_time

PAGES = ["Dashboard", "Exams", "Attendance", "Check In", "Join Exam", "Take Exam"]

st.set_page_config(page_title="Quizya", layout="wide")
st.sidebar.title("Quizya")
default_page = st.query_params.get("page", "Dashboard")
if default_page not in PAGES:
    default_page = "Dashboard"
page = st.sidebar.radio("Navigate", PAGES, index=PAGES.index(default_page), label_visibility="collapsed")

guest = GuestSessionResolver(default_storage())

# ----- Teacher sign-in -----
try:
    user_client = db.get_user_client()
    user = db.get_current_user(user_client)
except ValueError as e:
    st.error(f"Supabase is not configured. Check .env (SUPABASE_URL, SUPABASE_KEY). {e}")
    st.stop()

with st.sidebar:
    st.divider()
    if user:
        st.caption(f"Signed in as {user.email}")
        if st.button("Sign out"):
            db.sign_out(user_client)
            st.rerun()
    elif page in ("Dashboard", "Exams", "Attendance"):
        with st.form("sign_in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Sign in"):
                try:
                    db.sign_in(user_client, email, password)
                    st.rerun()
                except Exception as e:
                    st.error(f"Sign-in failed: {e}")


def _require_teacher():
    if not user:
        st.info("Sign in from the sidebar to continue.")
        st.stop()


def _format_remaining(td):
    m, s = divmod(int(td.total_seconds()), 60)
    return f"{m}:{s:02d}"


# ----- Dashboard -----
if page == "Dashboard":
    st.header("Dashboard")
    _require_teacher()
    result = handlers.teacher_analytics(user_client)
    if result["status"] != 200:
        st.error(result["body"].get("error", "Failed to fetch analytics"))
        st.stop()
    stats = result["body"]
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Exams", stats["totalExams"])
    with col2:
        st.metric("Completed sessions", stats["totalSessions"])
    with col3:
        st.metric("Students", stats["totalStudents"])
    with col4:
        st.metric("Average score", stats["avgScore"])

    st.subheader("Recent exams")
    if stats["recentExams"]:
        st.dataframe(stats["recentExams"], use_container_width=True)
    else:
        st.caption("No exams yet.")

    st.subheader("Attendance")
    attendance = handlers.attendance_analytics(user_client)
    if attendance["status"] == 200 and attendance["body"]["analytics"]:
        rows = [
            {
                "Student": a["name"],
                "Email": a["email"] or "N/A",
                "Attended": f"{a['totalAttended']}/{attendance['body']['totalSessions']}",
                "Rate %": round(a["attendanceRate"], 1),
            }
            for a in attendance["body"]["analytics"]
        ]
        st.dataframe(rows, use_container_width=True)
    else:
        st.caption("No attendance recorded yet.")

# ----- Exams (teacher) -----
elif page == "Exams":
    st.header("Exams")
    _require_teacher()

    with st.expander("Create an exam", expanded=False):
        n_questions = st.number_input("Number of questions", min_value=1, max_value=50, value=3, step=1)
        with st.form("new_exam"):
            title = st.text_input("Title")
            description = st.text_area("Description")
            col1, col2 = st.columns(2)
            with col1:
                duration = st.number_input("Duration (minutes)", min_value=1, max_value=600, value=60)
            with col2:
                passing = st.number_input("Passing score (%)", min_value=0, max_value=100, value=50)
            questions = []
            for i in range(int(n_questions)):
                st.markdown(f"**Question {i + 1}**")
                text = st.text_input("Question", key=f"q_text_{i}")
                qtype = st.selectbox("Type", QUESTION_TYPES, key=f"q_type_{i}")
                options = st.text_input("Options (comma-separated, multiple choice only)", key=f"q_opts_{i}")
                correct = st.text_input("Correct answer (leave blank for essays)", key=f"q_correct_{i}")
                points = st.number_input("Points", min_value=1, max_value=100, value=1, key=f"q_points_{i}")
                questions.append({
                    "question_text": text,
                    "question_type": qtype,
                    "options": [o.strip() for o in options.split(",") if o.strip()] if qtype == "multiple_choice" else None,
                    "correct_answer": correct,
                    "points": int(points),
                })
            if st.form_submit_button("Create exam", type="primary"):
                result = handlers.create_exam(user_client, {
                    "title": title,
                    "description": description,
                    "duration_minutes": int(duration),
                    "passing_score": int(passing),
                    "questions": questions,
                })
                if result["status"] == 201:
                    body = result["body"]
                    st.success(f"Exam created. Room code: {body['exam']['room_code']}")
                    if body["questionsFailed"]:
                        st.warning(f"{body['questionsFailed']} question(s) could not be saved")
                else:
                    st.error(result["body"]["error"])

    listing = handlers.list_exams(user_client)
    if listing["status"] != 200:
        st.error(listing["body"].get("error", "Failed to fetch exams"))
        st.stop()
    if not listing["body"]["exams"]:
        st.caption("No exams yet.")
    for exam in listing["body"]["exams"]:
        state = "active" if exam.get("is_active") else "inactive"
        with st.expander(f"{exam.get('title')} · room {exam.get('room_code') or 'n/a'} · {state}"):
            results = handlers.exam_results(user_client, exam["id"])
            if results["status"] != 200:
                st.error(results["body"].get("error", "Failed to fetch exam results"))
                continue
            stats = results["body"]["statistics"]
            col1, col2, col3, col4 = st.columns(4)
            with col1:
                st.metric("Attempts", stats["totalAttempts"])
            with col2:
                st.metric("Completed", stats["completedAttempts"])
            with col3:
                st.metric("Average score", stats["avgScore"])
            with col4:
                st.metric("Pass rate %", stats["passPercentage"])
            if results["body"]["questionStats"]:
                st.dataframe(
                    [
                        {
                            "Question": q["question_text"],
                            "Correct": f"{q['correct_count']}/{q['total_attempted']}",
                            "Correct %": q["correct_percentage"],
                        }
                        for q in results["body"]["questionStats"]
                    ],
                    use_container_width=True,
                )

            essays = {q["id"]: q for q in db.get_questions_for_exam(user_client, exam["id"]) if q.get("question_type") == ESSAY}
            for s in results["body"]["sessions"]:
                if s.get("grading_status") != GRADING_PENDING:
                    continue
                who = s.get("guest_name") or s.get("guest_email") or s.get("student_id")
                st.markdown(f"**Essays awaiting grading: {who}**")
                with st.form(f"grade_{s['id']}"):
                    grades = []
                    for ans in s.get("answers") or []:
                        q = essays.get(ans.get("question_id"))
                        if not q:
                            continue
                        st.caption(q.get("question_text"))
                        st.write(ans.get("answer") or "(no answer)")
                        awarded = st.number_input(
                            "Points", min_value=0, max_value=int(q.get("points") or 0),
                            value=0, key=f"grade_{s['id']}_{q['id']}",
                        )
                        grades.append({"question_id": q["id"], "points_earned": int(awarded)})
                    if st.form_submit_button("Save grades"):
                        graded = handlers.grade_essays(user_client, s["id"], grades)
                        if graded["status"] == 200:
                            st.success(f"Saved. New score: {graded['body']['session'].get('score')}")
                        else:
                            st.error(graded["body"]["error"])

# ----- Attendance (teacher) -----
elif page == "Attendance":
    st.header("Attendance")
    _require_teacher()

    # Every rerun doubles as the auto-close poll
    closed = handlers.close_expired_attendance_sessions(user_client)
    if closed["status"] == 200 and closed["body"]["closed"]:
        st.toast(f"Auto-closed {len(closed['body']['closed'])} session(s)")

    with st.expander("Start a new session", expanded=False):
        with st.form("new_attendance_session"):
            title = st.text_input("Title")
            module_name = st.text_input("Module")
            auto_close = st.number_input("Auto-close after (minutes, 0 = never)", min_value=0, max_value=600, value=0, step=5)
            if st.form_submit_button("Start session", type="primary"):
                if not title.strip():
                    st.error("Title is required")
                else:
                    created = db.create_attendance_session(user_client, user.id, title.strip(), module_name.strip() or None, int(auto_close))
                    if created:
                        st.success(f"Session started. Share this ID with students: {created['id']}")
                    else:
                        st.error("Failed to create attendance session")

    if st.button("Refresh"):
        st.rerun()

    sessions = db.get_teacher_attendance_sessions(user_client, user.id)
    if not sessions:
        st.caption("No attendance sessions yet.")
    records = db.get_attendance_records(user_client, [s["id"] for s in sessions])
    for s in sessions:
        session_records = [r for r in records if r.get("session_id") == s["id"]]
        label = f"{s.get('title')} ({s.get('module_name') or 'no module'}) · {len(session_records)} present"
        with st.expander(label, expanded=bool(s.get("is_active"))):
            st.caption(f"Session ID: {s['id']}")
            if s.get("is_active"):
                st.success("Open")
                countdown = auto_close_countdown(s)
                if countdown:
                    st.caption(countdown)
                if st.button("End session", key=f"end_{s['id']}"):
                    db.end_attendance_session(user_client, s["id"])
                    st.rerun()
            else:
                st.info(f"Closed {s.get('ended_at') or ''}")
            if session_records:
                st.dataframe(
                    [
                        {"Name": r["student_name"], "Email": r.get("student_email") or "N/A", "Checked in": r.get("check_in_time")}
                        for r in session_records
                    ],
                    use_container_width=True,
                )

# ----- Check In (student) -----
elif page == "Check In":
    st.header("Check In")
    default_session = st.query_params.get("session", "")
    with st.form("check_in"):
        session_id = st.text_input("Session ID", value=default_session)
        student_name = st.text_input("Your name")
        student_email = st.text_input("Email (optional)")
        if st.form_submit_button("Check in", type="primary"):
            result = handlers.check_in(
                db.get_supabase(),
                {"sessionId": session_id, "studentName": student_name, "studentEmail": student_email},
            )
            if result["status"] == 201:
                st.success("Attendance recorded.")
            else:
                st.error(result["body"]["error"])

# ----- Join Exam (guest) -----
elif page == "Join Exam":
    st.header("Join Exam")
    st.caption("Enter the room code from your teacher. No account needed.")
    with st.form("guest_join"):
        room_code = st.text_input("Room code")
        guest_name = st.text_input("Name")
        guest_email = st.text_input("Email")
        if st.form_submit_button("Join", type="primary"):
            try:
                admin = db.get_admin_client()
            except ValueError as e:
                st.error(f"Guest joins are not configured: {e}")
                st.stop()
            result = handlers.guest_join(
                db.get_supabase(),
                admin,
                {"roomCode": room_code, "guestName": guest_name, "guestEmail": guest_email},
                resolver=guest,
            )
            if result["status"] == 200:
                st.success(result["body"]["message"])
                st.query_params["page"] = "Take Exam"
                st.rerun()
            else:
                st.error(result["body"]["error"])

# ----- Take Exam (guest) -----
elif page == "Take Exam":
    st.header("Take Exam")
    guest_data = guest.get_guest_session()
    if not guest_data:
        st.info("Join an exam with a room code first.")
        st.stop()

    try:
        admin = db.get_admin_client()
    except ValueError as e:
        st.error(f"Guest exams are not configured: {e}")
        st.stop()

    exam = db.get_exam(admin, guest_data.examId)
    started = handlers.start_exam(admin, guest_data.sessionId)
    if not exam or started["status"] != 200:
        st.error("Could not load your exam session.")
        guest.clear_guest_session()
        st.stop()
    session = started["body"]["session"]
    if session.get("status") == STATUS_COMPLETED:
        st.success(f"Already submitted. Score: {session.get('score')} / {session.get('total_points')}")
        guest.clear_guest_session()
        st.stop()

    st.subheader(exam.get("title", "Exam"))
    st.caption(f"Taking as {guest_data.guestName} ({guest_data.guestEmail})")

    if "exam_answers" not in st.session_state:
        st.session_state["exam_answers"] = {}
    answers = st.session_state["exam_answers"]

    left = remaining_time(session.get("started_at"), exam.get("duration_minutes"))
    if left is not None:
        st.sidebar.metric("Time left", _format_remaining(left))

    # Auto-submit when time runs out
    if has_auto_closed(session.get("started_at"), exam.get("duration_minutes")):
        result = handlers.submit_exam(admin, guest_data.sessionId, answers, resolver=guest)
        if result["status"] == 200:
            st.warning(f"Time is up. Submitted with score {result['body']['score']} / {result['body']['totalPoints']}")
        else:
            st.error(result["body"]["error"])
        st.session_state.pop("exam_answers", None)
        st.stop()

    questions = db.get_questions_for_exam(admin, exam["id"])
    for i, q in enumerate(questions, 1):
        st.markdown(f"**{i}. {q.get('question_text', '')}** ({q.get('points', 0)} pts)")
        key = f"answer_{q['id']}"
        if q.get("question_type") in ("multiple_choice", "true_false"):
            raw_options = q.get("options") or (["True", "False"] if q.get("question_type") == "true_false" else [])
            # Options are either plain strings or {"id", "text"} objects
            labels = {
                (o.get("id") if isinstance(o, dict) else o): (o.get("text") if isinstance(o, dict) else o)
                for o in raw_options
            }
            options = list(labels)
            current = answers.get(q["id"])
            choice = st.radio(
                "Answer",
                options,
                format_func=lambda v, labels=labels: labels.get(v, v),
                index=options.index(current) if current in options else None,
                key=key,
                label_visibility="collapsed",
            )
            if choice is not None:
                answers[q["id"]] = choice
        else:
            answers[q["id"]] = st.text_area("Answer", value=answers.get(q["id"], ""), key=key, label_visibility="collapsed")

    if st.button("Submit exam", type="primary"):
        result = handlers.submit_exam(admin, guest_data.sessionId, answers, resolver=guest)
        if result["status"] == 200:
            st.success(f"Exam submitted. Score: {result['body']['score']} / {result['body']['totalPoints']}")
            st.session_state.pop("exam_answers", None)
        else:
            st.error(result["body"]["error"])
