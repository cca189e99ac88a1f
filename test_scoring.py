"""Dashboard aggregation and grading."""
from quizya.scoring import (
    aggregate,
    attendance_by_student,
    exam_breakdown,
    exam_statistics,
    grade_answers,
    regrade_essays,
)


def test_aggregate_empty():
    assert aggregate([]) == {"count": 0, "average_score": 0}


def test_aggregate_null_score_counts_toward_mean():
    rows = [{"score": 80}, {"score": 90}, {"score": None}]
    assert aggregate(rows) == {"count": 3, "average_score": 57}


def test_aggregate_missing_score_key():
    assert aggregate([{"score": 40}, {}]) == {"count": 2, "average_score": 20}


def test_aggregate_rounds_half_to_even():
    # Python's round(): 82.5 -> 82, 83.5 -> 84
    assert aggregate([{"score": 82}, {"score": 83}])["average_score"] == 82
    assert aggregate([{"score": 83}, {"score": 84}])["average_score"] == 84


def test_aggregate_accepts_generators():
    assert aggregate(s for s in [{"score": 10.4}])["average_score"] == 10


def test_exam_breakdown_limits_and_averages():
    exams = [{"id": f"e{i}", "title": f"Exam {i}", "created_at": f"2026-01-0{i + 1}"} for i in range(7)]
    sessions = [
        {"exam_id": "e0", "score": 70},
        {"exam_id": "e0", "score": 91},
        {"exam_id": "e1", "score": None},
        {"exam_id": "e6", "score": 100},
    ]
    result = exam_breakdown(exams, sessions, limit=5)
    assert len(result) == 5
    assert result[0] == {"title": "Exam 0", "sessions": 2, "avgScore": 80, "date": "2026-01-01"}
    assert result[1]["sessions"] == 1 and result[1]["avgScore"] == 0
    assert result[2]["sessions"] == 0 and result[2]["avgScore"] == 0


def test_attendance_by_student():
    sessions = [
        {"id": "s1", "title": "Week 1", "created_at": "2026-01-01"},
        {"id": "s2", "title": "Week 2", "created_at": "2026-01-08"},
    ]
    records = [
        {"session_id": "s1", "student_name": "Ana", "student_email": "ana@x.com"},
        {"session_id": "s2", "student_name": "Ana", "student_email": "ANA@x.com"},
        {"session_id": "s1", "student_name": "Ben", "student_email": None},
        {"session_id": "s1", "student_name": "Ben", "student_email": None},
    ]
    result = attendance_by_student(sessions, records)
    assert [r["name"] for r in result] == ["Ana", "Ben"]
    ana, ben = result
    assert ana["totalAttended"] == 2 and ana["attendanceRate"] == 100
    assert ben["totalAttended"] == 1 and ben["attendanceRate"] == 50
    assert [h["attended"] for h in ben["sessionHistory"]] == [True, False]


def test_grade_answers_exact_match():
    questions = [
        {"id": "q1", "correct_answer": "B", "points": 2},
        {"id": "q2", "correct_answer": "True", "points": 1},
        {"id": "q3", "correct_answer": "Paris", "points": 3},
    ]
    score, graded = grade_answers(questions, {"q1": "B", "q2": "False"})
    assert score == 2
    assert [g["is_correct"] for g in graded] == [True, False, False]
    assert graded[2]["answer"] == ""


def test_grade_answers_leaves_essays_for_review():
    questions = [
        {"id": "q1", "question_type": "multiple_choice", "correct_answer": "B", "points": 2},
        {"id": "q2", "question_type": "essay", "correct_answer": "", "points": 5},
    ]
    score, graded = grade_answers(questions, {"q1": "B", "q2": ""})
    assert score == 2
    assert graded[1] == {"question_id": "q2", "answer": "", "is_correct": False, "points_earned": 0, "needs_review": True}
    # Even a word-for-word copy of the model answer is not auto-graded
    questions[1]["correct_answer"] = "Because of the ozone layer."
    _, graded = grade_answers(questions, {"q2": "Because of the ozone layer."})
    assert graded[1]["is_correct"] is False and graded[1]["needs_review"] is True


ESSAY_QUESTIONS = [
    {"id": "q1", "question_type": "short_answer", "points": 2},
    {"id": "q2", "question_type": "essay", "points": 5},
    {"id": "q3", "question_type": "essay", "points": 3},
]


def test_regrade_essays_awards_points_and_recomputes_total():
    answers = [
        {"question_id": "q1", "answer": "x", "is_correct": True, "points_earned": 2},
        {"question_id": "q2", "answer": "long", "is_correct": False, "points_earned": 0, "needs_review": True},
        {"question_id": "q3", "answer": "", "is_correct": False, "points_earned": 0, "needs_review": True},
    ]
    total, updated = regrade_essays(answers, ESSAY_QUESTIONS, {"q2": 4, "q3": 0})
    assert total == 6
    assert updated[1]["points_earned"] == 4 and updated[1]["is_correct"] is True
    assert updated[2]["points_earned"] == 0 and updated[2]["is_correct"] is False
    assert not any(a.get("needs_review") for a in updated)
    # Input rows are not mutated
    assert answers[1]["points_earned"] == 0


def test_regrade_essays_ignores_non_essays_and_clamps():
    answers = [
        {"question_id": "q1", "answer": "x", "is_correct": False, "points_earned": 0},
        {"question_id": "q2", "answer": "long", "is_correct": False, "points_earned": 0, "needs_review": True},
    ]
    total, updated = regrade_essays(answers, ESSAY_QUESTIONS, {"q1": 2, "q2": 50})
    assert updated[0]["points_earned"] == 0
    assert updated[1]["points_earned"] == 5
    assert total == 5


def test_exam_statistics():
    exam = {"id": "e1", "passing_score": 60}
    questions = [
        {"id": "q1", "question_text": "2+2", "points": 2},
        {"id": "q2", "question_text": "Sky?", "points": 3},
    ]
    sessions = [
        {"status": "completed", "score": 5, "total_points": 5, "answers": [
            {"question_id": "q1", "is_correct": True}, {"question_id": "q2", "is_correct": True}]},
        {"status": "completed", "score": 2, "total_points": 5, "answers": [
            {"question_id": "q1", "is_correct": True}, {"question_id": "q2", "is_correct": False}]},
        {"status": "completed", "score": 3, "total_points": 5, "answers": [
            {"question_id": "q2", "is_correct": True}]},
        {"status": "in_progress", "score": None, "total_points": 5, "answers": None},
    ]
    result = exam_statistics(exam, sessions, questions)
    assert result["statistics"] == {
        "totalAttempts": 4,
        "completedAttempts": 3,
        "avgScore": 3,
        "passedCount": 2,
        "failedCount": 1,
        "passPercentage": 67,
    }
    assert result["questionStats"] == [
        {"id": "q1", "question_text": "2+2", "correct_count": 2, "total_attempted": 2, "correct_percentage": 100, "points": 2},
        {"id": "q2", "question_text": "Sky?", "correct_count": 2, "total_attempted": 3, "correct_percentage": 67, "points": 3},
    ]


def test_exam_statistics_without_attempts():
    result = exam_statistics({"passing_score": 50}, [], [{"id": "q1", "question_text": "?", "points": 1}])
    assert result["statistics"]["passPercentage"] == 0
    assert result["statistics"]["failedCount"] == 0
    assert result["questionStats"][0]["correct_percentage"] == 0
