"""
Dashboard aggregation, grading and per-exam statistics over exam sessions
and attendance records. Nothing here queries Supabase.
"""
import logging
from typing import Dict, Iterable, List

from engine import ESSAY, STATUS_COMPLETED

logger = logging.getLogger(__name__)


def aggregate(records: Iterable[Dict]) -> Dict[str, int]:
    """
    Count and rounded mean score of the given session rows.

    A missing or null score counts as 0 but the row still counts toward the mean.
    Uses Python's round(), i.e. ties go to the even integer.
    """
    rows = list(records)
    count = len(rows)
    if count == 0:
        return {"count": 0, "average_score": 0}
    total = sum((row.get("score") or 0) for row in rows)
    return {"count": count, "average_score": int(round(total / count))}


def exam_breakdown(exams: List[Dict], sessions: List[Dict], limit: int = 5) -> List[Dict]:
    """Per-exam session count and average score for the first `limit` exams."""
    by_exam: Dict[str, List[Dict]] = {}
    for s in sessions:
        by_exam.setdefault(s.get("exam_id"), []).append(s)

    results = []
    for exam in exams[:limit]:
        summary = aggregate(by_exam.get(exam.get("id"), []))
        results.append({
            "title": exam.get("title"),
            "sessions": summary["count"],
            "avgScore": summary["average_score"],
            "date": exam.get("created_at"),
        })
    return results


def attendance_by_student(sessions: List[Dict], records: List[Dict]) -> List[Dict]:
    """
    Aggregate attendance records per student across a teacher's sessions.

    Students are keyed by email when present, otherwise by name.
    attendanceRate is a percentage of all sessions passed in.
    """
    stats: Dict[str, Dict] = {}
    for rec in records:
        key = (rec.get("student_email") or rec.get("student_name") or "").strip().lower()
        if not key:
            continue
        if key not in stats:
            stats[key] = {
                "studentId": key,
                "name": rec.get("student_name") or "Unknown",
                "email": rec.get("student_email"),
                "sessionsAttended": [],
                "totalAttended": 0,
            }
        if rec.get("session_id") in stats[key]["sessionsAttended"]:
            continue
        stats[key]["sessionsAttended"].append(rec.get("session_id"))
        stats[key]["totalAttended"] += 1

    total_sessions = len(sessions)
    analytics = []
    for student in stats.values():
        rate = (student["totalAttended"] / total_sessions * 100) if total_sessions else 0
        history = [
            {
                "sessionId": s.get("id"),
                "sessionName": s.get("title"),
                "date": s.get("created_at"),
                "attended": s.get("id") in student["sessionsAttended"],
            }
            for s in sessions
        ]
        analytics.append({**student, "attendanceRate": rate, "sessionHistory": history})

    analytics.sort(key=lambda x: x["attendanceRate"], reverse=True)
    logger.debug("Aggregated attendance for %d students over %d sessions", len(analytics), total_sessions)
    return analytics


def grade_answers(questions: List[Dict], answers: Dict[str, str]):
    """
    Score submitted answers against each question's correct_answer (exact match).

    Essay answers are not auto-graded: they earn 0 and are flagged
    needs_review until a teacher awards points with regrade_essays().
    Returns (points_earned, per-question breakdown). Unanswered questions earn 0.
    """
    score = 0
    graded = []
    for q in questions:
        answer = answers.get(q.get("id"), "")
        needs_review = q.get("question_type") == ESSAY
        is_correct = not needs_review and answer != "" and answer == q.get("correct_answer")
        points = (q.get("points") or 0) if is_correct else 0
        score += points
        graded.append({
            "question_id": q.get("id"),
            "answer": answer,
            "is_correct": is_correct,
            "points_earned": points,
            "needs_review": needs_review,
        })
    return score, graded


def regrade_essays(answers: List[Dict], questions: List[Dict], essay_grades: Dict[str, float]):
    """
    Apply teacher-awarded points to essay answers and recompute the total.

    Grades for non-essay questions are ignored. Awarded points are clamped to
    0..question points. Returns (total score, updated answers).
    """
    by_id = {q.get("id"): q for q in questions}
    updated = []
    for ans in answers or []:
        q = by_id.get(ans.get("question_id"))
        if q and q.get("question_type") == ESSAY and ans.get("question_id") in essay_grades:
            max_points = q.get("points") or 0
            points = min(max(essay_grades[ans["question_id"]], 0), max_points)
            ans = {**ans, "points_earned": points, "is_correct": points > 0, "needs_review": False}
        updated.append(ans)
    total = sum((a.get("points_earned") or 0) for a in updated)
    return total, updated


def exam_statistics(exam: Dict, sessions: List[Dict], questions: List[Dict]) -> Dict:
    """
    Attempt, pass/fail and per-question correctness figures for one exam.

    A completed session passes when round(score / total_points * 100) reaches
    the exam's passing_score; sessions with no total_points count as 0%.
    """
    completed = [s for s in sessions if s.get("status") == STATUS_COMPLETED]
    summary = aggregate(completed)
    passing_score = exam.get("passing_score") or 0

    passed = 0
    for s in completed:
        total = s.get("total_points") or 0
        percentage = round((s.get("score") or 0) / total * 100) if total > 0 else 0
        if percentage >= passing_score:
            passed += 1

    question_stats = []
    for q in questions:
        attempted = correct = 0
        for s in completed:
            ans = next((a for a in (s.get("answers") or []) if a.get("question_id") == q.get("id")), None)
            if ans:
                attempted += 1
                if ans.get("is_correct"):
                    correct += 1
        question_stats.append({
            "id": q.get("id"),
            "question_text": q.get("question_text"),
            "correct_count": correct,
            "total_attempted": attempted,
            "correct_percentage": round(correct / attempted * 100) if attempted else 0,
            "points": q.get("points"),
        })

    n = summary["count"]
    return {
        "statistics": {
            "totalAttempts": len(sessions),
            "completedAttempts": n,
            "avgScore": summary["average_score"],
            "passedCount": passed,
            "failedCount": n - passed,
            "passPercentage": round(passed / n * 100) if n else 0,
        },
        "questionStats": question_stats,
    }
