"""
Read-side progress aggregation for instructor reporting.

Everything here is pure: callers load the enrollments, courses and students
for an instructor and these functions turn them into report rows.
"""

import math
from typing import Any, Dict, Iterable, List, Optional


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def progress_percent(lessons: Iterable[Dict[str, Any]], progress_by_lesson_id: Optional[Dict[str, bool]]) -> int:
    """
    Share of a course's lessons marked complete, as a whole percentage.

    Only lessons still present in the course count, so the result stays within
    [0, 100] even when the map holds keys for removed lessons. A course without
    lessons is 0% complete.
    """
    lessons = list(lessons)
    if not lessons:
        return 0
    progress_by_lesson_id = progress_by_lesson_id or {}
    completed = sum(1 for lesson in lessons if progress_by_lesson_id.get(str(lesson.get("id"))) is True)
    return round_half_up(completed / len(lessons) * 100)


def student_matches(student: Optional[Dict[str, Any]], q: Optional[str]) -> bool:
    """Case-insensitive substring match on the student's name or email."""
    if not q:
        return True
    if not student:
        return False
    needle = q.lower()
    return needle in (student.get("name") or "").lower() or needle in (student.get("email") or "").lower()


def build_enrollment_rows(
    enrollments: Iterable[Dict[str, Any]],
    courses_by_id: Dict[str, Dict[str, Any]],
    students_by_id: Dict[str, Dict[str, Any]],
    q: Optional[str] = None,
) -> List[Dict[str, Any]]:
    rows = []
    for enrollment in enrollments:
        course = courses_by_id.get(enrollment["course"])
        student = students_by_id.get(enrollment["student"])
        if not student_matches(student, q):
            continue
        progress_map = enrollment.get("progressByLessonId") or {}
        rows.append({
            "id": enrollment["id"],
            "studentId": enrollment["student"],
            "courseId": enrollment["course"],
            "student": student,
            "course": course,
            "progressByLessonId": progress_map,
            "progressPercent": progress_percent(course.get("lessons", []) if course else [], progress_map),
            "createdAt": enrollment.get("createdAt"),
            "updatedAt": enrollment.get("updatedAt"),
        })
    return rows


def rollup_students(rows: Iterable[Dict[str, Any]], q: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Group enrollment rows by student.

    Each output row carries the number of distinct courses, the most recent
    enrollment time and the rounded mean progress. The name/email filter runs
    after grouping.
    """
    groups: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        group = groups.setdefault(row["studentId"], {
            "student": row["student"],
            "courses": set(),
            "percents": [],
            "latest": None,
        })
        group["courses"].add(row["courseId"])
        group["percents"].append(row["progressPercent"])
        enrolled_at = row.get("createdAt")
        if enrolled_at is not None and (group["latest"] is None or enrolled_at > group["latest"]):
            group["latest"] = enrolled_at

    result = []
    for student_id, group in groups.items():
        if not student_matches(group["student"], q):
            continue
        percents = group["percents"]
        mean = sum(percents) / len(percents) if percents else float("nan")
        result.append({
            "studentId": student_id,
            "student": group["student"],
            "courseCount": len(group["courses"]),
            "latestEnrolledAt": group["latest"],
            "avgProgressPercent": 0 if math.isnan(mean) else round_half_up(mean),
        })
    return sort_newest_first(result, "latestEnrolledAt")


def sort_newest_first(rows: List[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    dated = [row for row in rows if row.get(key) is not None]
    undated = [row for row in rows if row.get(key) is None]
    return sorted(dated, key=lambda row: row[key], reverse=True) + undated
