"""
Aggregation helpers behind the instructor reports.
"""

from datetime import datetime

from progress import (
    build_enrollment_rows,
    progress_percent,
    rollup_students,
    round_half_up,
    student_matches,
)

LESSONS = [{"id": "a"}, {"id": "b"}, {"id": "c"}]


class TestProgressPercent:
    def test_no_lessons_is_zero(self):
        assert progress_percent([], {"a": True}) == 0

    def test_rounds_half_up(self):
        eight = [{"id": str(i)} for i in range(8)]
        assert progress_percent(eight, {"0": True}) == 13
        assert round_half_up(12.5) == 13
        assert progress_percent(LESSONS, {"a": True}) == 33
        assert progress_percent(LESSONS, {"a": True, "b": True}) == 67

    def test_ignores_false_and_unknown_keys(self):
        progress = {"a": True, "b": False, "removed-1": True, "removed-2": True}
        assert progress_percent(LESSONS, progress) == 33

    def test_never_exceeds_hundred(self):
        assert progress_percent(LESSONS, {"a": True, "b": True, "c": True, "x": True}) == 100

    def test_missing_map(self):
        assert progress_percent(LESSONS, None) == 0


def test_student_matches():
    student = {"name": "Grace Hopper", "email": "grace@navy.mil"}
    assert student_matches(student, None)
    assert student_matches(student, "HOPP")
    assert student_matches(student, "navy")
    assert not student_matches(student, "turing")
    assert not student_matches(None, "grace")


def _enrollment(id_, student, course, created, progress=None):
    return {
        "id": id_,
        "student": student,
        "course": course,
        "progressByLessonId": progress or {},
        "createdAt": created,
        "updatedAt": created,
    }


class TestRollup:
    def setup_method(self):
        self.courses = {
            "c1": {"id": "c1", "title": "One", "lessons": [{"id": "l1"}, {"id": "l2"}]},
            "c2": {"id": "c2", "title": "Two", "lessons": []},
        }
        self.students = {
            "s1": {"id": "s1", "name": "Ann", "email": "ann@mail.com"},
            "s2": {"id": "s2", "name": "Bob", "email": "bob@mail.com"},
        }
        self.enrollments = [
            _enrollment("e1", "s1", "c1", datetime(2024, 1, 1), {"l1": True, "l2": True}),
            _enrollment("e2", "s1", "c2", datetime(2024, 3, 1)),
            _enrollment("e3", "s2", "c1", datetime(2024, 2, 1), {"l1": True}),
        ]

    def test_rows_carry_percent(self):
        rows = build_enrollment_rows(self.enrollments, self.courses, self.students)
        assert [row["progressPercent"] for row in rows] == [100, 0, 50]

    def test_one_row_per_student(self):
        rows = build_enrollment_rows(self.enrollments, self.courses, self.students)
        rollup = rollup_students(rows)
        assert [row["studentId"] for row in rollup] == ["s1", "s2"]
        ann, bob = rollup
        assert ann["courseCount"] == 2
        assert ann["latestEnrolledAt"] == datetime(2024, 3, 1)
        assert ann["avgProgressPercent"] == 50
        assert bob["courseCount"] == 1
        assert bob["avgProgressPercent"] == 50

    def test_filter_applies_after_grouping(self):
        rows = build_enrollment_rows(self.enrollments, self.courses, self.students)
        assert [row["student"]["name"] for row in rollup_students(rows, q="BOB")] == ["Bob"]

    def test_missing_student_excluded_only_when_filtering(self):
        enrollments = self.enrollments + [_enrollment("e4", "ghost", "c1", datetime(2024, 4, 1))]
        rows = build_enrollment_rows(enrollments, self.courses, self.students)
        assert len(rows) == 4
        assert len(build_enrollment_rows(enrollments, self.courses, self.students, q="ann")) == 2

    def test_empty(self):
        assert rollup_students([]) == []
