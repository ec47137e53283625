"""
Enrollment and progress service plus /api/students routes.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from courses import list_published
from database import COURSES, ENROLLMENTS, USERS, get_db, get_documents, object_id, serialize, utcnow
from deps import require_roles
from errors import NotFoundError, ValidationError
from progress import build_enrollment_rows, rollup_students, sort_newest_first
from schemas import Identity, ProgressUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["students"])

STUDENT_FIELDS = {"name": 1, "email": 1, "location": 1, "avatarUrl": 1}
COURSE_FIELDS = {"title": 1, "lessons": 1, "createdAt": 1}


async def enroll(db: AsyncIOMotorDatabase, identity: Identity, course_id: str) -> Dict[str, Any]:
    course = await db[COURSES].find_one({"_id": object_id(course_id, "Course")}, {"published": 1})
    if not course or not course.get("published"):
        raise NotFoundError("Course not found")

    key = {"student": object_id(identity.id, "User"), "course": course["_id"]}
    now = utcnow()
    try:
        enrollment = await db[ENROLLMENTS].find_one_and_update(
            key,
            {"$setOnInsert": {**key, "progressByLessonId": {}, "createdAt": now, "updatedAt": now}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # A concurrent enroll won the insert; return its record
        enrollment = await db[ENROLLMENTS].find_one(key)
    logger.info(f"Enrollment ensured: student={identity.id} course={course_id}")
    return serialize(enrollment)


async def list_my_enrollments(db: AsyncIOMotorDatabase, identity: Identity) -> List[Dict[str, Any]]:
    enrollments = await get_documents(db, ENROLLMENTS, {"student": object_id(identity.id, "User")})
    course_ids = {enrollment["course"] for enrollment in enrollments}
    courses = await get_documents(
        db, COURSES, {"_id": {"$in": [ObjectId(i) for i in course_ids]}}
    ) if course_ids else []
    courses_by_id = {course["id"]: course for course in courses}
    for enrollment in enrollments:
        enrollment["course"] = courses_by_id.get(enrollment["course"])
    return enrollments


async def set_lesson_progress(
    db: AsyncIOMotorDatabase, identity: Identity, course_id: str, lesson_id: str, completed: bool
) -> Dict[str, Any]:
    # The id becomes part of a field path, so only well-formed ids are accepted
    if not ObjectId.is_valid(lesson_id):
        raise ValidationError("Invalid lesson id")
    enrollment = await db[ENROLLMENTS].find_one_and_update(
        {"student": object_id(identity.id, "User"), "course": object_id(course_id, "Course")},
        {"$set": {f"progressByLessonId.{lesson_id}": bool(completed), "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not enrollment:
        raise NotFoundError("Not enrolled")
    return serialize(enrollment)


async def _instructor_courses(
    db: AsyncIOMotorDatabase, identity: Identity, instructor_id: Optional[str] = None
) -> Dict[str, Dict[str, Any]]:
    if identity.role == "admin":
        query = {"instructor": object_id(instructor_id, "Instructor")} if instructor_id else {}
    else:
        query = {"instructor": object_id(identity.id, "User")}
    courses = await get_documents(db, COURSES, query, COURSE_FIELDS)
    return {course["id"]: course for course in courses}


async def _load_report_rows(
    db: AsyncIOMotorDatabase,
    identity: Identity,
    course_id: Optional[str] = None,
    q: Optional[str] = None,
    instructor_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    courses_by_id = await _instructor_courses(db, identity, instructor_id)
    if course_id:
        courses_by_id = {course_id: courses_by_id[course_id]} if course_id in courses_by_id else {}
    if not courses_by_id:
        return []

    enrollments = await get_documents(
        db,
        ENROLLMENTS,
        {"course": {"$in": [ObjectId(i) for i in courses_by_id]}},
        sort=[("createdAt", DESCENDING)],
    )
    student_ids = {enrollment["student"] for enrollment in enrollments}
    students = await get_documents(
        db, USERS, {"_id": {"$in": [ObjectId(i) for i in student_ids]}}, STUDENT_FIELDS
    ) if student_ids else []
    students_by_id = {student["id"]: student for student in students}
    return build_enrollment_rows(enrollments, courses_by_id, students_by_id, q)


async def list_enrollments_for_instructor(
    db: AsyncIOMotorDatabase,
    identity: Identity,
    course_id: Optional[str] = None,
    q: Optional[str] = None,
    instructor_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    rows = await _load_report_rows(db, identity, course_id=course_id, q=q, instructor_id=instructor_id)
    return sort_newest_first(rows, "createdAt")


async def list_students_for_instructor(
    db: AsyncIOMotorDatabase,
    identity: Identity,
    q: Optional[str] = None,
    instructor_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    rows = await _load_report_rows(db, identity, instructor_id=instructor_id)
    return rollup_students(rows, q)


@router.get("/courses", response_model=List[dict])
async def list_available_courses(
    q: Optional[str] = Query(default=None),
    identity: Identity = Depends(require_roles("student", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_published(db, q)


@router.post("/enroll/{course_id}", response_model=dict, status_code=status.HTTP_201_CREATED)
async def enroll_route(
    course_id: str,
    identity: Identity = Depends(require_roles("student", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await enroll(db, identity, course_id)


@router.get("/me/enrollments", response_model=List[dict])
async def my_enrollments(
    identity: Identity = Depends(require_roles("student", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_my_enrollments(db, identity)


@router.post("/progress/{course_id}/{lesson_id}", response_model=dict)
async def set_progress(
    course_id: str,
    lesson_id: str,
    data: Optional[ProgressUpdate] = None,
    identity: Identity = Depends(require_roles("student", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    # No body means "not completed"
    completed = data.completed if data else False
    return await set_lesson_progress(db, identity, course_id, lesson_id, completed)


@router.get("/instructor/enrollments", response_model=List[dict])
async def instructor_enrollments(
    courseId: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None),
    instructorId: Optional[str] = Query(default=None),
    identity: Identity = Depends(require_roles("instructor", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_enrollments_for_instructor(db, identity, course_id=courseId, q=q, instructor_id=instructorId)


@router.get("/instructor/students", response_model=List[dict])
async def instructor_students(
    q: Optional[str] = Query(default=None),
    instructorId: Optional[str] = Query(default=None),
    identity: Identity = Depends(require_roles("instructor", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_students_for_instructor(db, identity, q=q, instructor_id=instructorId)
