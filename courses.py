"""
Course service and /api/courses routes.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument

from database import (
    COURSES,
    ENROLLMENTS,
    USERS,
    create_document,
    get_db,
    get_documents,
    object_id,
    serialize,
    utcnow,
)
from deps import can_access_resource, get_current_identity, require_roles
from errors import ForbiddenError, NotFoundError, ValidationError
from schemas import CourseCreate, CourseUpdate, Identity, LessonIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])

UPDATABLE_FIELDS = ("title", "description", "price", "category", "lessons", "published")


def build_lessons(lessons: Optional[List[LessonIn]]) -> List[Dict[str, Any]]:
    # Lessons sent back with their id keep it, so progress keys stay valid
    built = []
    seen = set()
    for lesson in lessons or []:
        if lesson.id in seen:
            raise ValidationError("Duplicate lesson id")
        if lesson.id:
            seen.add(lesson.id)
        built.append({
            "_id": ObjectId(lesson.id) if lesson.id else ObjectId(),
            "title": lesson.title,
            "content": lesson.content,
            "durationMinutes": lesson.durationMinutes,
        })
    return built


async def attach_instructor_names(db: AsyncIOMotorDatabase, courses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    instructor_ids = {course["instructor"] for course in courses if course.get("instructor")}
    users = await get_documents(
        db, USERS, {"_id": {"$in": [ObjectId(i) for i in instructor_ids]}}, {"name": 1}
    ) if instructor_ids else []
    names = {user["id"]: user.get("name") for user in users}
    for course in courses:
        instructor_id = course.get("instructor")
        course["instructor"] = {"id": instructor_id, "name": names.get(instructor_id)}
    return courses


def published_filter(q: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {"published": True}
    if q:
        query["title"] = {"$regex": re.escape(q), "$options": "i"}
    return query


async def list_published(db: AsyncIOMotorDatabase, q: Optional[str] = None) -> List[Dict[str, Any]]:
    courses = await get_documents(db, COURSES, published_filter(q))
    return await attach_instructor_names(db, courses)


async def list_mine(db: AsyncIOMotorDatabase, identity: Identity) -> List[Dict[str, Any]]:
    query = {} if identity.role == "admin" else {"instructor": object_id(identity.id, "User")}
    return await get_documents(db, COURSES, query, sort=[("createdAt", DESCENDING)])


async def _load_course(db: AsyncIOMotorDatabase, course_id: str) -> Dict[str, Any]:
    course = await db[COURSES].find_one({"_id": object_id(course_id, "Course")})
    if not course:
        raise NotFoundError("Course not found")
    return course


async def get_by_id(db: AsyncIOMotorDatabase, course_id: str, identity: Identity) -> Dict[str, Any]:
    course = await _load_course(db, course_id)
    # Unpublished courses look absent to anyone but the owner or an admin
    if not course.get("published") and not can_access_resource(identity, course["instructor"]):
        raise NotFoundError("Course not found")
    courses = await attach_instructor_names(db, [serialize(course)])
    return courses[0]


async def create(db: AsyncIOMotorDatabase, identity: Identity, data: CourseCreate) -> Dict[str, Any]:
    course = await create_document(db, COURSES, {
        "title": data.title,
        "description": data.description,
        "price": data.price,
        "category": data.category,
        "lessons": build_lessons(data.lessons),
        "published": bool(data.published),
        "instructor": object_id(identity.id, "User"),
    })
    logger.info(f"Course created: {course['id']} by {identity.id}")
    return course


async def update(db: AsyncIOMotorDatabase, course_id: str, identity: Identity, data: CourseUpdate) -> Dict[str, Any]:
    course = await _load_course(db, course_id)
    if not can_access_resource(identity, course["instructor"]):
        raise ForbiddenError()

    supplied = data.model_dump(exclude_unset=True)
    updates = {key: supplied[key] for key in UPDATABLE_FIELDS if supplied.get(key) is not None}
    if "lessons" in updates:
        # Replaced wholesale, never merged
        updates["lessons"] = build_lessons(data.lessons)
    updates["updatedAt"] = utcnow()

    updated = await db[COURSES].find_one_and_update(
        {"_id": course["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFoundError("Course not found")
    logger.info(f"Course updated: {course_id} fields={sorted(k for k in updates if k != 'updatedAt')}")
    return serialize(updated)


async def delete(db: AsyncIOMotorDatabase, course_id: str, identity: Identity) -> Dict[str, Any]:
    course = await _load_course(db, course_id)
    if not can_access_resource(identity, course["instructor"]):
        raise ForbiddenError()
    # Enrollments first, so a failure part-way never leaves orphans behind
    removed = await db[ENROLLMENTS].delete_many({"course": course["_id"]})
    await db[COURSES].delete_one({"_id": course["_id"]})
    logger.info(f"Course deleted: {course_id} (enrollments removed: {removed.deleted_count})")
    return {"ok": True}


@router.get("", response_model=List[dict])
async def list_courses(q: Optional[str] = Query(default=None), db: AsyncIOMotorDatabase = Depends(get_db)):
    return await list_published(db, q)


@router.get("/mine", response_model=List[dict])
async def list_my_courses(
    identity: Identity = Depends(require_roles("instructor", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_mine(db, identity)


@router.get("/{course_id}", response_model=dict)
async def get_course(
    course_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await get_by_id(db, course_id, identity)


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_course(
    data: CourseCreate,
    identity: Identity = Depends(require_roles("instructor", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await create(db, identity, data)


@router.put("/{course_id}", response_model=dict)
async def update_course(
    course_id: str,
    data: CourseUpdate,
    identity: Identity = Depends(require_roles("instructor", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await update(db, course_id, identity, data)


@router.delete("/{course_id}")
async def delete_course(
    course_id: str,
    identity: Identity = Depends(require_roles("instructor", "admin")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await delete(db, course_id, identity)
