"""
Auth service and /api/auth routes: signup, signin and the caller's profile.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import USERS, create_document, get_db, object_id, serialize, utcnow
from deps import get_current_identity
from errors import AuthError, ConflictError, NotFoundError, ValidationError
from schemas import (
    AuthResponse,
    Identity,
    ProfileUpdate,
    ProfileUpdateResponse,
    SigninRequest,
    SignupRequest,
    User,
)
from security import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_CREDENTIALS = "Invalid credentials"


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "role": user.get("role", "student"),
    }


def _auth_payload(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"token": create_access_token(user), "user": public_user(user)}


async def signup(db: AsyncIOMotorDatabase, data: SignupRequest) -> Dict[str, Any]:
    if not data.name or not data.email or not data.password:
        raise ValidationError("Missing fields")
    email = data.email.strip().lower()
    if await db[USERS].find_one({"email": email}):
        raise ConflictError("Email already in use")
    user_doc = User(
        name=data.name,
        email=email,
        passwordHash=get_password_hash(data.password),
        # admin is never self-assigned
        role="instructor" if data.role == "instructor" else "student",
    ).model_dump()
    try:
        created = await create_document(db, USERS, user_doc)
    except DuplicateKeyError:
        raise ConflictError("Email already in use")
    logger.info(f"User signed up: {created['id']} ({created['role']})")
    return _auth_payload(created)


async def signin(db: AsyncIOMotorDatabase, data: SigninRequest) -> Dict[str, Any]:
    if not data.email or not data.password:
        raise AuthError(INVALID_CREDENTIALS)
    user = await db[USERS].find_one({"email": data.email.strip().lower()})
    if not user or not verify_password(data.password, user.get("passwordHash", "")):
        raise AuthError(INVALID_CREDENTIALS)
    return _auth_payload(serialize(user))


async def get_profile(db: AsyncIOMotorDatabase, identity: Identity) -> Dict[str, Any]:
    user = await db[USERS].find_one(
        {"_id": object_id(identity.id, "User")}, {"passwordHash": 0}
    )
    if not user:
        raise NotFoundError("User not found")
    return serialize(user)


async def update_profile(db: AsyncIOMotorDatabase, identity: Identity, data: ProfileUpdate) -> Dict[str, Any]:
    updates = {
        key: value
        for key, value in data.model_dump(exclude_unset=True, exclude={"email"}).items()
        if value is not None
    }
    if "name" in updates and not updates["name"].strip():
        raise ValidationError("Name cannot be empty")

    user_id = object_id(identity.id, "User")
    if data.email:
        email = data.email.strip().lower()
        if email != identity.email:
            existing = await db[USERS].find_one({"email": email}, {"_id": 1})
            if existing and existing["_id"] != user_id:
                raise ConflictError("Email already in use by another account")
            updates["email"] = email

    updates["updatedAt"] = utcnow()
    try:
        user = await db[USERS].find_one_and_update(
            {"_id": user_id},
            {"$set": updates},
            projection={"passwordHash": 0},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise ConflictError("Email already in use by another account")
    if not user:
        raise NotFoundError("User not found")

    # Re-issue so the cached name/email claims follow the profile
    return {"message": "Profile updated", **_auth_payload(serialize(user))}


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup_route(data: SignupRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await signup(db, data)


@router.post("/signin", response_model=AuthResponse)
async def signin_route(data: SigninRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await signin(db, data)


@router.get("/profile", response_model=dict)
async def profile_route(
    identity: Identity = Depends(get_current_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await get_profile(db, identity)


@router.put("/profile", response_model=ProfileUpdateResponse)
async def update_profile_route(
    data: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await update_profile(db, identity, data)
