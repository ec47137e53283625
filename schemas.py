from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Literal, Optional, List

from bson import ObjectId

# Field names match the stored Mongo documents and the JSON wire format

Role = Literal["student", "instructor", "admin"]


class User(BaseModel):
    name: str
    email: EmailStr
    passwordHash: str
    role: Role = "student"
    phone: str = ""
    location: str = ""
    aboutMe: str = ""
    avatarUrl: str = ""


class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Optional[str] = None


class SigninRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    aboutMe: Optional[str] = None


class UserPublic(BaseModel):
    id: str
    name: str
    email: str
    role: Role


class AuthResponse(BaseModel):
    token: str
    user: UserPublic


class ProfileUpdateResponse(AuthResponse):
    message: str = "Profile updated"


class Identity(BaseModel):
    """Claims carried by a verified bearer token."""

    id: str
    role: Role
    email: str
    name: str


class LessonIn(BaseModel):
    id: Optional[str] = None
    title: str
    content: str = ""
    durationMinutes: int = Field(default=0, ge=0)

    @field_validator("id")
    @classmethod
    def check_lesson_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not ObjectId.is_valid(v):
            raise ValueError("invalid lesson id")
        return v


class CourseCreate(BaseModel):
    title: str
    description: str = ""
    price: float = Field(default=0, ge=0)
    category: str = "general"
    lessons: Optional[List[LessonIn]] = None
    published: bool = False


class CourseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = None
    lessons: Optional[List[LessonIn]] = None
    published: Optional[bool] = None


class ProgressUpdate(BaseModel):
    completed: bool = False
