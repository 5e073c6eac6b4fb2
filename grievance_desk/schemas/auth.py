"""Pydantic schemas for registration, login and the current user."""

from uuid import UUID

from pydantic import EmailStr, Field

from ..models import UserRole
from .base import GrievanceBaseModel


class RegisterRequest(GrievanceBaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    college: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.STUDENT
    student_id: str | None = Field(default=None, max_length=50)
    department: str | None = Field(default=None, max_length=100)
    year: int | None = Field(default=None, ge=1, le=5)


class StaffAccountRequest(GrievanceBaseModel):
    """An admin adding a colleague to their own organization."""

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.COMMITTEE_ADMIN
    department: str | None = Field(default=None, max_length=100)


class LoginRequest(GrievanceBaseModel):
    email: EmailStr
    password: str


class OrganizationRef(GrievanceBaseModel):
    id: UUID
    name: str
    slug: str


class UserOut(GrievanceBaseModel):
    id: UUID
    name: str
    email: str
    role: UserRole
    college: str | None = None
    organization_id: UUID | None = None
    student_id: str | None = None
    department: str | None = None
    year: int | None = None


class AuthResult(GrievanceBaseModel):
    user: UserOut
    token: str
    organization: OrganizationRef | None = None
