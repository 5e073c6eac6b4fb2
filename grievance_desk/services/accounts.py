"""Account registration and credential checks."""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    AuthenticationError,
    DuplicateKeyError,
    ForbiddenError,
    ValidationError,
)
from ..core.security import hash_password, verify_password
from ..models import Organization, OrganizationStatus, User, UserRole, utcnow

logger = logging.getLogger(__name__)


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.COMMITTEE_ADMIN})


def slugify(name: str) -> str:
    """Organization slug from a college name: lower case, non-alphanumerics as '-'."""
    return re.sub(r"[^a-z0-9]", "-", name.strip().lower())


@dataclass
class RegisterInput:
    name: str
    email: str
    password: str
    college: str
    role: UserRole = UserRole.STUDENT
    student_id: str | None = None
    department: str | None = None
    year: int | None = None


class AccountService:
    """Users and the organizations they belong to."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def register_user(self, data: RegisterInput) -> tuple[User, Organization]:
        """
        Create a user inside an organization.

        The organization is looked up by name or derived slug. An admin
        registering for an unknown college creates it; students must join an
        existing one. Staff accounts for an existing organization are only
        issued by its admins through create_staff_account.
        """
        email = self._validated_email(data)
        college = data.college.strip()
        if not college:
            raise ValidationError("Please provide name, email, password, and college")
        await self._ensure_email_free(email)

        role = UserRole(data.role)
        slug = slugify(college)
        result = await self.session.execute(
            select(Organization).where(
                or_(Organization.name == college, Organization.slug == slug)
            )
        )
        organization = result.scalars().first()

        if organization is None:
            if role != UserRole.ADMIN:
                raise ValidationError(
                    f"Organization '{college}' not registered. "
                    "Please ask your administrator to sign up first."
                )
            organization = Organization(
                name=college,
                slug=slug,
                status=OrganizationStatus.ACTIVE,
                is_verified=False,
                settings={},
            )
            self.session.add(organization)
            await self.session.flush()
            logger.info(f"New organization created: {college} ({slug})")
        elif role in STAFF_ROLES:
            logger.warning(
                f"Refused self-registration as {role.value} for existing organization {organization.slug}"
            )
            raise ForbiddenError(
                "Staff accounts for a registered organization are created by its administrator"
            )

        user = await self._add_user(data, email, role, organization, verified=False)
        return user, organization

    async def create_staff_account(
        self, organization: Organization, data: RegisterInput
    ) -> User:
        """Add an admin or committee-admin to ``organization`` on an admin's behalf."""
        email = self._validated_email(data)
        role = UserRole(data.role)
        if role not in STAFF_ROLES:
            raise ValidationError("Role must be admin or committee-admin")
        await self._ensure_email_free(email)

        user = await self._add_user(data, email, role, organization, verified=True)
        logger.info(f"Staff account created: {role.value} in {organization.slug}")
        return user

    def _validated_email(self, data: RegisterInput) -> str:
        email = data.email.strip().lower()
        if not data.name.strip() or not email or not data.password:
            raise ValidationError("Please provide name, email, password, and college")
        return email

    async def _ensure_email_free(self, email: str) -> None:
        existing = await self.session.execute(select(User.id).where(User.email == email))
        if existing.first() is not None:
            raise DuplicateKeyError("User already exists with this email")

    async def _add_user(
        self,
        data: RegisterInput,
        email: str,
        role: UserRole,
        organization: Organization,
        verified: bool,
    ) -> User:
        user = User(
            name=data.name.strip(),
            email=email,
            password_hash=hash_password(data.password),
            role=role,
            organization_id=organization.id,
            college=organization.name,
            student_id=data.student_id,
            department=data.department,
            year=data.year,
            is_active=True,
            is_verified=verified,
            last_login_at=utcnow(),
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateKeyError("User already exists with this email") from e
        return user

    async def authenticate_user(self, email: str, password: str) -> User:
        if not email or not password:
            raise ValidationError("Please provide email and password")

        result = await self.session.execute(
            select(User).where(User.email == email.strip().lower())
        )
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated. Please contact administrator.")

        user.last_login_at = utcnow()
        await self.session.flush()
        return user
