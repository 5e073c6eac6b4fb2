"""Authentication API routes: registration, login and the current user."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from ..core.dependencies import (
    ActorDep,
    CurrentActor,
    SessionDep,
    TenantScopeDep,
    capability_required,
)
from ..core.security import create_access_token
from ..models import Organization, User
from ..schemas import (
    ApiResponse,
    AuthResult,
    LoginRequest,
    OrganizationRef,
    RegisterRequest,
    StaffAccountRequest,
    UserOut,
)
from ..services.accounts import AccountService, RegisterInput
from ..services.authorization import Capability

router = APIRouter(prefix="/auth", tags=["authentication"])


def _auth_result(user: User, organization: Organization | None) -> AuthResult:
    token = create_access_token(
        user_id=user.id,
        role=user.role.value,
        organization_id=user.organization_id,
    )
    return AuthResult(
        user=UserOut.model_validate(user),
        token=token,
        organization=OrganizationRef.model_validate(organization) if organization else None,
    )


@router.post(
    "/register",
    response_model=ApiResponse[AuthResult],
    status_code=status.HTTP_201_CREATED,
)
async def register(request: RegisterRequest, session: SessionDep):
    """Register a user. The first admin of a college creates its organization."""
    user, organization = await AccountService(session).register_user(
        RegisterInput(
            name=request.name,
            email=request.email,
            password=request.password,
            college=request.college,
            role=request.role,
            student_id=request.student_id,
            department=request.department,
            year=request.year,
        )
    )
    return ApiResponse.ok(_auth_result(user, organization), "User registered successfully")


@router.post("/login", response_model=ApiResponse[AuthResult])
async def login(request: LoginRequest, session: SessionDep):
    """Login with email and password."""
    user = await AccountService(session).authenticate_user(request.email, request.password)
    return ApiResponse.ok(_auth_result(user, user.organization), "Login successful")


@router.get("/me", response_model=ApiResponse[UserOut])
async def me(actor: ActorDep):
    """Current user info."""
    return ApiResponse.ok(UserOut.model_validate(actor.user))


@router.post(
    "/staff",
    response_model=ApiResponse[UserOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_staff_account(
    request: StaffAccountRequest,
    actor: Annotated[
        CurrentActor, Depends(capability_required(Capability.CREATE_STAFF_ACCOUNT))
    ],
    scope: TenantScopeDep,
    session: SessionDep,
):
    """Add an admin or committee-admin to the caller's organization."""
    user = await AccountService(session).create_staff_account(
        actor.user.organization,
        RegisterInput(
            name=request.name,
            email=request.email,
            password=request.password,
            college=actor.user.organization.name,
            role=request.role,
            department=request.department,
        ),
    )
    return ApiResponse.ok(UserOut.model_validate(user), "Staff account created")
