"""FastAPI dependencies for authentication, authorization, and context."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import User, UserRole
from ..services.authorization import Capability, MinimumReasonPolicy, RevealPolicy, has_capability
from ..services.chat import ChatService
from ..services.cipher import CipherService, get_cipher
from ..services.complaints import ComplaintLifecycleEngine
from ..services.identity_mapping import IdentityMappingStore
from ..services.tenancy import TenantScope, ensure_tenant_active
from .config import get_settings
from .database import (
    async_session_factory,
    get_identity_session,
    get_session,
    identity_session_factory,
)
from .exceptions import ForbiddenError
from .security import decode_access_token

logger = logging.getLogger(__name__)
settings = get_settings()

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class CurrentActor:
    """The authenticated user as seen by the services: identity, role, tenant."""

    def __init__(self, user: User):
        self.user = user

    @property
    def id(self) -> UUID:
        return self.user.id

    @property
    def role(self) -> UserRole:
        return UserRole(self.user.role)

    @property
    def name(self) -> str:
        return self.user.name

    @property
    def is_staff(self) -> bool:
        return has_capability(self.role, Capability.CHAT_AS_STAFF)

    @property
    def scope(self) -> TenantScope:
        """Tenant scope, raising ForbiddenError when the user has none."""
        return TenantScope.for_actor(self.user.organization_id, self.user.college)

    def ensure_tenant_active(self) -> None:
        organization = self.user.organization
        ensure_tenant_active(organization.status if organization else None)


async def resolve_actor(session: AsyncSession, token: str | None) -> CurrentActor | None:
    """Turn a bearer token into an active user. None when anything is off."""
    if not token:
        return None

    claims = decode_access_token(token)
    if claims is None:
        return None

    user = await session.get(User, claims.sub)
    if user is None or not user.is_active:
        return None
    return CurrentActor(user)


async def get_current_actor(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CurrentActor:
    """Dependency to get the current authenticated user."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor = await resolve_actor(session, credentials.credentials)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def require_tenant_scope(
    actor: Annotated[CurrentActor, Depends(get_current_actor)],
) -> TenantScope:
    """The only way a route obtains a tenant scope. Fails closed."""
    scope = actor.scope
    actor.ensure_tenant_active()
    return scope


def capability_required(capability: Capability):
    """Dependency factory: the actor must hold ``capability``."""

    def dependency(
        actor: Annotated[CurrentActor, Depends(get_current_actor)],
    ) -> CurrentActor:
        if not has_capability(actor.role, capability):
            raise ForbiddenError(
                f"Role '{actor.role.value}' may not {capability.value.replace('_', ' ')}"
            )
        return actor

    return dependency


# =============================================================================
# SERVICE WIRING
# =============================================================================


def get_mapping_store(
    identity_session: Annotated[AsyncSession, Depends(get_identity_session)],
    cipher: Annotated[CipherService, Depends(get_cipher)],
) -> IdentityMappingStore:
    return IdentityMappingStore(identity_session, cipher)


def get_reveal_policy() -> RevealPolicy:
    return MinimumReasonPolicy(settings.reveal_reason_min_length)


def get_lifecycle_engine(
    session: Annotated[AsyncSession, Depends(get_session)],
    mappings: Annotated[IdentityMappingStore, Depends(get_mapping_store)],
    reveal_policy: Annotated[RevealPolicy, Depends(get_reveal_policy)],
) -> ComplaintLifecycleEngine:
    ttl = timedelta(days=settings.mapping_ttl_days) if settings.mapping_ttl_days else None
    return ComplaintLifecycleEngine(
        session,
        mappings,
        reveal_policy=reveal_policy,
        mapping_ttl=ttl,
        enforce_workflow=settings.enforce_status_workflow,
    )


def get_chat_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    mappings: Annotated[IdentityMappingStore, Depends(get_mapping_store)],
) -> ChatService:
    return ChatService(session, mappings, history_limit=settings.chat_history_limit)


@dataclass(frozen=True)
class SessionFactories:
    """Session factories for long-lived connections that outlive one request."""
    complaints: async_sessionmaker[AsyncSession]
    identity: async_sessionmaker[AsyncSession]


def get_session_factories() -> SessionFactories:
    return SessionFactories(async_session_factory, identity_session_factory)


def client_address(request: Request) -> str | None:
    """Peer address of the connection. Forwarding headers are only honoured
    when the server runs with --proxy-headers for a trusted proxy."""
    if request.client is None:
        return None
    return request.client.host


# Type aliases for cleaner dependency injection
SessionDep = Annotated[AsyncSession, Depends(get_session)]
ActorDep = Annotated[CurrentActor, Depends(get_current_actor)]
TenantScopeDep = Annotated[TenantScope, Depends(require_tenant_scope)]
MappingStoreDep = Annotated[IdentityMappingStore, Depends(get_mapping_store)]
EngineDep = Annotated[ComplaintLifecycleEngine, Depends(get_lifecycle_engine)]
ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
SessionFactoriesDep = Annotated[SessionFactories, Depends(get_session_factories)]
ClientAddressDep = Annotated[str | None, Depends(client_address)]
