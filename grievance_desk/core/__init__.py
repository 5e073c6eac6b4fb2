"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    engine,
    get_identity_session,
    get_session,
    get_session_context,
    identity_engine,
    identity_session_factory,
    init_db,
)
from .exceptions import (
    AccessDeniedError,
    AuthenticationError,
    DecryptionError,
    DuplicateKeyError,
    ExhaustedRetriesError,
    ForbiddenError,
    GrievanceError,
    MappingInconsistencyError,
    MappingStoreError,
    NotFoundError,
    ValidationError,
)
from .security import (
    AccessClaims,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "identity_engine",
    "async_session_factory",
    "identity_session_factory",
    "get_session",
    "get_identity_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Errors
    "GrievanceError",
    "ValidationError",
    "DuplicateKeyError",
    "AuthenticationError",
    "ForbiddenError",
    "AccessDeniedError",
    "NotFoundError",
    "ExhaustedRetriesError",
    "DecryptionError",
    "MappingStoreError",
    "MappingInconsistencyError",
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_access_token",
    "AccessClaims",
]
