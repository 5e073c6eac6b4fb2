"""Tenant isolation: every complaint, mapping and chat query is scoped here."""

from dataclasses import dataclass
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import Select

from ..core.exceptions import ForbiddenError
from ..models import OrganizationStatus

SelectT = TypeVar("SelectT", bound=Select)


@dataclass(frozen=True)
class TenantScope:
    """The tenant an actor may see.

    Scoping prefers the organization ID. The legacy college name is used
    only when the actor has no organization.
    """

    organization_id: UUID | None = None
    college: str | None = None

    @classmethod
    def for_actor(cls, organization_id: UUID | None, college: str | None) -> "TenantScope":
        """Build the scope for an actor, failing closed when there is none."""
        if organization_id is not None:
            return cls(organization_id=organization_id, college=college)
        if college and college.strip():
            return cls(college=college.strip())
        raise ForbiddenError("Access denied. No organization association found.")

    @property
    def by_organization(self) -> bool:
        return self.organization_id is not None

    def apply(self, query: SelectT, model: Any) -> SelectT:
        """Attach the tenant filter for ``model`` to ``query``."""
        if self.by_organization:
            return query.where(model.organization_id == self.organization_id)
        return query.where(model.college == self.college)

    def matches(self, record: Any) -> bool:
        if self.by_organization:
            return record.organization_id == self.organization_id
        return record.college == self.college

    def stamp(self) -> dict[str, Any]:
        """Tenant columns for a new row."""
        return {"organization_id": self.organization_id, "college": self.college}


def ensure_tenant_active(status: OrganizationStatus | None) -> None:
    """Members of inactive or suspended organizations may not file or manage."""
    if status is not None and status != OrganizationStatus.ACTIVE:
        raise ForbiddenError(f"Organization is {status.value}")
