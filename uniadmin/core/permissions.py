"""
RBAC permissions and the tenant access guard

Role permissions gate endpoints. The guard functions enforce department
boundaries and are called again inside the services on every write, so a
caller that skips the endpoint layer still cannot cross a boundary.
"""

from enum import Enum
from typing import FrozenSet, Iterable, Set, TYPE_CHECKING
import structlog

from uniadmin.core.errors import Forbidden

if TYPE_CHECKING:
    from uniadmin.core.auth import CallerContext
    from uniadmin.models.enrollment_request import EnrollmentRequest

logger = structlog.get_logger(__name__)


class Role(str, Enum):
    """Caller roles supplied by the auth layer"""
    STUDENT = "student"
    ACADEMIC = "academic"
    DEPARTMENT_ADMIN = "department_admin"
    CENTRAL_ADMIN = "central_admin"


class Permission(str, Enum):
    """Permission definitions"""
    # Enrollment permissions
    ENROLLMENT_REQUEST = "enrollment:request"
    ENROLLMENT_VIEW_OWN = "enrollment:view_own"
    ENROLLMENT_REVIEW = "enrollment:review"

    # Module permissions
    MODULE_MANAGE = "module:manage"

    # Report permissions
    AGGREGATE_READ = "aggregate:read"


# Role permission mapping
ROLE_PERMISSIONS = {
    Role.STUDENT: {
        Permission.ENROLLMENT_REQUEST,
        Permission.ENROLLMENT_VIEW_OWN,
    },
    Role.ACADEMIC: set(),
    Role.DEPARTMENT_ADMIN: {
        Permission.ENROLLMENT_REVIEW,
        Permission.MODULE_MANAGE,
        Permission.AGGREGATE_READ,
    },
    Role.CENTRAL_ADMIN: {
        # Central admins read across departments but never write into one
        Permission.AGGREGATE_READ,
    },
}


def get_permissions_for_role(role: str) -> Set[Permission]:
    """Get permissions for a given role"""
    try:
        return set(ROLE_PERMISSIONS[Role(role.lower())])
    except ValueError:
        return set()


def has_permission(required_permission: Permission, user_permissions: Set[Permission]) -> bool:
    """Check if user has required permission"""
    return required_permission in user_permissions


def authorize_write(caller_tenant: str, target_tenant: str) -> None:
    """A caller may only write into its own department"""
    if caller_tenant is None or caller_tenant != target_tenant:
        logger.warning(f"Cross-department write denied: {caller_tenant} -> {target_tenant}")
        raise Forbidden(
            f"Department {caller_tenant} may not write to department {target_tenant}"
        )


def authorize_decision(caller_tenant: str, request: "EnrollmentRequest") -> None:
    """Only the request's target department may decide it"""
    authorize_write(caller_tenant, request.target_tenant)


def authorize_aggregate_read(caller: "CallerContext", all_tenants: Iterable[str]) -> FrozenSet[str]:
    """Departments the caller may read through aggregation"""
    if caller.role == Role.CENTRAL_ADMIN:
        return frozenset(all_tenants)
    if caller.role == Role.DEPARTMENT_ADMIN and caller.tenant_code:
        return frozenset({caller.tenant_code})
    logger.warning(f"Aggregate read denied for role {caller.role.value}")
    raise Forbidden(f"Role {caller.role.value} has no aggregate read access")
