"""
FastAPI dependencies: caller context, permission gates and services
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import structlog

from uniadmin.core.auth import CallerContext, verify_token
from uniadmin.core.config import get_settings
from uniadmin.core.errors import Forbidden
from uniadmin.core.events import event_bus
from uniadmin.core.partitions import PartitionRegistry
from uniadmin.core.permissions import Permission, get_permissions_for_role, has_permission
from uniadmin.services.aggregation import CentralAggregationReader
from uniadmin.services.catalog import ModuleCatalog
from uniadmin.services.visibility import ModuleVisibilityResolver
from uniadmin.services.workflow import EnrollmentWorkflowEngine

logger = structlog.get_logger(__name__)
security = HTTPBearer()


async def get_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CallerContext:
    """Get caller context from JWT token"""
    caller = verify_token(credentials.credentials)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug(f"Caller authenticated: {caller.user_identity} ({caller.role.value})")
    return caller


def require_permission(required_permission: Permission):
    """Dependency factory to check permissions"""
    async def check_permission(caller: CallerContext = Depends(get_caller)) -> CallerContext:
        if not has_permission(required_permission, get_permissions_for_role(caller.role.value)):
            raise Forbidden(f"Permission required: {required_permission.value}")
        return caller
    return check_permission


def get_registry(request: Request) -> PartitionRegistry:
    return request.app.state.registry


def get_workflow(registry: PartitionRegistry = Depends(get_registry)) -> EnrollmentWorkflowEngine:
    settings = get_settings()
    return EnrollmentWorkflowEngine(
        registry,
        event_bus=event_bus,
        lock_timeout=settings.PARTITION_LOCK_TIMEOUT_SECONDS,
        read_timeout=settings.AGGREGATE_TENANT_TIMEOUT_SECONDS,
    )


def get_resolver(registry: PartitionRegistry = Depends(get_registry)) -> ModuleVisibilityResolver:
    return ModuleVisibilityResolver(registry, timeout=get_settings().AGGREGATE_TENANT_TIMEOUT_SECONDS)


def get_aggregation_reader(registry: PartitionRegistry = Depends(get_registry)) -> CentralAggregationReader:
    return CentralAggregationReader(registry, timeout=get_settings().AGGREGATE_TENANT_TIMEOUT_SECONDS)


def get_catalog(registry: PartitionRegistry = Depends(get_registry)) -> ModuleCatalog:
    return ModuleCatalog(registry, lock_timeout=get_settings().PARTITION_LOCK_TIMEOUT_SECONDS)
