"""
Module API endpoints
"""

from fastapi import APIRouter, Depends
import structlog

from uniadmin.core.auth import CallerContext
from uniadmin.core.dependencies import get_catalog, get_resolver, require_permission
from uniadmin.core.identity import identity_of
from uniadmin.core.permissions import Permission
from uniadmin.schemas.enrollment import EnrollableModuleResponse, EnrollableModulesResponse
from uniadmin.services.catalog import ModuleCatalog
from uniadmin.services.visibility import ModuleVisibilityResolver

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/enrollable", response_model=EnrollableModulesResponse)
async def list_enrollable_modules(
    caller: CallerContext = Depends(require_permission(Permission.ENROLLMENT_REQUEST)),
    resolver: ModuleVisibilityResolver = Depends(get_resolver),
):
    """Local and global modules the calling student may request"""
    result = await resolver.enrollable_modules(caller.user_identity)
    return EnrollableModulesResponse(
        home_tenant=result.home_tenant,
        modules=[EnrollableModuleResponse.from_module(m) for m in result.modules],
        unavailable_tenants=result.unavailable_tenants,
    )


@router.post("/{module_identity}/deactivate", response_model=EnrollableModuleResponse)
def deactivate_module(
    module_identity: str,
    caller: CallerContext = Depends(require_permission(Permission.MODULE_MANAGE)),
    catalog: ModuleCatalog = Depends(get_catalog),
):
    """Stop new enrollments; existing enrollments are kept"""
    module = catalog.deactivate(caller.tenant_code, module_identity)
    return EnrollableModuleResponse(
        identity=identity_of(caller.tenant_code, module.id).token,
        code=module.code,
        title=module.title,
        credits=module.credits,
        semester=module.semester,
        is_global=module.is_global,
        home_tenant=caller.tenant_code,
    )
