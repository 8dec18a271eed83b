"""
Central reporting API endpoints
"""

from fastapi import APIRouter, Depends, Query
from typing import List, Optional
import structlog

from uniadmin.core.auth import CallerContext
from uniadmin.core.dependencies import get_aggregation_reader, get_registry, require_permission
from uniadmin.core.errors import Forbidden
from uniadmin.core.partitions import PartitionRegistry
from uniadmin.core.permissions import Permission, authorize_aggregate_read
from uniadmin.schemas.aggregate import AggregateResponse
from uniadmin.services.aggregation import CentralAggregationReader

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/{view_name}", response_model=AggregateResponse)
async def read_aggregate(
    view_name: str,
    tenant: Optional[List[str]] = Query(None, description="Restrict to these departments"),
    caller: CallerContext = Depends(require_permission(Permission.AGGREGATE_READ)),
    registry: PartitionRegistry = Depends(get_registry),
    reader: CentralAggregationReader = Depends(get_aggregation_reader),
):
    """Institution-wide view tagged by department, partial if some departments fail"""
    allowed = authorize_aggregate_read(caller, registry.codes())

    if tenant:
        requested = set(tenant)
        for code in requested:
            registry.get(code)
        if not requested <= allowed:
            raise Forbidden(
                f"Departments outside the caller's scope: {sorted(requested - allowed)}"
            )
        tenants = requested
    else:
        tenants = allowed

    result = await reader.aggregate(view_name, tenants)
    return AggregateResponse(view=result.view, rows=result.rows, failed_tenants=result.failed_tenants)
