"""
Enrollment request API endpoints

Write endpoints are plain functions: they block on department locks and
run in the threadpool instead of the event loop.
"""

from fastapi import APIRouter, Depends, Query, status
from typing import Optional
import structlog

from uniadmin.core.auth import CallerContext
from uniadmin.core.dependencies import get_workflow, require_permission
from uniadmin.core.permissions import Permission
from uniadmin.models.enrollment_request import RequestClassification
from uniadmin.schemas.enrollment import (
    DecisionCreate,
    DecisionResponse,
    EnrollmentRequestCreate,
    EnrollmentRequestResponse,
    EnrollmentResponse,
    RequestQueuesResponse,
    StudentRequestsResponse,
)
from uniadmin.services.workflow import EnrollmentWorkflowEngine, RequestScope

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("", response_model=EnrollmentRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_enrollment_request(
    payload: EnrollmentRequestCreate,
    caller: CallerContext = Depends(require_permission(Permission.ENROLLMENT_REQUEST)),
    workflow: EnrollmentWorkflowEngine = Depends(get_workflow),
):
    """Request enrollment in a local or global module"""
    request = workflow.submit(caller.user_identity, payload.module_identity, payload.justification)
    return EnrollmentRequestResponse.from_request(request)


@router.get("", response_model=RequestQueuesResponse)
def list_department_requests(
    scope: Optional[RequestClassification] = Query(None, description="internal or external"),
    status_filter: Optional[str] = Query(
        None, alias="status", pattern=f"^({RequestScope.PENDING}|{RequestScope.DECIDED})$"
    ),
    caller: CallerContext = Depends(require_permission(Permission.ENROLLMENT_REVIEW)),
    workflow: EnrollmentWorkflowEngine = Depends(get_workflow),
):
    """Requests targeting the caller's department"""
    queues = workflow.list_for_tenant(caller.tenant_code, status_filter)

    response = RequestQueuesResponse(tenant=caller.tenant_code)
    if scope in (None, RequestClassification.INTERNAL):
        response.internal = [EnrollmentRequestResponse.from_request(r) for r in queues.internal]
    if scope in (None, RequestClassification.EXTERNAL):
        response.external = [EnrollmentRequestResponse.from_request(r) for r in queues.external]
    return response


@router.get("/mine", response_model=StudentRequestsResponse)
async def list_my_requests(
    caller: CallerContext = Depends(require_permission(Permission.ENROLLMENT_VIEW_OWN)),
    workflow: EnrollmentWorkflowEngine = Depends(get_workflow),
):
    """Every request the calling student made, newest first"""
    result = await workflow.list_for_student(caller.user_identity)
    return StudentRequestsResponse(
        requests=[EnrollmentRequestResponse.from_request(r) for r in result.requests],
        unavailable_tenants=result.unavailable_tenants,
    )


@router.post("/{request_identity}/decision", response_model=DecisionResponse)
def decide_enrollment_request(
    request_identity: str,
    payload: DecisionCreate,
    caller: CallerContext = Depends(require_permission(Permission.ENROLLMENT_REVIEW)),
    workflow: EnrollmentWorkflowEngine = Depends(get_workflow),
):
    """Approve or reject a request targeting the caller's department"""
    decision = workflow.decide(
        caller.tenant_code,
        request_identity,
        payload.outcome,
        caller.user_identity,
        notes=payload.notes,
    )
    enrollment = None
    if decision.enrollment is not None:
        enrollment = EnrollmentResponse.from_enrollment(decision.request.target_tenant, decision.enrollment)
    return DecisionResponse(
        request=EnrollmentRequestResponse.from_request(decision.request),
        enrollment=enrollment,
    )
