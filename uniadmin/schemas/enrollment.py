"""
Pydantic schemas for enrollment endpoints
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from uniadmin.models.enrollment import Enrollment
from uniadmin.models.enrollment_request import (
    DecisionOutcome, EnrollmentRequest, RequestClassification, RequestStatus
)
from uniadmin.core.identity import identity_of
from uniadmin.services.visibility import EnrollableModule


class EnrollableModuleResponse(BaseModel):
    """Module a student may request"""
    identity: str = Field(..., description="Composite identity token of the module")
    code: str
    title: str
    credits: int
    semester: Optional[int] = None
    is_global: bool
    home_tenant: str

    @classmethod
    def from_module(cls, module: EnrollableModule) -> "EnrollableModuleResponse":
        return cls(
            identity=module.identity.token,
            code=module.code,
            title=module.title,
            credits=module.credits,
            semester=module.semester,
            is_global=module.is_global,
            home_tenant=module.home_tenant,
        )


class EnrollableModulesResponse(BaseModel):
    home_tenant: str
    modules: List[EnrollableModuleResponse]
    unavailable_tenants: List[str] = []


class EnrollmentRequestCreate(BaseModel):
    """Enrollment request submitted by a student"""
    module_identity: str = Field(..., min_length=3, max_length=255)
    justification: Optional[str] = Field(default=None, max_length=2000)


class DecisionCreate(BaseModel):
    """Decision by the target department's admin"""
    outcome: DecisionOutcome
    notes: Optional[str] = Field(default=None, max_length=2000)


class EnrollmentRequestResponse(BaseModel):
    """Enrollment request as seen by students and admins"""
    identity: str
    requester: str
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None
    module_identity: str
    source_tenant: str
    target_tenant: str
    classification: RequestClassification
    justification: Optional[str] = None
    status: RequestStatus
    created_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    reviewer_notes: Optional[str] = None

    @classmethod
    def from_request(cls, request: EnrollmentRequest) -> "EnrollmentRequestResponse":
        return cls(
            identity=request.identity.token,
            requester=request.requester,
            requester_name=request.requester_name,
            requester_email=request.requester_email,
            module_identity=request.module_identity.token,
            source_tenant=request.source_tenant,
            target_tenant=request.target_tenant,
            classification=request.classification,
            justification=request.justification,
            status=request.status,
            created_at=request.created_at,
            decided_at=request.decided_at,
            decided_by=request.decided_by,
            reviewer_notes=request.reviewer_notes,
        )


class EnrollmentResponse(BaseModel):
    identity: str
    student_identity: str
    module_identity: str
    status: str
    enrolled_at: datetime

    @classmethod
    def from_enrollment(cls, tenant: str, enrollment: Enrollment) -> "EnrollmentResponse":
        return cls(
            identity=identity_of(tenant, enrollment.id).token,
            student_identity=enrollment.student_identity,
            module_identity=identity_of(tenant, enrollment.module_id).token,
            status=enrollment.status.value,
            enrolled_at=enrollment.enrolled_at,
        )


class DecisionResponse(BaseModel):
    request: EnrollmentRequestResponse
    enrollment: Optional[EnrollmentResponse] = None


class RequestQueuesResponse(BaseModel):
    """Department queue split by stored classification"""
    tenant: str
    internal: List[EnrollmentRequestResponse] = []
    external: List[EnrollmentRequestResponse] = []


class StudentRequestsResponse(BaseModel):
    requests: List[EnrollmentRequestResponse]
    unavailable_tenants: List[str] = []
