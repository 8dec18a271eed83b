"""
Schemas for API responses and requests
"""

from uniadmin.schemas.aggregate import AggregateResponse
from uniadmin.schemas.enrollment import (
    DecisionCreate,
    DecisionResponse,
    EnrollableModuleResponse,
    EnrollableModulesResponse,
    EnrollmentRequestCreate,
    EnrollmentRequestResponse,
    EnrollmentResponse,
    RequestQueuesResponse,
    StudentRequestsResponse,
)

__all__ = [
    "AggregateResponse",
    "DecisionCreate",
    "DecisionResponse",
    "EnrollableModuleResponse",
    "EnrollableModulesResponse",
    "EnrollmentRequestCreate",
    "EnrollmentRequestResponse",
    "EnrollmentResponse",
    "RequestQueuesResponse",
    "StudentRequestsResponse",
]
