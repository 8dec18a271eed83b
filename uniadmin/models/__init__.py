from uniadmin.models.student import Student, StudentShadow
from uniadmin.models.staff import Staff
from uniadmin.models.module import Module
from uniadmin.models.enrollment_request import (
    EnrollmentRequest, RequestStatus, RequestClassification, DecisionOutcome
)
from uniadmin.models.enrollment import Enrollment, EnrollmentStatus
