"""
Enrollment request model with decision state machine
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional
from enum import Enum

from uniadmin.core.errors import AlreadyDecided
from uniadmin.core.identity import CompositeIdentity, identity_of
from uniadmin.core.timestamps import utc_now


class RequestStatus(str, Enum):
    """Status of an enrollment request"""
    PENDING = "pending"             # Waiting for the target department
    APPROVED = "approved"           # Enrollment created in the target partition
    REJECTED = "rejected"           # Declined by the target department


class RequestClassification(str, Enum):
    """Whether the request stays inside one department or crosses into another"""
    INTERNAL = "internal"
    EXTERNAL = "external"


class DecisionOutcome(str, Enum):
    """Outcome an admin may choose for a pending request"""
    APPROVED = "approved"
    REJECTED = "rejected"


def classify(source_tenant: str, target_tenant: str) -> RequestClassification:
    if source_tenant == target_tenant:
        return RequestClassification.INTERNAL
    return RequestClassification.EXTERNAL


class EnrollmentRequest(SQLModel, table=True):
    """Enrollment request, stored in the target department's partition

    Decided exactly once and kept afterwards as an audit record.
    """

    __tablename__ = "enrollment_requests"

    id: Optional[int] = Field(default=None, primary_key=True)

    requester: str = Field(
        index=True,
        max_length=255,
        description="Composite identity token of the requesting student"
    )
    module_id: int = Field(
        foreign_key="modules.id",
        index=True,
        description="Local id of the target module in this partition"
    )
    source_tenant: str = Field(index=True, max_length=32)
    target_tenant: str = Field(index=True, max_length=32)
    classification: RequestClassification = Field(
        index=True,
        description="Fixed at creation, never recomputed"
    )

    justification: Optional[str] = Field(default=None, max_length=2000)

    # Requester snapshot taken from the home partition at submission
    requester_name: Optional[str] = Field(default=None, max_length=200)
    requester_email: Optional[str] = Field(default=None, max_length=255)

    status: RequestStatus = Field(default=RequestStatus.PENDING, index=True)

    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Composite identity token of the deciding admin"
    )
    reviewer_notes: Optional[str] = Field(default=None, max_length=2000)

    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utc_now, index=True)

    @classmethod
    def open(
        cls,
        requester: CompositeIdentity,
        module: CompositeIdentity,
        justification: Optional[str] = None,
        requester_name: Optional[str] = None,
        requester_email: Optional[str] = None,
    ) -> "EnrollmentRequest":
        """Create a pending request attributed to (source, target)"""
        return cls(
            requester=requester.token,
            module_id=module.local_int(),
            source_tenant=requester.tenant,
            target_tenant=module.tenant,
            classification=classify(requester.tenant, module.tenant),
            justification=justification,
            requester_name=requester_name,
            requester_email=requester_email,
            status=RequestStatus.PENDING,
        )

    @property
    def identity(self) -> CompositeIdentity:
        """Identity of the request itself: target tenant plus local id"""
        return identity_of(self.target_tenant, self.id)

    @property
    def module_identity(self) -> CompositeIdentity:
        return identity_of(self.target_tenant, self.module_id)

    # State machine methods
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def can_decide(self) -> bool:
        """Check if request is still open for a decision"""
        return self.is_pending()

    def _decide(self, status: RequestStatus, admin: CompositeIdentity, notes: Optional[str]) -> None:
        if not self.can_decide():
            raise AlreadyDecided(
                f"Request {self.identity} is already {self.status.value}"
            )

        self.status = status
        self.decided_by = admin.token
        self.decided_at = utc_now()
        self.reviewer_notes = notes
        self.version += 1

    def transition_to_approved(self, admin: CompositeIdentity, notes: Optional[str] = None) -> None:
        """Transition request to approved (pending only)"""
        self._decide(RequestStatus.APPROVED, admin, notes)

    def transition_to_rejected(self, admin: CompositeIdentity, notes: Optional[str] = None) -> None:
        """Transition request to rejected (pending only)"""
        self._decide(RequestStatus.REJECTED, admin, notes)
