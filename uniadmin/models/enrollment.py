"""
Enrollment record model
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from typing import Optional
from enum import Enum

from uniadmin.core.identity import CompositeIdentity, parse
from uniadmin.core.timestamps import utc_now


class EnrollmentStatus(str, Enum):
    """Status of an enrollment record"""
    REGISTERED = "registered"


class Enrollment(SQLModel, table=True):
    """Enrollment materialized by an approval, owned by the module's partition

    The student is referenced by composite identity because it may live in
    another partition; the module is local.
    """

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("student_identity", "module_id", name="uq_enrollment_student_module"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_identity: str = Field(index=True, max_length=255)
    module_id: int = Field(foreign_key="modules.id", index=True)
    request_id: Optional[int] = Field(
        default=None,
        foreign_key="enrollment_requests.id",
        description="Approved request that produced this enrollment"
    )
    status: EnrollmentStatus = Field(default=EnrollmentStatus.REGISTERED, index=True)

    enrolled_at: datetime = Field(default_factory=utc_now)

    @property
    def student(self) -> CompositeIdentity:
        return parse(self.student_identity)

    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.REGISTERED
