"""
Student and student shadow models
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional

from uniadmin.core.timestamps import utc_now


class Student(SQLModel, table=True):
    """A student homed in this department partition"""

    __tablename__ = "students"

    id: Optional[int] = Field(default=None, primary_key=True)
    student_number: str = Field(index=True, unique=True, max_length=32)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    university_email: str = Field(index=True, unique=True, max_length=255)
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class StudentShadow(SQLModel, table=True):
    """Snapshot of a foreign student enrolled in one of this partition's modules

    The student itself stays in its home partition; this row only lets
    local reporting name the student.
    """

    __tablename__ = "student_shadows"

    id: Optional[int] = Field(default=None, primary_key=True)
    student_identity: str = Field(
        index=True,
        unique=True,
        max_length=255,
        description="Composite identity token of the student"
    )
    source_tenant: str = Field(index=True, max_length=32)
    full_name: Optional[str] = Field(default=None, max_length=200)
    university_email: Optional[str] = Field(default=None, max_length=255)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
