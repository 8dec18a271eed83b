"""
Module (course) model
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional

from uniadmin.core.timestamps import utc_now


class Module(SQLModel, table=True):
    """A module homed in this department partition

    The home department is the partition the row lives in and never changes.
    ``is_global`` opens the module to enrollment requests from every
    department instead of only the home one.
    """

    __tablename__ = "modules"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True, max_length=32)
    title: str = Field(max_length=255)
    credits: int = Field(default=15, ge=0)
    semester: Optional[int] = Field(default=None, ge=1)

    is_global: bool = Field(
        default=False,
        index=True,
        description="Visible for enrollment requests from any department"
    )
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utc_now)
    deactivated_at: Optional[datetime] = None

    def is_visible_to(self, home_tenant: str, requesting_tenant: str) -> bool:
        """Check if a student of requesting_tenant may request this module"""
        if not self.is_active:
            return False
        return self.is_global or home_tenant == requesting_tenant

    def deactivate(self) -> None:
        self.is_active = False
        self.deactivated_at = utc_now()
