"""
Academic staff model
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional

from uniadmin.core.timestamps import utc_now


class Staff(SQLModel, table=True):
    """Academic or administrative staff member of a department"""

    __tablename__ = "staff"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    university_email: str = Field(index=True, unique=True, max_length=255)
    position: Optional[str] = Field(default=None, max_length=100)
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utc_now)
