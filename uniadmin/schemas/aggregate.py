"""
Pydantic schemas for central reporting
"""

from pydantic import BaseModel
from typing import Any, Dict, List


class AggregateResponse(BaseModel):
    """Rows tagged with their department plus departments that did not answer"""
    view: str
    rows: List[Dict[str, Any]]
    failed_tenants: List[str] = []
