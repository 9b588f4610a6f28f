"""
Usage ledger models.
"""

from datetime import date
from typing import Dict

from pydantic import BaseModel, Field


class UsageLedger(BaseModel):
    """On-disk ledger: call counts per month ("YYYY-MM") and endpoint."""
    version: str = "2.0.0"
    months: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class UsageResponse(BaseModel):
    """Response from GET /api/v1/usage."""
    current: int = Field(description="Render calls recorded this month")
    limit: int = Field(description="Monthly quota (reported, not enforced)")
    remaining: int
    reset_date: date = Field(description="First day of next month")
    calls_by_endpoint: Dict[str, int] = Field(default_factory=dict)
