"""
Usage reporting endpoint.
"""

from fastapi import APIRouter

from app.models.usage import UsageResponse
from app.services.usage import usage_service

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("", response_model=UsageResponse)
def get_usage() -> UsageResponse:
    """Render calls this month against the monthly quota (not enforced)."""
    return usage_service.report()
