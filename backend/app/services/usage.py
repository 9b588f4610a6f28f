"""
Usage ledger: records render calls and reports monthly usage.

Calls are kept as per-month counters, so the ledger stays small however many
renders are recorded. The quota is reported only; no endpoint refuses work
when it is exceeded.
"""

import json
import logging
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from app.config import settings
from app.models.usage import UsageLedger, UsageResponse

logger = logging.getLogger(__name__)


# Months of counters kept on disk
RETAINED_MONTHS = 12


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def next_month_start(today: date) -> date:
    if today.month == 12:
        return date(today.year + 1, 1, 1)
    return date(today.year, today.month + 1, 1)


class UsageService:
    """JSON-file ledger of API calls."""

    def __init__(self, ledger_path: Optional[Path] = None, monthly_quota: Optional[int] = None):
        self.ledger_path = ledger_path or settings.usage_path
        self.monthly_quota = settings.monthly_render_quota if monthly_quota is None else monthly_quota
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._ledger = self._load()

    def _load(self) -> UsageLedger:
        if self.ledger_path.exists():
            try:
                with open(self.ledger_path, "r") as f:
                    return UsageLedger.model_validate(json.load(f))
            except Exception as e:
                logger.error(f"Failed to load usage ledger: {e}")
        return UsageLedger()

    def record(self, endpoint: str, timestamp: Optional[datetime] = None) -> None:
        """Count one call against its month."""
        key = month_key(timestamp or datetime.now(timezone.utc))
        with self._lock:
            counts = self._ledger.months.setdefault(key, {})
            counts[endpoint] = counts.get(endpoint, 0) + 1

            for stale in sorted(self._ledger.months)[:-RETAINED_MONTHS]:
                del self._ledger.months[stale]

            with open(self.ledger_path, "w") as f:
                json.dump(self._ledger.model_dump(mode="json"), f, indent=2)
        logger.debug(f"Recorded usage: {endpoint} ({key})")

    def report(self, today: Optional[date] = None) -> UsageResponse:
        """Usage for the calendar month containing `today` (UTC)."""
        today = today or datetime.now(timezone.utc).date()
        with self._lock:
            by_endpoint = dict(self._ledger.months.get(month_key(today), {}))
        current = sum(by_endpoint.values())

        return UsageResponse(
            current=current,
            limit=self.monthly_quota,
            remaining=max(0, self.monthly_quota - current),
            reset_date=next_month_start(today),
            calls_by_endpoint=by_endpoint,
        )


# Global service instance
usage_service = UsageService()
