"""
Time-bucketed aggregation for the audit dashboard.

Every series is scoped to audit records created at or after the start of the
requested TimeRange, resolved against "now" in UTC at call time.

Series:
- logs_over_time: one point per observed UTC day, ascending by date
  (days without records are not backfilled)
- logs_by_operation: one point per operation type
- logs_by_user: top N usernames
- logs_by_status: "Success" / "Failure", each only if observed

The last three are ordered by count descending, ties by label ascending.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from services.query.fields import AuditLogField, EntityKind
from services.query.store import SqliteRecordStore
from utils.config import settings
from utils.dates import minus_months, minus_years, utc_now
from utils.schemas import ChartPoint, DashboardStats

logger = logging.getLogger(__name__)

SUCCESS_LABEL = "Success"
FAILURE_LABEL = "Failure"


class TimeRange(str, Enum):
    """Named lookback windows for dashboard queries."""

    LAST_7_DAYS = "LAST_7_DAYS"
    LAST_30_DAYS = "LAST_30_DAYS"
    LAST_3_MONTHS = "LAST_3_MONTHS"
    LAST_YEAR = "LAST_YEAR"

    def start_instant(self, now: Optional[datetime] = None) -> datetime:
        """Resolve to a concrete start instant using calendar-aware subtraction."""
        now = now or utc_now()
        if self is TimeRange.LAST_7_DAYS:
            return now - timedelta(days=7)
        if self is TimeRange.LAST_30_DAYS:
            return now - timedelta(days=30)
        if self is TimeRange.LAST_3_MONTHS:
            return minus_months(now, 3)
        return minus_years(now, 1)


class Dimension(str, Enum):
    DAY = "day"
    OPERATION = "operation"
    ACTOR = "actor"
    STATUS = "status"


_DIMENSION_FIELDS = {
    Dimension.DAY: AuditLogField.CREATED_AT,
    Dimension.OPERATION: AuditLogField.OPERATION,
    Dimension.ACTOR: AuditLogField.USERNAME,
    Dimension.STATUS: AuditLogField.SUCCESS,
}


def _status_label(value: Any) -> str:
    return SUCCESS_LABEL if value else FAILURE_LABEL


def _by_value_desc(points: list[ChartPoint]) -> list[ChartPoint]:
    return sorted(points, key=lambda p: (-p.value, p.label))


class TimeBucketAggregator:
    """
    Compute dashboard series from audit records.

    Args:
        store: Record store, defaults to the configured SQLite database
        clock: Returns the current UTC instant
        top_users: Size of the by-user series, defaults to settings.DASHBOARD_TOP_USERS
    """

    def __init__(
        self,
        store: Optional[SqliteRecordStore] = None,
        clock: Callable[[], datetime] = utc_now,
        top_users: Optional[int] = None,
    ) -> None:
        self.store = store or SqliteRecordStore()
        self.clock = clock
        self.top_users = settings.DASHBOARD_TOP_USERS if top_users is None else top_users

    def resolve(self, time_range: Optional[TimeRange]) -> datetime:
        return (time_range or TimeRange.LAST_7_DAYS).start_instant(self.clock())

    def count_by(
        self,
        dimension: Dimension,
        since: datetime,
        top_n: Optional[int] = None,
    ) -> list[ChartPoint]:
        rows = self.store.group_count(
            EntityKind.AUDIT_LOG,
            _DIMENSION_FIELDS[dimension],
            since=since,
            top_n=top_n,
            by_day=dimension is Dimension.DAY,
        )

        if dimension is Dimension.DAY:
            return [ChartPoint(label=label, value=count) for label, count in rows]
        if dimension is Dimension.STATUS:
            points = [ChartPoint(label=_status_label(label), value=count) for label, count in rows]
        else:
            points = [ChartPoint(label=str(label), value=count) for label, count in rows]
        return _by_value_desc(points)

    def logs_over_time(self, time_range: Optional[TimeRange] = None) -> list[ChartPoint]:
        return self.count_by(Dimension.DAY, self.resolve(time_range))

    def logs_by_operation(self, time_range: Optional[TimeRange] = None) -> list[ChartPoint]:
        return self.count_by(Dimension.OPERATION, self.resolve(time_range))

    def logs_by_user(
        self,
        time_range: Optional[TimeRange] = None,
        limit: Optional[int] = None,
    ) -> list[ChartPoint]:
        top_n = self.top_users if limit is None else limit
        return self.count_by(Dimension.ACTOR, self.resolve(time_range), top_n=top_n)

    def logs_by_status(self, time_range: Optional[TimeRange] = None) -> list[ChartPoint]:
        return self.count_by(Dimension.STATUS, self.resolve(time_range))

    def dashboard(self, time_range: Optional[TimeRange] = None) -> DashboardStats:
        """
        All four series for one range (default LAST_7_DAYS).

        The start instant is resolved once so every series covers the same window.
        """
        time_range = time_range or TimeRange.LAST_7_DAYS
        since = self.resolve(time_range)

        logger.debug("Fetching dashboard statistics: range=%s, since=%s", time_range.value, since.isoformat())

        return DashboardStats(
            range=time_range.value,
            since=since,
            logs_over_time=self.count_by(Dimension.DAY, since),
            logs_by_operation=self.count_by(Dimension.OPERATION, since),
            logs_by_user=self.count_by(Dimension.ACTOR, since, top_n=self.top_users),
            logs_by_status=self.count_by(Dimension.STATUS, since),
        )
