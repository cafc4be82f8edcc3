"""
Audit log listings, dashboard statistics and audit event recording.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

import orjson

from services.api.common import parse_sort, to_page_request
from services.query.aggregator import TimeBucketAggregator, TimeRange
from services.query.executor import Page, QueryExecutor
from services.query.fields import AuditLogField, EntityKind
from services.query.predicates import CompositeFilter, PredicateCompiler
from utils.dates import resolve_timezone, utc_now
from utils.schemas import AuditLogFilter, AuditLogRecord, DashboardStats, ListingParams

logger = logging.getLogger(__name__)


def build_audit_log_filter(criteria: AuditLogFilter, tz: Optional[ZoneInfo] = None) -> CompositeFilter:
    return (
        PredicateCompiler(tz=tz or resolve_timezone(None))
        .add_contains(AuditLogField.USERNAME, criteria.username)
        .add_contains(AuditLogField.OPERATION, criteria.operation)
        .add_contains(AuditLogField.ENTITY_TYPE, criteria.entity_type)
        .add_equals(AuditLogField.ENTITY_ID, criteria.entity_id)
        .add_contains(AuditLogField.IP_ADDRESS, criteria.ip_address)
        .add_contains(AuditLogField.REQUEST_URI, criteria.request_uri)
        .add_contains(AuditLogField.HTTP_METHOD, criteria.http_method)
        .add_equals(AuditLogField.SUCCESS, criteria.success)
        .add_between(AuditLogField.CREATED_AT, criteria.created_at_from, criteria.created_at_to)
        .add_in(AuditLogField.USERNAME, criteria.usernames)
        .add_in(AuditLogField.OPERATION, criteria.operations)
        .add_in(AuditLogField.ENTITY_TYPE, criteria.entity_types)
        .build()
    )


def _to_json(value: Optional[Union[str, dict, list]]) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return orjson.dumps(value, default=str).decode("utf-8")


class AuditLogService:
    """
    Query side of the audit log plus the single write used by auditable operations.

    Args:
        executor: Query executor; its store is shared with the aggregator
        aggregator: Dashboard aggregator, built on the executor's store by default
    """

    def __init__(
        self,
        executor: Optional[QueryExecutor] = None,
        aggregator: Optional[TimeBucketAggregator] = None,
    ) -> None:
        self.executor = executor or QueryExecutor()
        self.aggregator = aggregator or TimeBucketAggregator(self.executor.store)

    def list_audit_logs(
        self,
        criteria: AuditLogFilter,
        params: Optional[ListingParams] = None,
        timezone_name: Optional[str] = None,
    ) -> Page[AuditLogRecord]:
        logger.debug("Fetching audit logs with filter: %s", criteria.model_dump(exclude_none=True))
        composite = build_audit_log_filter(criteria, resolve_timezone(timezone_name))
        page = self.executor.page(EntityKind.AUDIT_LOG, composite, to_page_request(AuditLogField, params))
        return page.map(AuditLogRecord.model_validate)

    def list_all_audit_logs(
        self,
        criteria: AuditLogFilter,
        sort: Optional[list[str]] = None,
        timezone_name: Optional[str] = None,
    ) -> list[AuditLogRecord]:
        """Every matching audit log, unpaginated. Use with small result sets."""
        logger.debug("Fetching ALL audit logs (unpaginated) with filter: %s", criteria.model_dump(exclude_none=True))
        composite = build_audit_log_filter(criteria, resolve_timezone(timezone_name))
        rows = self.executor.all(EntityKind.AUDIT_LOG, composite, parse_sort(AuditLogField, sort))
        return [AuditLogRecord.model_validate(row) for row in rows]

    def dashboard_statistics(self, time_range: Optional[Union[TimeRange, str]] = None) -> DashboardStats:
        """Dashboard series for the range (LAST_7_DAYS when not given)."""
        if isinstance(time_range, str):
            time_range = TimeRange(time_range.upper())
        return self.aggregator.dashboard(time_range)

    def record_audit_event(
        self,
        username: str,
        operation: str,
        entity_type: str,
        success: bool = True,
        entity_id: Optional[int] = None,
        description: Optional[str] = None,
        ip_address: Optional[str] = None,
        request_uri: Optional[str] = None,
        http_method: Optional[str] = None,
        changes: Optional[Union[str, dict, list]] = None,
        metadata: Optional[Union[str, dict]] = None,
        error_message: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        """
        Persist one audit event.

        `changes` and `metadata` may be given as dicts; they are stored as JSON.

        Returns:
            Id of the new audit row
        """
        values: dict[str, Any] = {
            "username": username,
            "operation": operation,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "description": description,
            "ip_address": ip_address,
            "request_uri": request_uri,
            "http_method": http_method,
            "changes": _to_json(changes),
            "metadata": _to_json(metadata),
            "success": success,
            "error_message": error_message,
            "created_at": created_at or utc_now(),
        }
        audit_id = self.executor.store.insert(EntityKind.AUDIT_LOG, values)

        logger.debug(
            "Audit event recorded: id=%d, operation=%s, entity=%s/%s, success=%s",
            audit_id, operation, entity_type, entity_id, success,
        )
        return audit_id
