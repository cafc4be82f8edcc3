"""
User listings and user table statistics.
"""

import logging
from typing import Optional
from zoneinfo import ZoneInfo

from services.api.common import parse_sort, to_page_request
from services.query.executor import Page, QueryExecutor
from services.query.fields import EntityKind, UserField
from services.query.predicates import CompositeFilter, PredicateCompiler
from utils.dates import resolve_timezone
from utils.schemas import DeletionStatus, ListingParams, UserFilter, UserRecord, UserStatistics

logger = logging.getLogger(__name__)


def _apply_deletion_status(compiler: PredicateCompiler, criteria: UserFilter) -> PredicateCompiler:
    # An explicit is_active wins over deletion_status
    if criteria.is_active is not None:
        return compiler.add_equals(UserField.IS_ACTIVE, criteria.is_active)
    if criteria.deletion_status == DeletionStatus.ACTIVE_ONLY:
        return compiler.add_equals(UserField.IS_ACTIVE, True)
    if criteria.deletion_status == DeletionStatus.DELETED_ONLY:
        return compiler.add_equals(UserField.IS_ACTIVE, False)
    return compiler


def build_user_filter(criteria: UserFilter, tz: Optional[ZoneInfo] = None) -> CompositeFilter:
    compiler = _apply_deletion_status(PredicateCompiler(tz=tz or resolve_timezone(None)), criteria)
    return (
        compiler
        .add_between(UserField.ID, criteria.id_from, criteria.id_to)
        .add_contains(UserField.USERNAME, criteria.username)
        .add_contains(UserField.FIRST_NAME, criteria.first_name)
        .add_contains(UserField.LAST_NAME, criteria.last_name)
        .add_contains(UserField.EMAIL, criteria.email)
        .add_contains(UserField.PHONE, criteria.phone)
        .add_in(UserField.ROLE, criteria.roles)
        .add_in(UserField.PERMISSIONS, criteria.permissions)
        .add_between(UserField.CREATED_AT, criteria.created_at_from, criteria.created_at_to)
        .add_between(UserField.UPDATED_AT, criteria.updated_at_from, criteria.updated_at_to)
        .add_between(UserField.LAST_LOGIN_DATE, criteria.last_login_date_from, criteria.last_login_date_to)
        .add_contains(UserField.CREATED_BY, criteria.created_by)
        .add_contains(UserField.UPDATED_BY, criteria.updated_by)
        .add_contains(UserField.DELETED_BY, criteria.deleted_by)
        .add_between(UserField.DELETED_AT, criteria.deleted_at_from, criteria.deleted_at_to)
        .build()
    )


class UserService:
    """Filtered user listings and statistics."""

    def __init__(self, executor: Optional[QueryExecutor] = None) -> None:
        self.executor = executor or QueryExecutor()

    def list_users(
        self,
        criteria: UserFilter,
        params: Optional[ListingParams] = None,
        timezone_name: Optional[str] = None,
    ) -> Page[UserRecord]:
        logger.debug("Fetching all users with filter: %s", criteria.model_dump(exclude_none=True))
        composite = build_user_filter(criteria, resolve_timezone(timezone_name))
        page = self.executor.page(EntityKind.USER, composite, to_page_request(UserField, params))
        return page.map(UserRecord.model_validate)

    def list_all_users(
        self,
        criteria: UserFilter,
        sort: Optional[list[str]] = None,
        timezone_name: Optional[str] = None,
    ) -> list[UserRecord]:
        """Every matching user, unpaginated. Use with small result sets."""
        logger.debug("Fetching ALL users (unpaginated) with filter: %s", criteria.model_dump(exclude_none=True))
        composite = build_user_filter(criteria, resolve_timezone(timezone_name))
        rows = self.executor.all(EntityKind.USER, composite, parse_sort(UserField, sort))
        return [UserRecord.model_validate(row) for row in rows]

    def user_statistics(self) -> UserStatistics:
        """Totals, active/inactive split and per-role counts over all users."""
        logger.debug("Fetching user statistics")
        store = self.executor.store

        by_role = {str(role): count for role, count in store.group_count(EntityKind.USER, UserField.ROLE)}
        by_active = {bool(flag): count for flag, count in store.group_count(EntityKind.USER, UserField.IS_ACTIVE)}

        active = by_active.get(True, 0)
        inactive = by_active.get(False, 0)

        return UserStatistics(
            total_users=active + inactive,
            total_active_users=active,
            total_inactive_users=inactive,
            users_by_role=by_role,
            users_by_status={"ACTIVE": active, "INACTIVE": inactive},
        )
