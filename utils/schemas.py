"""
Pydantic Schemas - Data Validation Models

Defines all Pydantic schemas used by the record backend:
- Entity records (products, users, audit logs)
- Filter requests: sparse, every field optional, parsed and validated here
  before anything reaches the predicate compiler
- Listing parameters (page, size, sort)
- Dashboard and statistics payloads
- Retention policy

Usage:
    from utils.schemas import AuditLogFilter

    criteria = AuditLogFilter(username="adm", created_at_from="2024-01-01")
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from utils.config import Settings, settings
from utils.dates import end_of_day, ensure_utc, parse_flexible_date, resolve_timezone, start_of_day

DateLike = Union[datetime, date]


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    GUEST = "GUEST"


class Permission(str, Enum):
    READ = "READ"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ADMIN = "ADMIN"
    MANAGE_USERS = "MANAGE_USERS"
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"


class DeletionStatus(str, Enum):
    """Which users a listing covers when is_active is not given explicitly."""

    ACTIVE_ONLY = "ACTIVE_ONLY"
    DELETED_ONLY = "DELETED_ONLY"
    ALL = "ALL"


# ========== Entity Records ==========


class ProductRecord(BaseModel):
    """Product catalog record."""

    id: int
    name: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    sku: str = Field(..., pattern=r"^[A-Z0-9-]+$")
    price: Decimal = Field(..., ge=Decimal("0.01"), decimal_places=2)
    quantity: int = Field(..., ge=0)
    active: bool = True
    category: Optional[str] = Field(default=None, max_length=100)
    created_at: datetime
    updated_at: datetime
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def round_price(cls, v: Any) -> Any:
        # Stored as REAL; bring it back to two decimal places
        if isinstance(v, float):
            return Decimal(str(round(v, 2)))
        return v

    @property
    def in_stock(self) -> bool:
        return self.quantity > 0


class UserRecord(BaseModel):
    """User account record."""

    id: int
    username: str = Field(..., min_length=3, max_length=50)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=20)
    role: UserRole
    is_active: bool = True
    last_login_date: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    permissions: list[Permission] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class AuditLogRecord(BaseModel):
    """One auditable operation."""

    id: int
    username: str
    operation: str
    entity_type: str
    entity_id: Optional[int] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    request_uri: Optional[str] = None
    http_method: Optional[str] = None
    changes: Optional[str] = None
    metadata: Optional[str] = None
    success: bool
    error_message: Optional[str] = None
    created_at: datetime


# ========== Filter Requests ==========


def _lower_instant(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return start_of_day(value, resolve_timezone(None))


def _upper_instant(value: DateLike) -> datetime:
    # A date-only upper bound covers its whole day, as in PredicateCompiler.add_between
    if isinstance(value, datetime):
        return ensure_utc(value)
    return end_of_day(value, resolve_timezone(None))


class FilterRequest(BaseModel):
    """
    Base class for sparse filter criteria.

    Subclasses list their date fields in `date_fields`, their list fields in
    `list_fields` and their (from, to) pairs in `ranges`. Date strings are
    parsed with utils.dates.parse_flexible_date; date-only input stays a date
    so the compiler can widen it to whole days. Reversed ranges are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    date_fields: ClassVar[tuple] = ()
    list_fields: ClassVar[tuple] = ()
    ranges: ClassVar[tuple] = ()

    @model_validator(mode="before")
    @classmethod
    def parse_raw_values(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        values = dict(data)
        for name in cls.date_fields:
            raw = values.get(name)
            if isinstance(raw, str):
                values[name] = parse_flexible_date(raw) if raw.strip() else None
        for name in cls.list_fields:
            raw = values.get(name)
            if isinstance(raw, str):
                values[name] = [item.strip() for item in raw.split(",") if item.strip()]
        return values

    @model_validator(mode="after")
    def check_ranges(self) -> "FilterRequest":
        for lower_name, upper_name in self.ranges:
            lower = getattr(self, lower_name)
            upper = getattr(self, upper_name)
            if lower is None or upper is None:
                continue
            if isinstance(lower, date) or isinstance(upper, date):
                reversed_range = _lower_instant(lower) > _upper_instant(upper)
            else:
                reversed_range = lower > upper
            if reversed_range:
                raise ValueError(f"{lower_name} must not be after {upper_name}")
        return self


class ProductFilter(FilterRequest):
    """Product listing filter."""

    date_fields: ClassVar[tuple] = ("created_at_from", "created_at_to", "updated_at_from", "updated_at_to")
    list_fields: ClassVar[tuple] = ("categories",)
    ranges: ClassVar[tuple] = (
        ("price_from", "price_to"),
        ("quantity_from", "quantity_to"),
        ("created_at_from", "created_at_to"),
        ("updated_at_from", "updated_at_to"),
    )

    name: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    categories: Optional[list[str]] = None
    active: Optional[bool] = None
    price_from: Optional[Decimal] = None
    price_to: Optional[Decimal] = None
    quantity_from: Optional[int] = None
    quantity_to: Optional[int] = None
    created_at_from: Optional[DateLike] = None
    created_at_to: Optional[DateLike] = None
    updated_at_from: Optional[DateLike] = None
    updated_at_to: Optional[DateLike] = None


class UserFilter(FilterRequest):
    """User listing filter."""

    date_fields: ClassVar[tuple] = (
        "created_at_from",
        "created_at_to",
        "updated_at_from",
        "updated_at_to",
        "last_login_date_from",
        "last_login_date_to",
        "deleted_at_from",
        "deleted_at_to",
    )
    list_fields: ClassVar[tuple] = ("roles", "permissions")
    ranges: ClassVar[tuple] = (
        ("id_from", "id_to"),
        ("created_at_from", "created_at_to"),
        ("updated_at_from", "updated_at_to"),
        ("last_login_date_from", "last_login_date_to"),
        ("deleted_at_from", "deleted_at_to"),
    )

    id_from: Optional[int] = None
    id_to: Optional[int] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    roles: Optional[list[UserRole]] = None
    permissions: Optional[list[Permission]] = None
    is_active: Optional[bool] = None
    created_at_from: Optional[DateLike] = None
    created_at_to: Optional[DateLike] = None
    updated_at_from: Optional[DateLike] = None
    updated_at_to: Optional[DateLike] = None
    last_login_date_from: Optional[DateLike] = None
    last_login_date_to: Optional[DateLike] = None
    deleted_at_from: Optional[DateLike] = None
    deleted_at_to: Optional[DateLike] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    deleted_by: Optional[str] = None
    deletion_status: DeletionStatus = DeletionStatus.ACTIVE_ONLY


class AuditLogFilter(FilterRequest):
    """Audit log listing filter."""

    date_fields: ClassVar[tuple] = ("created_at_from", "created_at_to")
    list_fields: ClassVar[tuple] = ("usernames", "operations", "entity_types")
    ranges: ClassVar[tuple] = (("created_at_from", "created_at_to"),)

    username: Optional[str] = None
    operation: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    ip_address: Optional[str] = None
    request_uri: Optional[str] = None
    http_method: Optional[str] = None
    success: Optional[bool] = None
    usernames: Optional[list[str]] = None
    operations: Optional[list[str]] = None
    entity_types: Optional[list[str]] = None
    created_at_from: Optional[DateLike] = None
    created_at_to: Optional[DateLike] = None


class ListingParams(BaseModel):
    """Raw pagination parameters; sort entries look like "name" or "name,desc"."""

    page: int = Field(default=0, ge=0)
    size: int = Field(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    sort: list[str] = Field(default_factory=list)

    @field_validator("sort", mode="before")
    @classmethod
    def split_sort(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


# ========== Dashboard / Statistics ==========


class ChartPoint(BaseModel):
    """One bucketed aggregate: axis label and count."""

    label: str
    value: int


class DashboardStats(BaseModel):
    """Aggregated statistics for the audit log dashboard."""

    range: str
    since: datetime
    logs_over_time: list[ChartPoint] = Field(default_factory=list)
    logs_by_operation: list[ChartPoint] = Field(default_factory=list)
    logs_by_user: list[ChartPoint] = Field(default_factory=list)
    logs_by_status: list[ChartPoint] = Field(default_factory=list)


class UserStatistics(BaseModel):
    """User table statistics."""

    total_users: int
    total_active_users: int
    total_inactive_users: int
    users_by_role: dict[str, int] = Field(default_factory=dict)
    users_by_status: dict[str, int] = Field(default_factory=dict)


# ========== Retention ==========


class RetentionPolicy(BaseModel):
    """Retention settings for one sweep invocation."""

    retention_period: timedelta = Field(default=timedelta(days=90))
    enabled: bool = True

    @field_validator("retention_period")
    @classmethod
    def validate_period(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("retention_period must be positive")
        return v

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "RetentionPolicy":
        source = source or settings
        return cls(
            retention_period=timedelta(days=source.AUDIT_RETENTION_DAYS),
            enabled=source.AUDIT_CLEANUP_ENABLED,
        )
