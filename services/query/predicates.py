"""
Predicate model and compiler for dynamic listing filters.

A filter request is sparse: most fields are usually absent. The compiler turns
the present ones into atomic predicates and drops everything else, so the
resulting CompositeFilter only ever constrains what the caller asked for.

Usage:
    from services.query.predicates import PredicateCompiler
    from services.query.fields import AuditLogField

    composite = (
        PredicateCompiler(tz=resolve_timezone(request_tz))
        .add_contains(AuditLogField.USERNAME, "adm")
        .add_equals(AuditLogField.SUCCESS, False)
        .add_between(AuditLogField.CREATED_AT, date(2024, 1, 1), date(2024, 1, 31))
        .add_in(AuditLogField.OPERATION, [])  # elided, no constraint
        .build()
    )
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Iterable, Iterator, Optional, Union
from zoneinfo import ZoneInfo

from services.query.fields import FieldKey
from utils.dates import end_of_day, ensure_utc, start_of_day


@dataclass(frozen=True)
class Equals:
    field: FieldKey
    value: Any


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""

    field: FieldKey
    text: str


@dataclass(frozen=True)
class Between:
    """Inclusive range; a None bound leaves that side open."""

    field: FieldKey
    lower: Any = None
    upper: Any = None


@dataclass(frozen=True)
class In:
    field: FieldKey
    values: tuple


Predicate = Union[Equals, Contains, Between, In]


@dataclass(frozen=True)
class CompositeFilter:
    """Conjunction of predicates in insertion order; empty matches everything."""

    predicates: tuple = ()

    def __iter__(self) -> Iterator[Predicate]:
        return iter(self.predicates)

    def __len__(self) -> int:
        return len(self.predicates)

    @property
    def matches_all(self) -> bool:
        return not self.predicates

    def fields(self) -> list:
        return [p.field for p in self.predicates]


def _widen_lower(value: Any, tz: ZoneInfo) -> Any:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return start_of_day(value, tz)
    return value


def _widen_upper(value: Any, tz: ZoneInfo) -> Any:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return end_of_day(value, tz)
    return value


@dataclass(frozen=True)
class PredicateCompiler:
    """
    Immutable fluent builder of a CompositeFilter.

    Every add_* call returns a new compiler; the receiver is never modified,
    so a partially built compiler can be reused safely. Absent values (None,
    blank strings, empty collections) are skipped and never raise.

    Args:
        tz: Timezone used to widen calendar-date range bounds to whole days
    """

    tz: ZoneInfo = field(default=ZoneInfo("UTC"))
    predicates: tuple = ()

    def _with(self, predicate: Predicate) -> "PredicateCompiler":
        return replace(self, predicates=self.predicates + (predicate,))

    def add_where(self, predicate: Optional[Predicate]) -> "PredicateCompiler":
        if predicate is None:
            return self
        return self._with(predicate)

    def add_equals(self, key: FieldKey, value: Any) -> "PredicateCompiler":
        # False and 0 are real values; only None means "not specified"
        if value is None:
            return self
        return self._with(Equals(key, value))

    def add_contains(self, key: FieldKey, text: Optional[str]) -> "PredicateCompiler":
        if text is None or not text.strip():
            return self
        return self._with(Contains(key, text.strip()))

    def add_between(self, key: FieldKey, lower: Any = None, upper: Any = None) -> "PredicateCompiler":
        """
        Add an inclusive range.

        Calendar dates are widened in the compiler's timezone: the lower bound
        to the first instant of its day, the upper bound to the last.
        """
        if lower is None and upper is None:
            return self
        return self._with(
            Between(
                key,
                _widen_lower(lower, self.tz) if lower is not None else None,
                _widen_upper(upper, self.tz) if upper is not None else None,
            )
        )

    def add_in(self, key: FieldKey, values: Optional[Iterable[Any]]) -> "PredicateCompiler":
        # An empty collection means no constraint, not "match nothing"
        values = tuple(values) if values is not None else ()
        if not values:
            return self
        return self._with(In(key, values))

    def when(
        self,
        condition: bool,
        apply: Callable[["PredicateCompiler"], "PredicateCompiler"],
    ) -> "PredicateCompiler":
        if condition:
            return apply(self)
        return self

    def build(self) -> CompositeFilter:
        return CompositeFilter(self.predicates)

