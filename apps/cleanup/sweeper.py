"""
Retention Sweeper - Audit Log Pruning

Deletes audit records older than the configured retention period.

Features:
- Strict cutoff: a record created exactly at the cutoff is kept
- Deleted count comes from the DELETE statement itself, in one transaction
- Scheduled runs read the policy fresh from configuration, retry transient
  "database is locked" errors and never raise
- Targeted sweeps (per entity, per actor) propagate errors to the caller
- Single-owner execution through a lock with acquire(blocking=False)/release();
  defaults to an in-process lock, a distributed lock with the same interface
  can be passed in for multi-instance deployments

Usage:
    sweeper = RetentionSweeper()
    sweeper.sweep(cutoff)           # manual, errors propagate
    sweeper.run_scheduled()         # scheduled, errors logged and swallowed
"""

import logging
import sqlite3
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from services.query.fields import AuditLogField, EntityKind, entity_spec
from services.query.predicates import PredicateCompiler
from services.query.store import SqliteRecordStore
from utils.config import Settings
from utils.dates import ensure_utc, utc_now
from utils.schemas import RetentionPolicy

logger = logging.getLogger(__name__)

# Stored timestamps have microsecond resolution, so "<= cutoff - 1us" is "< cutoff".
_RESOLUTION = timedelta(microseconds=1)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


class RetentionSweeper:
    """
    Prunes records by age, and audit records by entity or actor.

    Args:
        store: Record store, defaults to the configured SQLite database
        kind: Entity kind pruned by age; targeted sweeps always act on the audit log
        clock: Returns the current UTC instant
        lock: Object with acquire(blocking=False) and release() guarding scheduled runs
        max_retries: Attempts for transient lock errors during scheduled runs
    """

    def __init__(
        self,
        store: Optional[SqliteRecordStore] = None,
        kind: EntityKind = EntityKind.AUDIT_LOG,
        clock: Callable[[], datetime] = utc_now,
        lock: Optional[Any] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        self.store = store or SqliteRecordStore()
        self.kind = kind
        self.clock = clock
        self.lock = lock or threading.Lock()
        self.max_retries = max_retries

    def sweep(self, cutoff: datetime) -> int:
        """
        Delete all records of the sweeper's kind created strictly before `cutoff`.

        Args:
            cutoff: Records whose timestamp is < cutoff are removed

        Returns:
            Number of records deleted
        """
        cutoff = ensure_utc(cutoff)
        logger.info("Deleting %s records created before: %s", self.kind.value, cutoff.isoformat())

        composite = (
            PredicateCompiler()
            .add_between(entity_spec(self.kind).timestamp_field, None, cutoff - _RESOLUTION)
            .build()
        )
        deleted = self.store.delete_where(self.kind, composite)

        logger.info("Deleted %d %s records", deleted, self.kind.value)
        return deleted

    def sweep_for_entity(self, entity_type: str, entity_id: int) -> int:
        """Delete every audit record about one entity, regardless of age."""
        logger.info("Deleting audit logs for entity: %s (ID: %s)", entity_type, entity_id)

        composite = (
            PredicateCompiler()
            .add_equals(AuditLogField.ENTITY_TYPE, entity_type)
            .add_equals(AuditLogField.ENTITY_ID, entity_id)
            .build()
        )
        deleted = self.store.delete_where(EntityKind.AUDIT_LOG, composite)

        logger.info("Deleted %d audit log records for %s (ID: %s)", deleted, entity_type, entity_id)
        return deleted

    def sweep_for_actor(self, username: str) -> int:
        """Delete every audit record performed by one user, regardless of age."""
        logger.info("Deleting audit logs for user: %s", username)

        composite = PredicateCompiler().add_equals(AuditLogField.USERNAME, username).build()
        deleted = self.store.delete_where(EntityKind.AUDIT_LOG, composite)

        logger.info("Deleted %d audit log records for user: %s", deleted, username)
        return deleted

    def _sweep_with_retry(self, cutoff: datetime, attempts: int) -> int:
        retrying = Retrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=5),
            reraise=True,
        )
        return retrying(self.sweep, cutoff)

    def run_scheduled(
        self,
        policy: Optional[RetentionPolicy] = None,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Scheduled entry point. Never raises.

        Args:
            policy: Retention policy; read from current configuration when omitted
            now: Reference instant, defaults to the sweeper's clock

        Returns:
            Number of records deleted, or None if disabled, skipped or failed
        """
        try:
            acquired = self.lock.acquire(blocking=False)
        except Exception as e:
            logger.error("Failed to acquire audit log cleanup lock: %s", str(e), exc_info=True)
            return None

        if not acquired:
            logger.warning("Audit log cleanup already running, skipping this trigger")
            return None

        try:
            current = Settings()
            policy = policy or RetentionPolicy.from_settings(current)
            if not policy.enabled:
                logger.debug("Audit log cleanup is disabled")
                return None

            attempts = self.max_retries or current.SWEEP_MAX_RETRIES
            cutoff = (now or self.clock()) - policy.retention_period

            logger.info(
                "Starting scheduled audit log cleanup",
                extra={"retention_days": policy.retention_period.days, "cutoff": cutoff.isoformat()},
            )

            deleted = self._sweep_with_retry(cutoff, attempts)

            logger.info(
                "Audit log cleanup completed successfully. Deleted %d records older than %s",
                deleted, cutoff.isoformat(),
            )
            return deleted

        except Exception as e:
            logger.error("Failed to cleanup audit logs: %s", str(e), exc_info=True)
            return None

        finally:
            self._release_lock()

    def _release_lock(self) -> None:
        try:
            self.lock.release()
        except Exception as e:
            logger.error("Failed to release audit log cleanup lock: %s", str(e), exc_info=True)
