"""
Shared pytest fixtures.

Every test that touches storage gets its own SQLite file under tmp_path, with
the schema created by utils.db.init_schema.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from services.query.executor import QueryExecutor
from services.query.fields import EntityKind
from services.query.store import SqliteRecordStore
from utils.db import init_schema

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def db_path(tmp_path) -> str:
    path = str(tmp_path / "records.db")
    init_schema(path)
    return path


@pytest.fixture
def store(db_path) -> SqliteRecordStore:
    return SqliteRecordStore(db_path)


@pytest.fixture
def executor(store) -> QueryExecutor:
    return QueryExecutor(store)


@pytest.fixture
def add_audit(store) -> Callable[..., int]:
    """Insert one audit record; created_at defaults to NOW."""

    def _add(
        username: str = "admin",
        operation: str = "CREATE",
        entity_type: str = "Product",
        success: bool = True,
        created_at: datetime = NOW,
        **extra: Any,
    ) -> int:
        values = {
            "username": username,
            "operation": operation,
            "entity_type": entity_type,
            "success": success,
            "created_at": created_at,
        }
        values.update(extra)
        return store.insert(EntityKind.AUDIT_LOG, values)

    return _add


@pytest.fixture
def add_product(store) -> Callable[..., int]:
    def _add(
        name: str,
        sku: str,
        price: float = 9.99,
        quantity: int = 5,
        active: bool = True,
        category: str = None,
        created_at: datetime = NOW,
        **extra: Any,
    ) -> int:
        values = {
            "name": name,
            "sku": sku,
            "price": price,
            "quantity": quantity,
            "active": active,
            "category": category,
            "created_at": created_at,
            "updated_at": created_at,
        }
        values.update(extra)
        return store.insert(EntityKind.PRODUCT, values)

    return _add


@pytest.fixture
def add_user(store) -> Callable[..., int]:
    def _add(
        username: str,
        role: str = "USER",
        is_active: bool = True,
        permissions: tuple = (),
        created_at: datetime = NOW - timedelta(days=30),
        **extra: Any,
    ) -> int:
        values = {
            "username": username,
            "first_name": username.capitalize(),
            "last_name": "Tester",
            "email": f"{username}@acme.io",
            "role": role,
            "is_active": is_active,
            "permissions": list(permissions),
            "created_at": created_at,
            "updated_at": created_at,
        }
        values.update(extra)
        return store.insert(EntityKind.USER, values)

    return _add
