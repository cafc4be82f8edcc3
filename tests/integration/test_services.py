"""Listing services: request models in, typed pages out."""

from datetime import timedelta
from decimal import Decimal

import orjson
import pytest

from services.api.audit import AuditLogService
from services.api.products import ProductService
from services.api.users import UserService
from services.query.aggregator import TimeBucketAggregator
from utils.schemas import (
    AuditLogFilter,
    DeletionStatus,
    ListingParams,
    Permission,
    ProductFilter,
    UserFilter,
    UserRole,
)


@pytest.fixture
def products(executor):
    return ProductService(executor)


@pytest.fixture
def users(executor):
    return UserService(executor)


@pytest.fixture
def audit(executor, store, clock):
    return AuditLogService(executor, TimeBucketAggregator(store, clock=clock))


class TestProductService:
    def test_list_products_maps_records(self, products, add_product):
        add_product("Desk lamp", "LAMP-1", price=19.99, category="Lighting")
        add_product("Office chair", "CHAIR-1", price=149.5, category="Furniture")

        page = products.list_products(ProductFilter(name="lamp"))

        assert page.total_elements == 1
        (record,) = page.items
        assert record.sku == "LAMP-1"
        assert record.price == Decimal("19.99")
        assert record.in_stock

    def test_categories_and_price_range(self, products, add_product):
        add_product("Desk lamp", "LAMP-1", price=19.99, category="Lighting")
        add_product("Floor lamp", "LAMP-2", price=89.0, category="Lighting")
        add_product("Office chair", "CHAIR-1", price=149.5, category="Furniture")

        criteria = ProductFilter(categories="Lighting,Furniture", price_from="50")
        records = products.list_all_products(criteria, sort=["price,desc"])

        assert [r.sku for r in records] == ["CHAIR-1", "LAMP-2"]

    def test_paging_parameters(self, products, add_product):
        for i in range(5):
            add_product(f"Lamp {i}", f"LAMP-{i}")

        page = products.list_products(ProductFilter(), ListingParams(page=1, size=2, sort=["sku"]))

        assert [r.sku for r in page.items] == ["LAMP-2", "LAMP-3"]
        assert page.total_pages == 3

    def test_low_stock_products(self, products, add_product):
        add_product("Lamp empty", "LAMP-0", quantity=0)
        add_product("Lamp few", "LAMP-3", quantity=3)
        add_product("Lamp many", "LAMP-50", quantity=50)
        add_product("Lamp retired", "LAMP-R", quantity=1, active=False)

        records = products.low_stock_products(threshold=10)

        assert [r.sku for r in records] == ["LAMP-0", "LAMP-3"]
        assert not records[0].in_stock

    def test_unknown_sort_field_raises(self, products):
        with pytest.raises(ValueError):
            products.list_all_products(ProductFilter(), sort=["colour"])


class TestUserService:
    def test_active_only_by_default(self, users, add_user):
        add_user("alice")
        add_user("bobby", is_active=False)

        assert [u.username for u in users.list_all_users(UserFilter())] == ["alice"]

    def test_deleted_only(self, users, add_user):
        add_user("alice")
        add_user("bobby", is_active=False)

        records = users.list_all_users(UserFilter(deletion_status=DeletionStatus.DELETED_ONLY))
        assert [u.username for u in records] == ["bobby"]

    def test_all_users(self, users, add_user):
        add_user("alice")
        add_user("bobby", is_active=False)

        records = users.list_all_users(UserFilter(deletion_status="ALL"))
        assert [u.username for u in records] == ["alice", "bobby"]

    def test_explicit_is_active_wins(self, users, add_user):
        add_user("alice")
        add_user("bobby", is_active=False)

        records = users.list_all_users(UserFilter(is_active=False, deletion_status=DeletionStatus.ACTIVE_ONLY))
        assert [u.username for u in records] == ["bobby"]

    def test_roles_and_permissions(self, users, add_user):
        add_user("alice", role="ADMIN", permissions=("ADMIN", "READ"))
        add_user("bobby", role="USER", permissions=("READ",))
        add_user("carol", role="ADMIN")

        page = users.list_users(UserFilter(roles="ADMIN", permissions="ADMIN"))

        (record,) = page.items
        assert record.username == "alice"
        assert record.role == UserRole.ADMIN
        assert record.permissions == [Permission.ADMIN, Permission.READ]
        assert record.full_name == "Alice Tester"

    def test_created_at_range_by_calendar_day(self, users, add_user, now):
        add_user("alice", created_at=now - timedelta(days=3))
        add_user("bobby", created_at=now - timedelta(days=40))

        day = (now - timedelta(days=3)).date().isoformat()
        records = users.list_all_users(UserFilter(created_at_from=day, created_at_to=day))
        assert [u.username for u in records] == ["alice"]

    def test_user_statistics(self, users, add_user):
        add_user("alice", role="ADMIN")
        add_user("bobby", role="USER")
        add_user("carol", role="USER", is_active=False)

        stats = users.user_statistics()

        assert stats.total_users == 3
        assert stats.total_active_users == 2
        assert stats.total_inactive_users == 1
        assert stats.users_by_role == {"ADMIN": 1, "USER": 2}
        assert stats.users_by_status == {"ACTIVE": 2, "INACTIVE": 1}


class TestAuditLogService:
    def test_record_and_list(self, audit, now):
        audit_id = audit.record_audit_event(
            "admin",
            "UPDATE",
            "Product",
            entity_id=7,
            changes={"price": {"old": "9.99", "new": "12.50"}},
            http_method="PUT",
            created_at=now,
        )

        page = audit.list_audit_logs(AuditLogFilter(entity_type="product", entity_id=7))

        (record,) = page.items
        assert record.id == audit_id
        assert record.success
        assert orjson.loads(record.changes) == {"price": {"old": "9.99", "new": "12.50"}}

    def test_metadata_is_stored_as_json(self, audit, now):
        audit.record_audit_event("admin", "LOGIN", "User", metadata={"source": "api"}, created_at=now)

        (record,) = audit.list_all_audit_logs(AuditLogFilter(operation="LOGIN"))
        assert orjson.loads(record.metadata) == {"source": "api"}
        assert record.changes is None

    def test_failed_events_filter(self, audit, now):
        audit.record_audit_event("admin", "DELETE", "User", success=False, error_message="denied", created_at=now)
        audit.record_audit_event("admin", "DELETE", "User", created_at=now)

        records = audit.list_all_audit_logs(AuditLogFilter(success=False))

        assert [r.error_message for r in records] == ["denied"]

    def test_date_range_in_caller_timezone(self, audit, now):
        # 2024-06-15 12:00 UTC is 2024-06-15 21:00 in Tokyo
        audit.record_audit_event("admin", "CREATE", "Product", created_at=now)

        inside = AuditLogFilter(created_at_from="2024-06-15", created_at_to="2024-06-15")
        outside = AuditLogFilter(created_at_from="2024-06-16", created_at_to="2024-06-16")

        assert len(audit.list_all_audit_logs(inside, timezone_name="Asia/Tokyo")) == 1
        assert audit.list_all_audit_logs(outside, timezone_name="Asia/Tokyo") == []

    def test_unknown_timezone_raises(self, audit):
        with pytest.raises(ValueError):
            audit.list_all_audit_logs(AuditLogFilter(), timezone_name="Nowhere/Special")

    def test_dashboard_statistics_accepts_range_name(self, audit, now):
        audit.record_audit_event("alice", "LOGIN", "User", created_at=now - timedelta(days=20))

        assert audit.dashboard_statistics("last_7_days").logs_by_user == []
        stats = audit.dashboard_statistics("LAST_30_DAYS")
        assert [(p.label, p.value) for p in stats.logs_by_user] == [("alice", 1)]
