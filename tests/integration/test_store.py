"""Filter evaluation, paging and deletion against SQLite."""

from datetime import date, datetime, timezone

import pytest

from services.query.executor import PageRequest
from services.query.fields import AuditLogField, EntityKind, ProductField, SortDirection, SortKey, UserField
from services.query.predicates import Between, CompositeFilter, PredicateCompiler


def _usernames(rows):
    return [row["username"] for row in rows]


class TestFilter:
    def test_empty_filter_returns_everything(self, store, add_audit):
        for name in ("admin", "bob", "carol"):
            add_audit(username=name)

        rows = store.filter(EntityKind.AUDIT_LOG, CompositeFilter())
        assert _usernames(rows) == ["admin", "bob", "carol"]

    def test_contains_is_case_insensitive_substring(self, store, add_audit):
        for name in ("admin", "bob", "carol"):
            add_audit(username=name)

        composite = PredicateCompiler().add_contains(AuditLogField.USERNAME, "AD").build()
        assert _usernames(store.filter(EntityKind.AUDIT_LOG, composite)) == ["admin"]

    def test_contains_treats_wildcards_literally(self, store, add_product):
        add_product("Summer sale 50%", "SKU-1")
        add_product("Summer sale 500", "SKU-2")

        composite = PredicateCompiler().add_contains(ProductField.NAME, "50%").build()
        rows = store.filter(EntityKind.PRODUCT, composite)
        assert [row["sku"] for row in rows] == ["SKU-1"]

    def test_date_range_includes_whole_last_day(self, store, add_audit):
        add_audit(username="inside", created_at=datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc))
        add_audit(username="outside", created_at=datetime(2024, 2, 1, 0, 0, 1, tzinfo=timezone.utc))
        add_audit(username="first", created_at=datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc))

        composite = (
            PredicateCompiler()
            .add_between(AuditLogField.CREATED_AT, date(2024, 1, 1), date(2024, 1, 31))
            .build()
        )
        assert _usernames(store.filter(EntityKind.AUDIT_LOG, composite)) == ["inside", "first"]

    def test_open_ended_range(self, store, add_product):
        add_product("Cheap lamp", "SKU-1", price=5.0)
        add_product("Fancy lamp", "SKU-2", price=50.0)

        composite = PredicateCompiler().add_between(ProductField.PRICE, 10, None).build()
        assert [row["sku"] for row in store.filter(EntityKind.PRODUCT, composite)] == ["SKU-2"]

    def test_equals_false_matches_inactive_only(self, store, add_product):
        add_product("Active lamp", "SKU-1", active=True)
        add_product("Retired lamp", "SKU-2", active=False)

        composite = PredicateCompiler().add_equals(ProductField.ACTIVE, False).build()
        assert [row["sku"] for row in store.filter(EntityKind.PRODUCT, composite)] == ["SKU-2"]

    def test_permissions_match_any_of_the_values(self, store, add_user):
        add_user("alice", permissions=("READ", "DELETE"))
        add_user("bobby", permissions=("READ",))
        add_user("carol")

        composite = PredicateCompiler().add_in(UserField.PERMISSIONS, ["DELETE", "ADMIN"]).build()
        rows = store.filter(EntityKind.USER, composite)
        assert _usernames(rows) == ["alice"]
        assert rows[0]["permissions"] == ["DELETE", "READ"]

    def test_users_without_permissions_get_empty_list(self, store, add_user):
        add_user("carol")
        (row,) = store.filter(EntityKind.USER, CompositeFilter())
        assert row["permissions"] == []

    def test_contains_folds_non_ascii_case(self, store, add_audit):
        add_audit(username="ÉLODIE")
        add_audit(username="elodie")

        composite = PredicateCompiler().add_contains(AuditLogField.USERNAME, "élodie").build()
        assert _usernames(store.filter(EntityKind.AUDIT_LOG, composite)) == ["ÉLODIE"]

    def test_contains_matches_accented_text_inside_value(self, store, add_product):
        add_product("Lámpara de CAFÉ", "SKU-1")

        composite = PredicateCompiler().add_contains(ProductField.NAME, "Café").build()
        assert [row["sku"] for row in store.filter(EntityKind.PRODUCT, composite)] == ["SKU-1"]

    def test_foreign_field_raises(self, store):
        composite = PredicateCompiler().add_equals(ProductField.SKU, "SKU-1").build()
        with pytest.raises(ValueError):
            store.filter(EntityKind.AUDIT_LOG, composite)


class TestPaging:
    def test_pages_are_stable_with_id_tiebreaker(self, executor, add_audit):
        # Same sort value for every row, so only the id decides the order
        ids = [add_audit(username=f"user{i}", operation="UPDATE") for i in range(5)]
        request_sort = (SortKey(AuditLogField.OPERATION),)

        first = executor.page(EntityKind.AUDIT_LOG, CompositeFilter(), PageRequest(0, 2, request_sort))
        second = executor.page(EntityKind.AUDIT_LOG, CompositeFilter(), PageRequest(1, 2, request_sort))
        third = executor.page(EntityKind.AUDIT_LOG, CompositeFilter(), PageRequest(2, 2, request_sort))

        seen = [row["id"] for page in (first, second, third) for row in page.items]
        assert seen == ids
        assert first.total_elements == 5
        assert first.total_pages == 3
        assert third.last

    def test_page_past_the_end_is_empty(self, executor, add_audit):
        add_audit()
        page = executor.page(EntityKind.AUDIT_LOG, CompositeFilter(), PageRequest(3, 10))
        assert page.items == []
        assert page.total_elements == 1

    def test_descending_sort(self, executor, add_product):
        add_product("Lamp A", "SKU-A", price=10.0)
        add_product("Lamp B", "SKU-B", price=30.0)
        add_product("Lamp C", "SKU-C", price=20.0)

        rows = executor.all(EntityKind.PRODUCT, CompositeFilter(), [SortKey(ProductField.PRICE, SortDirection.DESC)])
        assert [row["sku"] for row in rows] == ["SKU-B", "SKU-C", "SKU-A"]


class TestCountAndDelete:
    def test_count_matches_filter(self, store, add_audit):
        add_audit(success=True)
        add_audit(success=False)
        add_audit(success=False)

        composite = PredicateCompiler().add_equals(AuditLogField.SUCCESS, False).build()
        assert store.count(EntityKind.AUDIT_LOG, composite) == 2

    def test_delete_returns_affected_rows(self, store, add_audit):
        add_audit(username="alice")
        add_audit(username="alice")
        add_audit(username="bob")

        deleted = store.delete_where(
            EntityKind.AUDIT_LOG,
            PredicateCompiler().add_equals(AuditLogField.USERNAME, "alice").build(),
        )
        assert deleted == 2
        assert store.count(EntityKind.AUDIT_LOG, CompositeFilter()) == 1

    def test_delete_accepts_single_predicate(self, store, add_audit):
        add_audit(created_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        deleted = store.delete_where(
            EntityKind.AUDIT_LOG,
            Between(AuditLogField.CREATED_AT, None, datetime(2021, 1, 1, tzinfo=timezone.utc)),
        )
        assert deleted == 1

    def test_insert_audit_record_with_json_columns(self, store, add_audit):
        audit_id = add_audit(changes='{"price": 12.5}', metadata='{"source": "api"}')

        (row,) = store.filter(EntityKind.AUDIT_LOG, CompositeFilter())
        assert row["id"] == audit_id
        assert row["changes"] == '{"price": 12.5}'
        assert row["metadata"] == '{"source": "api"}'

    def test_delete_with_empty_filter_is_refused(self, store, add_audit):
        add_audit()
        with pytest.raises(ValueError):
            store.delete_where(EntityKind.AUDIT_LOG, CompositeFilter())
        assert store.count(EntityKind.AUDIT_LOG, CompositeFilter()) == 1
