"""
Inventory ledger tests.

Every stock change goes through inventory_service and appends one history
row; quantity always equals the sum of the product's change_qty values.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from catalog_admin.extensions import db
from catalog_admin.models import (
    HistoryImmutableError,
    InventoryHistoryEntry,
    InventoryRecord,
    Product,
    Sale,
)
from catalog_admin.services import inventory_service, products_service, sales_service
from catalog_admin.services.inventory_service import StockChange, clamp_to_zero
from catalog_admin.validation import ConflictError, NotFoundError, ValidationError


def _history(product_id):
    """Ledger rows oldest first."""
    return (
        db.session.query(InventoryHistoryEntry)
        .filter_by(product_id=product_id)
        .order_by(InventoryHistoryEntry.id.asc())
        .all()
    )


def _triples(product_id):
    return [(e.previous_qty, e.change_qty, e.new_qty) for e in _history(product_id)]


def _bare_product(category_id, name="Loose item"):
    """A product with no inventory row at all."""
    p = Product(name=name, description="", price=Decimal("5.00"), category_id=category_id)
    db.session.add(p)
    db.session.commit()
    return p.id


class TestLedgerScenarios:
    """Create -> sell -> set -> delete attempt on one product."""

    def test_create_product_records_initial_entry(self, db_session, make_product):
        product = make_product(initial_quantity=50)

        assert product["quantity"] == 50
        assert _triples(product["id"]) == [(0, 50, 50)]

    def test_sale_decrements_and_appends(self, db_session, make_product):
        product = make_product(initial_quantity=50)

        sales_service.record_sale(product_id=product["id"], quantity=10)

        assert inventory_service.get_quantity(product["id"]) == 40
        assert _triples(product["id"])[-1] == (50, -10, 40)

    def test_manual_set_appends_signed_delta(self, db_session, make_product):
        product = make_product(initial_quantity=50)
        sales_service.record_sale(product_id=product["id"], quantity=10)

        change = inventory_service.apply_quantity_change(product["id"], 5)

        assert change == StockChange(product_id=product["id"], previous_quantity=40, new_quantity=5)
        assert change.change_qty == -35
        assert _triples(product["id"]) == [(0, 50, 50), (50, -10, 40), (40, -35, 5)]

    def test_delete_with_sales_leaves_everything(self, db_session, make_product):
        product = make_product(initial_quantity=50)
        sales_service.record_sale(product_id=product["id"], quantity=10)
        before = _triples(product["id"])

        with pytest.raises(ConflictError):
            products_service.delete_product(product_id=product["id"])

        assert db.session.get(Product, product["id"]) is not None
        assert inventory_service.get_quantity(product["id"]) == 40
        assert _triples(product["id"]) == before

    def test_delete_without_sales_removes_ledger(self, db_session, make_product):
        product = make_product(name="Doomed", initial_quantity=3)
        inventory_service.apply_quantity_change(product["id"], 7)

        result = products_service.delete_product(product_id=product["id"])

        assert result == {"message": "Deleted product: Doomed"}
        assert db.session.get(Product, product["id"]) is None
        assert db.session.query(InventoryRecord).filter_by(product_id=product["id"]).count() == 0
        assert _history(product["id"]) == []


class TestClamping:
    def test_clamp_to_zero_policy(self):
        assert clamp_to_zero(10, 3) == 7
        assert clamp_to_zero(3, 3) == 0
        assert clamp_to_zero(3, 10) == 0
        assert clamp_to_zero(0, 1) == 0

    def test_oversell_records_actual_delta(self, db_session, make_product):
        product = make_product(initial_quantity=3)

        change = inventory_service.apply_decrement(product["id"], 10)

        assert change.new_quantity == 0
        assert change.change_qty == -3
        assert _triples(product["id"])[-1] == (3, -3, 0)

    def test_oversold_sale_is_still_recorded(self, db_session, make_product):
        product = make_product(price="2.50", initial_quantity=2)

        sale = sales_service.record_sale(product_id=product["id"], quantity=5)

        assert sale["quantity"] == 5
        assert sale["total_price"] == "12.50"
        assert inventory_service.get_quantity(product["id"]) == 0
        assert _triples(product["id"])[-1] == (2, -2, 0)

    def test_decrement_at_zero_appends_zero_change(self, db_session, make_product):
        product = make_product(initial_quantity=0)

        inventory_service.apply_decrement(product["id"], 4)

        assert _triples(product["id"]) == [(0, 0, 0), (0, 0, 0)]


class TestLazyInventoryRow:
    def test_missing_row_reads_as_zero(self, db_session, category):
        pid = _bare_product(category.id)

        assert inventory_service.get_quantity(pid) == 0
        assert products_service.get_product(pid)["quantity"] == 0

    def test_set_creates_row_and_entry(self, db_session, category):
        pid = _bare_product(category.id)

        change = inventory_service.apply_quantity_change(pid, 12)

        assert change.to_dict() == {"product_id": pid, "previous_quantity": 0, "new_quantity": 12}
        assert db.session.query(InventoryRecord).filter_by(product_id=pid).one().quantity == 12
        assert _triples(pid) == [(0, 12, 12)]

    def test_decrement_creates_row_at_zero(self, db_session, category):
        pid = _bare_product(category.id)

        change = inventory_service.apply_decrement(pid, 2)

        assert change.new_quantity == 0
        assert db.session.query(InventoryRecord).filter_by(product_id=pid).count() == 1
        assert _triples(pid) == [(0, 0, 0)]

    def test_initialize_twice_conflicts(self, db_session, make_product):
        product = make_product(initial_quantity=1)

        with pytest.raises(ConflictError):
            inventory_service.initialize_stock(product["id"], 5)
        db.session.rollback()

        assert _triples(product["id"]) == [(0, 1, 1)]


class TestInvalidInput:
    @pytest.mark.parametrize("bad", [-1, 1.5, "3", None, True, 2**31])
    def test_set_rejects_bad_quantity(self, db_session, make_product, bad):
        product = make_product(initial_quantity=4)

        with pytest.raises(ValidationError):
            inventory_service.apply_quantity_change(product["id"], bad)

        assert _triples(product["id"]) == [(0, 4, 4)]

    @pytest.mark.parametrize("bad", [0, -2, 2.0])
    def test_decrement_rejects_non_positive(self, db_session, make_product, bad):
        product = make_product(initial_quantity=4)

        with pytest.raises(ValidationError):
            inventory_service.apply_decrement(product["id"], bad)

        assert inventory_service.get_quantity(product["id"]) == 4

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.apply_quantity_change(999, 1)
        with pytest.raises(NotFoundError):
            inventory_service.apply_decrement(999, 1)
        with pytest.raises(NotFoundError):
            inventory_service.list_inventory_history(999)

        assert db.session.query(InventoryHistoryEntry).count() == 0
        assert db.session.query(InventoryRecord).count() == 0


@pytest.fixture()
def locked_entities(monkeypatch):
    """Entities passed through lock_for_update, in call order."""
    seen = []
    real_lock = inventory_service.lock_for_update

    def _spy(query):
        seen.append(query.column_descriptions[0]["entity"])
        return real_lock(query)

    monkeypatch.setattr(inventory_service, "lock_for_update", _spy)
    return seen


class TestRowLocking:
    """The product row is locked first, so writers queue even with no inventory row yet."""

    def test_set_locks_product_before_missing_record(self, db_session, category, locked_entities):
        pid = _bare_product(category.id)

        inventory_service.apply_quantity_change(pid, 3)

        assert locked_entities == [Product, InventoryRecord]

    def test_sale_locks_product_before_record(self, db_session, category, locked_entities):
        pid = _bare_product(category.id)

        sales_service.record_sale(product_id=pid, quantity=1)

        assert locked_entities[0] is Product
        assert locked_entities[-1] is InventoryRecord
        assert set(locked_entities[:-1]) == {Product}

    def test_unknown_product_stops_at_product_lock(self, db_session, locked_entities):
        with pytest.raises(NotFoundError):
            inventory_service.apply_quantity_change(31337, 3)

        assert locked_entities == [Product]


class TestAtomicity:
    def test_failed_decrement_rolls_back_sale(self, db_session, make_product, monkeypatch):
        product = make_product(initial_quantity=8)

        def _boom(*args, **kwargs):
            raise RuntimeError("ledger write failed")

        monkeypatch.setattr(sales_service, "apply_decrement", _boom)

        with pytest.raises(RuntimeError):
            sales_service.record_sale(product_id=product["id"], quantity=3)

        assert db.session.query(Sale).count() == 0
        assert inventory_service.get_quantity(product["id"]) == 8
        assert _triples(product["id"]) == [(0, 8, 8)]

    def test_failed_initial_stock_rolls_back_product(self, db_session, category):
        with pytest.raises(ValidationError):
            products_service.create_product(
                patch={"name": "Ghost", "price": "1.00", "category_id": category.id, "initial_quantity": -1}
            )

        assert db.session.query(Product).filter_by(name="Ghost").count() == 0
        assert db.session.query(InventoryHistoryEntry).count() == 0

    def test_sale_for_unknown_product_writes_nothing(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.record_sale(product_id=424242, quantity=1)

        assert db.session.query(Sale).count() == 0


class TestHistoryIntegrity:
    def test_history_rows_are_immutable(self, db_session, make_product):
        product = make_product(initial_quantity=5)
        entry = _history(product["id"])[0]

        entry.new_qty = 6
        entry.change_qty = 6
        with pytest.raises(HistoryImmutableError):
            db.session.flush()
        db.session.rollback()

        assert _triples(product["id"]) == [(0, 5, 5)]

    def test_database_rejects_broken_arithmetic(self, db_session, make_product):
        product = make_product(initial_quantity=5)

        db.session.add(InventoryHistoryEntry(product_id=product["id"], change_qty=2, previous_qty=5, new_qty=9))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_database_rejects_negative_stock(self, db_session, make_product):
        product = make_product(initial_quantity=5)

        record = db.session.query(InventoryRecord).filter_by(product_id=product["id"]).one()
        record.quantity = -1
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_database_rejects_unknown_product_reference(self, db_session):
        assert db.session.execute(text("PRAGMA foreign_keys")).scalar() == 1

        db.session.add(Sale(product_id=424242, quantity=1, total_price=Decimal("1.00")))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

        assert db.session.query(Sale).count() == 0

    def test_chain_and_sum_hold_after_mixed_operations(self, db_session, make_product):
        product = make_product(initial_quantity=20)
        pid = product["id"]

        sales_service.record_sale(product_id=pid, quantity=4)
        inventory_service.apply_quantity_change(pid, 30)
        sales_service.record_sale(product_id=pid, quantity=45)
        inventory_service.apply_quantity_change(pid, 9)
        inventory_service.apply_decrement(pid, 2)

        entries = _history(pid)
        for earlier, later in zip(entries, entries[1:]):
            assert earlier.new_qty == later.previous_qty
        for e in entries:
            assert e.new_qty == e.previous_qty + e.change_qty
            assert e.new_qty >= 0
        assert inventory_service.get_quantity(pid) == sum(e.change_qty for e in entries) == 7

    def test_history_listing_is_newest_first(self, db_session, make_product):
        product = make_product(initial_quantity=1)
        inventory_service.apply_quantity_change(product["id"], 2)
        inventory_service.apply_quantity_change(product["id"], 3)

        rows = inventory_service.list_inventory_history(product["id"])

        assert [r.new_qty for r in rows] == [3, 2, 1]


class TestLedgerAudit:
    def test_consistent_ledger(self, db_session, make_product):
        product = make_product(initial_quantity=10)
        sales_service.record_sale(product_id=product["id"], quantity=3)

        report = inventory_service.audit_product_ledger(product["id"])

        assert report == {
            "product_id": product["id"],
            "quantity": 7,
            "ledger_sum": 7,
            "entries": 2,
            "consistent": True,
            "problems": [],
        }

    def test_stock_edited_outside_ledger_is_reported(self, db_session, make_product):
        product = make_product(initial_quantity=10)
        record = db.session.query(InventoryRecord).filter_by(product_id=product["id"]).one()
        record.quantity = 11
        db.session.commit()

        report = inventory_service.audit_product_ledger(product["id"])

        assert report["consistent"] is False
        assert report["problems"] == ["quantity 11 != ledger sum 10"]

    def test_broken_chain_is_reported(self, db_session, make_product):
        product = make_product(initial_quantity=10)
        db.session.add(InventoryHistoryEntry(product_id=product["id"], change_qty=1, previous_qty=4, new_qty=5))
        db.session.commit()

        report = inventory_service.audit_product_ledger(product["id"])

        assert report["consistent"] is False
        assert any("does not follow 10" in p for p in report["problems"])

    def test_audit_all(self, db_session, make_product):
        make_product(name="A", initial_quantity=1)
        make_product(name="B", initial_quantity=2)

        reports = inventory_service.audit_all_ledgers()

        assert [r["quantity"] for r in reports] == [1, 2]
        assert all(r["consistent"] for r in reports)
