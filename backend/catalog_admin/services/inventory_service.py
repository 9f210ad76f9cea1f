# Overview: Service-layer operations for inventory; the single writer of stock and its history ledger.

# backend/catalog_admin/services/inventory_service.py

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Category, InventoryHistoryEntry, InventoryRecord, Product
from ..validation import INT_MAX, ConflictError, NotFoundError, ValidationError
from catalog_admin.time_utils import utcnow
from .concurrency import lock_for_update, product_guards, unit_of_work
"""
Inventory Ledger Invariants (authoritative)

Ownership:
- This module is the ONLY writer of `inventory` and `inventory_history`.
  Product creation, sale recording and manual adjustment all come through
  initialize_stock / apply_decrement / apply_quantity_change.

Ledger:
- Every quantity-affecting event appends exactly one history row in the same
  unit of work as the inventory row update. Both persist or neither does.
- new_qty = previous_qty + change_qty, new_qty >= 0.
- Per product the rows chain: entry[i].new_qty == entry[i+1].previous_qty.
- Therefore quantity == 0 + SUM(change_qty) for every product at all times.

Lazy row:
- A product may have no inventory row; readers see quantity 0. The first
  stock-setting event creates it (one upsert rule, _write_change).

Locking:
- Read-modify-write happens inside inventory_critical_section(product_id):
  in-process per-product guard + SELECT ... FOR UPDATE on the inventory row,
  held until the unit of work commits or rolls back.
- Different products use different guards and different rows.

Oversell:
- Sales are never rejected for lack of stock. The decrement is clamped at
  zero (clamp_to_zero) and the ledger records the delta actually applied.
"""


REASON_INITIAL = "initial"
REASON_ADJUSTMENT = "adjustment"
REASON_SALE = "sale"


@dataclass(frozen=True)
class StockChange:
    product_id: int
    previous_quantity: int
    new_quantity: int

    @property
    def change_qty(self) -> int:
        return self.new_quantity - self.previous_quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
        }


def clamp_to_zero(current_quantity: int, requested: int) -> int:
    """Oversell policy: a decrement larger than stock leaves 0, never a negative quantity."""
    return max(0, current_quantity - requested)


def _require_quantity(name: str, value, *, minimum: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if value < minimum:
        qualifier = "non-negative" if minimum == 0 else "positive"
        raise ValidationError(f"{name} must be a {qualifier} integer")
    if value > INT_MAX:
        raise ValidationError(f"{name} cannot exceed {INT_MAX}")
    return value


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found.")
    return product


def lock_product(product_id: int) -> Product:
    """
    Product row under FOR UPDATE; every stock mutation takes it first.

    The product row always exists, so same-product writers in different
    processes queue here even while the inventory row is still missing.
    """
    query = db.session.query(Product).filter_by(id=product_id)
    product = lock_for_update(query).populate_existing().one_or_none()
    if product is None:
        raise NotFoundError("Product not found.")
    return product


def _locked_record(product_id: int) -> InventoryRecord | None:
    """Current inventory row under FOR UPDATE, or None if stock was never set."""
    query = db.session.query(InventoryRecord).filter_by(product_id=product_id)
    return lock_for_update(query).populate_existing().one_or_none()


def _write_change(
    product_id: int,
    record: InventoryRecord | None,
    previous: int,
    new: int,
    *,
    reason: str,
) -> StockChange:
    """Upsert the inventory row and append its history entry (flush, no commit)."""
    now = utcnow()
    if record is None:
        record = InventoryRecord(product_id=product_id, quantity=new, updated_at=now)
        db.session.add(record)
    else:
        record.quantity = new
        record.updated_at = now

    db.session.add(
        InventoryHistoryEntry(
            product_id=product_id,
            change_qty=new - previous,
            previous_qty=previous,
            new_qty=new,
            changed_at=now,
        )
    )
    db.session.flush()

    change = StockChange(product_id=product_id, previous_quantity=previous, new_quantity=new)
    current_app.logger.debug(
        "inventory %s: product_id=%s previous=%s new=%s change=%+d",
        reason, product_id, previous, new, change.change_qty,
    )
    return change


@contextmanager
def inventory_critical_section(product_id: int, *, commit: bool = True):
    """
    Serialize stock mutations for one product.

    Acquire the product guard, run the body, then commit (or flush when
    commit=False and an outer unit of work owns the commit), release.
    Re-entrant: a flow that already holds the section may call the mutators
    with commit=False.
    """
    with product_guards.hold(product_id):
        with unit_of_work(commit=commit):
            yield


def apply_quantity_change(
    product_id: int,
    new_quantity: int,
    *,
    reason: str = REASON_ADJUSTMENT,
    commit: bool = True,
) -> StockChange:
    """
    Set stock to an absolute quantity (manual correction).

    Raises:
        ValidationError: new_quantity negative or not an int
        NotFoundError: unknown product
    """
    _require_quantity("new_quantity", new_quantity, minimum=0)

    with inventory_critical_section(product_id, commit=commit):
        lock_product(product_id)
        record = _locked_record(product_id)
        previous = record.quantity if record is not None else 0
        change = _write_change(product_id, record, previous, new_quantity, reason=reason)

    return change


def apply_decrement(product_id: int, quantity_sold: int, *, commit: bool = True) -> StockChange:
    """
    Remove sold units from stock, clamped at zero.

    The history entry records the delta actually applied, which is
    -quantity_sold unless stock ran out first.
    """
    _require_quantity("quantity", quantity_sold, minimum=1)

    with inventory_critical_section(product_id, commit=commit):
        lock_product(product_id)
        record = _locked_record(product_id)
        previous = record.quantity if record is not None else 0
        new = clamp_to_zero(previous, quantity_sold)
        change = _write_change(product_id, record, previous, new, reason=REASON_SALE)

    if previous < quantity_sold:
        current_app.logger.info(
            "oversell clamped: product_id=%s requested=%s available=%s",
            product_id, quantity_sold, previous,
        )
    return change


def initialize_stock(product_id: int, initial_quantity: int) -> StockChange:
    """
    First stock event of a freshly inserted product (previous is always 0).

    Flush only: the product creation flow commits product, inventory row and
    history entry together, or none of them.
    """
    _require_quantity("initial_quantity", initial_quantity, minimum=0)

    with unit_of_work(commit=False):
        existing = db.session.query(InventoryRecord.id).filter_by(product_id=product_id).first()
        if existing is not None:
            raise ConflictError("Stock already initialized for this product.")
        change = _write_change(product_id, None, 0, initial_quantity, reason=REASON_INITIAL)

    return change


def get_quantity(product_id: int) -> int:
    qty = (
        db.session.query(InventoryRecord.quantity)
        .filter(InventoryRecord.product_id == product_id)
        .scalar()
    )
    return int(qty or 0)


def list_stock_levels(low_stock_threshold: int | None = None) -> list[dict]:
    """All products with current quantity, lowest first; optionally only quantity <= threshold."""
    qty = func.coalesce(InventoryRecord.quantity, 0)
    query = (
        db.session.query(
            Product.id.label("product_id"),
            Product.name.label("product_name"),
            Product.category_id,
            Category.name.label("category_name"),
            qty.label("quantity"),
        )
        .outerjoin(Category, Product.category_id == Category.id)
        .outerjoin(InventoryRecord, InventoryRecord.product_id == Product.id)
    )
    if low_stock_threshold is not None:
        query = query.filter(qty <= low_stock_threshold)

    rows = query.order_by(qty.asc(), Product.id.asc()).all()
    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "category_id": row.category_id,
            "category_name": row.category_name,
            "quantity": int(row.quantity),
        }
        for row in rows
    ]


def list_inventory_history(product_id: int) -> list[InventoryHistoryEntry]:
    """Full ledger for a product, newest first."""
    _require_product(product_id)
    return (
        db.session.query(InventoryHistoryEntry)
        .filter_by(product_id=product_id)
        .order_by(InventoryHistoryEntry.changed_at.desc(), InventoryHistoryEntry.id.desc())
        .all()
    )


def audit_product_ledger(product_id: int) -> dict:
    """
    Replay a product's history chain and compare it with the stored quantity.

    Checks per entry: arithmetic (new = previous + change), non-negative
    quantities, link to the previous entry; then quantity == 0 + sum(change).
    """
    _require_product(product_id)

    entries = (
        db.session.query(InventoryHistoryEntry)
        .filter_by(product_id=product_id)
        .order_by(InventoryHistoryEntry.id.asc())
        .all()
    )

    problems: list[str] = []
    ledger_sum = 0
    expected_previous = 0
    for entry in entries:
        if entry.new_qty != entry.previous_qty + entry.change_qty:
            problems.append(f"entry {entry.id}: new_qty != previous_qty + change_qty")
        if entry.new_qty < 0 or entry.previous_qty < 0:
            problems.append(f"entry {entry.id}: negative quantity")
        if entry.previous_qty != expected_previous:
            problems.append(
                f"entry {entry.id}: previous_qty {entry.previous_qty} does not follow {expected_previous}"
            )
        ledger_sum += entry.change_qty
        expected_previous = entry.new_qty

    quantity = get_quantity(product_id)
    if quantity != ledger_sum:
        problems.append(f"quantity {quantity} != ledger sum {ledger_sum}")

    return {
        "product_id": product_id,
        "quantity": quantity,
        "ledger_sum": ledger_sum,
        "entries": len(entries),
        "consistent": not problems,
        "problems": problems,
    }


def audit_all_ledgers() -> list[dict]:
    product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc())]
    return [audit_product_ledger(pid) for pid in product_ids]
