from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from catalog_admin.time_utils import to_utc_z, utcnow


class HistoryImmutableError(RuntimeError):
    """Raised when code tries to UPDATE an inventory_history row."""


class InventoryRecord(db.Model):
    """
    Current stock for one product (one-to-one, created lazily).

    Sole writer: services.inventory_service. Readers treat a missing row
    as quantity 0.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", back_populates="inventory")

    def __repr__(self) -> str:
        return f"<InventoryRecord product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryHistoryEntry(db.Model):
    """
    Append-only stock ledger.

    Per product the rows form a strict chain: each entry's previous_qty is
    the prior entry's new_qty, and new_qty = previous_qty + change_qty >= 0.
    Rows are never updated; they disappear only with their product.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.CheckConstraint("previous_qty >= 0", name="ck_invhist_previous_non_negative"),
        db.CheckConstraint("new_qty >= 0", name="ck_invhist_new_non_negative"),
        db.CheckConstraint("new_qty = previous_qty + change_qty", name="ck_invhist_chain_arithmetic"),
        db.Index("ix_invhist_product_changed", "product_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    change_qty = db.Column(db.Integer, nullable=False)    # positive = stock added, negative = removed
    previous_qty = db.Column(db.Integer, nullable=False)
    new_qty = db.Column(db.Integer, nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", back_populates="history")

    def __repr__(self) -> str:
        return (
            f"<InventoryHistoryEntry id={self.id} product_id={self.product_id} "
            f"{self.previous_qty}{self.change_qty:+d}={self.new_qty}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "change_qty": self.change_qty,
            "previous_qty": self.previous_qty,
            "new_qty": self.new_qty,
            "changed_at": to_utc_z(self.changed_at),
        }


@event.listens_for(InventoryHistoryEntry, "before_update")
def _reject_history_update(mapper, connection, target):
    raise HistoryImmutableError(
        f"inventory_history row {target.id} is append-only and cannot be modified"
    )
