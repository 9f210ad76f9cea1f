from __future__ import annotations

from ..extensions import db
from catalog_admin.time_utils import to_utc_z, utcnow


def money(value) -> str | None:
    """NUMERIC values leave the API as strings with two decimals."""
    if value is None:
        return None
    return f"{value:.2f}"


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    Stock is NOT a column here. Quantity lives in the one-to-one
    InventoryRecord, written only by the inventory ledger service; a product
    without a record reads as quantity 0.

    Deletion is guarded: a product referenced by any Sale cannot be removed.
    Removing a product cascades to its inventory row and history chain.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    category_id = db.Column(
        db.Integer,
        db.ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy="dynamic"))
    inventory = db.relationship(
        "InventoryRecord",
        uselist=False,
        back_populates="product",
        cascade="all, delete-orphan",
    )
    history = db.relationship(
        "InventoryHistoryEntry",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="InventoryHistoryEntry.id",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} category_id={self.category_id}>"

    @property
    def quantity(self) -> int:
        return self.inventory.quantity if self.inventory is not None else 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": money(self.price),
            "category_id": self.category_id,
            "category_name": self.category.name if self.category is not None else None,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
