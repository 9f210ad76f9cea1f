from __future__ import annotations

from ..extensions import db
from .catalog import money
from catalog_admin.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    A recorded sale event.

    total_price is frozen at insert time (quantity x product price then);
    later price edits never touch recorded sales. quantity is not reconciled
    against stock: the inventory decrement clamps at zero instead.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint("total_price >= 0", name="ck_sales_total_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    quantity = db.Column(db.Integer, nullable=False)
    total_price = db.Column(db.Numeric(14, 2), nullable=False)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("sales", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<Sale id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        product = self.product
        category = product.category if product is not None else None
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.name if product is not None else None,
            "category_id": product.category_id if product is not None else None,
            "category_name": category.name if category is not None else None,
            "quantity": self.quantity,
            "total_price": money(self.total_price),
            "sale_date": to_utc_z(self.sale_date),
        }
