# Overview: Service-layer operations for sales; records a sale and its stock decrement as one unit of work.

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP

from ..extensions import db
from ..models import Product, Sale
from ..validation import CENT, MAX_TOTAL_PRICE, ValidationError
from catalog_admin.time_utils import utcnow
from .inventory_service import apply_decrement, inventory_critical_section, lock_product


def compute_total_price(product: Product, quantity: int):
    """quantity x current price, frozen on the sale row."""
    total = (product.price * quantity).quantize(CENT, rounding=ROUND_HALF_UP)
    if total > MAX_TOTAL_PRICE:
        raise ValidationError(f"Sale total cannot exceed {MAX_TOTAL_PRICE}.")
    return total


def record_sale(*, product_id: int, quantity: int, sale_date: datetime | None = None) -> dict:
    """
    Insert a Sale and decrement stock in the same unit of work.

    The sale is always recorded; stock is clamped at zero when the sale
    exceeds it. If anything fails, neither the sale nor the stock change
    persists.

    Raises:
        NotFoundError: unknown product
        ValidationError: quantity x price exceeds the storable total
    """
    with inventory_critical_section(product_id):
        product = lock_product(product_id)

        sale = Sale(
            product_id=product_id,
            quantity=quantity,
            total_price=compute_total_price(product, quantity),
            sale_date=sale_date or utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        apply_decrement(product_id, quantity, commit=False)

    return sale.to_dict()
