# backend/catalog_admin/services/products_service.py
"""
Products Service

- Product creation inserts the product and its initial stock in ONE unit of
  work (initialize_stock flushes, this module commits).
- Updates never touch stock; quantity changes go through inventory_service.
- Deletion is refused while any Sale references the product; otherwise the
  inventory row and history chain go with it.
"""
from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Category, Product, Sale
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import unit_of_work
from .inventory_service import initialize_stock, inventory_critical_section, lock_product

PRODUCT_MUTABLE_FIELDS = {"name", "description", "price", "category_id"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _product_query():
    return db.session.query(Product).options(
        joinedload(Product.category),
        joinedload(Product.inventory),
    )


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise NotFoundError("Category not found.")


def list_products(category_id: int | None = None) -> list[dict]:
    """All products (optionally one category) with category name and quantity, by name."""
    query = _product_query()
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    return [p.to_dict() for p in products]


def get_product(product_id: int) -> dict:
    product = _product_query().filter(Product.id == product_id).one_or_none()
    if product is None:
        raise NotFoundError("Product not found.")
    return product.to_dict()


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict (includes initial_quantity).

    Raises:
        NotFoundError: category_id does not exist
    """
    patch = dict(patch)
    initial_quantity = patch.pop("initial_quantity")
    if patch.get("description") is None:
        patch["description"] = ""

    with unit_of_work():
        _require_category(patch.get("category_id"))

        p = Product()
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before stock is initialized

        initialize_stock(p.id, initial_quantity)

    return get_product(p.id)


def update_product(*, product_id: int, patch: dict) -> dict:
    if not any(k in PRODUCT_MUTABLE_FIELDS for k in patch):
        raise ValidationError("No valid fields provided for update.")

    with unit_of_work():
        p = db.session.get(Product, product_id)
        if p is None:
            raise NotFoundError("Product not found.")
        if "category_id" in patch:
            _require_category(patch["category_id"])
        apply_product_patch(p, patch)

    return get_product(product_id)


def delete_product(*, product_id: int) -> dict:
    """
    Delete a product IF no sales reference it.

    Runs inside the product's inventory critical section so that no stock
    mutation interleaves with the cascade.
    """
    with inventory_critical_section(product_id):
        p = lock_product(product_id)

        sales_count = db.session.query(func.count(Sale.id)).filter(Sale.product_id == product_id).scalar()
        if sales_count:
            raise ConflictError("Cannot delete product: sales exist for this product.")

        name = p.name
        db.session.delete(p)

    return {"message": f"Deleted product: {name}"}
