from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product
from ..validation import ConflictError, NotFoundError
from .concurrency import lock_for_update, unit_of_work

DUPLICATE_NAME = "Category name already exists."


def list_categories() -> list[dict]:
    categories = db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()
    return [c.to_dict() for c in categories]


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def create_category(*, name: str) -> dict:
    if _name_taken(name):
        raise ConflictError(DUPLICATE_NAME)

    # The unique constraint still decides races between concurrent creates
    try:
        with unit_of_work():
            category = Category(name=name)
            db.session.add(category)
    except IntegrityError:
        raise ConflictError(DUPLICATE_NAME)

    return category.to_dict()


def update_category(*, category_id: int, name: str) -> dict:
    try:
        with unit_of_work():
            category = db.session.get(Category, category_id)
            if category is None:
                raise NotFoundError("Category not found.")
            if _name_taken(name, exclude_id=category_id):
                raise ConflictError(DUPLICATE_NAME)
            category.name = name
    except IntegrityError:
        raise ConflictError(DUPLICATE_NAME)

    return category.to_dict()


def delete_category(*, category_id: int) -> dict:
    """
    Delete a category IF no products reference it.

    The category row is locked before products are counted. A concurrent
    product insert needs a key-share lock on that row for its foreign key,
    so it either lands before the count or waits until the delete commits.
    """
    with unit_of_work():
        category = lock_for_update(db.session.query(Category).filter_by(id=category_id)).one_or_none()
        if category is None:
            raise NotFoundError("Category not found.")

        product_count = (
            db.session.query(func.count(Product.id))
            .filter(Product.category_id == category_id)
            .scalar()
        )
        if product_count:
            raise ConflictError("Cannot delete: one or more products belong to this category.")

        name = category.name
        db.session.delete(category)

    return {"message": f"Deleted category {name}."}
