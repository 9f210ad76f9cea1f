# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/catalog_admin/routes/products.py
"""
Product management routes.

Every product response carries category_name and the current quantity
(0 when stock was never set). Creating a product also records its initial
stock in the inventory ledger.
"""
from flask import Blueprint, jsonify, request

from ..models import Product
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_optional_id,
    ValidationError,
    NotFoundError,
    ConflictError,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price", "category_id"},
    required_on_create={"name", "price", "category_id", "initial_quantity"},
    extra_fields={"initial_quantity"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price", "category_id"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    List products.

    Query params:
    - category_id: int (optional) - only products in this category
    """
    try:
        category_id = parse_optional_id("category_id", request.args.get("category_id"))
    except ValidationError as e:
        return {"error": str(e)}, 400

    return jsonify(products_service.list_products(category_id=category_id)), 200


@products_bp.get("/<id:product_id>")
def get_product_route(product_id: int):
    try:
        return products_service.get_product(product_id), 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.post("")
def create_product_route():
    """
    Create a new product with its initial stock.

    Body: { name, description, price, category_id, initial_quantity }
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return created, 201


@products_bp.put("/<id:product_id>")
def update_product_route(product_id: int):
    """
    Update name, description, price and/or category_id.

    Stock is not editable here; use PUT /api/inventory/<product_id>.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return updated, 200


@products_bp.delete("/<id:product_id>")
def delete_product_route(product_id: int):
    """Deletes a product IF no sales reference it."""
    try:
        return products_service.delete_product(product_id=product_id), 200
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
