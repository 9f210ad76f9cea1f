# backend/catalog_admin/routes/inventory.py
"""
Inventory routes.

Stock levels are only changed through the inventory ledger service; every
change appends an inventory_history row.

Time semantics:
- History timestamps are serialized as ISO-8601 UTC with 'Z'.
- History is returned newest first.
"""
from flask import Blueprint, jsonify, request

from ..services import inventory_service
from ..validation import (
    ValidationError,
    NotFoundError,
    coerce_int,
    enforce_rules_inventory_set,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
def list_inventory_route():
    """
    Products with current quantity, lowest first.

    Query params:
    - low_stock_threshold: int >= 0 (optional) - only quantity <= threshold
    """
    raw = request.args.get("low_stock_threshold")
    threshold = None
    if raw is not None:
        try:
            threshold = coerce_int("low_stock_threshold", raw)
            if threshold < 0:
                raise ValidationError("negative threshold")
        except ValidationError:
            return {"error": "low_stock_threshold must be a non-negative integer."}, 400

    return jsonify(inventory_service.list_stock_levels(low_stock_threshold=threshold)), 200


@inventory_bp.put("/<id:product_id>")
def set_inventory_route(product_id: int):
    """
    Set the stock level of a product.

    Body: { new_quantity: <integer >= 0> }
    """
    payload = request.get_json(silent=True) or {}

    try:
        new_quantity = enforce_rules_inventory_set(payload)
        change = inventory_service.apply_quantity_change(product_id, new_quantity)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return change.to_dict(), 200


@inventory_bp.get("/history/<id:product_id>")
def inventory_history_route(product_id: int):
    try:
        rows = inventory_service.list_inventory_history(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return jsonify([r.to_dict() for r in rows]), 200


@inventory_bp.get("/audit/<id:product_id>")
def inventory_audit_route(product_id: int):
    """Replay the product's ledger and report any break in the chain."""
    try:
        return inventory_service.audit_product_ledger(product_id), 200
    except NotFoundError as e:
        return {"error": str(e)}, 404
