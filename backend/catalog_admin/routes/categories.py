# Overview: Flask API routes for categories operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..models import Category
from ..services import categories_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
    ConflictError,
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _category_name(payload: dict) -> str:
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    except ValidationError:
        raise ValidationError("Category name is required and must be a string.")
    return patch["name"]


@categories_bp.get("")
def list_categories_route():
    """All categories ordered by name."""
    return jsonify(categories_service.list_categories()), 200


@categories_bp.post("")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        name = _category_name(payload)
        created = categories_service.create_category(name=name)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return created, 201


@categories_bp.put("/<id:category_id>")
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        name = _category_name(payload)
        updated = categories_service.update_category(category_id=category_id, name=name)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return updated, 200


@categories_bp.delete("/<id:category_id>")
def delete_category_route(category_id: int):
    """Deletes a category IF no products reference it."""
    try:
        return categories_service.delete_category(category_id=category_id), 200
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
