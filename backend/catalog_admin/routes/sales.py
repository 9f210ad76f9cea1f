# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/catalog_admin/routes/sales.py
"""Sales recording and sales reporting routes"""

from flask import Blueprint, jsonify, request

from ..models import Sale
from ..services import reporting_service, sales_service
from ..services.reporting_service import SalesFilter, parse_report_date
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_sale,
    parse_optional_id,
    ValidationError,
    NotFoundError,
)

SALE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "sale_date"},
    required_on_create={"product_id", "quantity"},
)

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sales_filter(*, start_message: str, end_message: str) -> SalesFilter:
    args = request.args
    return SalesFilter(
        start=parse_report_date(args.get("startDate"), start_message),
        end=parse_report_date(args.get("endDate"), end_message),
        product_id=parse_optional_id("product_id", args.get("product_id")),
        category_id=parse_optional_id("category_id", args.get("category_id")),
    )


@sales_bp.get("")
def list_sales_route():
    """
    Sales with product & category info, newest first.

    Query params: startDate, endDate (inclusive), product_id, category_id
    """
    try:
        sales_filter = _sales_filter(
            start_message="Invalid startDate format.",
            end_message="Invalid endDate format.",
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return jsonify(reporting_service.list_sales(sales_filter)), 200


@sales_bp.get("/aggregate")
def aggregate_sales_route():
    """
    Revenue per period.

    Query params: period = daily | weekly | monthly | yearly (required),
    startDate, endDate, category_id, product_id (optional)
    """
    try:
        sales_filter = _sales_filter(start_message="Invalid startDate.", end_message="Invalid endDate.")
        rows = reporting_service.aggregate_sales(request.args.get("period"), sales_filter)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return jsonify(rows), 200


@sales_bp.get("/comparison")
def compare_sales_route():
    """Compare revenue between two inclusive date ranges."""
    args = request.args
    try:
        report = reporting_service.compare_ranges(
            range1=(args.get("range1_start"), args.get("range1_end")),
            range2=(args.get("range2_start"), args.get("range2_end")),
            product_id=parse_optional_id("product_id", args.get("product_id")),
            category_id=parse_optional_id("category_id", args.get("category_id")),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return report, 200


@sales_bp.post("")
def record_sale_route():
    """
    Record a sale.

    Body: { product_id, quantity, sale_date (optional, defaults to now) }
    total_price = quantity * current product price; stock is decremented,
    never below zero.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_POLICY, partial=False)
        enforce_rules_sale(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        sale = sales_service.record_sale(
            product_id=patch["product_id"],
            quantity=patch["quantity"],
            sale_date=patch.get("sale_date"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return sale, 201
