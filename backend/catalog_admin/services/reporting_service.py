# Overview: Service-layer operations for reporting; read-only sales views (listing, period buckets, range comparison).

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from catalog_admin.extensions import db
from catalog_admin.models import Product, Sale
from catalog_admin.models.catalog import money
from catalog_admin.time_utils import as_date, end_of_day_exclusive, parse_iso_datetime
from catalog_admin.validation import CENT, ValidationError


PERIODS = ("daily", "weekly", "monthly", "yearly")


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


def parse_report_date(value: str | None, message: str) -> datetime | None:
    """Optional YYYY-MM-DD (or full ISO-8601) query parameter."""
    if value is None or value == "":
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ReportError(message)


@dataclass(frozen=True)
class SalesFilter:
    """Shared WHERE clause for every sales view. `end` is inclusive of its whole day."""
    start: datetime | None = None
    end: datetime | None = None
    product_id: int | None = None
    category_id: int | None = None

    def apply(self, query):
        if self.start is not None:
            query = query.filter(Sale.sale_date >= self.start)
        if self.end is not None:
            query = query.filter(Sale.sale_date < end_of_day_exclusive(self.end))
        if self.product_id is not None:
            query = query.filter(Sale.product_id == self.product_id)
        if self.category_id is not None:
            query = query.filter(Product.category_id == self.category_id)
        return query


def _to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT)


def period_label(period: str, day: date) -> str:
    if period == "daily":
        return day.isoformat()
    if period == "weekly":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year:04d}-{iso_week:02d}"
    if period == "monthly":
        return f"{day.year:04d}-{day.month:02d}"
    if period == "yearly":
        return f"{day.year:04d}"
    raise ReportError("period is required and must be one of: daily, weekly, monthly, yearly.")


def list_sales(sales_filter: SalesFilter) -> list[dict]:
    query = (
        db.session.query(Sale)
        .join(Product, Sale.product_id == Product.id)
        .options(joinedload(Sale.product).joinedload(Product.category))
    )
    rows = sales_filter.apply(query).order_by(Sale.sale_date.desc(), Sale.id.desc()).all()
    return [s.to_dict() for s in rows]


def aggregate_sales(period: str, sales_filter: SalesFilter) -> list[dict]:
    """
    Revenue and units per period, newest period first.

    The database sums per calendar day; days are then rolled up into the
    requested period so the same bucketing works on every engine.
    """
    if period not in PERIODS:
        raise ReportError("period is required and must be one of: daily, weekly, monthly, yearly.")

    day = func.date(Sale.sale_date)
    query = (
        db.session.query(
            day.label("day"),
            func.sum(Sale.total_price).label("revenue"),
            func.sum(Sale.quantity).label("units"),
        )
        .select_from(Sale)
        .join(Product, Sale.product_id == Product.id)
    )
    rows = sales_filter.apply(query).group_by(day).all()

    buckets: dict[str, list] = {}
    for row in rows:
        label = period_label(period, as_date(row.day))
        bucket = buckets.setdefault(label, [Decimal("0.00"), 0])
        bucket[0] += _to_money(row.revenue)
        bucket[1] += int(row.units or 0)

    return [
        {
            "period_label": label,
            "total_revenue": money(revenue),
            "total_quantity": units,
        }
        for label, (revenue, units) in sorted(buckets.items(), reverse=True)
    ]


def _range_totals(sales_filter: SalesFilter) -> dict:
    query = (
        db.session.query(
            func.sum(Sale.total_price).label("revenue"),
            func.sum(Sale.quantity).label("units"),
        )
        .select_from(Sale)
        .join(Product, Sale.product_id == Product.id)
    )
    row = sales_filter.apply(query).one()
    return {
        "total_revenue": money(_to_money(row.revenue)),
        "total_quantity": int(row.units or 0),
    }


def compare_ranges(
    *,
    range1: tuple[str, str],
    range2: tuple[str, str],
    product_id: int | None = None,
    category_id: int | None = None,
) -> dict:
    """Totals for two inclusive date ranges under the same product/category filter."""
    message = "All four date params must be valid YYYY-MM-DD."
    bounds = []
    for raw in (*range1, *range2):
        parsed = parse_report_date(raw, message)
        if parsed is None:
            raise ReportError(message)
        bounds.append(parsed)

    base = SalesFilter(product_id=product_id, category_id=category_id)
    result = {}
    for key, (start_raw, end_raw), (start, end) in (
        ("range1", range1, bounds[0:2]),
        ("range2", range2, bounds[2:4]),
    ):
        totals = _range_totals(replace(base, start=start, end=end))
        result[key] = {"start": start_raw, "end": end_raw, **totals}
    return result
