from datetime import datetime
from decimal import Decimal

import pytest

from catalog_admin.config import _database_url
from catalog_admin.models import Product
from catalog_admin.routes.products import PRODUCT_CREATE_POLICY, PRODUCT_UPDATE_POLICY
from catalog_admin.services.reporting_service import period_label
from catalog_admin.time_utils import end_of_day_exclusive, parse_iso_datetime, to_utc_z
from catalog_admin.validation import (
    INT_MAX,
    ValidationError,
    coerce_int,
    coerce_money,
    validate_payload,
)


class TestCoercion:
    @pytest.mark.parametrize("value, expected", [(5, 5), ("12", 12), (" 7 ", 7), ("-3", -3)])
    def test_coerce_int_accepts(self, value, expected):
        assert coerce_int("n", value) == expected

    @pytest.mark.parametrize("value", [True, 1.0, "1e3", "12.5", "", "abc", None, [1]])
    def test_coerce_int_rejects(self, value):
        with pytest.raises(ValidationError):
            coerce_int("n", value)

    def test_coerce_int_stays_within_integer_column_range(self):
        assert coerce_int("n", INT_MAX) == INT_MAX
        assert coerce_int("n", str(-INT_MAX)) == -INT_MAX
        for value in (INT_MAX + 1, 2**63, str(2**63), -(2**63)):
            with pytest.raises(ValidationError, match="out of range"):
                coerce_int("n", value)

    @pytest.mark.parametrize("value, expected", [
        (10, Decimal("10.00")),
        (19.99, Decimal("19.99")),
        ("2.345", Decimal("2.35")),
        ("0.005", Decimal("0.01")),
    ])
    def test_coerce_money_rounds_half_up(self, value, expected):
        assert coerce_money("price", value) == expected

    @pytest.mark.parametrize("value", [False, "NaN", "Infinity", "ten", "", None])
    def test_coerce_money_rejects(self, value):
        with pytest.raises(ValidationError):
            coerce_money("price", value)


class TestValidatePayload:
    def test_create_keeps_initial_quantity_raw(self):
        patch = validate_payload(
            model=Product,
            payload={"name": " Lamp ", "price": "5", "category_id": "2", "initial_quantity": "9"},
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )

        assert patch == {"name": "Lamp", "price": Decimal("5.00"), "category_id": 2, "initial_quantity": "9"}

    def test_partial_update_skips_required(self):
        patch = validate_payload(model=Product, payload={"description": None}, policy=PRODUCT_UPDATE_POLICY, partial=True)

        assert patch == {"description": None}

    @pytest.mark.parametrize("payload, message", [
        ({"name": None}, "name cannot be null"),
        ({"name": "   "}, "name cannot be blank"),
        ({"name": "x" * 151}, "name exceeds max length 150"),
        ({"initial_quantity": 3}, "Field not allowed: initial_quantity"),
    ])
    def test_update_rejects(self, payload, message):
        with pytest.raises(ValidationError) as exc:
            validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)

        assert str(exc.value) == message

    def test_rejects_non_object(self):
        with pytest.raises(ValidationError):
            validate_payload(model=Product, payload=["name"], policy=PRODUCT_UPDATE_POLICY, partial=True)


class TestTimeHelpers:
    def test_parse_normalizes_to_utc(self):
        assert parse_iso_datetime("2025-03-01T01:30:00+02:00") == datetime(2025, 2, 28, 23, 30)
        assert parse_iso_datetime("2025-03-01") == datetime(2025, 3, 1)
        assert parse_iso_datetime("") is None

    def test_end_of_day_exclusive(self):
        assert end_of_day_exclusive(datetime(2024, 12, 31, 15)) == datetime(2025, 1, 1)

    def test_to_utc_z(self):
        assert to_utc_z(datetime(2025, 5, 1, 8, 0, 0, 123456)) == "2025-05-01T08:00:00Z"
        assert to_utc_z(None) is None

    @pytest.mark.parametrize("period, label", [
        ("daily", "2021-01-03"),
        ("weekly", "2020-53"),
        ("monthly", "2021-01"),
        ("yearly", "2021"),
    ])
    def test_period_labels(self, period, label):
        assert period_label(period, datetime(2021, 1, 3).date()) == label


class TestDatabaseUrl:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/shop")
        monkeypatch.setenv("PGHOST", "ignored")

        assert _database_url() == "postgresql+psycopg://u:p@db:5432/shop"

    def test_pg_variables(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        for key, value in {"PGHOST": "localhost", "PGUSER": "admin", "PGPASSWORD": "pw", "PGDATABASE": "catalog"}.items():
            monkeypatch.setenv(key, value)
        monkeypatch.delenv("PGPORT", raising=False)

        assert _database_url() == "postgresql+psycopg://admin:pw@localhost:5432/catalog"

    def test_sqlite_fallback(self, monkeypatch):
        for key in ("DATABASE_URL", "PGHOST"):
            monkeypatch.delenv(key, raising=False)

        assert _database_url() == "sqlite:///catalog_admin.sqlite3"
