"""
Tests for order completeness checking and phone number handling.
"""
import pytest

from wa_order_bot.ordering.parsers import (
    clean_phone_number,
    validate_order,
    validate_phone_number,
)
from wa_order_bot.schemas.ordering import Cart


def make_cart(**overrides):
    fields = {
        "id": "cart-1",
        "tenant_id": "tenant-1",
        "customer_id": "customer-1",
        "items": [{"product_id": "p1", "product_name": "Salmon Roll", "quantity": 2, "unit_price": 50000}],
        "customer_name": "Ria",
        "phone_number": "081234567890",
        "outlet_preference": "Palagan",
        "delivery_method": "pickup",
    }
    fields.update(overrides)
    return Cart(**fields)


class TestValidateOrder:
    """Required fields and next step."""

    def test_complete_order(self):
        result = validate_order(make_cart())
        assert result.is_complete is True
        assert result.missing_fields == []
        assert result.next_step == "confirm_order"

    def test_empty_cart_lists_everything_in_order(self):
        """Test that every missing field is reported, items first."""
        cart = Cart(id="cart-1", tenant_id="tenant-1", customer_id="customer-1")
        result = validate_order(cart)
        assert result.is_complete is False
        assert result.missing_fields == [
            "menu items",
            "nama pelanggan",
            "nomor telepon",
            "outlet pilihan",
            "metode pengambilan (ambil/antar)",
        ]
        assert result.next_step == "collect_menu_items"

    def test_items_without_details(self):
        cart = make_cart(customer_name=None, phone_number=None, outlet_preference=None, delivery_method=None)
        result = validate_order(cart)
        assert result.next_step == "collect_customer_details"
        assert "menu items" not in result.missing_fields
        assert len(result.missing_fields) == 4

    def test_whitespace_name_counts_as_missing(self):
        result = validate_order(make_cart(customer_name="   "))
        assert result.missing_fields == ["nama pelanggan"]

    def test_details_without_items(self):
        result = validate_order(make_cart(items=[]))
        assert result.missing_fields == ["menu items"]
        assert result.next_step == "collect_menu_items"


class TestPhoneNumbers:

    @pytest.mark.parametrize("raw, expected", [
        ("0812-3456-7890", "6281234567890"),
        ("+62 812 3456 7890", "6281234567890"),
        ("6281234567890", "6281234567890"),
        ("81234567890", "6281234567890"),
        ("", ""),
    ])
    def test_clean_phone_number(self, raw, expected):
        assert clean_phone_number(raw) == expected

    def test_validate_phone_number_ok(self):
        assert validate_phone_number("081234567890") == ("6281234567890", None)

    def test_validate_phone_number_empty(self):
        assert validate_phone_number("") == (None, "Nomor HP belum diisi.")

    def test_validate_phone_number_too_short(self):
        cleaned, error = validate_phone_number("0812")
        assert cleaned is None
        assert error is not None

    def test_foreign_number_rejected(self):
        cleaned, error = validate_phone_number("+1 415 555 2671")
        assert cleaned is None
        assert error is not None

    def test_spaced_international_form_accepted(self):
        assert validate_phone_number("+62 812-3456-7890") == ("6281234567890", None)
