"""
Tests for order item extraction.
"""
import pytest

from wa_order_bot.ordering.parsers import parse_items
from wa_order_bot.ordering.parsers.items import (
    extract_ordering_text,
    find_quantity,
    name_variants,
    parse_price,
)
from wa_order_bot.schemas.ordering import CatalogProduct


@pytest.fixture
def catalog():
    # Catalog order (sorted by name), as ProductCatalog returns it
    return [
        CatalogProduct(id="p-ocha", name="Ocha", price="10000", category="drink"),
        CatalogProduct(id="p-salmon", name="Salmon Roll", price="50000", category="sushi"),
        CatalogProduct(id="p-tuna", name="Tuna Nigiri", price="30000", category="sushi"),
    ]


class TestParseItems:
    """Product matching and quantities."""

    def test_name_with_quantity_and_unit(self, catalog):
        items = parse_items("Salmon Roll 2 porsi", catalog)
        assert len(items) == 1
        assert items[0].product_id == "p-salmon"
        assert items[0].product_name == "Salmon Roll"
        assert items[0].quantity == 2
        assert items[0].price == 50000.0

    def test_quantity_before_name(self, catalog):
        items = parse_items("tolong 3 gelas ocha", catalog)
        assert [(i.product_name, i.quantity) for i in items] == [("Ocha", 3)]

    def test_ordering_phrase_is_stripped(self, catalog):
        items = parse_items("saya mau pesan Tuna Nigiri 4", catalog)
        assert [(i.product_name, i.quantity) for i in items] == [("Tuna Nigiri", 4)]

    def test_results_follow_catalog_order(self, catalog):
        """Test that items come back in catalog order, not message order."""
        items = parse_items("pesan Ocha 3 dan Salmon Roll", catalog)
        assert [(i.product_name, i.quantity) for i in items] == [("Ocha", 3), ("Salmon Roll", 1)]

    def test_repeated_product_is_absorbed(self, catalog):
        """Test that a second mention of a product does not add a second line."""
        items = parse_items("2 Salmon Roll dan 1 Salmon Roll", catalog)
        assert len(items) == 1
        assert items[0].quantity == 2

    def test_out_of_range_quantity_defaults_to_one(self, catalog):
        items = parse_items("Salmon Roll 99", catalog)
        assert items[0].quantity == 1

    def test_zero_quantity_defaults_to_one(self, catalog):
        items = parse_items("Ocha 0", catalog)
        assert items[0].quantity == 1

    def test_first_word_matches_product(self, catalog):
        """Test that the first word of a name is enough to find the product."""
        items = parse_items("mau tuna dong", catalog)
        assert [i.product_id for i in items] == ["p-tuna"]
        assert items[0].quantity == 1

    def test_case_insensitive(self, catalog):
        items = parse_items("SALMON ROLL 2", catalog)
        assert items[0].quantity == 2

    def test_no_products_mentioned(self, catalog):
        assert parse_items("jam buka kapan?", catalog) == []

    def test_empty_catalog(self):
        assert parse_items("Salmon Roll 2", []) == []

    def test_blank_product_names_are_skipped(self, catalog):
        catalog.append(CatalogProduct(id="p-blank", name="   ", price="1000"))
        items = parse_items("Ocha", catalog)
        assert [i.product_id for i in items] == ["p-ocha"]

    def test_unparseable_price_is_zero(self):
        products = [CatalogProduct(id="p1", name="Gyoza", price="hubungi kami")]
        items = parse_items("Gyoza 2", products)
        assert items[0].price == 0.0


class TestHelpers:

    def test_extract_ordering_text(self):
        assert extract_ordering_text("saya mau pesan Salmon Roll 2") == "Salmon Roll 2"
        assert extract_ordering_text("Pesan Ocha") == "Ocha"

    def test_extract_ordering_text_without_phrase(self):
        assert extract_ordering_text("Salmon Roll 2") == "Salmon Roll 2"

    def test_name_variants(self):
        assert name_variants("Salmon Roll") == ["salmon roll", "salmonroll", "salmon_roll", "salmon"]

    @pytest.mark.parametrize("raw, expected", [
        ("50000", 50000.0),
        ("45000.50 IDR", 45000.5),
        ("  25000", 25000.0),
        ("-5000", 0.0),
        ("abc", 0.0),
        ("", 0.0),
        (None, 0.0),
    ])
    def test_parse_price(self, raw, expected):
        assert parse_price(raw) == expected

    def test_find_quantity_prefers_ordering_text(self):
        """Test that the isolated ordering text is searched before the full message."""
        assert find_quantity("Ocha", "Ocha 2", "meja 5 pesan Ocha 2") == 2

    def test_find_quantity_defaults_to_one(self):
        assert find_quantity("Ocha", "Ocha", "Ocha") == 1


@pytest.mark.parametrize("message", [
    "saya mau pesan Salmon Roll 2",
    "pesan Ocha 3 dan Salmon Roll",
    "mau tuna dong",
    "halo",
])
def test_parse_items_is_repeatable(catalog, message):
    """Test that parsing leaves its inputs untouched and always gives the same answer."""
    snapshot = [p.model_copy() for p in catalog]
    first = parse_items(message, catalog)

    assert parse_items(message, catalog) == first
    assert parse_items(message, list(catalog)) == first
    assert catalog == snapshot
