"""Tests for raw record mapping and price parsing."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sticker_scout.mapper import extract_price, lookup, map_record, map_sticker, normalize_spaces, parse_price


class TestParsePrice(unittest.TestCase):
    def test_dollar_sign_and_decimal_point(self):
        self.assertEqual(parse_price("$12.50"), 12.5)

    def test_european_format(self):
        self.assertEqual(parse_price("1.234,56 €"), 1234.56)

    def test_thousands_with_decimal_point(self):
        self.assertEqual(parse_price("$1,234.56"), 1234.56)

    def test_integer_text(self):
        self.assertEqual(parse_price("USD 40"), 40.0)

    def test_trailing_separator_is_ignored(self):
        self.assertEqual(parse_price("15."), 15.0)

    def test_empty_and_malformed(self):
        self.assertIsNone(parse_price(None))
        self.assertIsNone(parse_price(""))
        self.assertIsNone(parse_price("free"))
        self.assertIsNone(parse_price(".,"))


class TestHelpers(unittest.TestCase):
    def test_normalize_spaces(self):
        self.assertEqual(normalize_spaces("  AK-47 |\n  Redline  "), "AK-47 | Redline")
        self.assertEqual(normalize_spaces(None), "")

    def test_lookup_nested_and_missing(self):
        obj = {"asset": {"name": "M4A4"}}
        self.assertEqual(lookup(obj, ("asset", "name")), "M4A4")
        self.assertIsNone(lookup(obj, ("asset", "missing")))
        self.assertIsNone(lookup(obj, ("asset", "name", "deeper")))


class TestExtractPrice(unittest.TestCase):
    def test_cents_field_wins(self):
        self.assertEqual(extract_price({"price_cents": 1250, "price": 99}), 12.5)

    def test_large_ambiguous_price_is_cents(self):
        self.assertEqual(extract_price({"price": 1250}), 12.5)

    def test_small_ambiguous_price_is_dollars(self):
        self.assertEqual(extract_price({"price": 12.5}), 12.5)

    def test_string_price_is_parsed(self):
        self.assertEqual(extract_price({"price": "$7.10"}), 7.1)

    def test_text_fallback(self):
        self.assertEqual(extract_price({"priceText": "$3.99"}), 3.99)

    def test_custom_factor(self):
        self.assertEqual(extract_price({"priceCents": 5000}, price_factor=1000), 5.0)

    def test_missing_price(self):
        self.assertIsNone(extract_price({"name": "x"}))

    def test_oversized_integer_price_is_ignored(self):
        self.assertIsNone(extract_price({"price_cents": 10 ** 400}))

    def test_boolean_is_not_a_price(self):
        self.assertIsNone(extract_price({"price": True}))


class TestMapRecord(unittest.TestCase):
    def test_nested_name_takes_precedence(self):
        raw = {"asset": {"market_hash_name": "AWP | Asiimov"}, "name": "short"}
        item = map_record(raw)
        self.assertEqual(item.name, "AWP | Asiimov")

    def test_no_name_is_unmapped(self):
        self.assertIsNone(map_record({"price": 12}))
        self.assertIsNone(map_record({"name": "   "}))
        self.assertIsNone(map_record("not a dict"))

    def test_dom_record(self):
        raw = {"name": "AK-47 | Slate", "priceText": "$4.20", "stickers": ["Sticker | Holo", "", "  Foil  "]}
        item = map_record(raw)
        self.assertEqual(item.price, 4.2)
        self.assertEqual(item.sticker_names, ["Sticker | Holo", "Foil"])

    def test_api_record_with_sticker_objects(self):
        raw = {
            "item": {"name": "M4A1-S | Nitro"},
            "price": 1999,
            "attributes": {
                "applied_stickers": [
                    {"name": "Stockholm 2021", "type": "Holo", "price_cents": 250},
                    {"title": "Crown", "value": 3.5},
                    {"type": "nameless"},
                ]
            },
        }
        item = map_record(raw)
        self.assertEqual(item.name, "M4A1-S | Nitro")
        self.assertEqual(item.price, 19.99)
        self.assertEqual(len(item.stickers), 2)
        self.assertEqual(item.stickers[0].type, "Holo")
        self.assertEqual(item.stickers[0].price, 2.5)
        self.assertEqual(item.stickers[1].price, 3.5)

    def test_first_sticker_container_wins(self):
        raw = {"name": "x", "stickers": [], "appliedStickers": ["Holo"]}
        self.assertEqual(map_record(raw).stickers, [])

    def test_map_sticker_rejects_unknown_shapes(self):
        self.assertIsNone(map_sticker(42))
        self.assertIsNone(map_sticker(""))


if __name__ == "__main__":
    unittest.main()
