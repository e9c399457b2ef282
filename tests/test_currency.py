"""Tests for the currency normalizer."""

import sys
import unittest
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from monitra.currency import (
    EXCHANGE_RATES,
    build_rate_table,
    convert,
    from_canonical,
    get_exchange_rate,
    round3,
    to_canonical,
)
from monitra.records import ProductRecord


class TestCurrency(unittest.TestCase):
    def test_round3_half_away_from_zero(self):
        self.assertEqual(round3(Decimal("1.0005")), Decimal("1.001"))
        self.assertEqual(round3(Decimal("-1.0005")), Decimal("-1.001"))
        self.assertEqual(round3(2), Decimal("2.000"))

    def test_to_canonical(self):
        self.assertEqual(to_canonical(100, "EUR"), Decimal("108.000"))
        self.assertEqual(to_canonical(Decimal("109900"), "INR"), Decimal("1318.800"))

    def test_unknown_code_uses_multiplier_one(self):
        self.assertEqual(get_exchange_rate("XYZ"), Decimal("1"))
        self.assertEqual(to_canonical(5, "XYZ"), Decimal("5.000"))
        self.assertEqual(to_canonical(5, None), Decimal("5.000"))

    def test_round_trip_within_rounding_tolerance(self):
        for amount in (Decimal("1234.567"), Decimal("19.99"), Decimal("1")):
            for code in EXCHANGE_RATES:
                result = to_canonical(from_canonical(amount, code), code)
                self.assertLessEqual(abs(result - round3(amount)), Decimal("0.001"), (amount, code))

    def test_convert_between_codes(self):
        self.assertEqual(convert(100, "EUR", "GBP"), Decimal("85.039"))
        self.assertEqual(convert(Decimal("19.9999"), "usd", "USD"), Decimal("20.000"))

    def test_rate_overrides(self):
        rates = build_rate_table({"eur": "1.1", "CHF": 1.13})
        self.assertEqual(rates["EUR"], Decimal("1.1"))
        self.assertEqual(rates["CHF"], Decimal("1.13"))
        self.assertEqual(to_canonical(10, "EUR", rates), Decimal("11.000"))
        self.assertEqual(EXCHANGE_RATES["EUR"], Decimal("1.08"))

    def test_record_canonical_price_keeps_raw_amount(self):
        record = ProductRecord(
            name="Phone", brand="Acme", price=Decimal("109900"), currency="INR", source_url="https://x.in/p"
        )
        self.assertEqual(record.canonical_price(), Decimal("1318.800"))
        self.assertEqual(record.price, Decimal("109900"))
        self.assertEqual(record.as_dict()["price"], "109900")


if __name__ == "__main__":
    unittest.main()
