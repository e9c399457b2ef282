"""Tests for AI full-page extraction."""

import sys
import unittest
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from monitra.ai_extractor import AIFullPageExtractor, clean_page_text
from monitra.errors import AIExtractionError, ExtractionError, LLMServiceError

URL = "https://shop.example.com/p/42"

PAGE = """
<html><head><title>Phone</title><style>body { color: red; }</style></head>
<body>
  <!-- tracking pixel -->
  <script>var secret = 1;</script>
  <h1>Pixel   Phone</h1>
  <p>Now   ₹1,09,900</p>
  <svg><text>icon</text></svg>
</body></html>
"""


class FakeLLM:
    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.prompts = []

    def complete_json(self, prompt, system=None):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.payload


class TestCleanPageText(unittest.TestCase):
    def test_strips_non_content(self):
        text = clean_page_text(PAGE)
        self.assertIn("Pixel Phone", text)
        self.assertIn("Now ₹1,09,900", text)
        self.assertNotIn("secret", text)
        self.assertNotIn("color", text)
        self.assertNotIn("tracking", text)
        self.assertNotIn("icon", text)

    def test_truncated(self):
        self.assertEqual(len(clean_page_text("<p>" + "a" * 500 + "</p>", max_chars=100)), 100)


class TestAIFullPageExtractor(unittest.TestCase):
    def test_full_record(self):
        llm = FakeLLM(
            {
                "name": "Pixel  Phone",
                "brand": "Google",
                "price": 109900,
                "currency": "inr",
                "category": "Phones",
                "features": ["5G", ""],
                "description": "A phone",
                "imageUrl": "https://cdn.example.com/p.jpg",
            }
        )
        record = AIFullPageExtractor(llm).extract(PAGE, URL)
        self.assertEqual(record.name, "Pixel Phone")
        self.assertEqual(record.brand, "Google")
        self.assertEqual(record.price, Decimal("109900"))
        self.assertEqual(record.currency, "INR")
        self.assertEqual(record.features, ("5G",))
        self.assertEqual(record.image_url, "https://cdn.example.com/p.jpg")
        self.assertEqual(record.source_url, URL)
        self.assertTrue(record.ai_verified)
        self.assertIn(URL, llm.prompts[0])
        self.assertIn("Pixel Phone", llm.prompts[0])

    def test_string_price_and_currency_from_text(self):
        llm = FakeLLM({"name": "Kettle", "brand": "www", "price": "€89,99", "currency": ""})
        record = AIFullPageExtractor(llm).extract(PAGE, URL)
        self.assertEqual(record.price, Decimal("89.99"))
        self.assertEqual(record.currency, "EUR")
        self.assertEqual(record.brand, "")

    def test_invalid_price_becomes_zero_and_default_currency(self):
        llm = FakeLLM({"name": "Kettle", "price": 0.5, "currency": "dollars"})
        record = AIFullPageExtractor(llm, default_currency="GBP").extract(PAGE, URL)
        self.assertEqual(record.price, Decimal("0"))
        self.assertEqual(record.currency, "GBP")

    def test_currency_left_empty_without_default(self):
        llm = FakeLLM({"name": "Kettle", "price": 45})
        record = AIFullPageExtractor(llm).extract(PAGE, URL)
        self.assertEqual(record.price, Decimal("45"))
        self.assertEqual(record.currency, "")

    def test_features_of_unexpected_shape_are_ignored(self):
        for features in (5, {"a": 1}, None):
            llm = FakeLLM({"name": "Widget", "price": 10, "features": features})
            record = AIFullPageExtractor(llm).extract(PAGE, URL)
            self.assertEqual(record.features, ())
            self.assertEqual(record.price, Decimal("10"))

        llm = FakeLLM({"name": "Widget", "price": 10, "features": "Waterproof"})
        self.assertEqual(AIFullPageExtractor(llm).extract(PAGE, URL).features, ("Waterproof",))

    def test_reply_that_is_not_an_object(self):
        llm = FakeLLM(["Widget", 10])
        with self.assertRaises(AIExtractionError):
            AIFullPageExtractor(llm).extract(PAGE, URL)

    def test_service_error_is_an_extraction_error(self):
        llm = FakeLLM(error=LLMServiceError("rate limited"))
        with self.assertRaises(AIExtractionError) as ctx:
            AIFullPageExtractor(llm).extract(PAGE, URL)
        self.assertIsInstance(ctx.exception, ExtractionError)


if __name__ == "__main__":
    unittest.main()
