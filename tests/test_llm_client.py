"""Tests for the language model client and reply parsing."""

import sys
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import httpx
from openai import APIConnectionError

sys.path.insert(0, str(Path(__file__).parent.parent))

from monitra.errors import LLMServiceError
from monitra.llm_client import LLMClient, parse_json_response


def _fake_client(content=None, error=None):
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        if error is not None:
            raise error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, calls


class TestParseJsonResponse(unittest.TestCase):
    def test_plain_and_fenced(self):
        self.assertEqual(parse_json_response('{"a": 1}'), {"a": 1})
        self.assertEqual(parse_json_response('```json\n{"a": 1}\n```'), {"a": 1})

    def test_prose_and_trailing_commas(self):
        text = 'Here you go: {"nameSelector": "h1", "priceSelector": ".price",} hope it helps'
        self.assertEqual(parse_json_response(text), {"nameSelector": "h1", "priceSelector": ".price"})

    def test_unusable_replies(self):
        for text in (None, "", "no json here", "{broken: }"):
            with self.assertRaises(LLMServiceError):
                parse_json_response(text)


class TestLLMClient(unittest.TestCase):
    def test_complete_json_sends_messages(self):
        fake, calls = _fake_client('{"price": 10}')
        client = LLMClient({"model": "test-model", "temperature": 0.2}, client=fake)
        self.assertEqual(client.complete_json("prompt", system="sys"), {"price": 10})

        kwargs = calls[0]
        self.assertEqual(kwargs["model"], "test-model")
        self.assertEqual(kwargs["temperature"], 0.2)
        self.assertEqual(kwargs["response_format"], {"type": "json_object"})
        self.assertEqual([m["role"] for m in kwargs["messages"]], ["system", "user"])

    def test_plain_completion_has_no_response_format(self):
        fake, calls = _fake_client("hello")
        self.assertEqual(LLMClient(client=fake).complete("prompt", json_mode=False), "hello")
        self.assertNotIn("response_format", calls[0])

    def test_empty_content(self):
        fake, _ = _fake_client("")
        with self.assertRaises(LLMServiceError):
            LLMClient(client=fake).complete("prompt")

    def test_api_errors_are_wrapped(self):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        fake, calls = _fake_client(error=error)
        with self.assertRaises(LLMServiceError):
            LLMClient({"max_retries": 1}, client=fake).complete("prompt")
        self.assertEqual(len(calls), 1)

    def test_missing_api_key(self):
        with patch.dict("os.environ", {"OPENAI_API_KEY": ""}):
            client = LLMClient({})
        with self.assertRaises(LLMServiceError):
            client.complete("prompt")


if __name__ == "__main__":
    unittest.main()
