"""Thin wrapper around the OpenAI chat completions API."""

import json
import os
import re
from typing import Any, Dict, Optional

from loguru import logger
from openai import APIConnectionError, APIError, APITimeoutError, OpenAI, RateLimitError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from monitra.errors import LLMServiceError

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_TRANSIENT_ERRORS = (APITimeoutError, APIConnectionError, RateLimitError)


def parse_json_response(text: Optional[str]) -> Dict[str, Any]:
    """Parse a JSON object out of a model reply.

    Tolerates markdown fences, prose around the object and trailing commas.
    """
    if not text or not text.strip():
        raise LLMServiceError("Language model returned an empty response")

    cleaned = _FENCE_RE.sub("", text.strip())
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise LLMServiceError(f"No JSON object in response: {cleaned[:80]!r}")

    candidate = cleaned[start:end + 1]
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        try:
            data = json.loads(_TRAILING_COMMA_RE.sub(r"\1", candidate))
        except json.JSONDecodeError as exc:
            raise LLMServiceError(f"Malformed JSON in response: {exc}") from exc

    if not isinstance(data, dict):
        raise LLMServiceError("Language model response is not a JSON object")
    return data


class LLMClient:
    """Chat completion client configured from the `llm` config section."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, client: Optional[Any] = None):
        config = config or {}
        self.model = config.get("model") or "gpt-4o"
        self.api_key = config.get("api_key") or os.getenv("OPENAI_API_KEY")
        self.base_url = config.get("base_url") or None
        self.temperature = float(config.get("temperature", 0))
        self.timeout = float(config.get("timeout", 60))
        self.max_retries = int(config.get("max_retries", 3))
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise LLMServiceError("OPENAI_API_KEY is not configured")
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, prompt: str, system: Optional[str] = None, json_mode: bool = True) -> str:
        """Send one prompt and return the reply text."""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        logger.debug("LLM call: model={}, prompt_chars={} (~{} tokens)", self.model, len(prompt), len(prompt) // 4)
        try:
            response = self._create(messages, json_mode)
        except APIError as exc:
            raise LLMServiceError(f"Language model request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise LLMServiceError("Language model returned no content")
        return content

    def complete_json(self, prompt: str, system: Optional[str] = None) -> Dict[str, Any]:
        return parse_json_response(self.complete(prompt, system=system, json_mode=True))

    def _create(self, messages, json_mode: bool):
        @retry(
            stop=stop_after_attempt(max(1, self.max_retries)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        )
        def _call():
            kwargs = {
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature,
            }
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            return self.client.chat.completions.create(**kwargs)

        return _call()
