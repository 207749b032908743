"""
Generative-model client for ruleset generation.

Talks to OpenRouter (or any OpenAI-compatible endpoint). Transport retries
with exponential backoff live here; the generator above only sees a JSON
object or a GenerationError.
"""

import json
import logging
from typing import Any, Dict, Optional, Protocol

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import ModelResponseError, ModelTransportError

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = "You generate extraction configs for job posting pages. Return only valid JSON."


class RulesetModelClient(Protocol):
    """Anything that turns a prompt into a candidate ruleset JSON object."""

    async def generate_ruleset(self, prompt: str) -> Dict[str, Any]:
        ...


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return False


def strip_code_fences(content: str) -> str:
    content = content.strip()
    if content.startswith("```"):
        lines = content.split("\n")
        lines = lines[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        content = "\n".join(lines).strip()
    return content


def parse_json_object(content: str) -> Dict[str, Any]:
    """Parse model output into a JSON object, tolerating fences and chatter."""
    text = strip_code_fences(content or "")
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise ModelResponseError(f"Model output contains no JSON object: {text[:200]!r}")
    try:
        parsed = json.loads(text[start:end + 1])
    except (ValueError, RecursionError) as e:
        raise ModelResponseError(f"Model output is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ModelResponseError("Model output is not a JSON object")
    return parsed


class OpenRouterClient:
    """Chat-completions client returning the parsed JSON object."""

    def __init__(self, api_key: Optional[str], model: str,
                 base_url: str = "https://openrouter.ai/api/v1",
                 timeout: float = 30.0, max_retries: int = 3,
                 retry_backoff: float = 1.0, temperature: float = 0.1,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.temperature = temperature
        self._transport = transport

        if not self.api_key:
            logger.warning("[ai_client] API key not configured. Ruleset generation disabled.")

    @classmethod
    def from_settings(cls, settings) -> "OpenRouterClient":
        return cls(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            base_url=settings.openrouter_base_url,
            timeout=settings.ai_request_timeout,
            max_retries=settings.ai_max_retries,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def generate_ruleset(self, prompt: str) -> Dict[str, Any]:
        if not self.enabled:
            raise ModelTransportError("Model client not configured (missing API key)")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }

        try:
            data = await self._post_with_retry(payload)
        except httpx.HTTPStatusError as e:
            raise ModelTransportError(
                f"Model request failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ModelTransportError(f"Model request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelResponseError(f"Unexpected response format: {str(data)[:200]}") from e

        if isinstance(content, dict):
            return content
        return parse_json_object(str(content))

    async def _post_with_retry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info(f"[ai_client] Retry attempt {number}/{self.max_retries + 1}")
                return await self._post(payload)
        raise ModelTransportError("Model request was not attempted")

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(f"{self.base_url}/chat/completions",
                                         json=payload, headers=headers)
            response.raise_for_status()
            try:
                return response.json()
            except json.JSONDecodeError as e:
                raise ModelResponseError(f"Model response body is not JSON: {e}") from e
