"""OpenRouter API client for making LLM requests."""

import logging
import httpx
from typing import List, Dict, Any, Optional
from .config import (
    OPENROUTER_API_KEY,
    OPENROUTER_API_URL,
    OPENROUTER_SITE_URL,
    OPENROUTER_APP_TITLE,
    INSTRUCTION_MODEL,
    LLM_TIMEOUT,
    LLM_MAX_TOKENS,
    SEARCH_MODEL,
    SEARCH_TIMEOUT,
    SEARCH_CONTEXT_SIZE,
    SEARCH_MAX_TOKENS,
)

logger = logging.getLogger(__name__)

_SEARCH_MODELS_NO_TOOLS = {
    "openai/gpt-4o-mini-search-preview",
    "openai/gpt-4o-search-preview",
}


class LLMError(Exception):
    """A completion or search call failed. Calls are never retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _headers(api_key: str) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if OPENROUTER_SITE_URL:
        headers["HTTP-Referer"] = OPENROUTER_SITE_URL
    if OPENROUTER_APP_TITLE:
        headers["X-Title"] = OPENROUTER_APP_TITLE
    return headers


async def query_model(
    model: str,
    messages: List[Dict[str, str]],
    api_key: str,
    timeout: float = LLM_TIMEOUT,
    extra_body: Optional[Dict[str, Any]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Query a single model via OpenRouter API.

    Args:
        model: OpenRouter model identifier (e.g., "openai/gpt-4o")
        messages: List of message dicts with 'role' and 'content'
        api_key: OpenRouter API key
        timeout: Request timeout in seconds
        transport: Optional httpx transport, used by tests

    Returns:
        Response dict with 'content' and optional 'annotations'

    Raises:
        LLMError: on transport errors, non-2xx responses or a malformed body
    """
    payload = {
        "model": model,
        "messages": messages,
    }
    if extra_body:
        payload.update(extra_body)

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(
                OPENROUTER_API_URL,
                headers=_headers(api_key),
                json=payload,
            )
    except httpx.HTTPError as e:
        logger.error("Error querying model %s: %s", model, e)
        raise LLMError(f"Request to {model} failed: {e}") from e

    if response.status_code >= 400:
        try:
            data = response.json()
        except ValueError:
            data = response.text
        logger.error("OpenRouter returned %s for %s: %s", response.status_code, model, data)
        raise LLMError(f"{model} returned HTTP {response.status_code}", status_code=response.status_code)

    try:
        data = response.json()
    except ValueError as e:
        raise LLMError(f"Invalid JSON from {model}", status_code=response.status_code) from e

    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices:
        logger.error("Invalid response from %s: %s", model, data)
        raise LLMError(f"Invalid response from {model}", status_code=response.status_code)

    message = choices[0].get("message") or {}
    return {
        "content": message.get("content") or "",
        "annotations": message.get("annotations"),
    }


class OpenRouterClient:
    """Completion client with an optional search-model side channel."""

    def __init__(
        self,
        api_key: str,
        model: str = INSTRUCTION_MODEL,
        search_model: Optional[str] = SEARCH_MODEL,
        timeout: float = LLM_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.search_model = search_model
        self.timeout = timeout
        self.transport = transport

    async def complete(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        return await query_model(
            self.model,
            messages,
            self.api_key,
            timeout=self.timeout,
            extra_body={"max_tokens": LLM_MAX_TOKENS},
            transport=self.transport,
        )

    async def web_search(self, query: str, system_prompt: str) -> Dict[str, Any]:
        """
        Query the search-enabled model with web search tooling.
        """
        if not self.search_model:
            raise LLMError("No search model configured")
        extra_body = {
            "temperature": 0,
            "max_tokens": SEARCH_MAX_TOKENS,
            "web_search_options": {"search_context_size": SEARCH_CONTEXT_SIZE},
        }
        if self.search_model not in _SEARCH_MODELS_NO_TOOLS:
            extra_body["tools"] = [{"type": "web_search"}]
            extra_body["tool_choice"] = "auto"
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": query},
        ]
        return await query_model(
            self.search_model,
            messages,
            self.api_key,
            timeout=SEARCH_TIMEOUT,
            extra_body=extra_body,
            transport=self.transport,
        )


def get_llm_client() -> Optional[OpenRouterClient]:
    """Client for the configured key, or None when no key is configured."""
    if not OPENROUTER_API_KEY:
        logger.warning("OpenRouter API key is missing. AI calls are disabled.")
        return None
    return OpenRouterClient(OPENROUTER_API_KEY)
