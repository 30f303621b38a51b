import json
import sys
import os
import unittest
from unittest.mock import patch

import httpx

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '.')))

from shrooms.openrouter import LLMError, OpenRouterClient, get_llm_client, query_model


def recording_transport(status_code=200, body=None, calls=None):
    def handler(request):
        if calls is not None:
            calls.append(request)
        if isinstance(body, (dict, list)):
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, text=body or "")
    return httpx.MockTransport(handler)


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestQueryModel(unittest.IsolatedAsyncioTestCase):

    async def test_success(self):
        calls = []
        transport = recording_transport(body=completion("[]"), calls=calls)
        result = await query_model("openai/gpt-4o", [{"role": "user", "content": "hi"}], "key-123", transport=transport)
        self.assertEqual(result["content"], "[]")
        self.assertEqual(len(calls), 1)
        request = calls[0]
        self.assertEqual(request.headers["Authorization"], "Bearer key-123")
        payload = json.loads(request.content)
        self.assertEqual(payload["model"], "openai/gpt-4o")
        self.assertEqual(payload["messages"][0]["content"], "hi")

    async def test_http_error_is_not_retried(self):
        calls = []
        transport = recording_transport(status_code=429, body={"error": {"message": "slow down"}}, calls=calls)
        with self.assertRaises(LLMError) as ctx:
            await query_model("openai/gpt-4o", [], "key", transport=transport)
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(len(calls), 1)

    async def test_missing_choices(self):
        transport = recording_transport(body={"error": "nope"})
        with self.assertRaises(LLMError):
            await query_model("openai/gpt-4o", [], "key", transport=transport)

    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(LLMError):
            await query_model("openai/gpt-4o", [], "key", transport=httpx.MockTransport(handler))


class TestOpenRouterClient(unittest.IsolatedAsyncioTestCase):

    async def test_complete_uses_instruction_model(self):
        calls = []
        client = OpenRouterClient("key", model="test/model", transport=recording_transport(body=completion("ok"), calls=calls))
        result = await client.complete([{"role": "user", "content": "go"}])
        self.assertEqual(result["content"], "ok")
        payload = json.loads(calls[0].content)
        self.assertEqual(payload["model"], "test/model")
        self.assertIn("max_tokens", payload)

    async def test_web_search_options(self):
        calls = []
        client = OpenRouterClient(
            "key",
            search_model="openai/gpt-4o-mini-search-preview",
            transport=recording_transport(body=completion("results"), calls=calls),
        )
        result = await client.web_search("sourdough videos", "Search the web")
        self.assertEqual(result["content"], "results")
        payload = json.loads(calls[0].content)
        self.assertEqual(payload["model"], "openai/gpt-4o-mini-search-preview")
        self.assertIn("web_search_options", payload)
        self.assertNotIn("tools", payload)
        self.assertEqual(payload["messages"][0], {"role": "system", "content": "Search the web"})
        self.assertEqual(payload["messages"][1], {"role": "user", "content": "sourdough videos"})

    async def test_web_search_tools_for_other_models(self):
        calls = []
        client = OpenRouterClient(
            "key",
            search_model="perplexity/sonar",
            transport=recording_transport(body=completion("results"), calls=calls),
        )
        await client.web_search("q", "s")
        payload = json.loads(calls[0].content)
        self.assertEqual(payload["tools"], [{"type": "web_search"}])


class TestGetClient(unittest.TestCase):

    @patch('shrooms.openrouter.OPENROUTER_API_KEY', None)
    def test_no_key(self):
        self.assertIsNone(get_llm_client())

    @patch('shrooms.openrouter.OPENROUTER_API_KEY', "key-123")
    def test_with_key(self):
        client = get_llm_client()
        self.assertIsInstance(client, OpenRouterClient)
        self.assertEqual(client.api_key, "key-123")


if __name__ == "__main__":
    unittest.main()
