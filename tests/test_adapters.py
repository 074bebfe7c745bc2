"""
Tests for the external service adapters using httpx.MockTransport.
"""
import base64
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from errors import MissingConfigError, NoCreditsError, ProviderError, TransportError
from services.firecrawl_client import FirecrawlClient
from services.http_utils import extract_error_message
from services.image_client import ImageGatewayClient, decode_image_payload, extract_image_payload
from services.lobstr_client import LobstrClient, extract_result_list
from services.openrouter_client import LLMCompletion, OpenRouterClient, parse_json_content
from services.supabase_client import SupabaseClient


def _transport(handler):
    return httpx.MockTransport(handler)


def _completion_body(content="Hello", model="openai/gpt-4o"):
    return {
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 1000, "completion_tokens": 500, "total_tokens": 1500},
    }


# ===================================================================
# Shared helpers
# ===================================================================

class TestErrorMessages:

    @pytest.mark.parametrize("payload,expected", [
        ({"error": "bad key"}, "bad key"),
        ({"error": {"message": "quota exceeded"}}, "quota exceeded"),
        ({"errors": {"message": "nope"}}, "nope"),
        ({"message": "plain"}, "plain"),
        ("text body", "text body"),
        ({}, "fallback"),
    ])
    def test_extract_error_message(self, payload, expected):
        assert extract_error_message(payload, "fallback") == expected


# ===================================================================
# OpenRouter
# ===================================================================

class TestOpenRouterClient:

    @pytest.mark.asyncio
    async def test_complete_sends_headers_and_parses_usage(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["referer"] = request.headers["http-referer"]
            seen["title"] = request.headers["x-title"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion_body())

        client = OpenRouterClient(api_key="sk-test", transport=_transport(handler))
        completion = await client.complete([{"role": "user", "content": "hi"}], model="openai/gpt-4o", max_tokens=50)

        assert completion.content == "Hello"
        assert completion.total_tokens == 1500
        assert completion.cost_usd == pytest.approx(0.0025 + 0.005)
        assert seen["auth"] == "Bearer sk-test"
        assert seen["referer"] == "https://sparti.ai"
        assert seen["title"] == "Sparti AI Assistant"
        assert seen["body"]["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_error_inside_200_is_provider_error(self):
        def handler(request):
            return httpx.Response(200, json={"error": {"message": "upstream timeout"}})

        client = OpenRouterClient(api_key="k", transport=_transport(handler))
        with pytest.raises(ProviderError, match="upstream timeout"):
            await client.complete([{"role": "user", "content": "hi"}], model="openai/gpt-4o")

    @pytest.mark.asyncio
    async def test_http_error_is_provider_error(self):
        def handler(request):
            return httpx.Response(402, json={"error": {"message": "Insufficient credits"}})

        client = OpenRouterClient(api_key="k", transport=_transport(handler))
        with pytest.raises(ProviderError) as exc_info:
            await client.complete([{"role": "user", "content": "hi"}], model="openai/gpt-4o")
        assert exc_info.value.status_code == 402

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, monkeypatch):
        monkeypatch.setattr("services.openrouter_client.asyncio.sleep", AsyncMock())
        attempts = []

        def handler(request):
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json=_completion_body("second try"))

        client = OpenRouterClient(api_key="k", transport=_transport(handler))
        completion = await client.complete([{"role": "user", "content": "hi"}], model="openai/gpt-4o")

        assert completion.content == "second try"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_transport_error_after_retries(self, monkeypatch):
        monkeypatch.setattr("services.openrouter_client.asyncio.sleep", AsyncMock())

        def handler(request):
            raise httpx.ReadError("reset by peer")

        client = OpenRouterClient(api_key="k", transport=_transport(handler))
        with pytest.raises(TransportError):
            await client.complete([{"role": "user", "content": "hi"}], model="openai/gpt-4o")

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY")
        with pytest.raises(MissingConfigError):
            OpenRouterClient()

    def test_unknown_model_costs_nothing(self):
        completion = LLMCompletion(content="x", model="some/other", prompt_tokens=10, completion_tokens=10)
        assert completion.cost_usd == 0


class TestParseJsonContent:

    def test_fenced_json(self):
        assert parse_json_content('```json\n{"a": 1}\n```') == {"a": 1}

    def test_json_with_prose(self):
        assert parse_json_content('Here you go: {"a": [1, 2]} hope that helps') == {"a": [1, 2]}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2]"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_json_content(text)


# ===================================================================
# Image gateway
# ===================================================================

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_B64 = base64.b64encode(PNG_BYTES).decode()


class TestImageGateway:

    def test_extract_data_url(self):
        body = {"choices": [{"message": {"images": [{"image_url": {"url": f"data:image/png;base64,{PNG_B64}"}}]}}]}
        assert decode_image_payload(extract_image_payload(body)) == PNG_BYTES

    def test_extract_b64_json(self):
        assert decode_image_payload(extract_image_payload({"data": [{"b64_json": PNG_B64}]})) == PNG_BYTES

    def test_no_image(self):
        with pytest.raises(ProviderError):
            extract_image_payload({"choices": [{"message": {"content": "sorry"}}]})

    def test_invalid_base64(self):
        with pytest.raises(ValueError):
            decode_image_payload("data:image/png;base64,***")

    @pytest.mark.asyncio
    async def test_generate_image(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["modalities"] == ["image", "text"]
            return httpx.Response(200, json={"data": [{"b64_json": PNG_B64}]})

        client = ImageGatewayClient(api_key="k", transport=_transport(handler))
        assert await client.generate_image("a roof") == PNG_BYTES


# ===================================================================
# Firecrawl
# ===================================================================

class TestFirecrawl:

    @pytest.mark.asyncio
    async def test_scrape(self):
        def handler(request):
            assert request.url.path.endswith("/scrape")
            return httpx.Response(200, json={
                "success": True,
                "data": {"markdown": "# Roofing", "metadata": {"title": "Roofing Guide", "sourceURL": "https://r.test"}},
            })

        page = await FirecrawlClient(api_key="k", transport=_transport(handler)).scrape("https://r.test")
        assert page == {"url": "https://r.test", "title": "Roofing Guide", "markdown": "# Roofing"}

    @pytest.mark.asyncio
    async def test_empty_page(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"markdown": "  "}})

        with pytest.raises(ProviderError):
            await FirecrawlClient(api_key="k", transport=_transport(handler)).scrape("https://r.test")


# ===================================================================
# Supabase
# ===================================================================

class TestSupabase:

    @pytest.mark.asyncio
    async def test_get_user(self):
        def handler(request):
            assert request.headers["authorization"] == "Bearer user-token"
            return httpx.Response(200, json={"id": "user-1", "email": "a@b.test"})

        client = SupabaseClient(url="https://p.supabase.test", service_key="svc", transport=_transport(handler))
        assert (await client.get_user("user-token"))["id"] == "user-1"

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        def handler(request):
            return httpx.Response(401, json={"message": "invalid JWT"})

        client = SupabaseClient(url="https://p.supabase.test", service_key="svc", transport=_transport(handler))
        assert await client.get_user("bad") is None

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self):
        def handler(request):
            assert request.url.path == "/storage/v1/object/images/brands/b/a.png"
            assert request.headers["content-type"] == "image/png"
            return httpx.Response(200, json={"Key": "images/brands/b/a.png"})

        client = SupabaseClient(url="https://p.supabase.test/", service_key="svc", transport=_transport(handler))
        url = await client.upload_object("images", "brands/b/a.png", PNG_BYTES, "image/png")
        assert url == "https://p.supabase.test/storage/v1/object/public/images/brands/b/a.png"


# ===================================================================
# Lobstr
# ===================================================================

class TestLobstrClient:

    @pytest.mark.parametrize("payload,expected", [
        ([{"id": 1}], [{"id": 1}]),
        ({"data": [{"id": 2}]}, [{"id": 2}]),
        ({"results": [{"id": 3}]}, [{"id": 3}]),
        ({"count": 0}, []),
    ])
    def test_extract_result_list(self, payload, expected):
        assert extract_result_list(payload) == expected

    @pytest.mark.asyncio
    async def test_token_auth_and_squid_settings(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "squid"})

        client = LobstrClient(api_key="lob", transport=_transport(handler))
        await client.update_squid("squid", 500)

        assert seen["auth"] == "Token lob"
        assert seen["body"]["params"]["max_results"] == 200
        assert seen["body"]["params"]["language"] == "English (United States)"
        assert seen["body"]["params"]["functions"] == {"collect_contacts": True, "details": False, "images": False}
        assert seen["body"]["export_unique_results"] is True

    @pytest.mark.asyncio
    async def test_no_credits(self):
        def handler(request):
            return httpx.Response(400, json={"errors": {"type": "NoMoreCredits", "message": "out"}})

        client = LobstrClient(api_key="lob", transport=_transport(handler))
        with pytest.raises(NoCreditsError) as exc_info:
            await client.start_run("squid")
        assert exc_info.value.error_type == "NO_CREDITS"

    @pytest.mark.asyncio
    async def test_get_all_results_pages_until_short_page(self):
        pages = []

        def handler(request):
            page = int(request.url.params["page"])
            pages.append(page)
            size = 100 if page < 3 else 30
            return httpx.Response(200, json={"data": [{"n": i} for i in range(size)]})

        client = LobstrClient(api_key="lob", transport=_transport(handler))
        records = await client.get_all_results("squid", "run", limit=1000)

        assert len(records) == 230
        assert pages == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_get_all_results_truncates_to_limit(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"n": i} for i in range(100)]})

        client = LobstrClient(api_key="lob", transport=_transport(handler))
        assert len(await client.get_all_results("squid", "run", limit=150)) == 150
