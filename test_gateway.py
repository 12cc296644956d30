#!/usr/bin/env python3
"""
Tests for the chat gateway (FastAPI app), driven in-process through
httpx.ASGITransport with the provider mocked by httpx.MockTransport.
"""

import gzip
import json

import httpx
import pytest

from ingres_assistant.gateway import (
    CREDITS_EXHAUSTED_MESSAGE,
    RATE_LIMIT_MESSAGE,
    GatewaySettings,
    create_app,
)
from ingres_assistant.history.repositories import AsyncSqlConversationStore
from ingres_assistant.llm import ChatTurn, ClientSettings, MessageRole, StreamingChatClient
from ingres_assistant.llm.streaming import StreamDelta, StreamDone

PROVIDER_URL = "http://provider.test/v1"
GATEWAY_URL = "http://gateway.test"
SYSTEM_PROMPT = "You are INGRES AI Assistant."

PROVIDER_BODY = (
    'data: {"choices":[{"delta":{"role":"assistant"}}]}\n\n'
    'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
    'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
    "data: [DONE]\n\n"
)


def make_settings(api_key: str | None = "provider-key") -> GatewaySettings:
    return GatewaySettings(
        provider_base_url=PROVIDER_URL,
        model="llama-3.3-70b-versatile",
        system_prompt=SYSTEM_PROMPT,
        api_key=api_key,
        temperature=0.2,
        max_tokens=512,
    )


def make_gateway(handler, api_key: str | None = "provider-key", store=None):
    upstream = httpx.AsyncClient(
        base_url=PROVIDER_URL, transport=httpx.MockTransport(handler)
    )
    app = create_app(make_settings(api_key), store=store, upstream=upstream)
    return httpx.AsyncClient(base_url=GATEWAY_URL, transport=httpx.ASGITransport(app=app))


def sse(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200, headers={"content-type": "text/event-stream"}, content=PROVIDER_BODY
    )


CHAT_BODY = {"messages": [{"role": "user", "content": "Hi"}], "conversation_id": "c1"}


class TestChatRelay:
    """POST /chat relays to the provider and streams back."""

    @pytest.mark.asyncio
    async def test_streams_provider_body(self):
        """The provider's SSE body is passed through unchanged."""
        async with make_gateway(sse) as gateway:
            response = await gateway.post("/chat", json=CHAT_BODY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.text == PROVIDER_BODY

    @pytest.mark.asyncio
    async def test_provider_request(self):
        """System prompt first, streaming on, model settings applied."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return sse(request)

        async with make_gateway(handler) as gateway:
            await gateway.post(
                "/chat",
                json={
                    "messages": [
                        {"role": "user", "content": "Hi"},
                        {"role": "assistant", "content": "Hello"},
                        {"role": "user", "content": "Is Pune safe?"},
                    ]
                },
            )

        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer provider-key"
        body = seen["body"]
        assert body["model"] == "llama-3.3-70b-versatile"
        assert body["stream"] is True
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 512
        assert body["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "Is Pune safe?"},
        ]

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Without a provider key the gateway answers 500 and names the variable."""
        async with make_gateway(sse, api_key=None) as gateway:
            response = await gateway.post("/chat", json=CHAT_BODY)

        assert response.status_code == 500
        assert response.json() == {"error": "GROQ_API_KEY is not configured"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("upstream_status", "status", "message"),
        [
            (429, 429, RATE_LIMIT_MESSAGE),
            (402, 402, CREDITS_EXHAUSTED_MESSAGE),
            (500, 500, "API error: 500"),
            (401, 500, "API error: 401"),
        ],
    )
    async def test_provider_errors(self, upstream_status, status, message):
        """Provider failures are mapped to the gateway's error bodies."""
        async with make_gateway(
            lambda request: httpx.Response(upstream_status, text="upstream said no")
        ) as gateway:
            response = await gateway.post("/chat", json=CHAT_BODY)

        assert response.status_code == status
        assert response.json() == {"error": message}

    @pytest.mark.asyncio
    async def test_provider_unreachable(self):
        """Transport failures to the provider become a 500."""

        def handler(request):
            raise httpx.ConnectError("provider down", request=request)

        async with make_gateway(handler) as gateway:
            response = await gateway.post("/chat", json=CHAT_BODY)

        assert response.status_code == 500
        assert response.json() == {"error": "provider down"}

    @pytest.mark.asyncio
    async def test_rejects_empty_history(self):
        """At least one message is required."""
        async with make_gateway(sse) as gateway:
            response = await gateway.post("/chat", json={"messages": []})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cors_preflight(self):
        """Browsers may call the gateway cross-origin."""
        async with make_gateway(sse) as gateway:
            response = await gateway.options(
                "/chat",
                headers={
                    "Origin": "http://localhost:5173",
                    "Access-Control-Request-Method": "POST",
                    "Access-Control-Request-Headers": "content-type",
                },
            )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"


class TestEndToEnd:
    """Streaming client against the gateway against a mocked provider."""

    @pytest.mark.asyncio
    async def test_client_receives_deltas(self):
        """OpenAI-style chunks arrive as ordered deltas then done."""
        gateway = make_gateway(sse)
        client = StreamingChatClient(ClientSettings(base_url=GATEWAY_URL), http_client=gateway)

        events = [
            e async for e in client.stream_chat(
                [ChatTurn(role=MessageRole.USER, content="Hi")], "c1"
            )
        ]
        await gateway.aclose()

        assert events == [StreamDelta(text="Hel"), StreamDelta(text="lo"), StreamDone()]

    @pytest.mark.asyncio
    async def test_gzip_provider_body_is_decoded(self):
        """A compressed provider stream reaches the client as plain SSE."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={
                    "content-type": "text/event-stream",
                    "content-encoding": "gzip",
                },
                content=gzip.compress(PROVIDER_BODY.encode()),
            )

        gateway = make_gateway(handler)
        client = StreamingChatClient(ClientSettings(base_url=GATEWAY_URL), http_client=gateway)

        events = [
            e async for e in client.stream_chat(
                [ChatTurn(role=MessageRole.USER, content="Hi")], "c1"
            )
        ]
        await gateway.aclose()

        assert events == [StreamDelta(text="Hel"), StreamDelta(text="lo"), StreamDone()]

    @pytest.mark.asyncio
    async def test_client_sees_rate_limit_message(self):
        """The gateway's 429 body surfaces as the failure message."""
        gateway = make_gateway(lambda request: httpx.Response(429))
        client = StreamingChatClient(ClientSettings(base_url=GATEWAY_URL), http_client=gateway)

        events = [e async for e in client.stream_chat([{"role": "user", "content": "Hi"}])]
        await gateway.aclose()

        assert len(events) == 1
        assert events[0].message == RATE_LIMIT_MESSAGE
        assert events[0].status_code == 429


class TestConversationRoutes:
    """The REST persistence surface."""

    @pytest.mark.asyncio
    async def test_routes_absent_without_store(self):
        """No store, no /conversations."""
        async with make_gateway(sse) as gateway:
            response = await gateway.get("/conversations")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_create_append_list_fetch(self):
        """Conversations and messages round through the backing store."""
        async with AsyncSqlConversationStore(":memory:") as store:
            async with make_gateway(sse, store=store) as gateway:
                created = await gateway.post("/conversations", json={"title": "Hello"})
                conversation_id = created.json()["id"]
                appended = await gateway.post(
                    f"/conversations/{conversation_id}/messages",
                    json={"role": "user", "content": "Hello"},
                )
                listed = await gateway.get("/conversations", params={"limit": 5})
                fetched = await gateway.get(f"/conversations/{conversation_id}/messages")

        assert created.status_code == 201
        assert appended.status_code == 201
        assert [c["title"] for c in listed.json()] == ["Hello"]
        assert [(m["role"], m["content"]) for m in fetched.json()] == [("user", "Hello")]

    @pytest.mark.asyncio
    async def test_store_failure_is_500(self):
        """A failed store operation is reported with its diagnostic."""
        async with AsyncSqlConversationStore(":memory:") as store:
            async with make_gateway(sse, store=store) as gateway:
                response = await gateway.post(
                    "/conversations/missing/messages",
                    json={"role": "user", "content": "orphan"},
                )

        assert response.status_code == 500
        assert response.json()["detail"].startswith("append_message failed")

    @pytest.mark.asyncio
    async def test_invalid_role_rejected(self):
        """Only user and assistant messages are stored."""
        async with AsyncSqlConversationStore(":memory:") as store:
            async with make_gateway(sse, store=store) as gateway:
                created = await gateway.post("/conversations", json={"title": None})
                response = await gateway.post(
                    f"/conversations/{created.json()['id']}/messages",
                    json={"role": "system", "content": "nope"},
                )

        assert response.status_code == 422
