"""
Chat gateway: the HTTP surface in front of the LLM provider.

- POST /chat relays the conversation (prefixed with the INGRES system
  prompt) to an OpenAI-compatible provider and streams its SSE body back
- /conversations exposes the plain REST persistence surface over a
  ConversationStore
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
import structlog
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask

from ingres_assistant.config import Configuration
from ingres_assistant.history.models import Conversation, Role, StoredMessage
from ingres_assistant.history.repositories.base import (
    DEFAULT_LIST_LIMIT,
    ConversationStore,
)
from ingres_assistant.logging_utils import operation_context

logger = structlog.get_logger(__name__)

HTTP_PAYMENT_REQUIRED = 402
HTTP_TOO_MANY_REQUESTS = 429

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again in a moment."
CREDITS_EXHAUSTED_MESSAGE = "AI credits exhausted. Please add credits to continue."


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequestBody(BaseModel):
    messages: list[ChatMessageIn] = Field(min_length=1)
    conversation_id: str | None = None


class ConversationCreate(BaseModel):
    title: str | None = None


class MessageCreate(BaseModel):
    role: Role
    content: str


@dataclass(frozen=True)
class GatewaySettings:
    """Everything the gateway needs to talk to the provider."""
    provider_base_url: str
    model: str
    system_prompt: str
    api_key: str | None
    api_key_env: str = "GROQ_API_KEY"
    temperature: float = 0.7
    max_tokens: int = 2048
    connect_timeout: float = 10.0
    read_timeout: float = 120.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_configuration(
        cls, config: Configuration, api_key: str | None
    ) -> "GatewaySettings":
        llm_config = config.get_llm_config()
        http_config = llm_config.get("http_client", {})
        gateway_config = config.get_gateway_config()
        return cls(
            provider_base_url=llm_config["base_url"],
            model=llm_config["model"],
            system_prompt=config.system_prompt,
            api_key=api_key,
            api_key_env=config.llm_api_key_env,
            temperature=llm_config["temperature"],
            max_tokens=llm_config["max_tokens"],
            connect_timeout=http_config.get("connect_timeout", 10.0),
            read_timeout=http_config.get("read_timeout", 120.0),
            cors_origins=list(gateway_config["cors_origins"]),
        )


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(
    settings: GatewaySettings,
    store: ConversationStore | None = None,
    upstream: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Provider and CORS settings
        store: Backing store for the /conversations endpoints; omitted
            endpoints are not registered when None
        upstream: Provider HTTP client (injected in tests); created and
            closed by the app when not given
    """
    owns_upstream = upstream is None
    upstream_client = upstream or httpx.AsyncClient(
        base_url=settings.provider_base_url,
        timeout=httpx.Timeout(settings.read_timeout, connect=settings.connect_timeout),
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if owns_upstream:
            await upstream_client.aclose()
        if store is not None:
            await store.close()

    app = FastAPI(title="INGRES AI Assistant", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/chat")
    async def chat(body: ChatRequestBody):
        if not settings.api_key:
            logger.error("Provider API key missing", env_var=settings.api_key_env)
            return _error(f"{settings.api_key_env} is not configured", 500)

        payload: dict[str, Any] = {
            "model": settings.model,
            "messages": [
                {"role": "system", "content": settings.system_prompt},
                *(m.model_dump() for m in body.messages),
            ],
            "stream": True,
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
        }

        async with operation_context(
            "relay_chat",
            context={
                "message_count": len(body.messages),
                "conversation_id": body.conversation_id,
            },
        ) as op_logger:
            request = upstream_client.build_request(
                "POST",
                "/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {settings.api_key}"},
            )
            try:
                response = await upstream_client.send(request, stream=True)
            except httpx.HTTPError as e:
                op_logger.error("Provider unreachable", error_message=str(e))
                return _error(str(e) or "Provider connection failed", 500)

            if not response.is_success:
                error_text = (await response.aread()).decode(errors="replace")
                await response.aclose()
                op_logger.error(
                    "Provider API error",
                    status_code=response.status_code,
                    body=error_text[:500],
                )
                if response.status_code == HTTP_TOO_MANY_REQUESTS:
                    return _error(RATE_LIMIT_MESSAGE, HTTP_TOO_MANY_REQUESTS)
                if response.status_code == HTTP_PAYMENT_REQUIRED:
                    return _error(CREDITS_EXHAUSTED_MESSAGE, HTTP_PAYMENT_REQUIRED)
                return _error(f"API error: {response.status_code}", 500)

        # OpenAI-compatible SSE, relayed decoded; Content-Encoding is not forwarded
        return StreamingResponse(
            response.aiter_bytes(),
            media_type="text/event-stream",
            background=BackgroundTask(response.aclose),
        )

    if store is not None:
        _register_store_routes(app, store)

    return app


def _register_store_routes(app: FastAPI, store: ConversationStore) -> None:
    """Plain REST persistence endpoints; rename/delete are not exposed."""

    @app.get("/conversations", response_model=list[Conversation])
    async def list_conversations(limit: int = DEFAULT_LIST_LIMIT):
        result = await store.list_conversations(limit)
        if not result:
            raise HTTPException(status_code=500, detail=result.error)
        return result.value

    @app.post("/conversations", response_model=Conversation, status_code=201)
    async def create_conversation(body: ConversationCreate):
        result = await store.create_conversation(body.title)
        if not result:
            raise HTTPException(status_code=500, detail=result.error)
        return result.value

    @app.get(
        "/conversations/{conversation_id}/messages",
        response_model=list[StoredMessage],
    )
    async def fetch_messages(conversation_id: str):
        result = await store.fetch_messages(conversation_id)
        if not result:
            raise HTTPException(status_code=500, detail=result.error)
        return result.value

    @app.post(
        "/conversations/{conversation_id}/messages",
        response_model=StoredMessage,
        status_code=201,
    )
    async def append_message(conversation_id: str, body: MessageCreate):
        result = await store.append_message(conversation_id, body.role, body.content)
        if not result:
            raise HTTPException(status_code=500, detail=result.error)
        return result.value
