"""
Core chat dataclasses shared by the streaming client and the gateway.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatTurn:
    """One role+content pair of the conversation history sent upstream."""
    role: MessageRole
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ChatTurn:
        return cls(role=MessageRole(data["role"]), content=data["content"])


@dataclass(frozen=True)
class ClientSettings:
    """Connection settings for the streaming chat client."""
    base_url: str
    chat_path: str = "/chat"

    # Connection settings
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ClientSettings:
        """Build settings from `Configuration.get_client_config()`."""
        return cls(
            base_url=config["base_url"],
            chat_path=config.get("chat_path", "/chat"),
            connect_timeout=config.get("connect_timeout", 10.0),
            read_timeout=config.get("read_timeout", 60.0),
            write_timeout=config.get("write_timeout", 10.0),
            pool_timeout=config.get("pool_timeout", 10.0),
            headers=dict(config.get("headers") or {}),
        )
