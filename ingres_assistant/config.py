"""Configuration management for INGRES AI Assistant."""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

PACKAGE_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = PACKAGE_DIR / "config.yaml"

VALID_STORE_BACKENDS = ("sql", "managed", "rest")


class Configuration:
    """Manages configuration and environment variables for the assistant."""

    def __init__(self, config_path: str | os.PathLike | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: YAML file to load; defaults to the packaged config.yaml.
        """
        self.load_env()  # Load .env for API keys
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def llm_api_key_env(self) -> str:
        """Name of the environment variable holding the active provider's key.

        Raises:
            ValueError: If the active provider has no known key mapping.
        """
        active_provider = self._config.get("llm", {}).get("active", "groq")

        provider_key_map = {
            "groq": "GROQ_API_KEY",
            "openai": "OPENAI_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
        }

        env_key = provider_key_map.get(active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{active_provider}' - no API key mapping found"
            )
        return env_key

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Returns:
            The API key as a string.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        env_key = self.llm_api_key_env
        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables"
            )
        return api_key

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active provider configuration merged with http_client settings.

        Raises:
            ValueError: If the provider block is missing or incomplete.
        """
        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active", "groq")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ValueError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        provider_config = providers[active_provider]
        required_keys = ["base_url", "model", "temperature", "max_tokens"]
        for key in required_keys:
            if key not in provider_config:
                raise ValueError(
                    f"llm.providers.{active_provider}.{key} must be explicitly "
                    f"configured in {self.config_path}"
                )

        return {
            **provider_config,
            "provider": active_provider,
            "http_client": dict(llm_config.get("http_client", {})),
        }

    def get_client_config(self) -> dict[str, Any]:
        """Get streaming chat client configuration.

        The INGRES_API_URL environment variable overrides `client.base_url`.

        Returns:
            Client configuration dictionary.

        Raises:
            ValueError: If no base URL is configured.
        """
        client_config = {**self._config.get("client", {})}

        base_url = os.getenv("INGRES_API_URL") or client_config.get("base_url")
        if not base_url:
            raise ValueError(
                "client.base_url must be configured (or INGRES_API_URL set)"
            )
        client_config["base_url"] = base_url
        client_config.setdefault("chat_path", "/chat")

        for key in ("connect_timeout", "read_timeout", "write_timeout", "pool_timeout"):
            if key in client_config and client_config[key] <= 0:
                raise ValueError(f"client.{key} must be positive")

        return client_config

    def get_store_config(self) -> dict[str, Any]:
        """Get conversation store configuration for the selected backend.

        Returns:
            Dictionary with `backend` plus the resolved settings of that backend.

        Raises:
            ValueError: If the backend is unknown or its settings are incomplete.
        """
        store_config = self._config.get("store", {})
        backend = store_config.get("backend")

        if backend not in VALID_STORE_BACKENDS:
            raise ValueError(
                f"store.backend must be one of: {list(VALID_STORE_BACKENDS)}"
            )

        result: dict[str, Any] = {
            "backend": backend,
            "timeout": store_config.get("timeout", 30.0),
        }
        section = store_config.get(backend, {})

        if backend == "sql":
            result["path"] = section.get("path", "conversations.db")

        elif backend == "managed":
            url_env = section.get("url_env", "SUPABASE_URL")
            key_env = section.get("key_env", "SUPABASE_ANON_KEY")
            url = os.getenv(url_env)
            key = os.getenv(key_env)
            if not url or not key:
                raise ValueError(
                    f"Managed store requires '{url_env}' and '{key_env}' "
                    "in environment variables"
                )
            result["url"] = url
            result["api_key"] = key

        else:
            base_url = os.getenv("INGRES_API_URL") or section.get("base_url")
            if not base_url:
                raise ValueError(
                    "store.rest.base_url must be configured (or INGRES_API_URL set)"
                )
            result["base_url"] = base_url

        return result

    def get_gateway_config(self) -> dict[str, Any]:
        """Get chat gateway (HTTP server) configuration.

        Returns:
            Gateway configuration dictionary.

        Raises:
            ValueError: If the port is invalid.
        """
        gateway_config = {**self._config.get("gateway", {})}
        gateway_config.setdefault("host", "0.0.0.0")
        gateway_config.setdefault("port", 8000)
        gateway_config.setdefault("cors_origins", ["*"])

        port = gateway_config["port"]
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ValueError("gateway.port must be an integer between 1 and 65535")

        return gateway_config

    def get_chat_config(self) -> dict[str, Any]:
        """Get chat orchestration configuration.

        Returns:
            Chat configuration dictionary with validated values.

        Raises:
            ValueError: If limits are not positive integers.
        """
        chat_config = {**self._config.get("chat", {})}
        chat_config.setdefault("title_max_length", 50)
        chat_config.setdefault("conversation_list_limit", 20)

        for key in ("title_max_length", "conversation_list_limit"):
            value = chat_config[key]
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"chat.{key} must be a positive integer")

        return chat_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})

    @property
    def system_prompt(self) -> str:
        """Load the assistant's system prompt / knowledge base text.

        Raises:
            FileNotFoundError: If the configured prompt file doesn't exist.
        """
        prompt_file = self._config.get("gateway", {}).get(
            "system_prompt_file", "prompts/system_prompt.md"
        )
        prompt_path = Path(prompt_file)
        if not prompt_path.is_absolute():
            prompt_path = PACKAGE_DIR / prompt_path
        return prompt_path.read_text(encoding="utf-8")
