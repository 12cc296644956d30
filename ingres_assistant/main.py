"""
Entry point for the INGRES AI Assistant gateway.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys

import uvicorn

from ingres_assistant.chat_service import ChatOrchestrator, Notification
from ingres_assistant.config import Configuration
from ingres_assistant.gateway import GatewaySettings, create_app
from ingres_assistant.history.repositories import (
    AsyncSqlConversationStore,
    ConversationStore,
    ManagedConversationStore,
    RestConversationStore,
)
from ingres_assistant.llm import ClientSettings, StreamingChatClient
from ingres_assistant.logging_utils import configure_logging


def create_store(config: Configuration) -> ConversationStore:
    """Create the conversation store selected by `store.backend`."""
    store_config = config.get_store_config()
    backend = store_config["backend"]

    if backend == "sql":
        logging.info(f"Using SQLite conversation store at {store_config['path']}")
        return AsyncSqlConversationStore(store_config["path"])

    if backend == "managed":
        logging.info("Using managed (PostgREST) conversation store")
        return ManagedConversationStore(
            store_config["url"],
            store_config["api_key"],
            timeout=store_config["timeout"],
        )

    logging.info(f"Using REST conversation store at {store_config['base_url']}")
    return RestConversationStore(
        store_config["base_url"], timeout=store_config["timeout"]
    )


def create_orchestrator(
    config: Configuration,
    notify=None,
    on_change=None,
) -> ChatOrchestrator:
    """Wire a chat orchestrator to the configured chat API and store."""
    chat_config = config.get_chat_config()
    client = StreamingChatClient(ClientSettings.from_config(config.get_client_config()))
    return ChatOrchestrator(
        ChatOrchestrator.OrchestratorConfig(
            client=client,
            store=create_store(config),
            title_max_length=chat_config["title_max_length"],
            conversation_list_limit=chat_config["conversation_list_limit"],
        ),
        notify=notify,
        on_change=on_change,
    )


def _print_notification(notification: Notification) -> None:
    print(f"[{notification.title}] {notification.description}", file=sys.stderr)


async def chat_repl(config: Configuration) -> None:
    """Minimal terminal chat against a running gateway."""
    printed = 0

    def render() -> None:
        nonlocal printed
        if not orchestrator.messages or orchestrator.messages[-1].role != "assistant":
            printed = 0
            return
        content = orchestrator.messages[-1].content
        print(content[printed:], end="", flush=True)
        printed = len(content)

    orchestrator = create_orchestrator(
        config, notify=_print_notification, on_change=render
    )
    try:
        await orchestrator.load_conversations()
        while True:
            line = await asyncio.to_thread(input, "\n> ")
            if line.strip() in ("/quit", "/exit"):
                break
            if line.strip() == "/new":
                orchestrator.start_new_chat()
                continue
            await orchestrator.submit(line)
            printed = 0
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await orchestrator.client.close()
        await orchestrator.store.close()


async def main() -> None:
    """Main entry point - HTTP gateway with graceful shutdown handling."""
    config = Configuration()
    logging_config = config.get_logging_config()
    configure_logging(
        logging_config.get("level", "INFO"),
        colors=logging_config.get("colors", True),
    )

    if "--chat" in sys.argv[1:]:
        await chat_repl(config)
        return

    try:
        api_key: str | None = config.llm_api_key
    except ValueError as e:
        # /chat answers with a configuration error until the key is set
        logging.warning(str(e))
        api_key = None

    # A REST store would point the gateway at itself
    store_config = config.get_store_config()
    store = None if store_config["backend"] == "rest" else create_store(config)

    gateway_config = config.get_gateway_config()
    app = create_app(GatewaySettings.from_configuration(config, api_key), store)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=gateway_config["host"],
            port=gateway_config["port"],
            log_config=None,
        )
    )

    # Setup graceful shutdown handler
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        """Handle shutdown signals gracefully."""
        logging.info("Received shutdown signal, initiating graceful shutdown...")
        server.should_exit = True
        shutdown_event.set()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    try:
        server_task = asyncio.create_task(server.serve())

        done, pending = await asyncio.wait(
            [server_task, asyncio.create_task(shutdown_event.wait())],
            return_when=asyncio.FIRST_COMPLETED,
        )

        # Give the server a chance to drain before cancelling
        if server_task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await server_task
        for task in pending:
            if task is not server_task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        for task in done:
            if task is server_task:
                exception = task.exception()
                if exception is not None:
                    raise exception

    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")
    except Exception as e:
        logging.error(f"Application error: {e}")
        raise
    finally:
        logging.info("Application shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
