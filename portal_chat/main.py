"""
Console entry point: chat with the portal assistant from a terminal.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

from portal_chat.chat_service import ChatSession
from portal_chat.config import Configuration
from portal_chat.llm.client import ChatEndpointClient
from portal_chat.llm.exceptions import ChatError
from portal_chat.logging_utils import configure_logging

EXIT_COMMANDS = {"/quit", "/exit"}
RESET_COMMAND = "/reset"


def _print_delta(delta: str) -> None:
    sys.stdout.write(delta)
    sys.stdout.flush()


async def run_console(session: ChatSession) -> None:
    """Read lines from stdin and stream each reply to stdout until EOF."""
    while True:
        try:
            text = await asyncio.to_thread(input, "you> ")
        except EOFError:
            break

        command = text.strip()
        if command in EXIT_COMMANDS:
            break
        if command == RESET_COMMAND:
            session.reset()
            print("(conversation cleared)")
            continue

        sys.stdout.write("assistant> ")
        try:
            await session.send(text, on_delta=_print_delta)
        except ChatError as e:
            print(f"\n[error] {e.user_message}")
            continue
        print()


async def main() -> None:
    """Main entry point - console chat with graceful shutdown."""
    config = Configuration()
    configure_logging(config.get_logging_config())

    session_config = config.get_session_config()
    async with ChatEndpointClient(config.get_endpoint_config()) as client:
        session = ChatSession(
            ChatSession.ChatSessionConfig(
                client=client,
                max_input_chars=session_config["max_input_chars"],
                max_history_messages=session_config["max_history_messages"],
            )
        )
        try:
            await run_console(session)
        finally:
            logging.info("Console chat shutdown complete")


def run() -> None:
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    run()
