"""
multimind chat console — Interactive chat with a live status line.

Every engine log line is mirrored to the console through a terminal sink, and
the proxy status is printed after each answer.

Prerequisites:
    pip install multimind-gateway
    export ANTHROPIC_API_KEY=sk-ant-...   # or any other provider's key

Usage:
    python examples/chat_console.py anthropic
"""

import asyncio
import sys

from multimind import (
    APIError,
    ChatSession,
    ClientFactory,
    EnvCredentialStore,
    RequestQueueEngine,
    Settings,
    describe_error,
    get_provider,
    new_chat,
)


class Console:
    def writeln(self, text: str) -> None:
        print(text)


async def main(provider: str):
    settings = Settings.from_env()
    factory = ClientFactory(EnvCredentialStore(), settings.client)
    engine = RequestQueueEngine(factory, settings.engine, settings.breaker)
    engine.set_terminal(Console())
    session = ChatSession(engine, new_chat(provider))
    name = get_provider(provider).name

    print(f"Chatting with {name} ({session.chat.model}). Empty line to quit.")
    async with engine:
        while True:
            text = await asyncio.to_thread(input, "> ")
            if not text.strip():
                break
            try:
                reply = await session.send(text)
            except APIError as e:
                print(describe_error(e, name))
                continue

            print(reply.content)
            status = engine.get_status()
            print(
                f"[queue {status['queued_requests']}/{status['queue_capacity']['total']}, "
                f"{status['rate_limits']['remaining']} requests left this minute, "
                f"breaker {status['circuit_breakers'][session.chat.provider.value]}]"
            )

    await factory.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "openai"))
