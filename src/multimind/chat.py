"""
multimind: Chat sessions on top of the request engine.

A ``ChatSession`` keeps one ``Chat`` transcript and routes every user turn
through ``RequestQueueEngine.handle_request`` so sends share the engine's
queue, rate window and circuit breakers.
"""

from __future__ import annotations

import asyncio
import logging

from multimind.engine import RequestQueueEngine
from multimind.errors import ValidationError
from multimind.models import Chat, ChatResult, Message, Provider, Role
from multimind.providers import get_default_model, to_provider

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"


def new_chat(provider: Provider | str = Provider.OPENAI, model: str | None = None) -> Chat:
    """Empty chat on ``provider`` with its default model unless one is given."""
    target = to_provider(provider)
    return Chat(
        provider=target,
        model=model or get_default_model(target),
        title=DEFAULT_TITLE,
    )


class ChatSession:
    """Drive one chat transcript.

    A failed send keeps the user's message in the transcript so it can be
    re-sent with ``retry_last()``.

    Example::

        session = ChatSession(engine, new_chat("anthropic"))
        reply = await session.send("Summarise this paragraph ...")
        print(reply.content)
    """

    def __init__(self, engine: RequestQueueEngine, chat: Chat | None = None) -> None:
        self.engine = engine
        self.chat = chat or new_chat()
        self._signal: asyncio.Event | None = None

    @property
    def messages(self) -> list[Message]:
        return self.chat.messages

    @property
    def is_busy(self) -> bool:
        return self._signal is not None

    async def send(self, text: str, signal: asyncio.Event | None = None) -> Message:
        """Append ``text`` as a user turn and wait for the assistant reply.

        Raises:
            ValidationError: ``text`` is empty.
            APIError: Whatever the engine rejected the request with.
        """
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty")

        self.stop()
        user = Message(
            role=Role.USER,
            content=text,
            provider=self.chat.provider,
            model=self.chat.model,
        )
        self.chat.messages.append(user)
        return await self._submit(user, signal)

    async def retry_last(self, signal: asyncio.Event | None = None) -> Message:
        """Re-send the most recent user turn.

        An assistant reply that followed it is dropped first, so the
        transcript ends with exactly one answer to that turn.

        Raises:
            ValidationError: The chat has no user message yet.
        """
        for index in range(len(self.chat.messages) - 1, -1, -1):
            if self.chat.messages[index].role is Role.USER:
                break
        else:
            raise ValidationError("Nothing to retry: the chat has no user message")

        del self.chat.messages[index + 1:]
        last = self.chat.messages[index]
        self.stop()
        return await self._submit(last, signal)

    def stop(self) -> None:
        """Cancel the send in progress, if any."""
        if self._signal is not None:
            self._signal.set()
            self._signal = None

    def set_provider(self, provider: Provider | str, model: str | None = None) -> None:
        """Switch the chat to another provider; its default model unless given."""
        target = to_provider(provider)
        self.chat.provider = target
        self.chat.model = model or get_default_model(target)
        logger.info(f"Chat {self.chat.id} switched to {target.value}/{self.chat.model}")

    def set_model(self, model: str) -> None:
        if not model or not model.strip():
            raise ValidationError("Model must be specified")
        self.chat.model = model

    def rename(self, title: str) -> None:
        self.chat.title = title.strip() or DEFAULT_TITLE

    def clear(self) -> None:
        self.stop()
        self.chat.messages.clear()

    async def _submit(self, user: Message, signal: asyncio.Event | None) -> Message:
        # Our own event lets stop() cancel even when the caller passed none
        own = asyncio.Event()
        self._signal = own
        forward: asyncio.Task[bool] | None = None
        if signal is not None:
            if signal.is_set():
                own.set()
            else:
                forward = asyncio.ensure_future(signal.wait())
                forward.add_done_callback(lambda t: t.cancelled() or own.set())

        provider, model = self.chat.provider, self.chat.model
        try:
            result: ChatResult = await self.engine.handle_request(
                user.content, model, provider, signal=own
            )
        finally:
            if forward is not None:
                forward.cancel()
            if self._signal is own:
                self._signal = None

        reply = Message(
            role=Role.ASSISTANT,
            content=result.result.response,
            provider=provider,
            model=model,
        )
        self.chat.messages.append(reply)
        return reply
