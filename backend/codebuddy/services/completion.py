"""Completion Client: the only place that talks to the language-model provider.

Two entry points:

- ``complete`` returns the finished reply text.
- ``complete_stream`` pushes each delta into a ``CompletionSink`` and finishes
  with exactly one of ``on_done`` or ``on_error``. The deltas passed to
  ``on_delta``, joined in order, are the text passed to ``on_done``.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Protocol

from codebuddy.core.errors import ProviderError
from codebuddy.services.llm.base import BaseLLMProvider, Message

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response generated."
PROVIDER_FAILURE = "Failed to get response from AI service"
PROVIDER_TIMEOUT = "AI service timed out"


class CompletionSink(Protocol):
    async def on_delta(self, text: str) -> None: ...

    async def on_done(self, full_text: str) -> None: ...

    async def on_error(self, message: str) -> None: ...


class CompletionClient:
    def __init__(self, provider: BaseLLMProvider, idle_timeout: float | None = None):
        self.provider = provider
        # None or 0 waits forever for the next delta
        self.idle_timeout = idle_timeout or None

    @property
    def model(self) -> str:
        return self.provider.model

    async def complete(self, messages: list[Message]) -> str:
        """Blocking completion.

        Raises ProviderError when the call itself fails. A call that succeeds
        but carries no text returns NO_RESPONSE instead of raising: the caller
        then stores and returns it like any other reply and keeps a single
        success path.
        """
        logger.info(f"Completion request: model={self.model}, messages={len(messages)}")
        try:
            response = await self.provider.chat(messages)
        except Exception as e:
            logger.error(f"Error calling {self.model}: {e}")
            raise ProviderError(PROVIDER_FAILURE) from e

        if not response.content:
            logger.warning(f"{self.model} returned no content")
            return NO_RESPONSE

        if response.usage:
            logger.info(f"Completion usage: {response.usage}")
        return response.content

    async def complete_stream(self, messages: list[Message], sink: CompletionSink) -> None:
        """Stream a completion into ``sink``.

        Provider failures and idle timeouts end in a single ``on_error`` call.
        Exceptions raised by the sink itself (e.g. ClientDisconnected) are not
        provider failures: they close the provider stream and propagate.
        """
        logger.info(f"Streaming request: model={self.model}, messages={len(messages)}")
        parts: list[str] = []

        async with aclosing(self.provider.chat_stream(messages)) as stream:
            while True:
                try:
                    async with asyncio.timeout(self.idle_timeout):
                        delta = await anext(stream)
                except StopAsyncIteration:
                    break
                except TimeoutError:
                    logger.error(f"No delta from {self.model} within {self.idle_timeout}s")
                    await sink.on_error(PROVIDER_TIMEOUT)
                    return
                except Exception as e:
                    logger.error(f"Error in streaming from {self.model}: {e}")
                    await sink.on_error(PROVIDER_FAILURE)
                    return

                if not delta:
                    continue
                parts.append(delta)
                await sink.on_delta(delta)

        await sink.on_done("".join(parts))
