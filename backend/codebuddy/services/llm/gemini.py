"""Google Gemini LLM provider."""

from typing import AsyncIterator

from google import genai
from google.genai import types

from codebuddy.services.llm.base import BaseLLMProvider, LLMResponse, Message


class GeminiProvider(BaseLLMProvider):
    def __init__(
        self,
        client: genai.Client,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_request(self, messages: list[Message]) -> tuple[list[types.Content], types.GenerateContentConfig]:
        # Gemini takes the system prompt as config and calls the assistant "model"
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        contents = [
            types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in messages
            if m.role != "system"
        ]
        config = types.GenerateContentConfig(
            system_instruction=system or None,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
        )
        return contents, config

    async def chat(self, messages: list[Message]) -> LLMResponse:
        contents, config = self._build_request(messages)
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )
        usage = {}
        if response.usage_metadata:
            usage = {
                "prompt_tokens": response.usage_metadata.prompt_token_count,
                "completion_tokens": response.usage_metadata.candidates_token_count,
                "total_tokens": response.usage_metadata.total_token_count,
            }
        return LLMResponse(content=response.text, usage=usage)

    async def chat_stream(self, messages: list[Message]) -> AsyncIterator[str]:
        contents, config = self._build_request(messages)
        stream = await self.client.aio.models.generate_content_stream(
            model=self.model,
            contents=contents,
            config=config,
        )
        async for chunk in stream:
            if chunk.text:
                yield chunk.text
