"""OpenRouter (or any OpenAI-compatible endpoint) via the openai SDK, streaming."""

import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from config.config_loader import CompletionConfig
from committee.providers.base import (
    CATEGORY_NETWORK,
    CompletionProvider,
    ProviderError,
    ToolCall,
    categorize_status,
)

logger = logging.getLogger(__name__)

_APP_HEADERS = {
    "HTTP-Referer": "https://github.com/decision-committee",
    "X-Title": "Decision Committee",
}


def _to_provider_error(name: str, exc: Exception) -> ProviderError:
    if isinstance(exc, openai.APIStatusError):
        category = categorize_status(exc.status_code, str(exc.body or exc.message))
        return ProviderError(name, f"API error ({exc.status_code}): {exc.message}", category)
    if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
        return ProviderError(name, f"Network error: {exc}", CATEGORY_NETWORK)
    return ProviderError(name, f"API call failed: {exc}")


class OpenRouterProvider(CompletionProvider):
    """Chat-completions streaming provider. Timeouts come from the SDK client."""

    def __init__(self, config: CompletionConfig) -> None:
        self._config = config
        api_key = config.api_key
        if not api_key:
            raise ProviderError(self.name(), f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.base_url,
            timeout=config.timeout_sec,
            max_retries=0,
            default_headers=_APP_HEADERS,
        )

    def name(self) -> str:
        return self._config.sdk

    async def stream(self, system_prompt: str, user_prompt: str, model: str) -> AsyncIterator[str]:
        start = time.monotonic()
        chars = 0
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                stream=True,
            )
            async for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    chars += len(content)
                    yield content
        except openai.OpenAIError as exc:
            raise _to_provider_error(self.name(), exc) from exc

        logger.debug("OpenRouter %s: %.2fs, %d chars", model, time.monotonic() - start, chars)

    async def stream_chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        model: str,
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[str | ToolCall]:
        # tool calls arrive in pieces: id and name first, then argument fragments
        pending: dict[int, ToolCall] = {}
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[{"role": "system", "content": system_prompt}, *messages],
                tools=tools,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                stream=True,
            )
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield delta.content
                for part in delta.tool_calls or []:
                    call = pending.setdefault(part.index, ToolCall(id="", name=""))
                    if part.id:
                        call.id = part.id
                    if part.function is not None:
                        if part.function.name:
                            call.name = part.function.name
                        if part.function.arguments:
                            call.arguments += part.function.arguments
        except openai.OpenAIError as exc:
            raise _to_provider_error(self.name(), exc) from exc

        for index in sorted(pending):
            if pending[index].name:
                yield pending[index]
