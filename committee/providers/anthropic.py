"""Anthropic Claude provider using the anthropic SDK's native async streaming."""

import logging
import time
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

from config.config_loader import CompletionConfig
from committee.providers.base import (
    CATEGORY_NETWORK,
    CompletionProvider,
    ProviderError,
    categorize_status,
)

logger = logging.getLogger(__name__)


def _to_provider_error(name: str, exc: Exception) -> ProviderError:
    if isinstance(exc, anthropic_sdk.APIStatusError):
        category = categorize_status(exc.status_code, str(exc.body or exc.message))
        return ProviderError(name, f"API error ({exc.status_code}): {exc.message}", category)
    if isinstance(exc, (anthropic_sdk.APIConnectionError, anthropic_sdk.APITimeoutError)):
        return ProviderError(name, f"Network error: {exc}", CATEGORY_NETWORK)
    return ProviderError(name, f"API call failed: {exc}")


class AnthropicProvider(CompletionProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: CompletionConfig) -> None:
        self._config = config
        api_key = config.api_key
        if not api_key:
            raise ProviderError(self.name(), f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(
            api_key=api_key,
            timeout=config.timeout_sec,
            max_retries=0,
        )

    def name(self) -> str:
        return self._config.sdk

    async def stream(self, system_prompt: str, user_prompt: str, model: str) -> AsyncIterator[str]:
        start = time.monotonic()
        try:
            async with self._client.messages.stream(
                model=model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
                final = await stream.get_final_message()
        except anthropic_sdk.AnthropicError as exc:
            raise _to_provider_error(self.name(), exc) from exc

        token_count: int | None = None
        if final.usage:
            token_count = final.usage.input_tokens + final.usage.output_tokens

        logger.debug("Anthropic %s: %.2fs, %s tokens", model, time.monotonic() - start, token_count)
