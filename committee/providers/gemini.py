"""Gemini provider using the google-genai SDK with native async streaming."""

import logging
import time
from collections.abc import AsyncIterator

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import CompletionConfig
from committee.providers.base import CompletionProvider, ProviderError, categorize_status

logger = logging.getLogger(__name__)


class GeminiProvider(CompletionProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: CompletionConfig) -> None:
        self._config = config
        api_key = config.api_key
        if not api_key:
            raise ProviderError(self.name(), f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=config.timeout_sec * 1000),
        )

    def name(self) -> str:
        return self._config.sdk

    async def stream(self, system_prompt: str, user_prompt: str, model: str) -> AsyncIterator[str]:
        start = time.monotonic()
        token_count: int | None = None
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=model,
                contents=user_prompt,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    max_output_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                ),
            )
            async for chunk in response:
                if chunk.usage_metadata:
                    token_count = chunk.usage_metadata.total_token_count
                if chunk.text:
                    yield chunk.text
        except genai_errors.APIError as exc:
            category = categorize_status(exc.code, str(exc.message or ""))
            raise ProviderError(self.name(), f"API error ({exc.code}): {exc.message}", category) from exc
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc

        logger.debug("Gemini %s: %.2fs, %s tokens", model, time.monotonic() - start, token_count)
