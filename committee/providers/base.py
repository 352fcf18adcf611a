"""Abstract base for streaming completion providers."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

CATEGORY_AUTH = "auth"
CATEGORY_QUOTA = "quota"
CATEGORY_RATE_LIMIT = "rate_limit"
CATEGORY_NOT_FOUND = "not_found"
CATEGORY_UNAVAILABLE = "unavailable"
CATEGORY_NETWORK = "network"
CATEGORY_UNKNOWN = "unknown"

USER_MESSAGES: dict[str, str] = {
    CATEGORY_AUTH: "Invalid API key. Check the key configured for this provider.",
    CATEGORY_QUOTA: "Insufficient credits. Add funds with the provider and retry.",
    CATEGORY_RATE_LIMIT: "Rate limited. Please wait a moment and try again.",
    CATEGORY_NOT_FOUND: "Model not found. Check the model id in settings.",
    CATEGORY_UNAVAILABLE: "The completion service is temporarily unavailable. Try again in a moment.",
    CATEGORY_NETWORK: "Network error while contacting the completion service.",
}


def categorize_status(status_code: int | None, body: str = "") -> str:
    """Map an HTTP status (and error body) to an error category."""
    if status_code is None:
        return CATEGORY_NETWORK
    if status_code == 401 or status_code == 403:
        return CATEGORY_AUTH
    if status_code == 402:
        return CATEGORY_QUOTA
    if status_code == 429:
        return CATEGORY_RATE_LIMIT
    if status_code == 404:
        return CATEGORY_NOT_FOUND
    if status_code == 400 and ("model_not_found" in body or "not found" in body.lower()):
        return CATEGORY_NOT_FOUND
    if status_code >= 500:
        return CATEGORY_UNAVAILABLE
    return CATEGORY_UNKNOWN


class ProviderError(Exception):
    """Raised when a completion call fails. Every category is retryable."""

    def __init__(self, provider_name: str, message: str, category: str = CATEGORY_UNKNOWN) -> None:
        self.provider_name = provider_name
        self.category = category
        super().__init__(f"[{provider_name}] {message}")

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.category, str(self))


@dataclass
class ToolCall:
    """One function call requested by the model during a chat."""

    id: str
    name: str
    arguments: str = ""


class CompletionProvider(ABC):
    """Executes one system+user prompt against a model and streams the text."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openrouter', 'anthropic')."""
        ...

    @abstractmethod
    def stream(self, system_prompt: str, user_prompt: str, model: str) -> AsyncIterator[str]:
        """Yield text chunks as they arrive; the iterator ends with the response.

        Raises:
            ProviderError: On API failure, timeout, or transport error, either
                before the first chunk or mid-stream.
        """
        ...

    async def stream_chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        model: str,
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[str | ToolCall]:
        """Stream a multi-turn chat in which the model may call ``tools``.

        Yields text chunks as they arrive, then one ToolCall per completed
        function call. ``messages`` and ``tools`` use the OpenAI chat format.

        This default has no tool support: it folds the conversation into a
        single user prompt and streams plain text. Providers that can call
        functions override it.
        """
        lines = [f"{m['role']}: {m['content']}" for m in messages if m.get("content")]
        async for chunk in self.stream(system_prompt, "\n\n".join(lines), model):
            yield chunk
