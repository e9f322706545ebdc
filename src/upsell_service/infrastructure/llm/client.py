"""OpenAI-compatible chat completions client."""

from typing import Any

import httpx
import structlog

from upsell_service.config import Settings, get_settings
from upsell_service.exceptions import GenerationServiceError

logger = structlog.get_logger()


class TextGenerationClient:
    """Single-attempt chat completion calls.

    Every failure (missing key, network, non-2xx, unexpected envelope) is
    raised as ``GenerationServiceError``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TextGenerationClient":
        settings = settings or get_settings()
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.openai_timeout,
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ) -> str:
        """Return the content of the first choice."""
        if not self.api_key:
            raise GenerationServiceError("Text generation API key is not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.base_url}/chat/completions"

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise GenerationServiceError(f"Generation request failed: {e}") from e

        if not response.is_success:
            raise GenerationServiceError(f"Generation API error: {response.status_code}")

        try:
            body: dict[str, Any] = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationServiceError("Unexpected generation response envelope") from e

        if not isinstance(content, str):
            raise GenerationServiceError("Generation response content is not text")

        logger.debug("Generation completed", model=self.model, chars=len(content))
        return content
