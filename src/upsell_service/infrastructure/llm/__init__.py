"""Text-generation service client."""

from upsell_service.infrastructure.llm.client import TextGenerationClient

__all__ = ["TextGenerationClient"]
