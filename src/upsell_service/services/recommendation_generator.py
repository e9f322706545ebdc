"""Upsell recommendation generation.

Asks a text-generation service to turn co-purchase statistics into upsell
pairs, and falls back to a deterministic rule-based builder whenever the
service is unavailable or returns something unusable.
"""

import json
from dataclasses import dataclass, field
from typing import Any

import structlog

from shared.constants import (
    CO_PURCHASE_THRESHOLD,
    MAX_RECOMMENDATIONS,
    MAX_UPSELL_VARIANTS,
    MIN_UPSELL_VARIANTS,
    PROMPT_TOP_N,
)
from upsell_service.domain import strip_gid
from upsell_service.exceptions import GenerationServiceError
from upsell_service.infrastructure.llm.client import TextGenerationClient
from upsell_service.services.statistics import (
    OrderStatistics,
    pair_key,
    top_co_purchases,
    top_products,
)

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are an expert e-commerce analyst. Analyze order patterns and create "
    "actionable product recommendations and pairs. Always respond with valid JSON."
)


@dataclass
class RecommendationSet:
    """Ordered upsell entries: ``{"main_product", "upsellVariants": [{"id"}]}``."""

    upsell_recommendations: list[dict[str, Any]] = field(default_factory=list)
    fallback_used: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "upsell_recommendations": self.upsell_recommendations,
            "fallback_used": self.fallback_used,
        }


def build_prompt(stats: OrderStatistics, top_n: int = PROMPT_TOP_N, threshold: int = CO_PURCHASE_THRESHOLD) -> str:
    """Instruction payload embedding only the top-N pairs and products."""
    pairs = [[pair_key(pair), count] for pair, count in top_co_purchases(stats, top_n)]
    products = [[product_id, qty] for product_id, qty in top_products(stats, top_n)]

    return f"""
TASK: Analyze e-commerce order data to create upsell recommendations for cart optimization.

GOAL: When customers add a "main_product" to cart, show them "upsellVariants" that are frequently bought together.

DATA ANALYSIS:
- Orders analyzed: {stats.orders_count}
- Co-purchase patterns: {json.dumps(pairs)}
- Popular products: {json.dumps(products)}

INSTRUCTIONS:
1. Find products that are frequently bought together
2. For each main product, identify {MIN_UPSELL_VARIANTS}-{MAX_UPSELL_VARIANTS} products that customers often add to the same order
3. Focus on products with high co-purchase frequency (bought together multiple times)
4. Create upsell recommendations to increase average order value

REQUIRED OUTPUT FORMAT - Return ONLY this JSON structure:
{{
  "upsell_recommendations": [
    {{
      "main_product": "7148360237189",
      "upsellVariants": [
        {{"id": "7148360630405"}},
        {{"id": "7148360728709"}}
      ]
    }}
  ]
}}

IMPORTANT RULES:
- Use actual product IDs from the data (remove gid://shopify/Product/ prefix)
- Only include products that are genuinely bought together (frequency > {threshold})
- Limit {MIN_UPSELL_VARIANTS}-{MAX_UPSELL_VARIANTS} upsellVariants per main_product
- NO other fields needed - just main_product and upsellVariants array
"""


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_generation_response(
    content: str,
    max_variants: int = MAX_UPSELL_VARIANTS,
    max_entries: int = MAX_RECOMMENDATIONS,
) -> list[dict[str, Any]]:
    """
    Validate and normalise untrusted model output.

    The model is asked for 2-4 variants per entry but nothing guarantees it
    complied, so ids are coerced to strings, duplicates and self references
    dropped, variants capped, empty entries removed and entries capped.

    Raises:
        GenerationServiceError: if the payload is not the expected shape or
            no usable entry remains.
    """
    try:
        payload = json.loads(_strip_code_fence(content))
    except ValueError as e:
        raise GenerationServiceError("Generation response is not valid JSON") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("upsell_recommendations"), list):
        raise GenerationServiceError("Generation response is missing upsell_recommendations")

    entries: list[dict[str, Any]] = []
    seen_mains: set[str] = set()
    for raw in payload["upsell_recommendations"]:
        if not isinstance(raw, dict):
            raise GenerationServiceError("Recommendation entry is not an object")
        main = strip_gid(raw.get("main_product"))
        variants = raw.get("upsellVariants")
        if not main or not isinstance(variants, list):
            raise GenerationServiceError("Recommendation entry is missing main_product or upsellVariants")
        if main in seen_mains:
            continue

        ids: list[str] = []
        for variant in variants:
            variant_id = strip_gid(variant.get("id") if isinstance(variant, dict) else variant)
            if variant_id and variant_id != main and variant_id not in ids:
                ids.append(variant_id)
            if len(ids) == max_variants:
                break
        if not ids:
            continue

        seen_mains.add(main)
        entries.append({"main_product": main, "upsellVariants": [{"id": i} for i in ids]})
        if len(entries) == max_entries:
            break

    if not entries:
        raise GenerationServiceError("Generation response contains no usable recommendations")
    return entries


def build_fallback_recommendations(
    stats: OrderStatistics,
    threshold: int = CO_PURCHASE_THRESHOLD,
    max_variants: int = MAX_UPSELL_VARIANTS,
    max_entries: int = MAX_RECOMMENDATIONS,
) -> RecommendationSet:
    """
    Rule-based recommendations straight from the co-purchase table.

    Pairs are walked by count descending (ties in first-seen order), keeping
    only counts above ``threshold``. The first id of each pair is the main
    product. No I/O, so identical statistics always give identical output.
    """
    entries: list[dict[str, Any]] = []
    by_main: dict[str, list[str]] = {}

    ranked = sorted(stats.co_purchases.items(), key=lambda kv: kv[1], reverse=True)
    for (main, upsell), count in ranked:
        if count <= threshold:
            break
        if main not in by_main:
            by_main[main] = []
            entries.append({"main_product": main, "upsellVariants": []})
        ids = by_main[main]
        if len(ids) < max_variants and upsell not in ids:
            ids.append(upsell)

    for entry in entries:
        entry["upsellVariants"] = [{"id": i} for i in by_main[entry["main_product"]]]

    return RecommendationSet(upsell_recommendations=entries[:max_entries], fallback_used=True)


class RecommendationGenerator:
    """Generation service call with deterministic fallback."""

    def __init__(
        self,
        client: TextGenerationClient,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        top_n: int = PROMPT_TOP_N,
        threshold: int = CO_PURCHASE_THRESHOLD,
    ):
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_n = top_n
        self.threshold = threshold

    async def generate(self, stats: OrderStatistics, ai_provider: str = "openai") -> RecommendationSet:
        """Never raises for generation failures; those yield the fallback."""
        if ai_provider == "rules":
            logger.info("Rule-based provider configured, skipping generation service")
            return self.build_fallback(stats)

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(stats, self.top_n, self.threshold)},
        ]
        try:
            content = await self.client.complete(
                messages, max_tokens=self.max_tokens, temperature=self.temperature
            )
            entries = parse_generation_response(content)
        except GenerationServiceError as e:
            logger.warning("Generation failed, using rule-based fallback", error=str(e))
            return self.build_fallback(stats)

        logger.info("Generated upsell recommendations", entries=len(entries))
        return RecommendationSet(upsell_recommendations=entries, fallback_used=False)

    def build_fallback(self, stats: OrderStatistics) -> RecommendationSet:
        result = build_fallback_recommendations(stats, threshold=self.threshold)
        logger.info("Built fallback recommendations", entries=len(result.upsell_recommendations))
        return result

    async def test_generation(self) -> dict[str, Any]:
        """Run the generator over a small fixed sample."""
        sample = OrderStatistics(
            orders_count=5,
            co_purchases={("123", "456"): 3, ("456", "789"): 2},
            product_frequency={"123": 5, "456": 3, "789": 2},
        )
        result = await self.generate(sample)
        return {
            "test_data": {
                "orders_count": sample.orders_count,
                "co_purchases": sample.co_purchase_counts(),
                "product_frequency": sample.product_frequency,
            },
            "ai_results": result.to_dict(),
        }
