import asyncio
import json
from typing import Any, Dict, List, Optional, Protocol
from pydantic import ValidationError
from ..common.messages import (
    ALL_STORES, Budget, PriceRange, ProductQuerySpec, RecipientProfile
)
from ..common.utils import logger, log_context, unique_lower
from ..discovery.gemini_adapter import TextBackend, parse_json_response

DEFAULT_BUDGET_MIN = 25.0
DEFAULT_BUDGET_MAX = 150.0
LOW_BUDGET_THRESHOLD = 60.0
LOW_PRICE_STORES = ("aliexpress", "shein")

INTEREST_CATEGORY_MAP: Dict[str, List[str]] = {
    "fitness": ["fitness", "health", "recovery"],
    "wellness": ["wellness", "health"],
    "travel": ["travel", "bags", "accessories"],
    "tech": ["electronics", "tech", "gadgets"],
    "technology": ["electronics", "tech", "gadgets"],
    "electronics": ["electronics", "tech", "gadgets"],
    "gadgets": ["electronics", "tech", "gadgets"],
    "photography": ["electronics", "cameras", "creative"],
    "plants": ["home", "decor", "plants"],
    "decor": ["home", "decor"],
    "fashion": ["fashion"],
    "beauty": ["beauty", "self_care"],
    "gaming": ["electronics", "gaming"],
    "cooking": ["kitchen"],
    "coffee": ["kitchen", "tech"],
}

def sanitize_budget(budget: Budget) -> Budget:
    """Repair a budget into a usable, ordered range.

    Both bounds unset gives the default range; a min alone derives a max;
    an inverted range is swapped. Applying it twice changes nothing.
    """
    low = max(0.0, budget.min)
    high = max(0.0, budget.max)

    if low == 0 and high == 0:
        return Budget(min=DEFAULT_BUDGET_MIN, max=DEFAULT_BUDGET_MAX, currency=budget.currency)

    if high == 0:
        high = max(low * 1.5, low + 50)
    elif low > high:
        low, high = high, low

    return Budget(min=low, max=high, currency=budget.currency)

def infer_keywords(profile: RecipientProfile) -> List[str]:
    # Occasion, relationship and color are too specific for marketplace search
    return unique_lower(list(profile.interests) + list(profile.favorite_brands))

def infer_categories(profile: RecipientProfile) -> List[str]:
    derived: List[str] = []
    for interest in unique_lower(profile.interests):
        derived.extend(INTEREST_CATEGORY_MAP.get(interest, [interest]))

    if profile.occasion:
        derived.append(profile.occasion)
    if profile.relationship:
        derived.append(profile.relationship)

    return unique_lower(derived)

def prioritize_stores(budget_max: float, threshold: float = LOW_BUDGET_THRESHOLD) -> List[str]:
    stores = list(ALL_STORES)
    if 0 < budget_max <= threshold:
        # sorted() is stable, so the rest keep their relative order
        stores = sorted(stores, key=lambda store: 0 if store in LOW_PRICE_STORES else 1)
    return stores

def build_default_spec(profile: RecipientProfile, limit: int = 24,
                       low_budget_threshold: float = LOW_BUDGET_THRESHOLD) -> ProductQuerySpec:
    """Deterministic spec derived from the profile alone."""
    budget = sanitize_budget(profile.budget)

    return ProductQuerySpec(
        keywords=infer_keywords(profile),
        categories=infer_categories(profile),
        price=PriceRange(min=budget.min, max=budget.max, currency=budget.currency),
        brands_preferred=unique_lower(profile.favorite_brands),
        colors_preferred=unique_lower([profile.favorite_color] if profile.favorite_color else []),
        store_priority=prioritize_stores(budget.max, low_budget_threshold),
        limit=limit,
        sort="relevance"
    )

class SpecSuggester(Protocol):
    async def suggest(self, profile: RecipientProfile) -> Optional[Dict[str, Any]]:
        """Return a raw candidate spec payload, or None to use the deterministic spec."""
        ...

class NullSpecSuggester:
    """Always defers to the deterministic spec."""

    async def suggest(self, profile: RecipientProfile) -> Optional[Dict[str, Any]]:
        return None

class GeminiSpecSuggester:
    """Asks a generative backend for a full query spec."""

    def __init__(self, backend: TextBackend, timeout: float = 8.0):
        self.backend = backend
        self.timeout = timeout

    def _build_prompt(self, profile: RecipientProfile) -> str:
        shape = {
            "keywords": ["string"],
            "categories": ["string"],
            "price": {"min": 0, "max": 0, "currency": "USD"},
            "brands_preferred": ["string"],
            "colors_preferred": ["string"],
            "store_priority": list(ALL_STORES),
            "limit": 24,
            "sort": "relevance"
        }
        return "\n".join([
            "You are a gift planning assistant.",
            "Given the following recipient profile (JSON), emit only valid JSON matching this shape:",
            "",
            f"ProductQuerySpec = {json.dumps(shape, indent=2)}",
            "",
            'Respond strictly with JSON in the form { "spec": ProductQuerySpec } so it can be parsed without additional text.',
            "Respect the profile budget currency and stores. Never invent fields outside the schema.",
            "",
            "Recipient profile:",
            profile.model_dump_json(indent=2)
        ])

    async def suggest(self, profile: RecipientProfile) -> Optional[Dict[str, Any]]:
        text = await asyncio.wait_for(
            self.backend.complete(self._build_prompt(profile)),
            timeout=self.timeout
        )
        payload = parse_json_response(text)
        if not isinstance(payload, dict):
            raise ValueError("spec response is not a JSON object")
        return payload.get("spec")

class QuerySpecBuilder:
    """Turns a recipient profile into a ProductQuerySpec. Never raises."""

    def __init__(self, suggester: Optional[SpecSuggester] = None, default_limit: int = 24,
                 low_budget_threshold: float = LOW_BUDGET_THRESHOLD):
        self.suggester = suggester or NullSpecSuggester()
        self.default_limit = default_limit
        self.low_budget_threshold = low_budget_threshold

    async def build(self, profile: RecipientProfile, request_id: Optional[str] = None) -> ProductQuerySpec:
        fallback = build_default_spec(profile, self.default_limit, self.low_budget_threshold)

        try:
            candidate = await self.suggester.suggest(profile)
        except asyncio.TimeoutError:
            with log_context(request_id):
                logger.warning("Spec suggestion timed out, using deterministic spec")
            return fallback
        except Exception as e:
            with log_context(request_id):
                logger.warning(f"Spec suggestion failed, using deterministic spec: {e}")
            return fallback

        if candidate is None:
            return fallback

        try:
            spec = ProductQuerySpec.model_validate(candidate)
        except ValidationError as e:
            with log_context(request_id):
                logger.warning(f"Suggested spec failed validation ({e.error_count()} errors), using deterministic spec")
            return fallback

        with log_context(request_id):
            logger.info(f"Using suggested spec with {len(spec.keywords)} keywords")
        return spec
