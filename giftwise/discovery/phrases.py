import asyncio
from typing import List, Optional, Protocol
from pydantic import BaseModel, Field, ValidationError, field_validator
from ..common.messages import RecipientProfile
from ..common.utils import logger, log_context
from .gemini_adapter import TextBackend, parse_json_response

GENERIC_PHRASE = "gift ideas"

class SearchPhrases(BaseModel):
    search_queries: List[str] = Field(min_length=1, max_length=5)

    @field_validator("search_queries")
    @classmethod
    def _non_blank(cls, value: List[str]) -> List[str]:
        cleaned = [phrase.strip() for phrase in value]
        if any(not phrase for phrase in cleaned):
            raise ValueError("search phrases must be non-empty")
        return cleaned

def fallback_phrases(profile: RecipientProfile) -> List[str]:
    joined = " ".join(interest.strip() for interest in profile.interests if interest and interest.strip())
    return [joined] if joined else [GENERIC_PHRASE]

class PhraseExpander(Protocol):
    async def expand(self, profile: RecipientProfile, request_id: Optional[str] = None) -> List[str]:
        ...

class FallbackPhraseExpander:
    """Deterministic expansion used when no generative backend is configured."""

    async def expand(self, profile: RecipientProfile, request_id: Optional[str] = None) -> List[str]:
        return fallback_phrases(profile)

class GeminiPhraseExpander:
    """Expands a profile into 1-5 short marketplace search phrases. Never raises."""

    def __init__(self, backend: TextBackend, timeout: float = 8.0, temperature: float = 0.7):
        self.backend = backend
        self.timeout = timeout
        self.temperature = temperature

    def _build_prompt(self, profile: RecipientProfile) -> str:
        budget = profile.budget
        return f"""You are a product recommendation expert. Based on this gift recipient profile, suggest 3-5 specific product search queries that would find great gift options in online stores.

Recipient Profile:
- Age: {profile.age or "not specified"}
- Gender: {profile.gender or "not specified"}
- Relationship: {profile.relationship or "not specified"}
- Occasion: {profile.occasion or "not specified"}
- Budget: {budget.min:g}-{budget.max:g} {budget.currency}
- Interests: {", ".join(profile.interests) or "general"}
- Favorite Color: {profile.favorite_color or "any"}
- Favorite Brands: {", ".join(profile.favorite_brands) or "any"}

Requirements:
1. Suggest search queries that are specific and product-focused
2. Consider the age, interests, and budget
3. Each query should be 1-3 words (e.g., "wireless earbuds", "smart watch", "portable speaker")
4. Return ONLY valid JSON in this exact format: {{"search_queries": ["query1", "query2", "query3"]}}
5. Do NOT include any other text, explanation, or markdown formatting
"""

    async def expand(self, profile: RecipientProfile, request_id: Optional[str] = None) -> List[str]:
        try:
            text = await asyncio.wait_for(
                self.backend.complete(self._build_prompt(profile), temperature=self.temperature),
                timeout=self.timeout
            )
            phrases = SearchPhrases.model_validate(parse_json_response(text)).search_queries
        except asyncio.TimeoutError:
            with log_context(request_id):
                logger.warning("Search phrase generation timed out, falling back to interests")
            return fallback_phrases(profile)
        except (ValueError, ValidationError) as e:
            with log_context(request_id):
                logger.warning(f"Unusable search phrase response, falling back to interests: {e}")
            return fallback_phrases(profile)
        except Exception as e:
            with log_context(request_id):
                logger.error(f"Search phrase backend error: {e}")
            return fallback_phrases(profile)

        with log_context(request_id):
            logger.info(f"Generated {len(phrases)} search phrases: {phrases}")
        return phrases
