from typing import List, Optional
from ..common.base import AgentBase
from ..common.messages import NormalizedProduct, RecipientProfile
from ..common.scoring import (
    apply_category_diversity, has_interest_match, lowered, matching_brand,
    price_fit, within_budget
)
from ..common.utils import logger, log_context

MAX_RANKED = 12

def passes_hard_filters(product: NormalizedProduct, profile: RecipientProfile) -> bool:
    categories = set(lowered(product.categories))
    excludes = set(lowered(profile.constraints.category_excludes))
    includes = set(lowered(profile.constraints.category_includes))

    if categories & excludes:
        return False
    if includes and not categories & includes:
        return False
    return within_budget(product.price.value, profile.budget.min, profile.budget.max)

def score_product(product: NormalizedProduct, profile: RecipientProfile) -> float:
    """Additive relevance score; not normalized to a fixed range."""
    score = 0.0

    if has_interest_match(product, profile.interests):
        score += 1
    if matching_brand(product, profile.favorite_brands):
        score += 0.5

    score += price_fit(product.price.value, profile.budget)
    score += product.rating.value / 5

    if "fast_shipping" in product.badges and profile.constraints.shipping_days_max:
        score += 0.4
    if "eco_friendly" in product.badges and "plastic" in lowered(profile.constraints.category_excludes):
        score += 0.3
    if product.keyword_matched:
        score += 0.4

    return score

def rank_products(profile: RecipientProfile, products: List[NormalizedProduct],
                  limit: int = MAX_RANKED) -> List[NormalizedProduct]:
    """Filter, score and diversify products for a profile. Pure."""
    eligible = [product for product in products if passes_hard_filters(product, profile)]

    scored = [(product, score_product(product, profile)) for product in eligible]
    scored.sort(key=lambda pair: pair[1], reverse=True)

    diversified = apply_category_diversity(
        [(product, score, product.categories) for product, score in scored]
    )
    return [product for product, _ in diversified[:limit]]

class RankerAgent(AgentBase):
    """Agent responsible for ranking discovered products for a recipient."""

    def __init__(self, limit: int = MAX_RANKED):
        super().__init__("ranker")
        self.limit = limit

    def rank(self, profile: RecipientProfile, products: List[NormalizedProduct],
             request_id: Optional[str] = None) -> List[NormalizedProduct]:
        trace = self.create_trace(request_id or "", "rank")

        ranked = rank_products(profile, products, self.limit)

        with log_context(trace.request_id):
            logger.info(f"Ranking complete: {len(ranked)} of {len(products)} products kept")
            if ranked:
                logger.info(f"Top product: {ranked[0].id} ({ranked[0].title})")

        return ranked
