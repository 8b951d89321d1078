import math
from typing import List, Optional
from ..common.base import AgentBase
from ..common.messages import Explanation, NormalizedProduct, RecipientProfile
from ..common.scoring import has_color_match, matching_brand, matching_interests
from ..common.utils import logger, log_context

MAX_FOLLOW_UPS = 3
BUDGET_REASON_SLACK = 1.05

def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)

def is_profile_complete(profile: RecipientProfile) -> bool:
    return bool(
        profile.age
        and profile.gender
        and profile.occasion
        and profile.relationship
        and profile.favorite_color
        and profile.interests
        and profile.favorite_brands
        and profile.budget.max > 0
    )

def next_action_for(profile: RecipientProfile) -> str:
    return "offer_refinements" if is_profile_complete(profile) else "collect_missing_profile"

def reasons_for_product(profile: RecipientProfile, product: NormalizedProduct) -> List[str]:
    reasons = []

    interests = matching_interests(product, profile.interests)
    if interests:
        reasons.append(f"matches their interest in {', '.join(interests)}")

    brand = matching_brand(product, profile.favorite_brands)
    if brand:
        reasons.append(f"features favorite brand {brand}")

    if has_color_match(product, profile.favorite_color):
        reasons.append(f"comes in their preferred {profile.favorite_color.strip()} hue")

    if profile.budget.max > 0 and product.price.value <= profile.budget.max * BUDGET_REASON_SLACK:
        reasons.append("stays within budget")

    if "fast_shipping" in product.badges and profile.constraints.shipping_days_max:
        reasons.append("offers quick shipping")

    if not reasons:
        reasons.append("is a well-reviewed crowd pleaser")

    return reasons

def build_explanations(profile: RecipientProfile, products: List[NormalizedProduct]) -> List[Explanation]:
    return [
        Explanation(
            product_id=product.id,
            why=f"Selected because it {', '.join(reasons_for_product(profile, product))}."
        )
        for product in products
    ]

def build_follow_up_suggestions(profile: RecipientProfile, products: List[NormalizedProduct]) -> List[str]:
    """Up to three unique conversation prompts; insertion order decides which survive."""
    suggestions: List[str] = []

    def add(text: str):
        if text not in suggestions:
            suggestions.append(text)

    if not products:
        add("Nothing matched yet. Want to broaden the interests or relax the category filters?")

    if profile.budget.max > 0:
        add(f"Tighten the budget to under ${round_half_up(profile.budget.max * 0.8)}?")
        add(f"Explore splurge options up to ${round_half_up(profile.budget.max * 1.2)}?")
    else:
        add("Share a budget range so I can tailor picks.")

    if profile.favorite_color:
        add(f"Prefer everything in {profile.favorite_color}?")
    else:
        add("Call out a favorite color to refine the palette.")

    if not any("eco_friendly" in product.badges for product in products):
        add("Want sustainable or eco-conscious picks only?")

    add("Need faster shipping or a specific delivery window?")

    return suggestions[:MAX_FOLLOW_UPS]

class ExplainerAgent(AgentBase):
    """Agent responsible for explaining picks and proposing refinements."""

    def __init__(self):
        super().__init__("explainer")

    def explain(self, profile: RecipientProfile, products: List[NormalizedProduct],
                request_id: Optional[str] = None) -> List[Explanation]:
        explanations = build_explanations(profile, products)
        with log_context(request_id):
            logger.info(f"Built {len(explanations)} explanations")
        return explanations

    def follow_ups(self, profile: RecipientProfile, products: List[NormalizedProduct],
                   request_id: Optional[str] = None) -> List[str]:
        suggestions = build_follow_up_suggestions(profile, products)
        with log_context(request_id):
            logger.info(f"Built {len(suggestions)} follow-up suggestions")
        return suggestions
