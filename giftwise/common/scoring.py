from typing import Dict, List, Sequence, Tuple, TypeVar
from .messages import Budget, NormalizedProduct

BUDGET_TOLERANCE = 0.10
DIVERSITY_PENALTY = 0.15
NO_BUDGET_PRICE_FIT = 0.5

T = TypeVar("T")

def within_budget(price: float, budget_min: float, budget_max: float,
                  tolerance: float = BUDGET_TOLERANCE) -> bool:
    """Price sits inside [min, max] widened by tolerance on both ends.

    A zero bound is treated as unset.
    """
    if budget_max > 0 and price > budget_max * (1 + tolerance):
        return False
    if budget_min > 0 and price < budget_min * (1 - tolerance):
        return False
    return True

def budget_target(budget: Budget) -> float:
    """Midpoint of the budget, or the max alone when no min was given."""
    if budget.min <= 0:
        return budget.max
    return (budget.min + budget.max) / 2

def price_fit(price: float, budget: Budget) -> float:
    """Triangular closeness of price to the budget target, in [0, 1]."""
    if budget.max <= 0:
        return NO_BUDGET_PRICE_FIT

    target = budget_target(budget)
    tolerance = max(0.3 * target, 20)
    return max(0.0, 1 - abs(price - target) / tolerance)

def lowered(values: Sequence[str]) -> List[str]:
    return [value.lower() for value in values if value]

def has_interest_match(product: NormalizedProduct, interests: Sequence[str]) -> bool:
    wanted = set(lowered(interests))
    return any(tag.lower() in wanted for tag in product.interests)

def matching_interests(product: NormalizedProduct, interests: Sequence[str]) -> List[str]:
    """Profile interests (original casing) that the product is tagged with."""
    tags = set(lowered(product.interests))
    return [interest for interest in interests if interest and interest.lower() in tags]

def matching_brand(product: NormalizedProduct, brands: Sequence[str]) -> str:
    """First favorite brand found in the product brands or title, or an empty string."""
    haystacks = lowered(product.brands) + [product.title.lower()]
    for brand in brands:
        needle = brand.lower().strip() if brand else ""
        if needle and any(needle in haystack for haystack in haystacks):
            return brand
    return ""

def has_color_match(product: NormalizedProduct, color: str) -> bool:
    needle = (color or "").strip().lower()
    if not needle:
        return False
    return any(value.strip().lower() == needle for value in product.colors)

def apply_category_diversity(scored: List[Tuple[T, float, Sequence[str]]],
                             penalty: float = DIVERSITY_PENALTY) -> List[Tuple[T, float]]:
    """Penalize items whose categories were already placed higher up.

    Expects items sorted by score descending. Each item loses penalty times
    the prior usage count of each of its categories; the result is re-sorted
    by adjusted score with ties kept in input order.
    """
    usage: Dict[str, int] = {}
    adjusted: List[Tuple[T, float]] = []

    for item, score, categories in scored:
        keys = list(dict.fromkeys(lowered(categories)))
        deduction = sum(penalty * usage.get(key, 0) for key in keys)
        for key in keys:
            usage[key] = usage.get(key, 0) + 1
        adjusted.append((item, score - deduction))

    return sorted(adjusted, key=lambda pair: pair[1], reverse=True)
