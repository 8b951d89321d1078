from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from typing import Annotated, Any, Dict, List, Literal, Optional
import time
from .urls import is_https_url

Store = Literal["amazon", "aliexpress", "shein", "ebay", "etsy", "bestbuy"]
SortOption = Literal["relevance", "price_low_high", "price_high_low"]
NextAction = Literal["offer_refinements", "collect_missing_profile"]

ALL_STORES: List[str] = ["amazon", "aliexpress", "shein", "ebay", "etsy", "bestbuy"]

# Non-blank once stripped
SearchTerm = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

class Trace(BaseModel):
    request_id: str
    step: str
    source_agent: str
    ts: float = Field(default_factory=time.time)

class Budget(BaseModel):
    min: float = Field(default=0, ge=0)
    max: float = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)

class Constraints(BaseModel):
    shipping_days_max: Optional[int] = Field(default=None, gt=0)
    category_includes: List[str] = Field(default_factory=list)
    category_excludes: List[str] = Field(default_factory=list)

class RecipientProfile(BaseModel):
    """Everything the questionnaire learned about the gift recipient."""
    age: Optional[int] = Field(default=None, gt=0)
    gender: Optional[str] = Field(default=None, min_length=1)
    occasion: Optional[str] = Field(default=None, min_length=1)
    relationship: Optional[str] = Field(default=None, min_length=1)
    budget: Budget = Field(default_factory=Budget)
    interests: List[str] = Field(default_factory=list)
    favorite_color: Optional[str] = None
    favorite_brands: List[str] = Field(default_factory=list)
    constraints: Constraints = Field(default_factory=Constraints)

class PriceRange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: float = Field(ge=0)
    max: float = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)

class ProductQuerySpec(BaseModel):
    """Source-agnostic search request handed to every fetcher.

    Unknown fields are rejected so a generated spec either matches the schema
    exactly or is discarded.
    """
    model_config = ConfigDict(extra="forbid")

    keywords: List[SearchTerm] = Field(default_factory=list)
    categories: List[SearchTerm] = Field(default_factory=list)
    price: PriceRange
    brands_preferred: List[SearchTerm] = Field(default_factory=list)
    colors_preferred: List[SearchTerm] = Field(default_factory=list)
    store_priority: List[Store] = Field(default_factory=lambda: list(ALL_STORES))
    limit: int = Field(default=24, gt=0, le=50)
    sort: SortOption = "relevance"

class Price(BaseModel):
    value: float = Field(ge=0)
    currency: str = "USD"

class Rating(BaseModel):
    value: float = Field(default=0, ge=0, le=5)
    count: int = Field(default=0, ge=0)

class NormalizedProduct(BaseModel):
    id: str
    store: Store
    title: str
    description_short: str = ""
    image: str
    price: Price
    rating: Rating = Field(default_factory=Rating)
    badges: List[str] = Field(default_factory=list)
    affiliate_url: str
    raw: Dict[str, Any] = Field(default_factory=dict)
    categories: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    brands: List[str] = Field(default_factory=list)
    keyword_matched: bool = False

    @field_validator("image", "affiliate_url")
    @classmethod
    def _require_https(cls, value: str) -> str:
        if not is_https_url(value):
            raise ValueError("must be an absolute https URL")
        return value

    @field_validator("badges")
    @classmethod
    def _unique_badges(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

class GeminiLinkSuggestion(BaseModel):
    store: Store
    query: str
    url: str

class Explanation(BaseModel):
    product_id: str
    why: str

class RenderingMeta(BaseModel):
    profile_filled: bool
    next_action: NextAction
    gemini_links: List[GeminiLinkSuggestion] = Field(default_factory=list)

class RenderingContract(BaseModel):
    meta: RenderingMeta
    explanations: List[Explanation] = Field(default_factory=list)
    follow_up_suggestions: List[str] = Field(default_factory=list)
    products_ranked: List[str] = Field(default_factory=list)

class RecommendResponse(RenderingContract):
    products: List[NormalizedProduct] = Field(default_factory=list)

class WishlistRequest(BaseModel):
    productId: str = Field(min_length=1)
    store: Optional[Store] = None

class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str

class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1)
