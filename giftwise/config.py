from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Generative backend
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    LLM_SPEC_TIMEOUT: float = 8.0
    LLM_PHRASE_TIMEOUT: float = 8.0
    LLM_PHRASE_TEMPERATURE: float = 0.7

    # Affiliate identifiers
    AFFILIATE_AMAZON_TAG: str = "trendella-20"
    AFFILIATE_ALI_CAMPAIGN_ID: str = "trendella_campaign"
    AFFILIATE_ALI_APP_ID: str = "trendella_app"
    AFFILIATE_SHEIN_SITE_ID: str = "trendella"
    AFFILIATE_EBAY_CAMPAIGN_ID: Optional[str] = None

    # Marketplace credentials
    RAPIDAPI_KEY: Optional[str] = None
    RAPIDAPI_AMAZON_HOST: str = "real-time-amazon-data.p.rapidapi.com"
    EBAY_APP_ID: Optional[str] = None
    ETSY_API_KEY: Optional[str] = None
    BESTBUY_API_KEY: Optional[str] = None

    # Discovery
    FETCH_TIMEOUT: float = 10.0
    CACHE_TTL_SECONDS: float = 20 * 60
    CACHE_MAX_ENTRIES: int = 128
    DEFAULT_LIMIT: int = 24
    LOW_BUDGET_THRESHOLD: float = 60.0

    # Ranking
    MAX_RANKED: int = 12

    # Persistence and HTTP
    DATABASE_PATH: str = "wishlist.db"
    ORIGIN_ALLOWLIST: str = ""
    GUEST_COOKIE_NAME: str = "guest_session_id"
    GUEST_COOKIE_MAX_AGE: int = 60 * 60 * 24 * 30

    @property
    def allowed_origins(self) -> List[str]:
        origins = [origin.strip() for origin in self.ORIGIN_ALLOWLIST.split(",") if origin.strip()]
        return origins or ["*"]

    class Config:
        env_file = ".env"

settings = Settings()
