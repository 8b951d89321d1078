import asyncio
from typing import Dict, List, Optional, Tuple
from ..common.base import AgentBase
from ..common.cache import ResponseCache
from ..common.messages import GeminiLinkSuggestion, NormalizedProduct, ProductQuerySpec
from ..common.utils import logger, log_context
from ..config import Settings
from .adapters import (
    AmazonAdapter, BaseAdapter, BestBuyAdapter, CatalogAdapter, EbayAdapter,
    EtsyAdapter, HttpClient, RapidApiAmazonAdapter
)
from .helpers import build_link_suggestions, dedupe_products, phrase_spec

class DiscoveryAgent(AgentBase):
    """Fans a query spec out to every store adapter and merges the results."""

    def __init__(self, adapters: Dict[str, BaseAdapter], http: Optional[HttpClient] = None):
        super().__init__("discovery")
        self.adapters = adapters
        self.http = http

    @classmethod
    def from_settings(cls, settings: Settings, cache: Optional[ResponseCache] = None) -> "DiscoveryAgent":
        """Wire up the catalog and live adapters from configuration."""
        if cache is None:
            cache = ResponseCache(settings.CACHE_TTL_SECONDS, settings.CACHE_MAX_ENTRIES)
        http = HttpClient(timeout=settings.FETCH_TIMEOUT)

        rapidapi = RapidApiAmazonAdapter(
            settings.RAPIDAPI_KEY, settings.RAPIDAPI_AMAZON_HOST, settings.AFFILIATE_AMAZON_TAG, http=http
        )
        adapters: Dict[str, BaseAdapter] = {
            "amazon": AmazonAdapter(settings.AFFILIATE_AMAZON_TAG, live=rapidapi, cache=cache),
            "aliexpress": CatalogAdapter("aliexpress", {
                "aff_fcid": settings.AFFILIATE_ALI_CAMPAIGN_ID,
                "aff_fsk": settings.AFFILIATE_ALI_APP_ID,
                "aff_platform": "portals-tool",
                "aff_trace_key": settings.AFFILIATE_ALI_CAMPAIGN_ID
            }, cache=cache),
            "shein": CatalogAdapter("shein", {
                "aff_id": settings.AFFILIATE_SHEIN_SITE_ID,
                "utm_source": "affiliate"
            }, cache=cache),
            "ebay": EbayAdapter(settings.EBAY_APP_ID, settings.AFFILIATE_EBAY_CAMPAIGN_ID, http=http, cache=cache),
            "etsy": EtsyAdapter(settings.ETSY_API_KEY, http=http, cache=cache),
            "bestbuy": BestBuyAdapter(settings.BESTBUY_API_KEY, http=http, cache=cache),
        }
        return cls(adapters, http=http)

    async def discover(self, spec: ProductQuerySpec, phrases: List[str],
                       request_id: Optional[str] = None) -> Tuple[List[NormalizedProduct], List[GeminiLinkSuggestion]]:
        """Run the base spec and every phrase spec against every prioritized store.

        All calls run concurrently; a call that raises counts as an empty
        result. Products come back in pass order (base first), store priority
        within a pass, with duplicate ids removed.
        """
        trace = self.create_trace(request_id or "", "discovery")
        passes = [spec] + [phrase_spec(spec, phrase) for phrase in phrases]

        calls = []
        labels = []
        for pass_spec in passes:
            for store in pass_spec.store_priority:
                adapter = self.adapters.get(store)
                if adapter is None:
                    continue
                calls.append(adapter.fetch(pass_spec, trace.request_id))
                labels.append(store)

        with log_context(trace.request_id):
            logger.info(f"Fetching {len(calls)} store searches across {len(passes)} passes")

        results = await asyncio.gather(*calls, return_exceptions=True)

        merged: List[NormalizedProduct] = []
        for store, result in zip(labels, results):
            if isinstance(result, BaseException):
                with log_context(trace.request_id):
                    logger.warning(f"Source {store} failed: {result}")
                continue
            merged.extend(result)

        products = dedupe_products(merged)
        links = build_link_suggestions(phrases, spec.store_priority)

        with log_context(trace.request_id):
            logger.info(f"Discovery complete: {len(products)} unique of {len(merged)} products, {len(links)} store links")

        return products, links

    async def close(self):
        if self.http is not None:
            await self.http.close()
