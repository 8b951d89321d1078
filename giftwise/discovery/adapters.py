import json
import os
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlencode, quote, urlparse
import aiohttp
from pydantic import ValidationError
from ..common.cache import ResponseCache
from ..common.messages import NormalizedProduct, ProductQuerySpec
from ..common.scoring import within_budget
from ..common.urls import sanitize_affiliate_url, strip_markup
from ..common.utils import logger, log_context, safe_get, first_value, normalize_price, unique_lower

PLACEHOLDER_IMAGE = "https://via.placeholder.com/300x300?text=No+Image"
MOCKS_DIR = os.path.join(os.path.dirname(__file__), "..", "common", "mocks")

def load_catalog(store: str) -> List[Dict]:
    """Load the static product catalog for a store from the bundled JSON mocks."""
    path = os.path.join(MOCKS_DIR, f"catalog_{store}.json")
    try:
        with open(path, 'r') as f:
            return json.load(f)["products"]
    except FileNotFoundError:
        logger.warning(f"Mock catalog not found: {path}")
        return []

class HttpClient:
    """Shared aiohttp session for live marketplace adapters."""

    def __init__(self, timeout: float = 10.0, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self.session = session
        self.headers = {
            'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
            'Accept': 'application/json'
        }

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(headers=self.headers)
        return self.session

    async def get_json(self, url: str, params: Optional[Dict[str, str]] = None,
                       headers: Optional[Dict[str, str]] = None) -> Any:
        """GET a JSON document. Raises on transport errors and non-2xx statuses."""
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with session.get(url, params=params, headers=headers, timeout=timeout) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def close(self):
        if self.session is not None and not self.session.closed:
            await self.session.close()

class BaseAdapter:
    """Base class for all store adapters.

    fetch() is the pipeline boundary: it consults the response cache and turns
    any failure into an empty result. Subclasses implement search().
    """

    store: str = ""

    def __init__(self, cache: Optional[ResponseCache] = None):
        self.cache = cache

    async def fetch(self, spec: ProductQuerySpec, request_id: Optional[str] = None) -> List[NormalizedProduct]:
        key = None
        if self.cache is not None:
            key = ResponseCache.make_key(self.store, spec)
            cached = self.cache.get(key)
            if cached is not None:
                with log_context(request_id):
                    logger.info(f"[{self.store}] cache hit ({len(cached)} products)")
                return list(cached)

        try:
            products = await self.search(spec)
        except Exception as e:
            with log_context(request_id):
                logger.warning(f"[{self.store}] fetch failed: {e}")
            return []

        with log_context(request_id):
            logger.info(f"[{self.store}] {len(products)} products for keywords {spec.keywords}")

        if key is not None:
            self.cache.set(key, list(products))
        return list(products)

    async def search(self, spec: ProductQuerySpec) -> List[NormalizedProduct]:
        raise NotImplementedError

    def _build_product(self, **fields) -> Optional[NormalizedProduct]:
        """Construct a product, dropping it when a URL or field fails validation."""
        try:
            return NormalizedProduct(**fields)
        except ValidationError as e:
            logger.warning(f"[{self.store}] dropping product {fields.get('id')}: {e.error_count()} invalid fields")
            return None

class CatalogAdapter(BaseAdapter):
    """Serves a small fixed product set filtered against the query spec."""

    def __init__(self, store: str, affiliate_params: Dict[str, Optional[str]],
                 products: Optional[List[Dict]] = None, cache: Optional[ResponseCache] = None):
        super().__init__(cache)
        self.store = store
        self.affiliate_params = affiliate_params
        self.products = products if products is not None else load_catalog(store)

    def matches_spec(self, item: Dict, spec: ProductQuerySpec) -> Tuple[bool, bool]:
        """Return (passes, keyword_matched) for a catalog item."""
        price = safe_get(item, "price.value", 0) or 0
        if not within_budget(price, spec.price.min, spec.price.max):
            return False, False

        categories = unique_lower(item.get("categories", []))
        wanted_categories = unique_lower(spec.categories)
        if wanted_categories and not any(category in categories for category in wanted_categories):
            return False, False

        colors = unique_lower(item.get("colors", []))
        wanted_colors = unique_lower(spec.colors_preferred)
        if wanted_colors and not any(w in color for color in colors for w in wanted_colors):
            return False, False

        brands = unique_lower(item.get("brands", []))
        preferred = unique_lower(spec.brands_preferred)
        if any(p in brand for brand in brands for p in preferred):
            return True, False

        # Keywords only boost ranking; they never filter a catalog item out
        haystacks = [item.get("title", "").lower(), item.get("description_short", "").lower()]
        haystacks += unique_lower(item.get("interests", []))
        keywords = unique_lower(spec.keywords)
        return True, any(keyword in haystack for keyword in keywords for haystack in haystacks)

    def _to_product(self, item: Dict, keyword_matched: bool) -> Optional[NormalizedProduct]:
        affiliate_url = sanitize_affiliate_url(item.get("affiliate_base", ""), self.affiliate_params)
        if affiliate_url is None:
            logger.warning(f"[{self.store}] dropping product {item.get('id')}: bad affiliate link")
            return None

        fields = {key: value for key, value in item.items() if key != "affiliate_base"}
        fields["affiliate_url"] = affiliate_url
        fields["keyword_matched"] = keyword_matched
        return self._build_product(**fields)

    async def search(self, spec: ProductQuerySpec) -> List[NormalizedProduct]:
        results = []
        for item in self.products:
            passes, keyword_matched = self.matches_spec(item, spec)
            if not passes:
                continue
            product = self._to_product(item, keyword_matched)
            if product is not None:
                results.append(product)
            if len(results) >= spec.limit:
                break
        return results

class LiveAdapter(BaseAdapter):
    """Searches a marketplace API and converts its native items."""

    def __init__(self, http: Optional[HttpClient] = None, cache: Optional[ResponseCache] = None):
        super().__init__(cache)
        self.http = http or HttpClient()

    @property
    def configured(self) -> bool:
        return False

    async def search_raw(self, query: str, limit: int) -> List[Dict]:
        raise NotImplementedError

    def convert(self, item: Dict) -> Optional[NormalizedProduct]:
        raise NotImplementedError

    async def search(self, spec: ProductQuerySpec) -> List[NormalizedProduct]:
        if not self.configured:
            logger.warning(f"[{self.store}] API credentials not configured, skipping search")
            return []

        query = " ".join(spec.keywords).strip()
        if not query:
            logger.warning(f"[{self.store}] no search keywords provided")
            return []

        items = await self.search_raw(query, spec.limit)

        products = []
        for item in items:
            try:
                product = self.convert(item)
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                logger.warning(f"[{self.store}] malformed item skipped: {e}")
                continue
            if product is None or product.price.value <= 0:
                continue
            if not within_budget(product.price.value, spec.price.min, spec.price.max):
                continue
            products.append(product)
            if len(products) >= spec.limit:
                break
        return products

class RapidApiAmazonAdapter(LiveAdapter):
    store = "amazon"

    def __init__(self, api_key: Optional[str], host: str, affiliate_tag: str,
                 http: Optional[HttpClient] = None, cache: Optional[ResponseCache] = None):
        super().__init__(http, cache)
        self.api_key = api_key
        self.host = host
        self.affiliate_tag = affiliate_tag

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.host)

    async def search_raw(self, query: str, limit: int) -> List[Dict]:
        payload = await self.http.get_json(
            f"https://{self.host}/search",
            params={
                "query": query,
                "page": "1",
                "country": "US",
                "sort_by": "RELEVANCE",
                "product_condition": "ALL"
            },
            headers={"x-rapidapi-host": self.host, "x-rapidapi-key": self.api_key}
        )
        products = safe_get(payload, "data.products")
        if not isinstance(products, list):
            logger.warning("[amazon] RapidAPI response has no products")
            return []
        return products

    def _with_tag(self, url: str) -> Optional[str]:
        if "tag" in parse_qs(urlparse(url).query):
            return sanitize_affiliate_url(url)
        return sanitize_affiliate_url(url, {"tag": self.affiliate_tag})

    def convert(self, item: Dict) -> Optional[NormalizedProduct]:
        asin = item.get("asin")
        title = item.get("product_title")
        link = item.get("product_url")
        image = item.get("product_photo")
        if not asin or not title or not link or not image:
            return None

        price = normalize_price(item.get("product_price") or item.get("product_original_price")) or 0.0
        rating = min(5.0, max(0.0, normalize_price(item.get("product_star_rating")) or 0.0))

        badges = []
        if item.get("is_prime"):
            badges.append("prime_shipping")
        if item.get("sales_volume"):
            badges.append("bestseller")
        if rating >= 4.5:
            badges.append("highly_rated")

        affiliate_url = self._with_tag(link)
        if affiliate_url is None:
            return None

        return self._build_product(
            id=f"amazon_{asin}",
            store="amazon",
            title=strip_markup(title),
            description_short=strip_markup(title),
            image=image,
            price={"value": price, "currency": "USD"},
            rating={"value": rating, "count": item.get("product_num_ratings") or 0},
            badges=badges,
            affiliate_url=affiliate_url,
            raw={"asin": asin, "is_prime": item.get("is_prime"), "sales_volume": item.get("sales_volume")}
        )

class AmazonAdapter(CatalogAdapter):
    """Amazon: live RapidAPI search when configured, static catalog otherwise."""

    def __init__(self, affiliate_tag: str, live: Optional[RapidApiAmazonAdapter] = None,
                 products: Optional[List[Dict]] = None, cache: Optional[ResponseCache] = None):
        super().__init__("amazon", {"tag": affiliate_tag}, products=products, cache=cache)
        self.live = live

    async def search(self, spec: ProductQuerySpec) -> List[NormalizedProduct]:
        if self.live is not None and self.live.configured:
            try:
                products = await self.live.search(spec)
            except Exception as e:
                logger.warning(f"[amazon] RapidAPI search failed, using catalog: {e}")
                products = []
            if products:
                return products
            logger.info("[amazon] no live results, falling back to static catalog")
        return await super().search(spec)

class EbayAdapter(LiveAdapter):
    store = "ebay"
    api_url = "https://svcs.ebay.com/services/search/FindingService/v1"

    def __init__(self, app_id: Optional[str], campaign_id: Optional[str] = None,
                 http: Optional[HttpClient] = None, cache: Optional[ResponseCache] = None):
        super().__init__(http, cache)
        self.app_id = app_id
        self.campaign_id = campaign_id

    @property
    def configured(self) -> bool:
        return bool(self.app_id)

    async def search_raw(self, query: str, limit: int) -> List[Dict]:
        payload = await self.http.get_json(self.api_url, params={
            "OPERATION-NAME": "findItemsByKeywords",
            "SERVICE-VERSION": "1.0.0",
            "SECURITY-APPNAME": self.app_id,
            "RESPONSE-DATA-FORMAT": "JSON",
            "REST-PAYLOAD": "true",
            "keywords": query,
            "paginationInput.entriesPerPage": str(min(limit, 100)),
            "sortOrder": "BestMatch"
        })

        response = first_value(safe_get(payload, "findItemsByKeywordsResponse"))
        if not isinstance(response, dict):
            logger.warning("[ebay] invalid response structure")
            return []

        ack = first_value(response.get("ack"))
        if ack != "Success":
            logger.warning(f"[ebay] API returned ack: {ack}")
            return []

        result = first_value(response.get("searchResult"), {})
        return result.get("item", []) if isinstance(result, dict) else []

    def convert(self, item: Dict) -> Optional[NormalizedProduct]:
        item_id = first_value(item.get("itemId"))
        title = first_value(item.get("title"))
        link = first_value(item.get("viewItemURL"))
        if not item_id or not title or not link:
            return None

        selling_status = first_value(item.get("sellingStatus"), {})
        price_obj = first_value(selling_status.get("currentPrice"), {})
        price = normalize_price(price_obj.get("__value__")) or 0.0
        currency = price_obj.get("@currencyId") or "USD"

        condition = first_value(first_value(item.get("condition"), {}).get("conditionDisplayName"))
        category = first_value(first_value(item.get("primaryCategory"), {}).get("categoryName"))

        badges = []
        if condition == "New":
            badges.append("brand_new")
        if 0 < price < 50:
            badges.append("budget_friendly")

        params = {"campid": self.campaign_id} if self.campaign_id else None
        affiliate_url = sanitize_affiliate_url(link, params)
        if affiliate_url is None:
            return None

        return self._build_product(
            id=f"ebay_{item_id}",
            store="ebay",
            title=strip_markup(title),
            description_short=strip_markup(title),
            image=first_value(item.get("galleryURL")) or PLACEHOLDER_IMAGE,
            price={"value": price, "currency": currency},
            rating={"value": 0, "count": 0},
            badges=badges,
            affiliate_url=affiliate_url,
            raw={"itemId": item_id, "condition": condition},
            categories=unique_lower([category] if category else [])
        )

class EtsyAdapter(LiveAdapter):
    store = "etsy"
    api_url = "https://openapi.etsy.com/v3/application/listings/active"

    def __init__(self, api_key: Optional[str], http: Optional[HttpClient] = None,
                 cache: Optional[ResponseCache] = None):
        super().__init__(http, cache)
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def search_raw(self, query: str, limit: int) -> List[Dict]:
        payload = await self.http.get_json(
            self.api_url,
            params={"keywords": query, "limit": str(min(limit, 100)), "offset": "0", "sort_on": "relevancy"},
            headers={"x-api-key": self.api_key}
        )
        results = safe_get(payload, "results", [])
        return results if isinstance(results, list) else []

    def convert(self, item: Dict) -> Optional[NormalizedProduct]:
        listing_id = item.get("listing_id")
        title = item.get("title")
        link = item.get("url")
        if not listing_id or not title or not link:
            return None

        price_obj = item.get("price") or {}
        divisor = price_obj.get("divisor") or 1
        price = (price_obj.get("amount") or 0) / divisor
        images = item.get("images") or [{}]
        image = images[0].get("url_fullxfull") or images[0].get("url_570xN") or PLACEHOLDER_IMAGE
        favorers = item.get("num_favorers") or 0

        badges = []
        if favorers > 100:
            badges.append("popular")
        if 0 < price < 30:
            badges.append("budget_friendly")

        affiliate_url = sanitize_affiliate_url(link)
        if affiliate_url is None:
            return None

        description = strip_markup(item.get("description") or "")[:150]
        return self._build_product(
            id=f"etsy_{listing_id}",
            store="etsy",
            title=strip_markup(title),
            description_short=description or strip_markup(title),
            image=image,
            price={"value": price, "currency": price_obj.get("currency_code") or "USD"},
            rating={"value": 0, "count": 0},
            badges=badges,
            affiliate_url=affiliate_url,
            raw={"listing_id": listing_id, "tags": item.get("tags"), "num_favorers": favorers},
            interests=unique_lower(item.get("tags") or [])
        )

class BestBuyAdapter(LiveAdapter):
    store = "bestbuy"
    api_url = "https://api.bestbuy.com/v1/products"
    fields = "sku,name,salePrice,regularPrice,onSale,url,image,largeImage,customerReviewAverage,customerReviewCount,shortDescription,manufacturer,modelNumber"

    def __init__(self, api_key: Optional[str], http: Optional[HttpClient] = None,
                 cache: Optional[ResponseCache] = None):
        super().__init__(http, cache)
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def search_raw(self, query: str, limit: int) -> List[Dict]:
        params = urlencode({
            "apiKey": self.api_key,
            "format": "json",
            "show": self.fields,
            "pageSize": str(min(limit, 100)),
            "page": "1"
        })
        # Best Buy takes the search term inside the path: /products(search=term)
        url = f"{self.api_url}(search={quote(query)})?{params}"
        payload = await self.http.get_json(url)
        products = safe_get(payload, "products", [])
        return products if isinstance(products, list) else []

    def convert(self, item: Dict) -> Optional[NormalizedProduct]:
        sku = item.get("sku")
        name = item.get("name")
        link = item.get("url")
        if not sku or not name or not link:
            return None

        price = item.get("salePrice") or item.get("regularPrice") or 0
        rating = min(5.0, max(0.0, float(item.get("customerReviewAverage") or 0)))

        badges = []
        if item.get("onSale"):
            badges.append("on_sale")
        if rating >= 4.5:
            badges.append("highly_rated")
        if 0 < price < 50:
            badges.append("budget_friendly")

        affiliate_url = sanitize_affiliate_url(link)
        if affiliate_url is None:
            return None

        manufacturer = item.get("manufacturer")
        return self._build_product(
            id=f"bestbuy_{sku}",
            store="bestbuy",
            title=strip_markup(name),
            description_short=strip_markup(item.get("shortDescription") or name),
            image=item.get("largeImage") or item.get("image") or PLACEHOLDER_IMAGE,
            price={"value": float(price), "currency": "USD"},
            rating={"value": rating, "count": item.get("customerReviewCount") or 0},
            badges=badges,
            affiliate_url=affiliate_url,
            raw={"sku": sku, "manufacturer": manufacturer, "modelNumber": item.get("modelNumber"), "onSale": item.get("onSale")},
            brands=[manufacturer] if manufacturer else []
        )
