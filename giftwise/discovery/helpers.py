from typing import Iterable, List
from urllib.parse import quote, quote_plus
from ..common.messages import GeminiLinkSuggestion, NormalizedProduct, ProductQuerySpec

STORE_SEARCH_URLS = {
    "amazon": "https://www.amazon.com/s?k={query}",
    "aliexpress": "https://www.aliexpress.com/w/wholesale-{slug}.html",
    "shein": "https://www.shein.com/pse/{slug}.html",
    "ebay": "https://www.ebay.com/sch/i.html?_nkw={query}",
    "etsy": "https://www.etsy.com/search?q={query}",
    "bestbuy": "https://www.bestbuy.com/site/searchpage.jsp?st={query}",
}

def dedupe_products(products: Iterable[NormalizedProduct]) -> List[NormalizedProduct]:
    """Keep the first product seen for each id, preserving order."""
    seen = set()
    unique = []
    for product in products:
        if product.id in seen:
            continue
        seen.add(product.id)
        unique.append(product)
    return unique

def build_store_search_url(store: str, query: str) -> str:
    template = STORE_SEARCH_URLS[store]
    slug = quote("-".join(query.split()))
    return template.format(query=quote_plus(query), slug=slug)

def phrase_spec(spec: ProductQuerySpec, phrase: str) -> ProductQuerySpec:
    """The base spec re-targeted at one generated search phrase."""
    return spec.model_copy(update={"keywords": phrase.split()})

def build_link_suggestions(phrases: Iterable[str], stores: Iterable[str]) -> List[GeminiLinkSuggestion]:
    """One store deep-link per (phrase, store), unique by store and url."""
    stores = list(stores)
    seen = set()
    links = []
    for phrase in phrases:
        for store in stores:
            url = build_store_search_url(store, phrase)
            key = f"{store}::{url}"
            if key in seen:
                continue
            seen.add(key)
            links.append(GeminiLinkSuggestion(store=store, query=phrase, url=url))
    return links
