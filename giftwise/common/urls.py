from typing import Dict, Optional
from urllib.parse import urlparse, urlencode, parse_qsl, urlunparse
from bs4 import BeautifulSoup

def is_https_url(value: Optional[str]) -> bool:
    """True for absolute https URLs with a host."""
    if not value or not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme == "https" and bool(parsed.netloc)

def strip_markup(value: str) -> str:
    """Drop any HTML markup a source may have smuggled into a link or text field."""
    if not value:
        return ""
    # Query strings legitimately contain "&", so only tags trigger a parse
    if "<" not in value:
        return value.strip()
    return BeautifulSoup(value, "html.parser").get_text().strip()

def with_query_params(url: str, params: Dict[str, Optional[str]]) -> str:
    """Set query parameters on url, overriding existing keys. Empty values are skipped."""
    parsed = urlparse(url)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    for key, value in params.items():
        if value:
            query[key] = value
    return urlunparse(parsed._replace(query=urlencode(query)))

def sanitize_affiliate_url(url: str, params: Optional[Dict[str, Optional[str]]] = None) -> Optional[str]:
    """Strip markup, attach affiliate params, and refuse anything that is not https."""
    cleaned = strip_markup(url or "")
    if not is_https_url(cleaned):
        return None
    if params:
        cleaned = with_query_params(cleaned, params)
    return cleaned
