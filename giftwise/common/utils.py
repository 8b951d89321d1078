import logging
import time
import uuid
import re
from typing import Any, Optional
from contextlib import contextmanager

# Configure logging with request_id correlation
class RequestIDFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, 'request_id'):
            record.request_id = 'no-request-id'
        return True

def setup_logger(name: str = __name__) -> logging.Logger:
    """Setup logger with request_id correlation."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s'
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIDFilter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger

logger = setup_logger("giftwise")

def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())[:8]

@contextmanager
def log_context(request_id: Optional[str]):
    """Stamp every record emitted inside the block with request_id.

    Only wrap synchronous logging calls: the record factory is process-wide,
    so the block must not await.
    """
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.request_id = request_id or 'no-request-id'
        return record

    logging.setLogRecordFactory(record_factory)
    try:
        yield
    finally:
        logging.setLogRecordFactory(old_factory)

class Timer:
    """Simple timer for stage duration logging."""

    def __init__(self, name: str = "operation", request_id: Optional[str] = None):
        self.name = name
        self.request_id = request_id
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, *args):
        self.end_time = time.time()
        duration = self.end_time - self.start_time
        with log_context(self.request_id):
            logger.info(f"{self.name} completed in {duration:.3f}s")

def safe_get(dictionary: Any, key: str, default: Any = None) -> Any:
    """Safely get value from nested dictionary using a dotted path."""
    try:
        value = dictionary
        for k in key.split('.'):
            value = value[k]
        return value
    except (KeyError, TypeError, IndexError):
        return default

def first_value(value: Any, default: Any = None) -> Any:
    """Unwrap the single-element arrays some marketplace payloads use for scalars."""
    if isinstance(value, list):
        return value[0] if value else default
    return default if value is None else value

def normalize_price(price: Any) -> Optional[float]:
    """Normalize a price string or number to float."""
    if price is None or price == "":
        return None
    if isinstance(price, (int, float)):
        return float(price)

    # Remove currency symbols and thousands separators
    price_clean = re.sub(r'[^\d\.]', '', str(price))

    try:
        return float(price_clean)
    except ValueError:
        return None

def unique_lower(values) -> list:
    """Lower-case, strip and de-duplicate strings keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if not value:
            continue
        normalized = str(value).strip().lower()
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result
