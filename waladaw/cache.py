"""In-process product cache.

Holds serialised product views (never ORM instances, those are bound to a
session) for ``PRODUCT_CACHE_SECONDS``. Writers call ``invalidate_products``.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from cachetools import TTLCache

from .config import PRODUCT_CACHE_SECONDS, PRODUCT_CACHE_SIZE

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "all_products"

_cache: TTLCache = TTLCache(maxsize=PRODUCT_CACHE_SIZE, ttl=PRODUCT_CACHE_SECONDS)
_lock = threading.RLock()


def product_details_key(product_id: int) -> str:
    return f"product_details_{product_id}"


def get_or_set(key: str, factory: Callable[[], Any]) -> Any:
    with _lock:
        if key in _cache:
            return _cache[key]
    logger.debug("Cache miss: %s", key)
    value = factory()
    with _lock:
        _cache[key] = value
    return value


def invalidate_products(*product_ids: int) -> None:
    with _lock:
        _cache.pop(PRODUCTS_KEY, None)
        for pid in product_ids:
            _cache.pop(product_details_key(pid), None)


def clear() -> None:
    with _lock:
        _cache.clear()
