"""
Shared utilities module

Domain-agnostic helpers used across the application.
"""

from .cache import CacheLookup, CacheStats, LRUCache
from .logger import ColoredFormatter, JSONFormatter, PhoneMaskingFilter, configure_logging, mask_phones
from .phone_normalizer import PhoneNumberNormalizer, normalize_phone

__all__ = [
    "CacheLookup",
    "CacheStats",
    "LRUCache",
    "ColoredFormatter",
    "JSONFormatter",
    "PhoneMaskingFilter",
    "mask_phones",
    "configure_logging",
    "PhoneNumberNormalizer",
    "normalize_phone",
]
