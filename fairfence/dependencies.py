"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fairfence.config import ConfigResolver, get_settings
from fairfence.db import (
    InMemoryPricingStore,
    PricingStore,
    SqlPricingStore,
    SupabasePricingStore,
    UnavailablePricingStore,
)
from fairfence.pricing import PricingNormalizer

logger = logging.getLogger(__name__)

_config_resolver: ConfigResolver | None = None
_pricing_store: PricingStore | None = None
_pricing_store_ready = False


def get_config_resolver() -> ConfigResolver:
    """
    Return a singleton resolver so the config cache is shared across requests.
    """
    global _config_resolver
    if _config_resolver:
        return _config_resolver

    settings = get_settings()
    _config_resolver = ConfigResolver(remote_timeout=settings.remote_config_timeout)
    return _config_resolver


def get_pricing_store() -> PricingStore | None:
    """
    Pick a pricing store from settings. ``None`` means no credentials are
    configured, which the pricing endpoint reports as a fallback.
    """
    global _pricing_store, _pricing_store_ready
    if _pricing_store_ready:
        return _pricing_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _pricing_store = InMemoryPricingStore()
    elif settings.supabase_url and settings.supabase_service_role_key:
        _pricing_store = SupabasePricingStore(
            url=settings.supabase_url,
            service_key=settings.supabase_service_role_key,
        )
    elif settings.database_url:
        try:
            _pricing_store = SqlPricingStore(settings.database_url, create_tables=False)
        except Exception as exc:
            logger.exception("Could not create SQL pricing store")
            _pricing_store = UnavailablePricingStore(str(exc))
    else:
        _pricing_store = None
    _pricing_store_ready = True
    return _pricing_store


def get_pricing_normalizer() -> PricingNormalizer:
    return PricingNormalizer(get_pricing_store())


def reset_dependencies() -> None:
    """Drop cached singletons (useful in tests)."""
    global _config_resolver, _pricing_store, _pricing_store_ready
    _config_resolver = None
    _pricing_store = None
    _pricing_store_ready = False
    get_settings.cache_clear()
