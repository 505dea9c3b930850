"""
Provider registry: maps the `{provider}` path segment to its adapter class.
"""
from typing import Dict, List, Optional, Type

from config import Settings, settings as default_settings
from domain.errors import NotFoundError
from services.campay_service import CampayAdapter
from services.fapshi_service import FapshiAdapter
from services.momo_service import MomoAdapter
from services.provider_base import ProviderAdapter
from services.stripe_service import StripeAdapter
from services.swychr_service import SwychrAdapter
from services.vendor_http import VendorHTTPClient

ADAPTERS: Dict[str, Type[ProviderAdapter]] = {
    cls.name: cls
    for cls in (StripeAdapter, SwychrAdapter, FapshiAdapter, CampayAdapter, MomoAdapter)
}


def get_adapter(
    provider: str,
    http: Optional[VendorHTTPClient] = None,
    config: Optional[Settings] = None,
) -> ProviderAdapter:
    """Instantiate the adapter for `provider` or raise NotFoundError."""
    cls = ADAPTERS.get((provider or "").lower())
    if cls is None:
        raise NotFoundError("Payment provider", provider)
    return cls(http=http, config=config)


def enabled_providers(config: Optional[Settings] = None) -> List[str]:
    """Providers usable right now: all of them in TEST_MODE, else those with credentials."""
    config = config or default_settings
    if config.test_mode:
        return sorted(ADAPTERS)
    return sorted(name for name, cls in ADAPTERS.items() if cls(config=config).is_configured())
