"""
Provider routing.

Pure: (country, product) -> ProviderRoute. No I/O, total over all inputs.
"""

from typing import FrozenSet, Iterable, Optional

from common.core.config import settings
from packages.billing.models.domain.enums import (
    BillingProvider,
    Product,
    UpstreamProvider,
)
from packages.billing.models.domain.routing import ProviderRoute

_DIRECT = ProviderRoute(provider=BillingProvider.STRIPE)


class ProviderRouter:
    """
    Decides which provider bills a subscriber.

    The federated broker is preferred when it is enabled; it charges Mexico
    through Conekta and every other country through Polar. Products listed in
    `direct_products` always go to the direct processor.
    """

    def __init__(
        self,
        federated_enabled: Optional[bool] = None,
        direct_products: Optional[Iterable[str]] = None,
        default_country: Optional[str] = None,
    ):
        self.federated_enabled = (
            settings.federated_billing_enabled
            if federated_enabled is None
            else federated_enabled
        )
        self.direct_products: FrozenSet[str] = frozenset(
            p.lower()
            for p in (
                settings.direct_billing_products
                if direct_products is None
                else direct_products
            )
        )
        self.default_country = (default_country or settings.default_country_code).upper()

    def normalize_country(self, country_code: Optional[str]) -> str:
        code = (country_code or "").strip().upper()
        return code if len(code) == 2 and code.isalpha() else self.default_country

    def route(
        self, country_code: Optional[str], product: Optional[Product] = None
    ) -> ProviderRoute:
        product_value = (product or Product.DHANAM).value

        if not self.federated_enabled or product_value in self.direct_products:
            return _DIRECT

        return self._federated(country_code)

    def route_existing(
        self, provider: BillingProvider, country_code: Optional[str]
    ) -> ProviderRoute:
        """Route for a subscriber already billed by `provider` (portal, cancel)."""
        if provider == BillingProvider.STRIPE:
            return _DIRECT
        return self._federated(country_code)

    def _federated(self, country_code: Optional[str]) -> ProviderRoute:
        country = self.normalize_country(country_code)
        upstream = (
            UpstreamProvider.CONEKTA if country == "MX" else UpstreamProvider.POLAR
        )
        return ProviderRoute(provider=BillingProvider.JANUA, upstream=upstream)
