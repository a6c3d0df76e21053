"""
Janua implementation of payment provider.

Janua is a federated billing broker: it owns the customer and forwards
checkouts to Conekta (MX) or Polar (everywhere else). The upstream is chosen
by the router and passed through on every call.
"""

from typing import Any, Dict, Optional

import httpx

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import ProviderNotConfigured, ProviderUnavailable
from packages.billing.models.domain.enums import (
    BillingInterval,
    BillingProvider,
    Product,
)
from packages.billing.models.domain.plans import PlanDefinition
from packages.billing.models.domain.routing import CheckoutSession, ProviderRoute
from packages.billing.providers.payment.interface import PaymentProviderInterface

logger = get_logger(__name__)


class JanuaPaymentProvider(PaymentProviderInterface):
    """Janua billing broker over its HTTP API."""

    provider = BillingProvider.JANUA

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.api_url = (api_url or settings.janua_api_url).rstrip("/")
        self.api_key = api_key or settings.janua_api_key
        self.timeout_seconds = timeout_seconds or settings.provider_timeout_seconds

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _post(self, operation: str, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_url or not self.api_key:
            raise ProviderNotConfigured(self.provider.value, "janua_api_url/janua_api_key")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.api_url}{path}", json=body, headers=self._headers()
                )
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Janua {operation} failed with status {e.response.status_code}",
                extra={"operation": operation, "response": e.response.text[:500]},
            )
            raise ProviderUnavailable(
                self.provider.value, f"{operation} returned {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Janua {operation} request error: {e!r}",
                extra={"operation": operation},
            )
            raise ProviderUnavailable(self.provider.value, f"{operation}: {e!r}")

    @staticmethod
    def _upstream(route: ProviderRoute) -> Optional[str]:
        return route.upstream.value if route.upstream else None

    @trace_span
    async def create_customer(
        self,
        subscriber_id: str,
        email: str,
        name: Optional[str],
        route: ProviderRoute,
        country_code: str,
        organization_id: Optional[str] = None,
    ) -> str:
        data = await self._post(
            "customer.create",
            "/api/billing/customers",
            {
                "email": email,
                "name": name,
                "country_code": country_code,
                "provider": self._upstream(route),
                "organization_id": organization_id,
                "metadata": {
                    "userId": subscriber_id,
                    "product": Product.DHANAM.value,
                    "orgId": organization_id,
                },
            },
        )
        customer_id = data.get("customer_id")
        if not customer_id:
            raise ProviderUnavailable(self.provider.value, "customer.create returned no customer_id")

        logger.info(
            f"Created customer via Janua ({self._upstream(route)})",
            extra={"subscriber_id": subscriber_id, "customer_id": customer_id},
        )
        return customer_id

    @trace_span
    async def create_checkout_session(
        self,
        customer_id: str,
        customer_email: str,
        plan: PlanDefinition,
        route: ProviderRoute,
        country_code: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        organization_id: Optional[str] = None,
    ) -> CheckoutSession:
        # Janua plan ids are namespaced by the selling product
        plan_id = f"{plan.product.value}_{plan.base_plan}"
        if plan.interval == BillingInterval.YEARLY:
            plan_id = f"{plan_id}_yearly"

        data = await self._post(
            "checkout.create",
            "/api/billing/checkout",
            {
                "customer_id": customer_id,
                "customer_email": customer_email,
                "plan_id": plan_id,
                "country_code": country_code,
                "provider": self._upstream(route),
                "organization_id": organization_id,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
            },
        )
        checkout_url = data.get("checkout_url")
        if not checkout_url:
            raise ProviderUnavailable(self.provider.value, "checkout.create returned no checkout_url")

        logger.info(
            f"Created checkout session via Janua ({self._upstream(route)})",
            extra={"customer_id": customer_id, "session_id": data.get("session_id")},
        )
        return CheckoutSession(
            session_id=data.get("session_id") or "", checkout_url=checkout_url
        )

    @trace_span
    async def create_portal_session(
        self,
        customer_id: str,
        route: ProviderRoute,
        return_url: str,
    ) -> str:
        data = await self._post(
            "portal.create",
            "/api/billing/portal",
            {
                "customer_id": customer_id,
                "provider": self._upstream(route),
                "return_url": return_url,
            },
        )
        portal_url = data.get("portal_url")
        if not portal_url:
            raise ProviderUnavailable(self.provider.value, "portal.create returned no portal_url")
        return portal_url

    @trace_span
    async def cancel_subscription(
        self, subscription_id: str, route: ProviderRoute
    ) -> None:
        await self._post(
            "subscription.cancel",
            f"/api/billing/subscriptions/{subscription_id}/cancel",
            {"provider": self._upstream(route), "immediate": False},
        )
        logger.info(
            "Requested Janua subscription cancellation",
            extra={"subscription_id": subscription_id},
        )
