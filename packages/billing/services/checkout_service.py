"""
Checkout orchestration.

Builds provider checkout sessions for subscribers. Nothing here changes a
subscriber's tier: tiers move only when the provider confirms through a
webhook.
"""

import re
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlsplit

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.billing.exceptions import (
    AlreadyAtOrAboveTier,
    SubscriberNotFound,
    UnknownPlan,
    UntrustedRedirect,
)
from packages.billing.models.domain.enums import AuditAction, AuditSeverity, Product
from packages.billing.models.domain.plans import DEFAULT_PLAN, resolve_plan
from packages.billing.models.domain.routing import CheckoutResult, ReturnUrls
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.services.audit_service import AuditService
from packages.billing.services.customer_registry import CustomerRegistry
from packages.billing.services.provider_router import ProviderRouter
from packages.subscribers.repositories.subscriber_repository import (
    SubscriberRepository,
)

logger = get_logger(__name__)

_LOCALHOST = re.compile(r"^localhost(:\d+)?$")


def is_trusted_return_url(
    return_url: Optional[str],
    allowed_suffixes: Optional[Iterable[str]] = None,
    allow_localhost: Optional[bool] = None,
) -> bool:
    """
    True when `return_url` is an http(s) URL on an allow-listed host.

    A host is allowed when it is, or is a subdomain of, one of the configured
    suffixes (`.madfam.io` admits `app.madfam.io`, not `madfam.io.evil.com` or
    `evilmadfam.io`), or when it is the configured web app's host. `localhost`
    is admitted outside production.
    """
    if not return_url:
        return False
    try:
        parts = urlsplit(return_url)
        hostname = parts.hostname
    except ValueError:
        return False

    if parts.scheme not in ("http", "https") or not hostname:
        return False

    if allow_localhost is None:
        allow_localhost = not settings.environment.is_production()
    if allow_localhost and _LOCALHOST.match(parts.netloc.lower()):
        return True

    if allowed_suffixes is None:
        # Our own web app is always a valid destination
        if parts.netloc.lower() == urlsplit(settings.web_url).netloc.lower():
            return True
        allowed_suffixes = settings.checkout_allowed_host_suffixes

    for suffix in allowed_suffixes:
        # "madfam.io" and ".madfam.io" are the same entry; the match is on a label boundary
        domain = suffix.lower().lstrip(".")
        if domain and (hostname == domain or hostname.endswith("." + domain)):
            return True
    return False


class CheckoutOrchestrator:
    """
    Creates checkout sessions against the routed provider.

    Order of work: plan and tier checks first, then routing, then the
    customer (the only local write), then the provider session, then an
    audit entry. A rejected request touches no provider.
    """

    def __init__(
        self,
        subscriber_repo: Optional[SubscriberRepository] = None,
        router: Optional[ProviderRouter] = None,
        registry: Optional[CustomerRegistry] = None,
        audit_service: Optional[AuditService] = None,
        provider_factory=get_payment_provider,
    ):
        self.subscriber_repo = subscriber_repo or SubscriberRepository()
        self.router = router or ProviderRouter()
        self.provider_factory = provider_factory
        self.registry = registry or CustomerRegistry(
            subscriber_repo=self.subscriber_repo, provider_factory=provider_factory
        )
        self.audit_service = audit_service or AuditService()

    @staticmethod
    def default_return_urls() -> ReturnUrls:
        return ReturnUrls(
            success_url=f"{settings.web_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.web_url}/billing/cancel",
        )

    @trace_span
    async def create_checkout(
        self,
        subscriber_id: str,
        plan_slug: Optional[str] = None,
        product: Optional[Product] = None,
        country_code: Optional[str] = None,
        return_urls: Optional[ReturnUrls] = None,
        organization_id: Optional[str] = None,
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> CheckoutResult:
        """
        Start a checkout for `subscriber_id`.

        Raises:
            UnknownPlan: plan slug is not in the catalog
            SubscriberNotFound: no such subscriber
            AlreadyAtOrAboveTier: subscriber already holds the plan's tier or higher
            ProviderUnavailable: provider call failed or timed out
        """
        plan = resolve_plan(plan_slug or DEFAULT_PLAN)
        if plan is None:
            raise UnknownPlan(plan_slug)

        subscriber = await self.subscriber_repo.get(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFound(subscriber_id)

        current_tier = subscriber.subscription_tier
        if current_tier >= plan.tier:
            logger.info(
                f"Checkout rejected: already on {current_tier.value}",
                extra={"subscriber_id": subscriber_id, "plan": plan.slug},
            )
            raise AlreadyAtOrAboveTier(current_tier.value, plan.tier.value)

        product = product or plan.product
        country = self.router.normalize_country(
            country_code or subscriber.country_code
        )
        route = self.router.route(country, product)

        customer_id = await self.registry.ensure_customer(
            subscriber, route, country, organization_id=organization_id
        )

        metadata: Dict[str, Any] = {
            "userId": subscriber_id,
            "plan": plan.slug,
            "product": product.value,
        }
        if organization_id:
            metadata["orgId"] = organization_id
        if extra_metadata:
            metadata.update(extra_metadata)

        defaults = self.default_return_urls()
        urls = return_urls or defaults
        provider = self.provider_factory(route.provider)
        session = await provider.create_checkout_session(
            customer_id=customer_id,
            customer_email=subscriber.email,
            plan=plan,
            route=route,
            country_code=country,
            success_url=urls.success_url or defaults.success_url,
            cancel_url=urls.cancel_url or defaults.cancel_url,
            metadata=metadata,
            organization_id=organization_id,
        )

        logger.info(
            f"Checkout session created via {route.label}",
            extra={
                "subscriber_id": subscriber_id,
                "plan": plan.slug,
                "product": product.value,
                "provider": route.label,
                "session_id": session.session_id,
            },
        )

        try:
            await self.audit_service.log(
                subscriber_id,
                AuditAction.BILLING_UPGRADE_INITIATED,
                AuditSeverity.MEDIUM,
                {
                    "plan": plan.slug,
                    "product": product.value,
                    "provider": route.label,
                    "session_id": session.session_id,
                    "organization_id": organization_id,
                },
            )
        except Exception as e:
            # The session exists at the provider; a lost audit row must not hide it
            logger.error(
                f"Failed to audit checkout initiation: {e}",
                extra={"subscriber_id": subscriber_id},
                exc_info=True,
            )

        return CheckoutResult(
            checkout_url=session.checkout_url,
            provider=route.label,
            session_id=session.session_id,
        )

    @trace_span
    async def create_external_checkout(
        self,
        user_id: str,
        plan_slug: Optional[str],
        return_url: str,
        product: Optional[Product] = None,
    ) -> CheckoutResult:
        """
        Public checkout used by redirects from other products.

        The return URL is checked before anything else; an untrusted host
        leaves no trace beyond a log line.
        """
        if not is_trusted_return_url(return_url):
            logger.warning(
                "Rejected external checkout with untrusted return_url",
                extra={"user_id": user_id, "return_url": return_url},
            )
            raise UntrustedRedirect(return_url)

        return await self.create_checkout(
            subscriber_id=user_id,
            plan_slug=plan_slug,
            product=product,
            return_urls=ReturnUrls(success_url=return_url, cancel_url=return_url),
            extra_metadata={"janua_user_id": user_id, "source": "external"},
        )
