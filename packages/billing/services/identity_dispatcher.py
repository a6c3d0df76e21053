"""
Best-effort propagation of billing changes to the identity system.

Calls run as detached background tasks with bounded retries. Nothing here
ever raises to the caller: a webhook response or a checkout must not depend
on the identity system being up.
"""

from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from common.core import background_tasks
from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.billing.providers.identity.janua_identity import (
    IdentityCallFailed,
    JanuaIdentityClient,
)
from packages.billing.providers.payment.interface import PaymentProviderInterface

logger = get_logger(__name__)


def build_product_role_map() -> Mapping[str, str]:
    """Provider product id -> identity role granted on purchase."""
    return MappingProxyType({settings.stripe_foundry_product_id: "foundry_tier"})


PRODUCT_ROLE_MAP: Mapping[str, str] = build_product_role_map()


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, IdentityCallFailed) and exc.retryable


class IdentityDispatcher:
    def __init__(
        self,
        client: Optional[JanuaIdentityClient] = None,
        product_roles: Optional[Mapping[str, str]] = None,
        max_attempts: Optional[int] = None,
        backoff_max_seconds: float = 8.0,
    ):
        self.client = client or JanuaIdentityClient()
        self.product_roles = PRODUCT_ROLE_MAP if product_roles is None else product_roles
        self.max_attempts = max_attempts or settings.identity_dispatch_max_attempts
        self.backoff_max_seconds = backoff_max_seconds

    def role_for_product(self, product_id: Optional[str]) -> Optional[str]:
        if not product_id:
            return None
        return self.product_roles.get(product_id)

    async def _with_retry(
        self, operation: str, call: Callable[[], Awaitable[None]], **log_context
    ) -> bool:
        """Run `call` with exponential backoff; log and swallow the final failure."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.5, max=self.backoff_max_seconds),
                retry=retry_if_exception(_is_retryable),
                reraise=False,
            ):
                with attempt:
                    await call()
            return True
        except RetryError as e:
            last = e.last_attempt.exception()
            logger.error(
                f"Identity {operation} failed after {self.max_attempts} attempts: {last}",
                extra=log_context,
            )
        except IdentityCallFailed as e:
            logger.error(f"Identity {operation} rejected: {e}", extra=log_context)
        except Exception as e:
            logger.error(
                f"Identity {operation} crashed: {e!r}", extra=log_context, exc_info=True
            )
        return False

    @trace_span
    async def dispatch_role_upgrade(
        self, external_user_id: str, product_id: Optional[str]
    ) -> None:
        """Grant the role mapped to `product_id`. No mapping means no call."""
        role = self.role_for_product(product_id)
        if not role:
            logger.info(
                f"No identity role mapping for product {product_id or 'unknown'}, skipping dispatch",
                extra={"identity_user_id": external_user_id},
            )
            return
        if not self.client.can_dispatch_roles:
            logger.warning(
                "Cannot dispatch role upgrade: missing janua_api_url or janua_admin_key"
            )
            return

        await self._with_retry(
            "role upgrade",
            lambda: self.client.add_role(external_user_id, role),
            identity_user_id=external_user_id,
            role=role,
        )

    @trace_span
    async def dispatch_role_upgrade_for_checkout(
        self,
        external_user_id: str,
        session_id: str,
        payment_provider: PaymentProviderInterface,
    ) -> None:
        """Resolve the purchased product from the checkout session, then dispatch."""
        product_id = None
        try:
            product_id = await payment_provider.get_checkout_product_id(session_id)
        except Exception as e:
            logger.warning(
                f"Failed to read checkout line items: {e}",
                extra={"session_id": session_id},
            )
        await self.dispatch_role_upgrade(external_user_id, product_id)

    @trace_span
    async def notify_tier_change(
        self, organization_id: str, customer_id: str, plan_id: Optional[str]
    ) -> None:
        if not self.client.can_notify_tiers:
            logger.warning(
                "Cannot notify identity system: missing janua_api_url or tier_notification_secret"
            )
            return

        await self._with_retry(
            "tier notification",
            lambda: self.client.notify_tier_change(organization_id, customer_id, plan_id),
            organization_id=organization_id,
            customer_id=customer_id,
        )

    # Fire-and-forget entry points used by webhook processing

    def schedule_role_upgrade(self, external_user_id: str, product_id: Optional[str]):
        return background_tasks.spawn(
            self.dispatch_role_upgrade(external_user_id, product_id),
            name=f"identity-role-upgrade-{external_user_id}",
        )

    def schedule_role_upgrade_for_checkout(
        self,
        external_user_id: str,
        session_id: str,
        payment_provider: PaymentProviderInterface,
    ):
        return background_tasks.spawn(
            self.dispatch_role_upgrade_for_checkout(
                external_user_id, session_id, payment_provider
            ),
            name=f"identity-role-upgrade-{external_user_id}",
        )

    def schedule_tier_notification(
        self, organization_id: str, customer_id: str, plan_id: Optional[str]
    ):
        return background_tasks.spawn(
            self.notify_tier_change(organization_id, customer_id, plan_id),
            name=f"identity-tier-notification-{organization_id}",
        )
