"""
Client for the Janua identity system.

Two outbound calls: the internal role-management endpoint (bearer admin key)
and the tier-change webhook (HMAC-SHA256 signed body).
"""

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger

logger = get_logger(__name__)

TIER_SIGNATURE_HEADER = "X-Dhanam-Signature"


class IdentityCallFailed(Exception):
    """An identity-system call failed. `retryable` is False for 4xx answers."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the exact bytes sent."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class JanuaIdentityClient:
    def __init__(
        self,
        api_url: Optional[str] = None,
        admin_key: Optional[str] = None,
        signing_secret: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.api_url = (api_url or settings.janua_api_url).rstrip("/")
        self.admin_key = admin_key or settings.janua_admin_key
        self.signing_secret = signing_secret or settings.tier_notification_secret
        self.timeout_seconds = (
            timeout_seconds or settings.identity_dispatch_timeout_seconds
        )

    @property
    def can_dispatch_roles(self) -> bool:
        return bool(self.api_url and self.admin_key)

    @property
    def can_notify_tiers(self) -> bool:
        return bool(self.api_url and self.signing_secret)

    async def _post(self, url: str, content: bytes, headers: Dict[str, str]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise IdentityCallFailed(f"request error: {e!r}")

        if response.status_code >= 500:
            raise IdentityCallFailed(
                f"{response.status_code} - {response.text[:200]}"
            )
        if response.status_code >= 400:
            raise IdentityCallFailed(
                f"{response.status_code} - {response.text[:200]}", retryable=False
            )

    @trace_span
    async def add_role(self, user_id: str, role: str) -> None:
        """POST {janua}/internal/users/{id}/roles with {"add_role": role}."""
        body = json.dumps({"add_role": role}).encode("utf-8")
        await self._post(
            f"{self.api_url}/internal/users/{user_id}/roles",
            body,
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.admin_key}",
            },
        )
        logger.info(
            f"Janua role upgraded: {role}", extra={"identity_user_id": user_id}
        )

    @trace_span
    async def notify_tier_change(
        self, organization_id: str, customer_id: str, plan_id: Optional[str]
    ) -> None:
        """Signed subscription notification so Janua can update the org tier."""
        payload: Dict[str, Any] = {
            "type": "subscription.created",
            "data": {
                "customer_id": customer_id,
                "plan_id": plan_id,
                "organization_id": organization_id,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        await self._post(
            f"{self.api_url}/api/v1/webhooks/dhanam/subscription",
            body,
            {
                "Content-Type": "application/json",
                TIER_SIGNATURE_HEADER: sign_payload(body, self.signing_secret),
            },
        )
        logger.info(
            "Notified Janua of tier change",
            extra={"organization_id": organization_id, "customer_id": customer_id},
        )
