from typing import Annotated, Optional
from fastapi import Depends, HTTPException, status, Header

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.services.token_verifier import TokenVerifier

logger = get_logger(__name__)


def get_token_verifier() -> TokenVerifier:
    """Get TokenVerifier instance."""
    return TokenVerifier()


@trace_span
async def get_current_user(
    authorization: Annotated[Optional[str], Header()] = None,
    token_verifier: TokenVerifier = Depends(get_token_verifier),
) -> AuthenticatedUser:
    """Get current authenticated subscriber from the bearer JWT."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing or invalid",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization.split(" ", 1)[1].strip()
    claims = token_verifier.verify(token)

    return AuthenticatedUser(
        user_id=str(claims["sub"]),
        email=claims.get("email"),
        claims=claims,
    )


async def get_current_subscriber_id(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> str:
    """The only source of the subscriber id for authenticated billing routes."""
    return current_user.user_id
