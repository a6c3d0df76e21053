from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, status

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=4)
def _jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    """One JWKS client per URL; it caches fetched keys itself."""
    return jwt.PyJWKClient(jwks_url, cache_keys=True)


class TokenVerifier:
    """
    Verifies bearer JWTs.

    RS256 against a JWKS endpoint when `jwks_url` is configured, otherwise
    HS256 with the shared secret. Issuer and audience are checked when set.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        self.secret = secret if secret is not None else settings.auth_jwt_secret
        self.jwks_url = jwks_url if jwks_url is not None else settings.auth_jwks_url
        self.issuer = issuer if issuer is not None else settings.auth_issuer
        self.audience = audience if audience is not None else settings.auth_audience

    def _signing_key(self, token: str):
        if self.jwks_url:
            return _jwks_client(self.jwks_url).get_signing_key_from_jwt(token).key, "RS256"
        if not self.secret:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token verification is not configured",
            )
        return self.secret, "HS256"

    @trace_span
    def verify(self, token: str) -> Dict[str, Any]:
        """Return the verified claims or raise 401."""
        try:
            key, algorithm = self._signing_key(token)
            claims = jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_aud": bool(self.audience),
                    "verify_iss": bool(self.issuer),
                    "require": ["exp", "sub"],
                },
            )
        except HTTPException:
            raise
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired"
            )
        except (jwt.InvalidTokenError, jwt.PyJWKClientError) as e:
            logger.info(f"Rejected bearer token: {e}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token",
            )
        return claims
