"""
Unit tests for TokenVerifier and the bearer dependency.
"""

import time

import jwt
import pytest
from fastapi import HTTPException

from packages.auth.dependencies import get_current_subscriber_id, get_current_user
from packages.auth.services.token_verifier import TokenVerifier

SECRET = "test-jwt-secret-with-enough-length-for-hs256"


def make_token(secret: str = SECRET, **claims) -> str:
    payload = {"sub": "user-1", "email": "ana@example.com", "exp": int(time.time()) + 300}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def verifier():
    return TokenVerifier(secret=SECRET, jwks_url="", issuer="", audience="")


class TestTokenVerifier:
    def test_valid_token(self, verifier):
        claims = verifier.verify(make_token())

        assert claims["sub"] == "user-1"
        assert claims["email"] == "ana@example.com"

    def test_expired_token(self, verifier):
        with pytest.raises(HTTPException) as exc_info:
            verifier.verify(make_token(exp=int(time.time()) - 60))

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token has expired"

    def test_wrong_secret(self, verifier):
        with pytest.raises(HTTPException) as exc_info:
            verifier.verify(make_token(secret="another-secret-with-enough-length-too"))

        assert exc_info.value.detail == "Invalid token"

    def test_subject_is_required(self, verifier):
        token = jwt.encode(
            {"exp": int(time.time()) + 300}, SECRET, algorithm="HS256"
        )

        with pytest.raises(HTTPException):
            verifier.verify(token)

    def test_audience_checked_when_configured(self):
        verifier = TokenVerifier(secret=SECRET, jwks_url="", issuer="", audience="billing")

        verifier.verify(make_token(aud="billing"))
        with pytest.raises(HTTPException):
            verifier.verify(make_token(aud="other"))

    def test_unconfigured_verifier_rejects(self):
        verifier = TokenVerifier(secret="", jwks_url="", issuer="", audience="")

        with pytest.raises(HTTPException) as exc_info:
            verifier.verify(make_token())

        assert exc_info.value.status_code == 401


@pytest.mark.asyncio
class TestBearerDependency:
    async def test_subscriber_id_from_subject(self, verifier):
        user = await get_current_user(
            authorization=f"Bearer {make_token(sub='sub-42')}", token_verifier=verifier
        )

        assert user.user_id == "sub-42"
        assert await get_current_subscriber_id(current_user=user) == "sub-42"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Token xyz"])
    async def test_missing_or_wrong_scheme(self, verifier, header):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(authorization=header, token_verifier=verifier)

        assert exc_info.value.status_code == 401
