import pytest
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from services.auth import auth_service, get_optional_user_id
from services.config import settings


def _token(claims, secret=None):
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.mark.parametrize("claim", ["sub", "id", "user_id"])
def test_resolves_user_id_claims(claim):
    assert auth_service.resolve_user_id(_token({claim: "user-1234"})) == "user-1234"


def test_sub_wins_over_other_claims():
    assert auth_service.resolve_user_id(_token({"sub": "a", "user_id": "b"})) == "a"


def test_invalid_signature_is_anonymous():
    assert auth_service.resolve_user_id(_token({"sub": "a"}, secret="other-secret")) is None


def test_garbage_token_is_anonymous():
    assert auth_service.resolve_user_id("not-a-jwt") is None


def test_token_without_user_claim_is_anonymous():
    assert auth_service.resolve_user_id(_token({"role": "admin"})) is None


@pytest.mark.asyncio
async def test_dependency_without_credentials():
    assert await get_optional_user_id(None) is None


@pytest.mark.asyncio
async def test_dependency_with_credentials():
    credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_token({"sub": "user-1234"}))
    assert await get_optional_user_id(credentials) == "user-1234"
