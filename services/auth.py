from typing import Optional, Dict, Any
from jose import jwt, JWTError
from fastapi import Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import structlog

from services.config import settings

logger = structlog.get_logger()

# Authentication is optional: a missing header must not produce a 403
security = HTTPBearer(auto_error=False)

USER_ID_CLAIMS = ("sub", "id", "user_id")


class AuthService:
    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            return jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm]
            )
        except JWTError as e:
            logger.warning("Token verification failed", error=str(e), token_preview=token[:10] + "..." if token else "None")
            return None

    def resolve_user_id(self, token: Optional[str]) -> Optional[str]:
        """Stable user id from a bearer token, or None. Never raises."""
        if not token:
            return None

        payload = self.verify_token(token)
        if not payload:
            return None

        for claim in USER_ID_CLAIMS:
            if payload.get(claim):
                return str(payload[claim])

        logger.warning("Token has no user id claim")
        return None


auth_service = AuthService()


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Optional[str]:
    if credentials is None:
        return None
    return auth_service.resolve_user_id(credentials.credentials)
