"""Authentication service - bearer token verification and tenant lookup."""

import logging
from typing import Optional

import jwt

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.config import get_settings
from llmdispatch.core.database import Database
from llmdispatch.core.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


class AuthService:
    """Verifies access tokens issued by the identity provider."""

    @staticmethod
    def _users_collection():
        return Database.get_collection("users")

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        """Decode and validate a JWT token."""
        settings = get_settings()
        options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                audience=settings.JWT_AUDIENCE or None,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    @staticmethod
    def _customer_from_claims(payload: dict) -> Optional[str]:
        app_metadata = payload.get("app_metadata") or {}
        return payload.get("customer_id") or app_metadata.get("customer_id")

    @classmethod
    async def authenticate(cls, token: Optional[str]) -> AuthUser:
        """
        Resolve a bearer token to the calling user.

        The customer id comes from the token claims when present, otherwise
        from the user's profile document. A user without a customer is still
        authenticated; callers decide whether that is allowed.
        """
        if not token:
            raise UnauthorizedException("Missing authorization header")

        payload = cls.decode_token(token)
        if not payload or not payload.get("sub"):
            raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

        user_id = str(payload["sub"])
        customer_id = cls._customer_from_claims(payload)

        if not customer_id:
            profile = await cls._users_collection().find_one(
                {"user_id": user_id}, {"customer_id": 1}
            )
            if profile:
                customer_id = profile.get("customer_id")

        return AuthUser(
            user_id=user_id,
            email=payload.get("email"),
            customer_id=str(customer_id) if customer_id else None,
        )
