"""Access token signing/verification and refresh token generation."""

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from storefront_auth.core.config import Settings
from storefront_auth.core.errors import TokenExpired, TokenInvalid
from storefront_auth.core.timeutils import utcnow

logger = logging.getLogger(__name__)

# Fixed; never taken from the token header
JWT_ALGORITHM = "HS256"

REFRESH_TOKEN_BYTES = 64

REQUIRED_CLAIMS = ("sub", "email", "role", "jti", "ver", "iat", "exp")


@dataclass(frozen=True)
class AccessClaims:
    sub: str
    email: str
    role: str
    jti: str
    ver: int
    iat: datetime
    exp: datetime


@dataclass(frozen=True)
class RefreshSecret:
    secret: str  # goes to the client only
    hash: str    # goes to the database only


def hash_refresh_token(secret: str) -> str:
    """SHA-256 hex digest. The secret already has full entropy."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _peek_claims(token: str) -> Optional[Dict[str, Any]]:
    """Decode WITHOUT verifying. Diagnostics only, never for authorization."""
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


class TokenService:
    """Mints and verifies access tokens; generates refresh secrets."""

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret_key
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._access_ttl = settings.access_token_ttl

    # ─── Access tokens ──────────────────────────
    def sign_access_token(self, user_id: str, email: str, role: str, token_version: int) -> str:
        now = utcnow()
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "ver": int(token_version),
            "exp": now + self._access_ttl,
            "iss": self._issuer,
            "aud": self._audience,
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def verify_access_token(self, token: str) -> AccessClaims:
        """Verify signature, algorithm, issuer, audience and expiry.

        Raises:
            TokenExpired: signature fine but ``exp`` has passed
            TokenInvalid: anything else wrong with the token
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                options={"require_exp": True, "require_iat": True, "require_aud": True, "require_iss": True},
            )
        except ExpiredSignatureError:
            peeked = _peek_claims(token) or {}
            logger.debug(f"Expired access token for user {str(peeked.get('sub', '?'))[:8]}...")
            raise TokenExpired()
        except JWTError:
            raise TokenInvalid()

        if any(payload.get(claim) is None for claim in REQUIRED_CLAIMS):
            raise TokenInvalid()

        try:
            return AccessClaims(
                sub=str(payload["sub"]),
                email=str(payload["email"]),
                role=str(payload["role"]),
                jti=str(payload["jti"]),
                ver=int(payload["ver"]),
                iat=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
                exp=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except (TypeError, ValueError):
            raise TokenInvalid()

    # ─── Refresh tokens ─────────────────────────
    @staticmethod
    def generate_refresh_token() -> RefreshSecret:
        secret = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
        return RefreshSecret(secret=secret, hash=hash_refresh_token(secret))

    @staticmethod
    def hash_refresh_token(secret: str) -> str:
        return hash_refresh_token(secret)
