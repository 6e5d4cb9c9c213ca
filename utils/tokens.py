"""
Token codec: access and refresh JWTs via PyJWT.

The two token classes are signed with separate secrets and carry a "type"
claim, so an access token is rejected where a refresh token is expected and
vice versa. Every verification failure surfaces as the same InvalidToken.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import jwt

from models.base_model import utcnow
from services.exceptions import InvalidToken
from utils.security import generate_jti

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


def _from_timestamp(value) -> datetime:
    return datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class TokenClaims:
    account_id: str
    email: str
    role: str
    token_type: str
    jti: str
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenClaims":
        return cls(
            account_id=str(payload["sub"]),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            token_type=payload["type"],
            jti=payload.get("jti", ""),
            issued_at=_from_timestamp(payload["iat"]),
            expires_at=_from_timestamp(payload["exp"]),
        )


class TokenCodec:
    def __init__(self, settings, clock: Callable[[], datetime] = utcnow):
        self._settings = settings
        self._clock = clock
        self._secrets = {ACCESS: settings.access_secret, REFRESH: settings.refresh_secret}
        self._ttls = {ACCESS: settings.access_ttl, REFRESH: settings.refresh_ttl}

    def sign_access(self, identity) -> str:
        return self._sign(identity, ACCESS)

    def sign_refresh(self, identity) -> str:
        return self._sign(identity, REFRESH)

    def verify_access(self, token: str) -> TokenClaims:
        return self._verify(token, ACCESS)

    def verify_refresh(self, token: str) -> TokenClaims:
        return self._verify(token, REFRESH)

    def _sign(self, identity, token_type: str) -> str:
        now = self._clock()
        payload = {
            "iss": self._settings.issuer,
            "sub": str(identity.account_id),
            "email": identity.email,
            "role": identity.role,
            "type": token_type,
            "jti": generate_jti(),
            "iat": now,
            "exp": now + self._ttls[token_type],
        }
        return jwt.encode(payload, self._secrets[token_type], algorithm=self._settings.algorithm)

    def _verify(self, token: str, expected_type: str) -> TokenClaims:
        if not isinstance(token, str) or not token:
            raise InvalidToken()
        try:
            payload = jwt.decode(
                token,
                self._secrets[expected_type],
                algorithms=[self._settings.algorithm],
                issuer=self._settings.issuer,
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("%s token expired", expected_type)
            raise InvalidToken() from None
        except jwt.InvalidTokenError as exc:
            logger.debug("%s token rejected: %s", expected_type, exc)
            raise InvalidToken() from None

        if payload.get("type") != expected_type:
            logger.debug("token class mismatch: expected %s", expected_type)
            raise InvalidToken()
        try:
            return TokenClaims.from_payload(payload)
        except (KeyError, TypeError, ValueError, OverflowError):
            raise InvalidToken()
