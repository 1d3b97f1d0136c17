"""
Token codec: signed, time-bounded JWTs via PyJWT.

Two independent signing configurations exist, one per TokenKind. A token
carries {sub, iat, exp, type, jti, iss}; the random jti keeps two tokens
issued for the same user within the same second distinct.

verify() only ever raises a TokenError subclass:
- InvalidSignature: the signature does not match the key of the requested kind
- ExpiredToken: the clock has reached exp
- MalformedToken: anything that cannot be decoded into the expected claims
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Mapping

import jwt


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(Exception):
    """Base class for every verification failure."""


class ExpiredToken(TokenError):
    pass


class InvalidSignature(TokenError):
    pass


class MalformedToken(TokenError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_lifetime(value: Any, name: str = "lifetime") -> timedelta | None:
    """Seconds (int or numeric string) or a timedelta; None when unset."""
    if value is None or value == "":
        return None
    if isinstance(value, timedelta):
        return value
    try:
        return timedelta(seconds=int(value))
    except (TypeError, ValueError):
        raise RuntimeError(f"Invalid token configuration: {name} must be a whole number of seconds") from None


@dataclass(frozen=True)
class TokenSettings:
    """Signing keys and lifetimes, fixed at startup."""

    access_secret: str
    access_ttl: timedelta
    refresh_secret: str
    refresh_ttl: timedelta
    algorithm: str = "HS256"
    issuer: str = "session-auth-api"

    def __post_init__(self):
        missing = [
            name
            for name in ("access_secret", "access_ttl", "refresh_secret", "refresh_ttl")
            if not getattr(self, name) and getattr(self, name) != timedelta(0)
        ]
        if missing:
            raise RuntimeError(f"Missing token configuration: {', '.join(missing)}")
        if self.access_ttl < timedelta(0) or self.refresh_ttl < timedelta(0):
            raise RuntimeError("Token lifetimes must not be negative")
        if self.access_secret == self.refresh_secret:
            raise RuntimeError("Access and refresh tokens must use different signing keys")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TokenSettings":
        """Build settings from a Flask config (or any mapping of the same keys)."""
        return cls(
            access_secret=config.get("ACCESS_TOKEN_SECRET") or "",
            access_ttl=parse_lifetime(config.get("ACCESS_TOKEN_EXPIRES"), "ACCESS_TOKEN_EXPIRES"),
            refresh_secret=config.get("REFRESH_TOKEN_SECRET") or "",
            refresh_ttl=parse_lifetime(config.get("REFRESH_TOKEN_EXPIRES"), "REFRESH_TOKEN_EXPIRES"),
            algorithm=config.get("JWT_ALGORITHM") or "HS256",
            issuer=config.get("JWT_ISSUER") or "session-auth-api",
        )

    def secret_for(self, kind: TokenKind) -> str:
        return self.access_secret if kind is TokenKind.ACCESS else self.refresh_secret

    def ttl_for(self, kind: TokenKind) -> timedelta:
        return self.access_ttl if kind is TokenKind.ACCESS else self.refresh_ttl


@dataclass(frozen=True)
class SessionPair:
    access_token: str
    refresh_token: str


class TokenCodec:
    def __init__(self, settings: TokenSettings, clock: Callable[[], datetime] | None = None):
        self.settings = settings
        self.clock = clock or _utcnow

    def issue(self, kind: TokenKind, principal_id: str) -> str:
        now = self.clock()
        expires = now + self.settings.ttl_for(kind)
        payload = {
            "iss": self.settings.issuer,
            "sub": str(principal_id),
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
            "type": kind.value,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self.settings.secret_for(kind), algorithm=self.settings.algorithm)

    def issue_pair(self, principal_id: str) -> SessionPair:
        return SessionPair(
            access_token=self.issue(TokenKind.ACCESS, principal_id),
            refresh_token=self.issue(TokenKind.REFRESH, principal_id),
        )

    def verify(self, kind: TokenKind, token: str) -> str:
        """Return the principal id carried by ``token`` or raise a TokenError."""
        if not isinstance(token, str) or not token:
            raise MalformedToken("Token is not a string")
        try:
            decoded = jwt.decode(
                token,
                self.settings.secret_for(kind),
                algorithms=[self.settings.algorithm],
                issuer=self.settings.issuer,
                # expiry is checked below against the injected clock
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["sub", "exp", "type", "jti"],
                },
            )
        except jwt.InvalidSignatureError as exc:
            raise InvalidSignature("Token signature mismatch") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedToken(f"Invalid token: {exc}") from exc

        if decoded.get("type") != kind.value:
            raise MalformedToken("Wrong token type")
        subject = decoded.get("sub")
        expires = decoded.get("exp")
        if not isinstance(subject, str) or not subject:
            raise MalformedToken("Token has no subject")
        if isinstance(expires, bool) or not isinstance(expires, (int, float)):
            raise MalformedToken("Token has no usable expiry")
        if self.clock().timestamp() >= expires:
            raise ExpiredToken("Token expired")
        return subject
