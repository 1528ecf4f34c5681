"""Session identity resolution — verified bearer token or anonymous fingerprint."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import jwt
from fastapi import Request

from coachrelay.core.config import CR_TOKEN_TTL_DAYS
from coachrelay.core.errors import AuthError

logger = logging.getLogger("coachrelay.session.fingerprint")

_ALGORITHM = "HS256"
_DIGEST_CHARS = 16


@dataclass(frozen=True)
class ResolvedIdentity:
    session_id: str
    principal: dict[str, Any] | None = None

    @property
    def anonymous(self) -> bool:
        return self.principal is None


def _digest(material: str) -> str:
    return "user_" + hashlib.sha256(material.encode("utf-8")).hexdigest()[:_DIGEST_CHARS]


# ── Tokens ────────────────────────────────────────────────

def issue_token(
    principal_id: str,
    email: str,
    secret: str,
    session_fingerprint: str | None = None,
    ttl: timedelta = timedelta(days=CR_TOKEN_TTL_DAYS),
) -> str:
    """Mint a token in the shape issued by the authentication service."""
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "principalId": principal_id,
        "principalEmail": email,
        "iat": now,
        "exp": now + ttl,
    }
    if session_fingerprint:
        claims["sessionFingerprint"] = session_fingerprint
    return jwt.encode(claims, secret, algorithm=_ALGORITHM)


def verify_token(token: str, secret: str) -> dict[str, Any]:
    """Decode and verify *token*. Raises AuthError on expiry or tampering."""
    if not secret:
        raise AuthError("Token verification secret not configured")
    try:
        return jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token has expired") from exc
    except jwt.PyJWTError as exc:
        raise AuthError(f"Token validation failed: {exc}") from exc


# ── Resolution ────────────────────────────────────────────

def _bearer(headers: Mapping[str, str]) -> str | None:
    value = headers.get("authorization") or ""
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _principal_identity(principal: dict[str, Any]) -> str | None:
    fingerprint = principal.get("sessionFingerprint")
    if fingerprint:
        return str(fingerprint)
    email = principal.get("principalEmail") or principal.get("email")
    if email:
        return _digest(str(email).strip().lower())
    pid = principal.get("principalId") or principal.get("userId") or principal.get("sub")
    if pid:
        return _digest(f"id:{pid}")
    return None


def anonymous_fingerprint(headers: Mapping[str, str], client_host: str) -> str:
    """Best-effort fingerprint from connection metadata."""
    material = (
        headers.get("user-agent", "")
        + headers.get("accept-language", "")
        + headers.get("accept-encoding", "")
        + (client_host or "")
    )
    return _digest(material)


def resolve_identity(
    headers: Mapping[str, str],
    client_host: str,
    secret: str,
) -> ResolvedIdentity:
    """Return the caller's session identity. Never raises on a bad token."""
    token = _bearer(headers)
    if token:
        try:
            principal = verify_token(token, secret)
            session_id = _principal_identity(principal)
            if session_id:
                return ResolvedIdentity(session_id, principal)
            logger.warning("Verified token carries no usable principal; using anonymous fingerprint")
        except AuthError as exc:
            logger.info("Bearer token rejected (%s); falling back to anonymous fingerprint", exc)
    return ResolvedIdentity(anonymous_fingerprint(headers, client_host))


def resolve_request(request: Request, secret: str) -> ResolvedIdentity:
    host = request.client.host if request.client else ""
    return resolve_identity(request.headers, host, secret)
