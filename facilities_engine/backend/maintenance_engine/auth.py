# backend/maintenance_engine/auth.py
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from .config import settings
from .errors import Unauthorized
from .store import DocumentStore

logger = logging.getLogger(__name__)


class AdminVerifier(Protocol):
    def verify_admin(self, token: str) -> Optional[str]: ...


# -------------------------
# JWT helpers
# -------------------------
def _b64(x: bytes) -> str:
    return base64.urlsafe_b64encode(x).decode().rstrip("=")


def _ub64(s: str) -> bytes:
    s2 = s + "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s2.encode())


def jwt_sign(payload: dict[str, Any], *, secret: Optional[str] = None) -> str:
    # Minimal HS256 JWT (no pyjwt dependency)
    key = (secret or settings.jwt_secret).encode()
    header_b = _b64(json.dumps({"alg": "HS256", "typ": "JWT"}, separators=(",", ":")).encode())
    payload_b = _b64(json.dumps(payload, separators=(",", ":")).encode())
    msg = f"{header_b}.{payload_b}".encode()
    sig_b = _b64(hmac.new(key, msg, hashlib.sha256).digest())
    return f"{header_b}.{payload_b}.{sig_b}"


def jwt_verify(token: str, *, secret: Optional[str] = None) -> dict[str, Any]:
    key = (secret or settings.jwt_secret).encode()
    try:
        header_b, payload_b, sig_b = token.split(".", 2)
        msg = f"{header_b}.{payload_b}".encode()
        expected = hmac.new(key, msg, hashlib.sha256).digest()
        if not hmac.compare_digest(_ub64(sig_b), expected):
            raise Unauthorized("Invalid token signature")

        payload = json.loads(_ub64(payload_b).decode())
        exp = payload.get("exp")
        if exp is not None and int(exp) < int(datetime.now(timezone.utc).timestamp()):
            raise Unauthorized("Token expired")
        return dict(payload)
    except Unauthorized:
        raise
    except Exception:
        raise Unauthorized("Invalid token")


def issue_admin_token(admin_id: str, *, ttl_minutes: int = 60 * 24, secret: Optional[str] = None) -> str:
    now = datetime.now(timezone.utc)
    return jwt_sign(
        {
            "sub": admin_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
        },
        secret=secret,
    )


class JwtAdminVerifier:
    """Verifies a bearer token and checks its subject against the admin user collection."""

    def __init__(self, store: DocumentStore, *, secret: Optional[str] = None, collection: Optional[str] = None) -> None:
        self.store = store
        self.secret = secret
        self.collection = collection or settings.admin_collection

    def verify_admin(self, token: str) -> Optional[str]:
        try:
            claims = jwt_verify(token, secret=self.secret)
        except Unauthorized as e:
            logger.info("admin token rejected: %s", e.message)
            return None

        sub = str(claims.get("sub") or "").strip()
        if not sub:
            return None
        if self.store.get(self.collection, sub) is None:
            return None
        return sub
