"""Bearer token resolution against the external identity provider.

The identity provider issues HS256 JWTs whose ``sub`` claim is the user id.
This module only verifies them; sign-in screens live elsewhere.

Env vars:
- JWT_SECRET (required in prod; default for dev)
- JWT_AUDIENCE (optional; verified when set)
- JWT_EXPIRES_MIN (default 60, used by ``create_access_token``)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import os
import logging
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..domain.errors import Unauthorized


logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    audience: Optional[str] = None
    expires_min: int = 60

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        audience = os.getenv("JWT_AUDIENCE") or None
        expires = int(os.getenv("JWT_EXPIRES_MIN", "60"))
        return JwtConfig(secret=secret, audience=audience, expires_min=expires)


class User(BaseModel):
    id: str
    email: Optional[str] = None
    role: str = "authenticated"


def create_access_token(user: User, cfg: Optional[JwtConfig] = None) -> str:
    """Mint a token the way the identity provider does (dev and tests)."""
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if cfg.audience:
        payload["aud"] = cfg.audience
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def resolve_identity(token: Optional[str], cfg: Optional[JwtConfig] = None) -> User:
    """Return the user a bearer token belongs to or raise ``Unauthorized``."""
    if not token:
        raise Unauthorized("No authorization header")
    cfg = cfg or JwtConfig.from_env()
    options = {"verify_aud": bool(cfg.audience)}
    try:
        data = jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.algorithm],
            audience=cfg.audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.PyJWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise Unauthorized("Authentication failed")
    sub = data.get("sub")
    if not sub:
        raise Unauthorized("Authentication failed")
    return User(id=str(sub), email=data.get("email"), role=str(data.get("role") or "authenticated"))


def bearer_token(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer":
        return None
    return creds.credentials


def get_current_user(token: Optional[str] = Depends(bearer_token)) -> User:
    """FastAPI dependency for the gateway routes."""
    try:
        return resolve_identity(token)
    except Unauthorized as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)
