import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALGORITHM,
    REFRESH_TOKEN_EXPIRE_DAYS,
    SECRET_KEY,
)
from .database import get_db
from .models import User
from .roles import get_user_roles, has_any_role, primary_view

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass
class AuthContext:
    """Everything known about the caller for the lifetime of one request"""

    user: User
    roles: set[str] = field(default_factory=set)
    impersonator_id: Optional[int] = None

    @property
    def is_impersonating(self) -> bool:
        return self.impersonator_id is not None


def create_jwt_token(data: dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.utcnow()
    to_encode.update({"exp": now + expires_delta, "iat": now})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_jwt_token(token: str) -> Optional[dict[str, Any]]:
    """Decode a token, returning None if it is invalid or expired"""
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def create_session(db: Session, user: User, impersonator_id: Optional[int] = None) -> dict:
    """
    Mint an access/refresh token pair for a user.

    When an admin opens an impersonation session the acting admin id travels in
    the `imp` claim of both tokens, so a refreshed impersonation session stays
    marked as one.
    """
    claims: dict[str, Any] = {"sub": str(user.id)}
    if impersonator_id is not None:
        claims["imp"] = impersonator_id

    access_token = create_jwt_token(
        {**claims, "type": ACCESS_TOKEN_TYPE}, timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    refresh_token = create_jwt_token(
        {**claims, "type": REFRESH_TOKEN_TYPE}, timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    )
    roles = get_user_roles(db, user.id)

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": {
            "id": user.id,
            "phone_number": user.phone_number,
            "full_name": user.full_name,
            "roles": sorted(roles),
            "primary_view": primary_view(roles),
        },
    }


def decode_token(token: str, expected_type: str) -> dict[str, Any]:
    payload = verify_jwt_token(token)
    if not payload:
        raise HTTPException(
            status_code=401,
            detail="Token is invalid or has expired. Please sign in again.",
            headers={"X-Token-Expired": "true"},
        )
    if payload.get("type") != expected_type:
        logger.warning(f"Token type mismatch: expected {expected_type}, got {payload.get('type')}")
        raise HTTPException(status_code=401, detail="Invalid token type")
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token claims")
    return payload


def load_active_user(db: Session, user_id: Any) -> User:
    try:
        user = db.query(User).filter(User.id == int(user_id)).first()
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid token claims") from e
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AuthContext:
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    payload = decode_token(credentials.credentials, ACCESS_TOKEN_TYPE)
    user = load_active_user(db, payload["sub"])
    roles = get_user_roles(db, user.id)
    impersonator_id = payload.get("imp")

    logger.debug(f"User authenticated: {user.id} roles={sorted(roles)}")
    return AuthContext(
        user=user,
        roles=roles,
        impersonator_id=int(impersonator_id) if impersonator_id is not None else None,
    )


async def get_current_user(ctx: AuthContext = Depends(get_auth_context)) -> User:
    return ctx.user


def require_roles(*allowed: str):
    """
    Build a dependency that rejects callers holding none of the given roles

    Example usage:
        @router.get("/admin/whitelist")
        async def list_whitelist(ctx: AuthContext = Depends(require_roles("admin", "ceo"))):
            ...
    """
    allowed_set = frozenset(allowed)

    async def role_checker(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not has_any_role(ctx.roles, allowed_set):
            logger.warning(
                f"User {ctx.user.id} denied: needs one of {sorted(allowed_set)}, has {sorted(ctx.roles)}"
            )
            raise HTTPException(status_code=403, detail="دسترسی به این بخش مجاز نیست")
        return ctx

    return role_checker
