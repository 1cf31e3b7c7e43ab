"""Account authentication: password hashing, access tokens and the request user.

A token is honoured only while its account is active and only if it was
issued after the account's last session revocation (password change or
deactivation by an administrator).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.config import settings
from agenda.database import get_db
from agenda.models.user import User, UserRole
from agenda.schemas.auth import TokenPayload
from agenda.utils.logging import get_logger
from agenda.utils.timeutils import ensure_utc

logger = get_logger("auth")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
bearer = HTTPBearer()


class TokenRejected(Exception):
    """Raised by ``decode_access_token``; ``reason`` is shown to the caller."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(
    user: User,
    expires_delta: Optional[timedelta] = None,
    issued_at: Optional[datetime] = None,
) -> str:
    issued = issued_at or datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": issued,
        "exp": issued + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenPayload:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise TokenRejected("Token has expired")
    except JWTError:
        raise TokenRejected("Could not validate credentials")

    try:
        return TokenPayload(
            sub=int(claims["sub"]),
            email=claims["email"],
            role=claims["role"],
            iat=datetime.fromtimestamp(claims["iat"], tz=timezone.utc) if "iat" in claims else None,
            exp=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )
    except (KeyError, ValueError):
        raise TokenRejected("Could not validate credentials")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def ensure_active(user: User) -> None:
    if not user.is_active:
        logger.warning("inactive_account_rejected", user_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )


def revoke_sessions(user: User) -> None:
    """Invalidate every token issued to ``user`` so far."""
    # Token ``iat`` claims have second precision.
    user.sessions_valid_after = datetime.now(timezone.utc).replace(microsecond=0)
    logger.info("sessions_revoked", user_id=user.id)


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """Check credentials for a sign-in and stamp ``last_login``."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        logger.info("login_failed", email=email)
        raise _unauthorized("Incorrect email or password")

    ensure_active(user)
    user.last_login = datetime.now(timezone.utc)
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    try:
        token = decode_access_token(credentials.credentials)
    except TokenRejected as exc:
        raise _unauthorized(exc.reason)

    result = await db.execute(select(User).where(User.id == token.sub))
    user = result.scalar_one_or_none()
    if user is None:
        raise _unauthorized("Could not validate credentials")

    ensure_active(user)
    if user.sessions_valid_after is not None:
        if token.iat is None or token.iat < ensure_utc(user.sessions_valid_after):
            raise _unauthorized("Session has been revoked")
    return user


def require_role(*roles: UserRole):
    """Dependency factory: the current user must hold one of ``roles``."""
    allowed = [r.value for r in roles]

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning("role_denied", user_id=current_user.id, role=current_user.role)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {allowed}",
            )
        return current_user

    return role_checker


require_admin = require_role(UserRole.ADMIN)
