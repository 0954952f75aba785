"""
JWT Authentication for FastAPI

Bearer access tokens and the signed OAuth state parameter are both HS256
JWTs signed with the configured secret. The ``sub`` claim is the user id.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from found_money.api.dependencies import get_profile_store, get_settings
from found_money.config import Settings
from found_money.models.profile import UserProfile
from found_money.store import ProfileStore

bearer_scheme = HTTPBearer(auto_error=False)

STATE_PURPOSE = "email_oauth_state"


def create_access_token(user_id: str, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create JWT access token.

    Args:
        user_id: Token subject
        settings: Provides secret, algorithm and default lifetime
        expires_delta: Override for the token lifetime

    Returns:
        Encoded JWT token
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {"sub": user_id, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_state_token(user_id: str, settings: Settings) -> str:
    """Short-lived signed token carried through the email OAuth round trip."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.oauth_state_expire_minutes)
    to_encode = {"sub": user_id, "purpose": STATE_PURPOSE, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_state_token(token: Optional[str], settings: Settings) -> Optional[str]:
    """User id from a valid state token, None when missing, expired or forged."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("purpose") != STATE_PURPOSE:
        return None
    return payload.get("sub")


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Get the authenticated user id from the bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise credentials_exception
    user_id: Optional[str] = payload.get("sub")
    if not user_id or payload.get("purpose") == STATE_PURPOSE:
        raise credentials_exception
    return user_id


async def get_current_profile(
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_profile_store),
) -> UserProfile:
    """Stored profile of the authenticated user; 404 when none exists."""
    profile = store.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")
    return profile
