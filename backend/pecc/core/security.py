"""Password hashing, bearer tokens and the auth dependencies used by routes"""
from datetime import datetime, timezone, timedelta
import logging
import jwt
import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from pecc.core.config import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRATION_HOURS
from pecc.db import DocumentNotFound, DocumentStore, get_store

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        # Stored hash is not a bcrypt hash
        logger.warning("Malformed password hash rejected")
        return False


def create_access_token(user_id: str, expires_in: timedelta = None) -> str:
    issued_at = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + (expires_in or timedelta(hours=JWT_EXPIRATION_HOURS))
        },
        JWT_SECRET,
        algorithm=JWT_ALGORITHM
    )


def decode_access_token(token: str) -> Optional[str]:
    """User id carried by ``token``, or None when it is expired or forged"""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    return payload.get("sub") or None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: DocumentStore = Depends(get_store)
) -> Optional[dict]:
    """Signed-in user document, or None for anonymous requests"""
    if not credentials:
        return None
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        return None
    try:
        return await store.get("users", user_id)
    except DocumentNotFound:
        # Token outlived its account
        return None


async def require_auth(user: Optional[dict] = Depends(get_current_user)) -> dict:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user


async def require_admin(user: dict = Depends(require_auth)) -> dict:
    if not user.get('is_admin'):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
