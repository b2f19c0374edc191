from datetime import datetime, timedelta, timezone
import enum
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from . import config
from .db import async_session
from .models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# prefer a pure-Python, widely-available scheme for tests and portability;
# keep bcrypt as a fallback if available.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/token", auto_error=False)


class TokenData(BaseModel):
    user_id: Optional[str] = None


class AccountState(str, enum.Enum):
    PASSWORD_ONLY = 'password-only'
    EXTERNAL_ONLY = 'external-only'
    LINKED = 'linked'


def account_state(user: User) -> Optional[AccountState]:
    """Derive the linking state from the credential flags.

    Returns None for a row with neither credential, which no flow creates.
    """
    if user.has_password and user.has_google_login:
        return AccountState.LINKED
    if user.has_password:
        return AccountState.PASSWORD_ONLY
    if user.has_google_login:
        return AccountState.EXTERNAL_ONLY
    return None


def user_projection(user: User) -> dict:
    """Public view of a user; never includes the password hash."""
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'hasPassword': bool(user.has_password),
        'hasGoogleLogin': bool(user.has_google_login),
        'profilePictureUrl': user.profile_picture_url,
        'isAccountLinked': account_state(user) is AccountState.LINKED,
    }


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # unrecognised hash format (e.g. a row imported from another system)
        logger.warning('unverifiable password hash format')
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    # RFC 7519 NumericDate (seconds since epoch)
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[User]:
    """Resolve the bearer token to a User.

    No token means an anonymous caller (None). A token that is present but
    invalid, expired or names an unknown user is a 401.
    """
    if not token:
        return None
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
        token_data = TokenData(user_id=user_id)
    except JWTError:
        raise credentials_exception
    async with async_session() as sess:
        user = await sess.get(User, token_data.user_id)
    if user is None:
        raise credentials_exception
    return user


async def require_login(user: Optional[User] = Depends(get_current_user)) -> User:
    """Dependency that enforces an authenticated user."""
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    return user
