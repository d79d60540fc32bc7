import jwt
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Optional, Dict, Any
from fastapi import Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from quizengine.core.config import settings
from quizengine.core.logging import get_logger, get_security_logger
from quizengine.utils.exceptions import AuthenticationError

logger = get_logger(__name__)
security_logger = get_security_logger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller as supplied by the token issuer"""
    user_id: int
    role: str

    @property
    def is_author(self) -> bool:
        return self.role in settings.author_roles


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token (for internal use)"""
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    expire = datetime.now(UTC) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ACCESS_TOKEN_ALGORITHM)


def verify_access_token(token: str) -> Dict[str, Any]:
    """Verify JWT access token and return its claims"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ACCESS_TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError:
        security_logger.log_authentication_failure("expired token")
        raise AuthenticationError("Authentication token has expired")
    except jwt.InvalidTokenError:
        security_logger.log_authentication_failure("invalid token")
        raise AuthenticationError("Invalid authentication token")


def identity_from_claims(claims: Dict[str, Any]) -> CallerIdentity:
    subject = claims.get("sub")
    role = claims.get("role")
    if subject is None or not role:
        raise AuthenticationError("Invalid token: missing required fields")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token: subject is not a user id")
    if user_id <= 0:
        raise AuthenticationError("Invalid token: subject is not a user id")
    return CallerIdentity(user_id=user_id, role=str(role).lower())


async def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> CallerIdentity:
    """
    Dependency to get the current authenticated caller from a bearer token
    """
    if not credentials:
        raise AuthenticationError("Authentication required")

    claims = verify_access_token(credentials.credentials)
    return identity_from_claims(claims)
