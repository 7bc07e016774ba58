"""
Bearer token verification

Tokens are issued by the external auth provider; this service only checks the
signature and reads the user id from the ``sub`` claim.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from spendlog.config import settings
from spendlog.core.exceptions import NotAuthenticatedError

def create_access_token(user_id: int, expires_minutes: int = None, email: str = None) -> str:
    expire = datetime.utcnow() + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode = {"sub": str(user_id), "exp": expire}
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_token(token: Optional[str]) -> Dict[str, Any]:
    """Verified claims with ``sub`` converted to an int user id"""
    if not token:
        raise NotAuthenticatedError()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise NotAuthenticatedError("Invalid authentication")

    try:
        payload["sub"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise NotAuthenticatedError("Invalid authentication")
    return payload

def decode_user_id(token: Optional[str]) -> int:
    return decode_token(token)["sub"]
