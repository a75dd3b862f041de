import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil import tz
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import JWT_ALGORITHM, SECRET_KEY
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer()

ACCESS_TOKEN_EXPIRE_MINUTES = 60


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token for a user"""
    expire = datetime.now(tz.UTC) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jose_jwt.encode({"sub": user_id, "exp": expire}, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_access_token(token: str) -> Optional[dict]:
    """
    Verify and decode an access token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user"""
    payload = verify_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if not user:
        logger.warning(f"❌ Token subject {payload['sub']} has no user")
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_current_team_id(current_user: User = Depends(get_current_user)) -> str:
    """Tenant scope for every recurring operation"""
    if not current_user.team_id:
        logger.warning(f"❌ User {current_user.id} has no team")
        raise HTTPException(status_code=401, detail="No team context for this user")
    return current_user.team_id
