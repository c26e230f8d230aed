import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import SESSION_COOKIE_NAME
from .database import get_db
from .models import User
from .security_utils import verify_session_token

logger = logging.getLogger(__name__)

# Cookie is the primary transport; Bearer is accepted for API clients
security = HTTPBearer(auto_error=False)


def _resolve_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE_NAME)


def _load_user(db: Session, token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    user_id = verify_session_token(token)
    if user_id is None:
        return None
    return db.query(User).filter(User.id == user_id).first()


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Session user or None - for endpoints that work anonymously too"""
    return _load_user(db, _resolve_token(request, credentials))


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = _resolve_token(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = _load_user(db, token)
    if not user:
        logger.warning(f"⚠️ Invalid or expired session on {request.url.path}")
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        logger.warning(f"🚫 Admin access denied for user {user.id}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
