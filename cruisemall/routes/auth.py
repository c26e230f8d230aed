import logging
import random
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import SESSION_COOKIE_NAME, SESSION_COOKIE_SECURE, SESSION_MAX_AGE
from ..database import get_db
from ..email_service import send_welcome_email
from ..models import User
from ..rate_limiter import create_rate_limiter
from ..security_utils import create_session_token, hash_password_bcrypt, verify_password_bcrypt
from ..shared.validators import EMAIL_PATTERN, is_valid_phone, mask_phone_for_log, normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

login_rate_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="login")
signup_rate_limiter = create_rate_limiter(limit=5, window_seconds=300, key_prefix="signup")

MIN_USERNAME_LENGTH = 4
MIN_PASSWORD_LENGTH = 6
MAX_SUGGESTIONS = 3
MALL_SIGNUP_SOURCE = "mall-signup"


class SignupRequest(BaseModel):
    nickname: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "nickname": user.nickname,
        "name": user.name,
        "phone": user.phone,
        "email": user.email,
        "role": user.role,
        "onboarded": user.onboarded,
    }


def _mall_members(db: Session):
    """Duplicate checks only look at mall signups, never at other customers"""
    return db.query(User.id).filter(User.role == "community", User.customer_source == MALL_SIGNUP_SOURCE)


def username_taken(db: Session, username: str) -> bool:
    """Legacy mall accounts stored the login id in `phone`"""
    return _mall_members(db).filter(or_(User.username == username, User.phone == username)).first() is not None


def nickname_taken(db: Session, nickname: str) -> bool:
    """Legacy mall accounts stored the nickname in `name`"""
    return _mall_members(db).filter(or_(User.nickname == nickname, User.name == nickname)).first() is not None


def build_suggestions(base: str, is_taken) -> list[str]:
    candidates = [f"{base}{i}" for i in range(1, 11)]
    candidates += [f"{base}_{i}" for i in range(1, 11)]
    candidates += [f"{base}{random.randint(1000, 9999)}" for _ in range(5)]

    suggestions = []
    seen = set()
    for candidate in candidates:
        if candidate in seen:
            continue
        seen.add(candidate)
        if not is_taken(candidate):
            suggestions.append(candidate)
        if len(suggestions) >= MAX_SUGGESTIONS:
            break
    return suggestions


def conflict(field: str, message: str, suggestions: Optional[list[str]] = None) -> JSONResponse:
    content = {"ok": False, "field": field, "error": message}
    if suggestions is not None:
        content["suggestions"] = suggestions
    return JSONResponse(status_code=409, content=content)


async def send_welcome_email_task(email: str, name: str):
    try:
        await send_welcome_email(email, name)
    except Exception as e:
        logger.warning(f"⚠️ Welcome email to {email} failed: {e}")


@router.post("/signup", status_code=201, dependencies=[Depends(signup_rate_limiter)])
async def signup(data: SignupRequest, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    nickname = (data.nickname or "").strip()
    name = (data.name or "").strip()
    username = (data.username or "").strip()
    email = (data.email or "").strip().lower()
    phone = (data.phone or "").strip()
    password = data.password or ""

    if not all([nickname, name, phone, username, email, password]):
        raise HTTPException(status_code=400, detail="All fields are required")
    if len(username) < MIN_USERNAME_LENGTH:
        raise HTTPException(status_code=400, detail=f"Username must be at least {MIN_USERNAME_LENGTH} characters")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not EMAIL_PATTERN.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if not is_valid_phone(phone):
        raise HTTPException(status_code=400, detail="Invalid phone number")

    try:
        if username_taken(db, username):
            logger.info(f"⚠️ Signup rejected: username '{username}' taken")
            return conflict(
                "username", "Username already in use", build_suggestions(username, lambda c: username_taken(db, c))
            )
        if nickname_taken(db, nickname):
            return conflict(
                "nickname", "Nickname already in use", build_suggestions(nickname, lambda c: nickname_taken(db, c))
            )
        if db.query(User.id).filter(User.email == email).first():
            return conflict("email", "Email already registered")

        user = User(
            username=username,
            nickname=nickname,
            name=name,
            phone=normalize_phone(phone),
            email=email,
            password_hash=hash_password_bcrypt(password),
            role="community",
            customer_source=MALL_SIGNUP_SOURCE,
            customer_status="active",
            onboarded=False,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        logger.warning(f"⚠️ Signup race on username/email for {mask_phone_for_log(phone)}")
        return conflict("username", "Account already exists")
    except OperationalError as e:
        db.rollback()
        logger.error(f"❌ Database unavailable during signup: {e}")
        raise HTTPException(status_code=503, detail="Service temporarily unavailable") from e

    logger.info(f"✅ New mall member {user.id} ({user.username})")
    background_tasks.add_task(send_welcome_email_task, user.email, user.nickname or user.name)
    return {"ok": True, "user": user_payload(user)}


@router.post("/login", dependencies=[Depends(login_rate_limiter)])
async def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    username = data.username.strip()
    user = db.query(User).filter(User.username == username).first()
    if not user:
        user = (
            db.query(User)
            .filter(User.customer_source == MALL_SIGNUP_SOURCE, User.username.is_(None), User.phone == username)
            .first()
        )

    if not user or not verify_password_bcrypt(data.password, user.password_hash):
        logger.info(f"🚫 Failed login for '{username}'")
        raise HTTPException(status_code=401, detail="Invalid username or password")

    user.last_login_at = datetime.utcnow()
    db.commit()

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=create_session_token(user.id),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    return {"ok": True, "user": user_payload(user)}


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {"ok": True, "user": user_payload(user)}
