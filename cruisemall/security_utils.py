"""
Security utilities: password hashing, session and link tokens, credential
encryption and input sanitization
"""

import base64
import hashlib
import logging
import re
import secrets
from typing import Any, Optional

import bleach
from bleach.css_sanitizer import CSSSanitizer
from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext

from .config import SECRET_KEY, SESSION_MAX_AGE, SMS_ENCRYPTION_KEY

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_SALT = "cruisemall-session"


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password_bcrypt(password: str) -> str:
    return pwd_context.hash(password)


def verify_password_bcrypt(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against bcrypt hash"""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


# ============================================================================
# TOKEN GENERATION & VALIDATION
# ============================================================================


def generate_hex_token(num_bytes: int = 24) -> str:
    """Random hex token (24 bytes -> 48 chars)"""
    return secrets.token_hex(num_bytes)


def _session_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(SECRET_KEY, salt=SESSION_SALT)


def create_session_token(user_id: int) -> str:
    """Signed session cookie value carrying the user id"""
    return _session_serializer().dumps({"uid": user_id})


def verify_session_token(token: str, max_age: int = SESSION_MAX_AGE) -> Optional[int]:
    """
    Verify and decode a session token

    Returns:
        User id if valid, None if invalid or expired
    """
    try:
        data = _session_serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        logger.warning("Session token expired")
        return None
    except BadSignature:
        logger.warning("Invalid session token signature")
        return None

    uid = data.get("uid") if isinstance(data, dict) else None
    return uid if isinstance(uid, int) else None


# ============================================================================
# CREDENTIAL ENCRYPTION
# ============================================================================


def _fernet() -> Fernet:
    if SMS_ENCRYPTION_KEY:
        return Fernet(SMS_ENCRYPTION_KEY.encode())
    # Derive a stable key from SECRET_KEY when no dedicated key is configured
    digest = hashlib.sha256(SECRET_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_credential(value: str) -> str:
    return _fernet().encrypt(value.encode()).decode()


def decrypt_credential(encrypted_value: str) -> Optional[str]:
    """Decrypt a stored credential; None when the ciphertext is unreadable"""
    try:
        return _fernet().decrypt(encrypted_value.encode()).decode()
    except InvalidToken:
        logger.error("❌ Failed to decrypt stored credential (key rotated?)")
        return None


# ============================================================================
# INPUT SANITIZATION
# ============================================================================

LANDING_ALLOWED_TAGS = [
    "p",
    "br",
    "strong",
    "em",
    "u",
    "a",
    "ul",
    "ol",
    "li",
    "h1",
    "h2",
    "h3",
    "h4",
    "img",
    "div",
    "span",
    "section",
    "blockquote",
]


def sanitize_html(html_content: str, allowed_tags: Optional[list] = None) -> str:
    """
    Sanitize partner-authored HTML (landing pages) to prevent XSS

    Args:
        html_content: Raw HTML content
        allowed_tags: List of allowed HTML tags (default: landing page subset)
    """
    if allowed_tags is None:
        allowed_tags = LANDING_ALLOWED_TAGS

    allowed_attributes: dict[str, Any] = {
        "a": ["href", "title", "target"],
        "img": ["src", "alt", "width", "height"],
        "*": ["class", "style"],
    }

    css_sanitizer = CSSSanitizer(
        allowed_css_properties=["color", "background-color", "font-weight", "text-align", "font-size"]
    )

    return bleach.clean(
        html_content,
        tags=allowed_tags,
        attributes=allowed_attributes,
        css_sanitizer=css_sanitizer,
        strip=True,
    )


UNSAFE_FILENAME_CHARS = re.compile(r'[/\\?%*:|"<>]')


def sanitize_filename(filename: str) -> str:
    """Replace characters Drive and most filesystems reject"""
    return UNSAFE_FILENAME_CHARS.sub("_", filename)
