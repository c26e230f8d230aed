"""Short passport links: hex tokens are shown to customers in base62"""

import logging
import re

logger = logging.getLogger(__name__)

BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
HEX_PATTERN = re.compile(r"^[0-9a-f]+$")
ALNUM_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def base62_encode(data: bytes) -> str:
    num = int.from_bytes(data, "big")
    if num == 0:
        return "0"
    chars = []
    while num > 0:
        num, rem = divmod(num, 62)
        chars.append(BASE62_ALPHABET[rem])
    return "".join(reversed(chars))


def base62_decode(value: str) -> bytes:
    num = 0
    for ch in value:
        index = BASE62_ALPHABET.find(ch)
        if index == -1:
            raise ValueError(f"Invalid base62 character: {ch!r}")
        num = num * 62 + index
    hex_value = format(num, "x")
    if len(hex_value) % 2:
        hex_value = "0" + hex_value
    return bytes.fromhex(hex_value)


def encode_token(token: str) -> str:
    """32/48-char hex tokens become base62; anything else is returned unchanged"""
    if HEX_PATTERN.match(token) and len(token) in (32, 48):
        return base62_encode(bytes.fromhex(token))
    return token


def decode_token(value: str) -> str:
    if HEX_PATTERN.match(value):
        if len(value) >= 48:
            return value[:48]
        if len(value) == 32:
            return value

    if len(value) < 48 and ALNUM_PATTERN.match(value):
        try:
            decoded = base62_decode(value).hex()
        except ValueError as e:
            logger.warning(f"⚠️ Passport token decode failed: {e}")
            return value
        if len(decoded) <= 32:
            return decoded.rjust(32, "0")
        if len(decoded) <= 48:
            return decoded.rjust(48, "0")

    return value
