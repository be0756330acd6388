import hashlib
import hmac
import secrets
import time
from typing import Dict, Optional

import jwt

from . import config

ALGO = "HS256"
SCRYPT_N, SCRYPT_R, SCRYPT_P = 16384, 8, 1


def _scrypt(password: str, salt: str) -> str:
    return hashlib.scrypt(password.encode(), salt=salt.encode(), n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P).hex()


def hash_password(password: str) -> str:
    """Hash with a fresh random salt; returns ``scrypt$<salt>$<hex digest>``."""
    salt = secrets.token_hex(16)
    return f"scrypt${salt}${_scrypt(password, salt)}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, salt, digest = stored.split("$", 2)
    except ValueError:
        return False
    if scheme != "scrypt":
        return False
    return hmac.compare_digest(_scrypt(password, salt), digest)


def mint_account_jwt(account_number: int, ttl_seconds: Optional[int] = None) -> tuple[str, int]:
    """Returns the signed token and its ``exp`` claim (unix seconds)."""
    now = int(time.time())
    exp = now + (config.token_ttl_seconds() if ttl_seconds is None else ttl_seconds)
    payload = {
        "iss": config.jwt_issuer(),
        "sub": str(account_number),
        "account_number": account_number,
        "iat": now,
        "exp": exp,
    }
    return jwt.encode(payload, config.jwt_secret(), algorithm=ALGO), exp


def verify_token(token: str) -> Dict:
    options = {"require": ["exp", "iat", "iss", "sub"]}
    return jwt.decode(
        token,
        config.jwt_secret(),
        algorithms=[ALGO],
        options=options,
        issuer=config.jwt_issuer(),
    )
