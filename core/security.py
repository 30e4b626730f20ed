from __future__ import annotations

import re

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

PASSWORD_REGEX = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z\d]).{10,128}$")


def validate_password_policy(password: str) -> tuple[bool, str]:
    if not PASSWORD_REGEX.match(password):
        return False, "Password must be 10+ chars with upper, lower, number, and symbol"
    return True, "ok"


def hash_password(password: str) -> str:
    valid, msg = validate_password_policy(password)
    if not valid:
        raise ValueError(msg)
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False
