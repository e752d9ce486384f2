from datetime import datetime, timedelta
import secrets

import bcrypt
from fastapi import HTTPException
from jose import jwt, JWTError

from elearn.core import config


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def generate_token(nbytes: int = 32) -> str:
    """Random hex token for email verification and account registration links"""
    return secrets.token_hex(nbytes)


def generate_pin() -> str:
    """Six digit password reset pin"""
    return f"{secrets.randbelow(1_000_000):06d}"


def create_access_token(subject: str, kind: str, email: str) -> str:
    """
    Sign a bearer token

    kind is "student" for student accounts and "account" for
    admin / tutor / staff accounts.
    """
    payload = {
        "sub": subject,
        "kind": kind,
        "email": email,
        "exp": datetime.utcnow() + timedelta(days=config.TOKEN_EXPIRY_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
