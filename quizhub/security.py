from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import HTTPException, status

from quizhub.config import settings


# =========================
# Пароли
# =========================

def hash_password(password: str) -> str:
    if not isinstance(password, str):
        raise TypeError("password must be a string")
    # bcrypt возвращает bytes, в БД храним str
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # битый хэш в БД
        return False


# =========================
# JWT‑токены
# =========================

def create_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Access-токен пользователя.

    В payload кладём id и role, id дублируем в стандартное поле "sub".
    """
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "id": user_id,
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Декодирует и валидирует токен, 401 при любой проблеме.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )

    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        )

    # Если в токене только sub — продублируем в id
    if payload.get("id") is None and payload.get("sub") is not None:
        try:
            payload["id"] = int(payload["sub"])
        except ValueError:
            pass
    return payload
