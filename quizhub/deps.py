from typing import Callable, Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from quizhub import models
from quizhub.database import get_db
from quizhub.security import decode_token

# Bearer-токен для API-клиентов; браузер присылает cookie access_token
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


# ---------- ТЕКУЩИЙ ПОЛЬЗОВАТЕЛЬ ----------


def get_current_user(
    bearer_token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Обязательная авторизация. 401, если токена нет / битый / юзер не найден.
    """
    token = bearer_token or access_token
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    data = decode_token(token)
    user_id = data.get("id")
    user = db.get(models.User, user_id) if user_id else None
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    return user


# ---------- ГАРДЫ ПО РОЛЯМ ----------


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != models.UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def require_role(*roles: str) -> Callable[[models.User], models.User]:
    """
    Универсальный гард по ролям.

        @router.post("/quizzes")
        def create_quiz(user: User = Depends(require_role("admin", "teacher"))):
            ...
    """

    def dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access requires one of roles: {', '.join(roles)}",
            )
        return user

    return dependency
