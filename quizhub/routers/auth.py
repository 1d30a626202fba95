from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from quizhub.database import get_db
from quizhub.deps import get_current_user
from quizhub.models import User, UserRole
from quizhub.security import create_token, hash_password, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register")
def register(
    email: str = Form(...),
    password: str = Form(...),
    full_name: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
):
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(400, "login exists")

    # самый первый пользователь в системе становится admin
    role = UserRole.ADMIN if db.query(User).count() == 0 else UserRole.STUDENT

    user = User(
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return {"ok": True, "id": user.id, "role": role}


@router.post("/login")
def login(
    response: Response,
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(401, "Invalid login or password")

    token = create_token(user.id, user.role)
    response.set_cookie("access_token", token, httponly=True)
    return {"ok": True, "role": user.role}


@router.post("/token")
def issue_token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    OAuth2-совместимая выдача bearer-токена (Swagger / API-клиенты).
    """
    user = db.query(User).filter(User.email == form_data.username).first()
    if not user or not verify_password(form_data.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid credentials")

    return {"access_token": create_token(user.id, user.role), "token_type": "bearer"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"id": user.id, "email": user.email, "full_name": user.full_name, "role": user.role}
