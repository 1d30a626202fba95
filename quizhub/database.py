# quizhub/database.py
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from quizhub.config import settings

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

connect_args = {}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    # нужно для SQLite: сессии открываются и в потоке планировщика
    connect_args = {"check_same_thread": False}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Стандартная fastapi-зависимость для получения сессии БД.
    """
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Создаёт таблицы, если их ещё нет.
    Вызывается из lifespan приложения при старте.
    """
    # импортируем модели, чтобы они зарегистрировались в Base.metadata
    from quizhub import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

