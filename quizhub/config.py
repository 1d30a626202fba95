import os

from dotenv import load_dotenv

# подгружаем .env, если он есть
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Простой класс настроек без pydantic.

    Читает значения из переменных окружения / .env (если он есть).
    Атрибуты, которые использует остальной код:
      - settings.SECRET_KEY / settings.JWT_SECRET_KEY, settings.JWT_ALGORITHM
      - settings.ACCESS_TOKEN_EXPIRE_MINUTES
      - settings.DATABASE_URL, settings.ENV, settings.LOG_LEVEL
      - настройки уборки попыток (grace-периоды, срок хранения, расписание)
    """

    def __init__(self) -> None:
        # Базовый секрет
        secret = os.getenv("SECRET_KEY", "change_me_in_prod")

        # Если заданы альтернативные переменные — используем их
        jwt_secret_env = os.getenv("JWT_SECRET") or os.getenv("JWT_SECRET_KEY")
        if jwt_secret_env:
            secret = jwt_secret_env

        self.SECRET_KEY = secret
        self.JWT_SECRET_KEY = secret
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

        # Время жизни access‑токена (в минутах), по умолчанию 30 дней
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(
            os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "43200")
        )

        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./quizhub.db")
        self.ENV = os.getenv("ENV", "production")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # ---------- попытки и уборка ----------

        # Запас сверх лимита времени, после которого старт теста
        # пересоздаёт зависшую попытку
        self.START_GRACE_MINUTES = int(os.getenv("START_GRACE_MINUTES", "5"))
        # Запас для фоновой почасовой уборки
        self.SWEEP_GRACE_MINUTES = int(os.getenv("SWEEP_GRACE_MINUTES", "30"))

        self.RETENTION_DAYS = int(os.getenv("RETENTION_DAYS", "365"))
        self.RETENTION_FLOOR_DAYS = int(os.getenv("RETENTION_FLOOR_DAYS", "30"))

        # Час (UTC) ежедневной чистки старых завершённых попыток
        self.SWEEP_DAILY_HOUR = int(os.getenv("SWEEP_DAILY_HOUR", "2"))
        self.CLEANUP_SCHEDULER_ENABLED = _env_bool("CLEANUP_SCHEDULER_ENABLED", "true")

        self.LEADERBOARD_SIZE = int(os.getenv("LEADERBOARD_SIZE", "10"))

    @property
    def is_development(self) -> bool:
        return self.ENV.lower() in ("dev", "development")


# Глобальный объект настроек
settings = Settings()
