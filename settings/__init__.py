"""
Настройки приложения с использованием pydantic_settings
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr
from typing import Optional


class DatabaseSettings(BaseSettings):
    """Настройки подключения к PostgreSQL"""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Настройки подключения
    host: str = Field(
        default="localhost",
        description="Хост базы данных PostgreSQL"
    )

    port: int = Field(
        default=5432,
        description="Порт базы данных PostgreSQL"
    )

    user: str = Field(
        default="postgres",
        description="Имя пользователя базы данных"
    )

    password: SecretStr = Field(
        default=SecretStr(""),
        description="Пароль базы данных"
    )

    database: str = Field(
        default="rizq",
        description="Имя базы данных"
    )

    # Полный async URL (например sqlite+aiosqlite:///./rizq.db), перекрывает host/port/...
    url_override: Optional[str] = Field(
        default=None,
        description="Полный async URL подключения (опционально)"
    )

    # Дополнительные настройки
    pool_size: int = Field(
        default=5,
        description="Размер пула соединений"
    )

    max_overflow: int = Field(
        default=10,
        description="Максимальное количество переполнений пула"
    )

    pool_timeout: int = Field(
        default=30,
        description="Таймаут ожидания соединения из пула (секунды)"
    )

    echo: bool = Field(
        default=False,
        description="Логировать SQL запросы"
    )

    @property
    def url(self) -> str:
        """Возвращает URL подключения к базе данных (sync, для alembic)"""
        password_value = self.password.get_secret_value() if self.password else ""
        return f"postgresql://{self.user}:{password_value}@{self.host}:{self.port}/{self.database}"

    @property
    def async_url(self) -> str:
        """Возвращает async URL подключения к базе данных"""
        if self.url_override:
            return self.url_override
        password_value = self.password.get_secret_value() if self.password else ""
        return f"postgresql+asyncpg://{self.user}:{password_value}@{self.host}:{self.port}/{self.database}"

    @property
    def is_sqlite(self) -> bool:
        return self.async_url.startswith("sqlite")


class RedisSettings(BaseSettings):
    """Настройки подключения к Redis (используется для realtime feed)"""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    host: str = Field(
        default="localhost",
        description="Хост Redis"
    )

    port: int = Field(
        default=6379,
        description="Порт Redis"
    )

    password: Optional[SecretStr] = Field(
        default=None,
        description="Пароль Redis (опционально)"
    )

    db: int = Field(
        default=0,
        description="Номер базы данных Redis"
    )

    channel_prefix: str = Field(
        default="rizq:changes",
        description="Префикс каналов pub/sub для событий изменений"
    )

    @property
    def url(self) -> str:
        """Возвращает URL подключения к Redis"""
        password_value = self.password.get_secret_value() if self.password else ""
        if password_value:
            return f"redis://:{password_value}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class StoreSettings(BaseSettings):
    """Таймауты и повторы для обращений к хранилищу"""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    call_timeout: Optional[float] = Field(
        default=10.0,
        description="Таймаут одного запроса к БД (секунды), None - без таймаута"
    )

    retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Количество попыток для TransientError"
    )

    retry_backoff: float = Field(
        default=0.2,
        ge=0,
        description="Базовая задержка между попытками (секунды), растет экспоненциально"
    )


class Settings(BaseSettings):
    """Основные настройки приложения"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Настройки приложения
    app_name: str = Field(
        default="Rizq API",
        description="Название приложения"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Версия приложения"
    )

    debug: bool = Field(
        default=False,
        description="Режим отладки"
    )

    log_level: str = Field(
        default="INFO",
        description="Уровень логирования"
    )

    # Secret для проверки JWT, выданных платформой авторизации
    jwt_secret: SecretStr = Field(
        default=SecretStr("default-secret-key-change-in-production"),
        description="HS256 secret for verifying access tokens"
    )

    jwt_audience: Optional[str] = Field(
        default=None,
        description="Ожидаемый aud в токене (опционально)"
    )

    # memory | redis
    realtime_backend: str = Field(
        default="memory",
        description="Бэкенд ленты изменений: memory или redis"
    )

    # Настройки базы данных
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    # Настройки Redis
    redis: RedisSettings = Field(default_factory=RedisSettings)

    # Таймауты/повторы хранилища
    store: StoreSettings = Field(default_factory=StoreSettings)

    @property
    def uses_redis(self) -> bool:
        return self.realtime_backend.lower() == "redis"


# Экспортируем для удобства
__all__ = [
    "Settings",
    "DatabaseSettings",
    "RedisSettings",
    "StoreSettings",
]
