from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LIVEPOLL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: str = "development"

    # Direct URL override (takes precedence if set)
    database_url: str | None = None

    # Individual DB params (used if database_url is not provided)
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "live_poll"
    db_user: str = "postgres"
    db_password: str = "postgres"

    # Keep raw string to avoid JSON parsing issues for lists
    cors_origins_raw: str = Field(default="http://localhost:3000")

    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    # Live session engine
    code_length: int = Field(default=6, ge=4, le=12)
    default_max_participants: int = Field(default=50, ge=1)
    default_poll_duration: int = Field(default=60, ge=1)
    # 0 tears the session down as soon as the teacher socket drops
    teacher_grace_seconds: float = Field(default=0, ge=0)
    outbox_queue_size: int = Field(default=256, ge=1)

    # Bearer tokens
    jwt_secret_key: str = "development-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 12

    @property
    def assembled_db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def cors_origins(self) -> list[str]:
        raw = self.cors_origins_raw
        if not raw:
            return []
        return [part.strip() for part in raw.split(",") if part.strip()]


settings = Settings()
