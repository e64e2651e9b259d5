"""
Runtime configuration for the GIFT CHOICE API.

Values come from the environment (or a local .env file). DATABASE_URL wins;
otherwise a MySQL URL is assembled from the MYSQL_* parts, and with neither
set the service falls back to a local SQLite file.
"""
from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "GIFT CHOICE API"
    environment: str = "development"

    database_url: Optional[str] = None
    mysql_host: Optional[str] = None
    mysql_port: int = 3306
    mysql_user: str = "root"
    mysql_password: str = ""
    mysql_database: str = "giftchoice"
    db_pool_size: int = 10

    session_cookie_name: str = "session_id"
    session_max_age_days: int = 30

    whatsapp_number: str = "919799964364"
    seed_catalog: bool = True
    cors_origins: List[str] = ["*"]
    port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url:
            # SQLAlchemy needs an explicit driver for MySQL
            if url.startswith("mysql://"):
                url = "mysql+pymysql://" + url[len("mysql://"):]
            return url
        if self.mysql_host:
            return (
                f"mysql+pymysql://{quote_plus(self.mysql_user)}:{quote_plus(self.mysql_password)}"
                f"@{self.mysql_host}:{self.mysql_port}/{self.mysql_database}?charset=utf8mb4"
            )
        return "sqlite:///./giftchoice.db"


settings = Settings()
