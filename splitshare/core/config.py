from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class RabbitMQSettings(BaseSettings):
    """Connection and routing settings for expense event publishing"""
    model_config = SettingsConfigDict(env_prefix="RABBITMQ_", env_file=".env", extra="ignore")

    host: str = "localhost"
    port: int = 5672
    user: str = "guest"
    password: str = "guest"
    vhost: str = "/"
    heartbeat: int = 600
    blocked_connection_timeout: int = 300

    expense_events_exchange: str = "expense.events"
    expense_created_key: str = "expense.created"
    expense_updated_key: str = "expense.updated"
    expense_deleted_key: str = "expense.deleted"
    split_settled_key: str = "expense.split.settled"
    split_unsettled_key: str = "expense.split.unsettled"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Splitshare - Expense Splitting"
    database_url: str = "sqlite:///./splitshare.db"
    secret_key: str = "your_secret_key"
    jwt_algorithm: str = "HS256"
    notifications_enabled: bool = False
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_rabbitmq_settings() -> RabbitMQSettings:
    return RabbitMQSettings()
