from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from hookrelay import __version__


class Settings(BaseSettings):
    app_name: str = "hookrelay"
    app_version: str = __version__
    database_url: str = "sqlite:///./hookrelay.db"

    # Celery
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    celery_task_serializer: str = "json"
    celery_result_serializer: str = "json"
    celery_accept_content: List[str] = ["json"]
    celery_timezone: str = "UTC"
    celery_enable_utc: bool = True

    # Global data exposed to payload templates
    site_name: str = "hookrelay"
    site_url: str = "http://localhost:8000"
    admin_email: str = "admin@example.com"

    # Outbound delivery
    default_timeout: int = 30
    max_redirects: int = 5
    verify_ssl: bool = True
    enable_async: bool = True
    response_body_limit: int = 65535
    test_response_body_limit: int = 1000
    signature_tolerance_seconds: int = 300

    # Delivery log retention
    log_retention_days: int = 30
    max_log_entries: int = 1000
    log_cleanup_interval_seconds: int = 86400

    # Polling consumers
    consumer_check_interval_seconds: int = 300
    consumer_timeout: int = 60

    # Inbound routes
    incoming_prefix: str = "/hookrelay/v1/incoming"
    incoming_secret_header: str = "X-Hookrelay-Secret"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def user_agent(self) -> str:
        return f"{self.app_name}/{self.app_version}"


settings = Settings()
