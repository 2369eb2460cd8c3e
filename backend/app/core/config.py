import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.paths import resolve_repo_path


def _env_files() -> list[str]:
    base = resolve_repo_path("backend/.env")
    env = os.getenv("VAMOS_ENVIRONMENT", "").strip().lower()
    files = [str(base)]
    if env and env != "development":
        files.append(str(resolve_repo_path(f"backend/.env.{env}")))
    else:
        files.append(str(resolve_repo_path("backend/.env.local")))
    return files


class Settings(BaseSettings):
    app_name: str = "Vamos Recruitment"
    environment: str = "development"

    database_url: str
    company_timezone: str = "Europe/Kyiv"

    llm_mode: Literal["live", "mock"] = "mock"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_tokens: int = 2048

    telegram_bot_token: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 10.0

    public_app_origin: str = ""
    public_app_base_path: str = ""

    cron_secret: str = ""
    enable_scheduler: bool = True
    automation_interval_minutes: int = 5
    analysis_interval_minutes: int = 5
    outreach_interval_minutes: int = 10
    evaluation_interval_minutes: int = 15
    questionnaire_expiry_interval_minutes: int = 60

    automation_batch_size: int = 10
    analysis_batch_size: int = 5
    outreach_batch_size: int = 10
    evaluation_batch_size: int = 5
    inter_item_delay_ms: int = 500

    default_test_task_deadline_days: int = 3

    enable_gmail: bool = False
    gmail_sender_email: str = "hiring@vamos.team"
    gmail_sender_name: str = "Vamos Hiring"
    google_application_credentials: str = "secrets/google-service-account.json"

    model_config = SettingsConfigDict(env_prefix="VAMOS_", env_file=_env_files(), extra="ignore")


settings = Settings()
