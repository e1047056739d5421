from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).parent.parent / "data"


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Storage (check definitions + latest snapshots share one SQLite file)
    db_path: Path = DATA_DIR / "statusboard.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Scheduler
    health_max_workers: int = 16  # thread pool for blocking executors
    refresh_window_seconds: int = 30  # manual refresh-all rate limit per client

    # SendGrid (transactional email)
    sendgrid_api_key: str = ""
    sendgrid_base_url: str = "https://api.sendgrid.com"

    # Companies House (company registry)
    companies_house_api_key: str = ""
    companies_house_base_url: str = "https://api.company-information.service.gov.uk"

    # Google (places + business profile OAuth)
    google_api_key: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    google_refresh_token_ref: str = ""  # e.g. "file:/var/secrets/google-refresh-token"
    google_token_url: str = "https://oauth2.googleapis.com/token"

    # OpenAI (LLM)
    openai_api_key: str = ""
    openai_api_key_ref: str = ""  # e.g. "env:OPENAI_KEY_ENCRYPTED"
    openai_base_url: str = "https://api.openai.com/v1"

    # Zoho CRM
    zoho_accounts_base_url: str = "https://accounts.zoho.eu"
    zoho_crm_base_url: str = "https://www.zohoapis.eu/crm/v2"
    zoho_client_id: str = ""
    zoho_client_secret: str = ""
    zoho_refresh_token: str = ""
    zoho_refresh_token_ref: str = ""

    # DataForSEO (SERP / keyword data)
    dataforseo_login: str = ""
    dataforseo_password: str = ""
    dataforseo_base_url: str = "https://api.dataforseo.com"


settings = Settings()
