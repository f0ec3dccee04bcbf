"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # ── Local folder tree ─────────────────────
    BASE_FOLDER: str = "./cases"
    DATE_BUCKET_TZ: str = "UTC"

    # ── Portal API ────────────────────────────
    PORTAL_API_BASE_URL: str = "http://localhost:8080"
    INCOMING_CASES_PATH: str = "/api/cases/incoming"
    REDESIGNS_PATH: str = "/api/redesigns/incoming"
    CONSTANTS_GET_PATH: str = "/api/constants/"
    CONSTANTS_POST_PATH: str = "/api/constants"
    CASE_STATUS_PATH: str = "/api/casefiles/update"

    # ── Box storage ───────────────────────────
    BOX_API_BASE_URL: str = "https://api.box.com/2.0"
    BOX_ACCESS_TOKEN: str = ""
    STORAGE_PAGE_SIZE: int = 100

    # ── Ingestion cycle ───────────────────────
    DOWNLOAD_CONCURRENCY: int = 4
    LOCK_WINDOW_SECONDS: int = 10 * 60
    HTTP_TIMEOUT_SECONDS: float = 60.0
    CYCLE_INTERVAL_SECONDS: float = 60.0

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
