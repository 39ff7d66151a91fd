import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

class Config(BaseModel):
    app_name: str = "TalentGrid Rating & Calibration Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./talentgrid.db")
    sql_echo: bool = os.getenv("SQL_ECHO", "false").lower() == "true"

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Enterprise Architecture
    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    commit_hash: str = os.getenv("COMMIT_HASH", "HEAD")
    request_id_header: str = "X-Request-ID"

    # Caller identity headers (authentication happens upstream)
    user_header: str = "X-User-Id"
    user_name_header: str = "X-User-Name"
    account_header: str = "X-Account-Id"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    # Audit artifacts
    verification_base_url: str = os.getenv(
        "VERIFICATION_BASE_URL", "http://localhost:8000/api/calibration/artifacts/verify"
    )

    # Scalability & Performance
    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    bulk_max_workers: int = int(os.getenv("BULK_MAX_WORKERS", "4"))

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "localhost" in settings.verification_base_url:
        raise RuntimeError(
            "FATAL: VERIFICATION_BASE_URL must point to a public host for non-development "
            "environments. Set it as an environment variable."
        )
else:
    if "localhost" in settings.verification_base_url:
        _logger.warning("Using localhost VERIFICATION_BASE_URL, only acceptable in development.")
