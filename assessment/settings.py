# assessment/settings.py

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


@dataclass
class Settings:
    # --- LLM ---
    openai_api_key: Optional[str] = None
    llm_model: str = "gpt-4o"
    llm_timeout_seconds: float = 60.0
    llm_max_output_tokens: int = 2000
    llm_temperature: float = 0.7
    analysis_mode: str = "structured"  # structured | text
    vertex_project: str = ""
    vertex_region: str = "us-central1"

    # --- Storage ---
    database_url: str = ""
    db_host: str = ""
    db_port: int = 5432
    db_name: str = ""
    db_user: str = ""
    db_password: Optional[str] = None
    db_secret_id: Optional[str] = None
    result_ttl_days: int = 90
    error_log_bucket: Optional[str] = None

    # --- Request gate ---
    rate_limit_max_requests: int = 5
    rate_limit_window_seconds: int = 15 * 60

    public_base_url: str = "http://localhost:3000"

    @property
    def structured_output(self) -> bool:
        return self.analysis_mode.strip().lower() != "text"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            llm_model=os.getenv("LLM_MODEL", "gpt-4o"),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 60.0),
            llm_max_output_tokens=_env_int("LLM_MAX_OUTPUT_TOKENS", 2000),
            llm_temperature=_env_float("LLM_TEMPERATURE", 0.7),
            analysis_mode=os.getenv("ANALYSIS_MODE", "structured"),
            vertex_project=os.getenv("GOOGLE_CLOUD_PROJECT", ""),
            vertex_region=os.getenv("GOOGLE_CLOUD_REGION", "us-central1"),
            database_url=os.getenv("DATABASE_URL", ""),
            db_host=os.getenv("DB_HOST", "localhost"),
            db_port=_env_int("DB_PORT", 5432),
            db_name=os.getenv("DB_NAME", ""),
            db_user=os.getenv("DB_USER", ""),
            db_password=os.getenv("DB_PASSWORD") or None,
            db_secret_id=os.getenv("DB_SECRET_ID") or None,
            result_ttl_days=_env_int("RESULT_TTL_DAYS", 90),
            error_log_bucket=os.getenv("ERROR_LOG_BUCKET") or None,
            rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", 5),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000"),
        )
