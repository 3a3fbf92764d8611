from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Kestrel"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    log_level: str = "INFO"
    cors_origins: str = "http://127.0.0.1:8787"

    database_url: str = "sqlite:///./data/kestrel.db"
    data_dir: Path = Path("./data")
    profile_path: Path = Path("./data/profile.json")

    store_mode: str = "http"
    store_base_url: str = "http://127.0.0.1:8787/api"
    store_timeout_sec: int = 15

    browser_cdp_url: str = "http://localhost:9222"
    site_base_url: str = "https://www.workatastartup.com"
    site_listing_path: str = "/companies"

    listing_settle_ms: int = 2000
    company_settle_ms: int = 1500
    job_settle_ms: int = 1500
    back_settle_ms: int = 1000
    apply_settle_ms: int = 500
    list_return_settle_ms: int = 1000
    company_links_timeout_ms: int = 5000
    company_links_retry_timeout_ms: int = 10000
    landing_timeout_ms: int = 3000
    page_load_timeout_ms: int = 10000
    highlight_pause_ms: int = 800
    typing_delay_ms: int = 10
    typing_timeout_ms: int = 60000
    listing_scroll_px: int = 3000
    listing_scroll_pause_ms: int = 3000
    poll_interval_ms: int = 500

    title_threshold: float = 0.45
    description_threshold: float = 0.45
    title_min_length: int = 5

    require_user_identity: bool = False
    listing_failure_limit: int = 3

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_timeout_sec: int = 60

    local_llm_enabled: bool = True
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_timeout_sec: int = 90

    llm_model_generation: str = "gemma3:4b"
    llm_model_embedding: str = "qwen3-embedding:0.6b"
    llm_router_default: str = "local"
    llm_router_writer_provider: str = "local"
    llm_router_embed_provider: str = "local"
    persona_temperature: float = 0.3
    cover_letter_temperature: float = 0.7

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("store_mode")
    @classmethod
    def validate_store_mode(cls, value: str) -> str:
        allowed = {"http", "local"}
        if value not in allowed:
            raise ValueError(f"store_mode must be one of {sorted(allowed)}")
        return value

    @field_validator("title_threshold", "description_threshold")
    @classmethod
    def validate_threshold(cls, value: float) -> float:
        if value < -1 or value > 1:
            raise ValueError("relevance thresholds must be between -1 and 1")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
