from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    gemini_api_key: str = ""
    generation_model: str = "gemini-2.5-flash"
    generation_timeout_s: float = 60.0

    # Set use_in_memory=True to bypass any SQL database usage.
    use_in_memory: bool = True
    database_url: str = "sqlite+aiosqlite:///./docchat.db"  # ignored when in-memory

    # Blob storage: MinIO when an endpoint is configured, local directory otherwise
    minio_endpoint: str = ""
    minio_bucket: str = "documents"
    minio_root_user: str = ""
    minio_root_password: str = ""
    local_storage_dir: str = "./uploads"

    max_chunk_size: int = 2000
    history_window: int = 10
    max_upload_bytes: int = 10 * 1024 * 1024

    sync_ingest: bool = False
    ingest_workers: int = 2
    ingest_queue_size: int = 100

    # Without a secret, bearer tokens are decoded but not verified (development mode)
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    log_level: str = "INFO"
    log_dir: Optional[str] = "logs"
    # Enable verbose pipeline stage logs (ingest + chat flow) when True
    pipeline_debug: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
