"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # looklab/
_PROJECT_ROOT = _THIS_DIR.parent                     # repo root
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Image-generation vendor (Evolink)
    evolink_api_key: str | None = None
    evolink_base_url: str = "https://api.evolink.ai"
    # Candidate task-status endpoints (comma-separated, {task_id} placeholder)
    looklab_task_status_paths: str = "/v1/tasks/{task_id}"

    # Prompt extractor vendor (APIMart)
    apimart_api_key: str | None = None
    apimart_base_url: str = "https://api.apimart.ai"
    looklab_prompt_extractor_model: str = "gpt-5-nano"

    # Data directory for task state, history and local uploads
    looklab_data_dir: str = "./data"

    # Outbound HTTP resilience
    looklab_http_timeout_seconds: float = 20.0
    looklab_http_retries: int = 1
    looklab_http_retry_backoff_seconds: float = 0.25

    # Task orchestration
    looklab_max_concurrent_tasks: int = 3
    looklab_poll_interval_seconds: float = 2.0
    looklab_elapsed_tick_seconds: float = 1.0
    looklab_max_poll_errors: int = 3
    looklab_elapsed_persist_seconds: float = 10.0
    looklab_max_stored_tasks: int = 100
    looklab_max_task_age_hours: float = 24.0
    looklab_max_history_items: int = 200

    # Blob store: "file" (local uploads dir) or "oss" (Aliyun OSS)
    looklab_blob_backend: str = "file"
    looklab_public_files_url: str = "http://localhost:8000/files"
    aliyun_oss_region: str | None = None
    aliyun_access_key_id: str | None = None
    aliyun_access_key_secret: str | None = None
    aliyun_oss_bucket: str | None = None

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Server bind address, port and dev auto-reload
    host: str = "127.0.0.1"
    port: int = 8000
    looklab_reload: bool = False
    looklab_log_level: str = "info"

    # Max upload size in bytes (default 10 MB, the vendor's per-image limit)
    max_upload_bytes: int = 10 * 1024 * 1024

    @property
    def data_dir(self) -> Path:
        """Get data directory as Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.looklab_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def state_dir(self) -> Path:
        """Directory holding persisted task state and generation history."""
        return self.data_dir / "state"

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def task_status_paths(self) -> list[str]:
        """Parse comma-separated task endpoints into a list."""
        return [p.strip() for p in self.looklab_task_status_paths.split(",") if p.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
