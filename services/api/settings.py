# services/api/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from typing import List
from pathlib import Path

class Settings(BaseSettings):
    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    log_level: str = "INFO"

    # ---- Upload limits ----
    # 0 = disabled (default). When non-zero, an upload set that would push a
    # single file or the session total past the limit is rejected as a whole.
    max_file_size_bytes: int = Field(default=0, ge=0)
    max_total_size_bytes: int = Field(default=0, ge=0)

    # ---- Merge / export ----
    # Default download name when the caller doesn't suggest one
    output_filename: str = "combined.pdf"

    # Progress reported while decoding tops out here; the rest (up to 100)
    # is reserved for saving the merged file.
    encode_progress_threshold: int = Field(default=80, ge=0, lt=100)

    # Max number of merges running in parallel per application instance.
    # Every session shares one pdfium codec and pdfium is not re-entrant,
    # so merges are always serialized.
    max_parallel_merges: int = Field(default=1, ge=1, le=1)

    # ---- Sessions (in-memory only) ----
    session_ttl_seconds: int = 3600
    max_sessions: int = 1000

    model_config = ConfigDict(
        # Always load .env from the same folder as this settings.py
        env_file=str(Path(__file__).resolve().parent / ".env"),
        extra="ignore",
    )

    def get_origins_list(self) -> List[str]:
        """Parse comma-separated origins into a list."""
        if not self.allowed_origins:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


_settings_instance = None

def get_settings() -> Settings:
    """Singleton pattern for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
