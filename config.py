import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # --- Variant Defaults ---
    desktop_width: int = 1920
    desktop_quality: float = 0.8
    mobile_width: int = 720
    mobile_quality: float = 0.7

    # --- Output Encoding ---
    output_media_type: str = "image/webp"
    resample_filter: str = "lanczos"  # "bilinear", "bicubic" or "lanczos"
    webp_method: int = 4  # Good compression, 2-3x faster than method=6

    # --- HEIC Conversion ---
    conversion_media_type: str = "image/jpeg"
    conversion_quality: float = 0.92
    conversion_timeout_seconds: int = 60

    # --- History ---
    history_backend: str = "file"  # "memory", "file" or "redis"
    history_path: str = ""  # Computed in model_post_init
    history_key: str = "background-optimizer:logs"
    history_max_entries: int = 20
    redis_url: str = ""

    # --- Previews ---
    preview_dir: str = ""  # Empty = system temp dir

    # --- Logging ---
    log_level: str = "WARNING"

    model_config = {"env_prefix": "BACKDROP_", "case_sensitive": False}

    def model_post_init(self, __context) -> None:
        if not self.history_path:
            self.history_path = os.path.join(
                os.path.expanduser("~"), ".backdrop", "history.json"
            )


settings = Settings()
