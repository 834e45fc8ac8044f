"""Application configuration via environment variables."""

import os
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    port: int = 8080
    log_level: str = "INFO"

    # Scratch storage
    tmp_dir: str = "/tmp/lut-action"
    max_input_gb: int = 25
    max_lut_file_bytes: int = 10 * 1024 * 1024

    # Transcoding
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    transcode_timeout_seconds: float = 300.0
    processing_mode: str = "local"  # "local" downloads first, "remote" streams the CDN URL

    # Frame.io
    frameio_base_url: str = "https://api.frame.io/v4"
    frameio_access_token: Optional[str] = None
    frameio_request_timeout_seconds: float = 30.0

    # Webhook security
    webhook_secret: str = ""
    signature_max_age_seconds: int = 300

    # Job processing
    job_retention_hours: int = 24
    temp_file_max_age_hours: int = 2
    sweep_interval_minutes: int = 15

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def max_input_bytes(self) -> int:
        return self.max_input_gb * 1024 * 1024 * 1024

    @property
    def processing_dir(self) -> str:
        return os.path.join(self.tmp_dir, "processing")

    @property
    def lut_storage_dir(self) -> str:
        return os.path.join(self.tmp_dir, "luts")


settings = Settings()
