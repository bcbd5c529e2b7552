from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REELS_", extra="ignore")

    temp_dir: Path = Path("data/tmp")
    outputs_dir: Path = Path("data/outputs")
    fonts_dir: Path = Path("fonts")
    source_font_file: str = "Amiri-Regular.ttf"
    translation_font_file: str = "arial.ttf"
    fallback_background: Path = Path("assets/default_background.mp4")

    provider_base_url: str = "http://api.alquran.cloud/v1"
    fallback_audio_template: str = "https://everyayah.com/data/{reciter}/{surah:03d}{ayah:03d}.mp3"
    request_timeout: float = 30.0
    download_chunk_size: int = 8192

    retry_max_retries: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_multiplier: float = 2.0

    cleanup_max_retries: int = 5
    cleanup_initial_delay: float = 0.5
    cleanup_delay_seconds: float = 1.0

    poll_interval: float = 0.5
    poll_idle_timeout: float = 60.0

    verse_workers: int = 4
    max_workers: int = 2

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    pixel_format: str = "yuv420p"

    source_font_ratio: float = 0.06
    translation_font_ratio: float = 0.04

    progress_backend: Literal["memory", "file"] = "memory"
    progress_store_path: Path = Path("data/state/progress.json")
    subscription_store_path: Path = Path("data/state/subscriptions.json")

    vapid_private_key: str | None = None
    vapid_email: str = "mailto:admin@example.com"

    log_level: str = "INFO"


settings = Settings()
