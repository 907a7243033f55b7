"""Application configuration."""
import tempfile
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REELFORGE_",
    )

    # App settings
    app_name: str = "ReelForge"
    debug: bool = False

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/reelforge.db"

    # Data directories
    data_dir: Path = Path("./data")
    scratch_dir_name: str = "reelforge_segments"  # Under the system temp dir

    # FFmpeg settings
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    transcode_timeout_seconds: Optional[float] = None  # None = wait forever

    # Extraction
    max_parallel_extractions: int = 4
    extraction_progress_weight: int = 80  # Remaining share belongs to concat
    cleanup_segments_on_failure: bool = False

    # Normalized segment profile
    target_width: int = 1920
    target_height: int = 1080
    target_fps: int = 30
    audio_sample_rate: int = 44100
    audio_channels: int = 2

    # Encoders
    cpu_video_codec: str = "libx264"
    cpu_extract_preset: str = "fast"
    cpu_concat_preset: str = "medium"
    gpu_video_codec: str = "h264_nvenc"
    gpu_preset: str = "p7"
    audio_codec: str = "aac"

    # Reporting
    log_history_size: int = 500

    @property
    def scratch_dir(self) -> Path:
        return Path(tempfile.gettempdir()) / self.scratch_dir_name


settings = Settings()

# Ensure directories exist
settings.data_dir.mkdir(parents=True, exist_ok=True)
