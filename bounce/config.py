"""BOUNCE global configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000
    env: str = "development"

    # Export output
    export_dir: Path = Path("./exports")

    # Rendering defaults
    default_bpm: float = 140.0
    default_sample_rate: int = 44100
    min_render_seconds: float = 2.0
    max_render_seconds: float = 300.0
    render_tail_beats: float = 0.5

    # Batch pacing between items (seconds)
    batch_delay_s: float = 0.1

    model_config = {"env_prefix": "BOUNCE_"}


settings = Settings()
