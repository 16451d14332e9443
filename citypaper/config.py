"""Configuration management for the wallpaper renderer."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    """Application-level configuration."""

    # API Keys
    google_api_key: Optional[str] = Field(
        default=None,
        description="Google API key for Gemini place search",
    )

    # Directories
    cache_dir: Path = Field(
        default=Path.home() / ".cache" / "citypaper",
        description="Cache directory for downloaded tiles",
    )
    output_dir: Path = Field(
        default=Path.cwd() / "output",
        description="Default output directory for exported wallpapers",
    )

    # Capture
    settle_delay: float = Field(
        default=1.5,
        ge=0.0,
        description="Seconds to wait after the last surface change before capturing",
    )
    pixel_ratio: int = Field(default=3, ge=1, le=4, description="Export oversampling factor")

    # Tile engine
    engine_poll_interval: float = Field(default=0.1, gt=0.0, description="Engine readiness poll interval")
    engine_max_wait: float = Field(default=10.0, gt=0.0, description="Upper bound on engine readiness wait")
    tile_timeout: float = Field(default=15.0, gt=0.0, description="Per-tile HTTP timeout")

    # Reverse geocoding
    geocoder_url: str = Field(
        default="https://nominatim.openstreetmap.org/reverse",
        description="Nominatim-compatible reverse geocoding endpoint",
    )
    geocoder_locale: str = Field(default="zh-CN", description="accept-language hint")
    geocoder_detail_level: int = Field(default=10, ge=0, le=18, description="Reverse lookup zoom")
    user_agent: str = Field(default="citypaper/0.1.0", description="HTTP User-Agent")

    # Model settings
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model for place search (must support the Google Maps tool)",
    )

    @classmethod
    def load(cls) -> "AppConfig":
        """Load configuration from environment and defaults."""
        return cls(
            google_api_key=os.environ.get("GOOGLE_API_KEY"),
            cache_dir=Path(os.environ.get("CITYPAPER_CACHE_DIR", str(cls.model_fields["cache_dir"].default))),
            output_dir=Path(os.environ.get("CITYPAPER_OUTPUT_DIR", str(cls.model_fields["output_dir"].default))),
            settle_delay=float(os.environ.get("CITYPAPER_SETTLE_DELAY", cls.model_fields["settle_delay"].default)),
            geocoder_url=os.environ.get("CITYPAPER_GEOCODER_URL", cls.model_fields["geocoder_url"].default),
            geocoder_locale=os.environ.get("CITYPAPER_LOCALE", cls.model_fields["geocoder_locale"].default),
        )

    def ensure_directories(self) -> None:
        """Create necessary directories."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get or create global configuration."""
    global _config
    if _config is None:
        _config = AppConfig.load()
    return _config
