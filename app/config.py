import logging
from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache
from typing import Self

logger = logging.getLogger(__name__)

DISTRIBUTION_POLICIES = ("noisy", "hash")
COLOR_SCHEMES = ("continuous", "discrete")


class Settings(BaseSettings):
    # App settings
    app_name: str = "HKCensusConnect"
    debug: bool = False

    # CORS - comma-separated list of allowed origins
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Google Gemini (district density inference)
    google_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    # TPU boundary dataset for the geo-accurate map
    boundary_geojson_path: str = "data/2021hktpu.geojson"
    boundary_geojson_fallback_path: str = "data/2021hktpu.geojson.geojson"

    # Sub-region distribution and colouring
    distribution_policy: str = "noisy"  # noisy | hash
    color_scheme: str = "continuous"  # continuous | discrete
    noise_band: float = 10.0

    # Rate limit for endpoints that may call Gemini (slowapi syntax)
    density_rate_limit: str = "30/minute"

    # Sentry Error Monitoring
    sentry_dsn: str = ""
    sentry_environment: str = "development"

    @property
    def inference_enabled(self) -> bool:
        """Remote inference is only attempted with a configured credential."""
        return bool(self.google_api_key.strip())

    @field_validator("distribution_policy")
    @classmethod
    def validate_distribution_policy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in DISTRIBUTION_POLICIES:
            raise ValueError(f"DISTRIBUTION_POLICY must be one of {', '.join(DISTRIBUTION_POLICIES)}")
        return v

    @field_validator("color_scheme")
    @classmethod
    def validate_color_scheme(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in COLOR_SCHEMES:
            raise ValueError(f"COLOR_SCHEME must be one of {', '.join(COLOR_SCHEMES)}")
        return v

    @field_validator("noise_band")
    @classmethod
    def validate_noise_band(cls, v: float) -> float:
        if v < 0 or v > 100:
            raise ValueError("NOISE_BAND must be between 0 and 100")
        return v

    @model_validator(mode="after")
    def validate_config(self) -> Self:
        """Log which optional features are configured."""
        if not self.inference_enabled:
            logger.warning(
                "Config: GOOGLE_API_KEY not set - district densities will use the offline generator"
            )

        configured = []
        if self.inference_enabled:
            configured.append(f"Gemini ({self.gemini_model})")
        if self.sentry_dsn:
            configured.append("Sentry")

        if configured:
            logger.info(f"Config: Enabled features - {', '.join(configured)}")

        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
