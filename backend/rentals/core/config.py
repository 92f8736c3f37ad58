from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Any, ClassVar
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'rentals.db'}"

    # Redis connection URL for caching (empty/"disabled" turns caching off)
    REDIS_URL: str = "redis://localhost:6379/0"

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    CORS_ALLOW_ALL: bool = False

    # Base frontend URL used for payment success/cancel redirects
    FRONTEND_URL: str = "http://localhost:5173"

    LOG_LEVEL: str = "INFO"

    # Google Maps (Distance Matrix + Geocoding)
    GOOGLE_MAPS_API_KEY: str = ""
    DISTANCE_TIMEOUT: float = 8.0
    GEOCODE_TIMEOUT: float = 3.0
    DISTANCE_CACHE_TTL: int = 86400
    # Multiplier applied to straight-line miles when the routing provider is
    # unavailable. 1.0 keeps the plain haversine distance.
    DISTANCE_FALLBACK_FACTOR: float = 1.0

    # Business home base; every travel fee is measured from here.
    HOME_BASE_ADDRESS: str = "4426 Woodward St, Wayne, MI 48184"
    HOME_BASE_LAT: float = 42.2753
    HOME_BASE_LNG: float = -83.3863

    # Sales tax applied to the taxable base (rentals + standard fees)
    TAX_RATE: float = 0.06

    # Stripe hosted checkout
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    STRIPE_TIMEOUT: float = 10.0
    PAYMENT_POLL_INTERVAL: float = 3.0
    PAYMENT_POLL_MAX_ATTEMPTS: int = 40

    # Server-side cart persistence
    CART_TTL_SECONDS: int = 7 * 24 * 3600

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=os.getenv(
            "ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")
        ),
        case_sensitive=True,
    )

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator(
        "GOOGLE_MAPS_API_KEY",
        "STRIPE_SECRET_KEY",
        "FRONTEND_URL",
        mode="before",
    )
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("TAX_RATE")
    def tax_rate_in_range(cls, v: float) -> float:
        if v < 0 or v >= 1:
            raise ValueError("TAX_RATE must be a fraction between 0 and 1")
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(cls, values: "Settings") -> "Settings":
        if values.CORS_ALLOW_ALL:
            values.CORS_ORIGINS = ["*"]
        return values


def load_settings() -> "Settings":
    return Settings()


settings = load_settings()
