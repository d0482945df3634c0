"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from typing import Annotated, List, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_OBJECTS = ["18", "1", "3", "16", "15", "4"]


class GardenSettings(BaseSettings):
    """Application settings, read from GARDEN_* environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="GARDEN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    service_name: str = "garden-server"
    environment: str = Field(default="development", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(default="json", description="Log renderer")
    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=4000, ge=1, le=65535, description="API port")
    cors_origins: str = Field(default="*", description="Allowed CORS origins (comma-separated)")

    # Placement
    max_capacity: int = Field(default=22, ge=1, description="Maximum number of placed objects")
    default_objects: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_OBJECTS),
        description="Objects placed by reinitialize",
    )
    seed_on_startup: bool = Field(default=False, description="Reinitialize the garden at startup")

    # Idle policy
    idle_timeout_seconds: float = Field(default=300.0, gt=0, description="Idle interval before the idle action")
    idle_protect_min: int = Field(default=1, ge=0, description="Lower bound of the idle protection band")
    idle_protect_max: int = Field(default=6, ge=0, description="Upper bound of the idle protection band")
    idle_action: Literal["reinitialize", "remove_oldest_half"] = Field(
        default="reinitialize",
        description="Policy run when the idle timer fires",
    )

    # Connections
    stale_connection_seconds: int = Field(default=300, gt=0)
    health_check_interval_seconds: float = Field(default=60.0, gt=0)

    # Notifications
    notification_timeout_seconds: float = Field(default=5.0, gt=0, description="Per-notification emit timeout")

    @field_validator("default_objects", mode="before")
    @classmethod
    def parse_default_objects(cls, v):
        """Parse default objects from a comma-separated string"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return [str(item) for item in v]

    @model_validator(mode="after")
    def check_protection_band(self):
        if self.idle_protect_min > self.idle_protect_max:
            raise ValueError(
                f"idle_protect_min ({self.idle_protect_min}) must not exceed "
                f"idle_protect_max ({self.idle_protect_max})"
            )
        return self

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> GardenSettings:
    """Get cached settings instance"""
    return GardenSettings()
