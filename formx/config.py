"""
Engine Configuration

Uses pydantic-settings for environment variable loading with validation.
All tunables for the form-definition engine live here.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Environment variables use the FORMX_ prefix (e.g. FORMX_HISTORY_LIMIT=100)
    and can also be provided via a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FORMX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "testing", "production"] = Field(
        default="development",
        description="Runtime environment"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # ==========================================================================
    # History
    # ==========================================================================
    history_limit: int = Field(
        default=50,
        ge=1,
        description="Maximum number of undo steps kept in the past stack"
    )

    defer_history_commits: bool = Field(
        default=True,
        description="Coalesce writes made in the same event-loop turn into one undo step"
    )

    # ==========================================================================
    # Grid containers
    # ==========================================================================
    grid_min_columns: int = Field(
        default=1,
        description="Smallest column count a grid container accepts"
    )

    grid_max_columns: int = Field(
        default=6,
        description="Largest column count a grid container accepts"
    )

    grid_default_columns: int = Field(
        default=2,
        description="Column count assumed when a grid has no columns prop"
    )

    # ==========================================================================
    # Identifiers
    # ==========================================================================
    component_id_length: int = Field(
        default=8,
        ge=4,
        description="Length of the random base36 suffix of component ids"
    )

    # ==========================================================================
    # Property editing / evaluation
    # ==========================================================================
    advanced_mode: bool = Field(
        default=False,
        description="Allow function/computed sources while editing (restricted mode when False)"
    )

    expression_max_steps: int = Field(
        default=10_000,
        description="Interpreter step budget for a single expression or function body"
    )

    # ==========================================================================
    # Dataview cache
    # ==========================================================================
    dataview_records_ttl: float = Field(
        default=3600.0,
        description="Seconds cached dataview records stay fresh"
    )

    dataview_filtered_records_ttl: float = Field(
        default=300.0,
        description="Seconds cached records of a filtered dataview query stay fresh"
    )

    dataview_fields_ttl: float = Field(
        default=86400.0,
        description="Seconds cached dataview field lists stay fresh"
    )

    @computed_field
    @property
    def restricted_mode(self) -> bool:
        """Editors may only pick static, dataKey and dataview sources."""
        return not self.advanced_mode

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
