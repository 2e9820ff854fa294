"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ZONE_PALETTE: tuple[str, ...] = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#FFA07A", "#98D8C8",
    "#F7DC6F", "#BB8FCE", "#85C1E2", "#F8B739", "#52B788",
    "#FF8ED4", "#7DCFB6", "#F79D84", "#9D84B7", "#FFB6B9",
    "#E74C3C", "#3498DB", "#2ECC71", "#F39C12", "#9B59B6",
)


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DZ_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Zone Engine API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for exported files.")
    default_service_radius_m: float = Field(
        default=7000.0,
        gt=0.0,
        description="Service radius (meters) used when a request does not provide one.",
    )
    default_cell_radius_m: float = Field(
        default=300.0,
        gt=0.0,
        description="Circumradius (meters) of each hexagonal cell.",
    )
    grid_cache_size: int = Field(default=32, ge=1, description="Number of generated grids kept in memory.")
    zone_color_palette: tuple[str, ...] = Field(
        default=DEFAULT_ZONE_PALETTE,
        description="Fixed palette zone colours are drawn from.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    zones_table: str = "delivery_zones"
    cells_table: str = "zone_cells"
    service_areas_table: str = "service_areas"

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", "zone_color_palette", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            # Try comma-separated
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            # Single value
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("zone_color_palette")
    @classmethod
    def _require_palette(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("zone_color_palette must contain at least one colour")
        return value


settings = Settings()
