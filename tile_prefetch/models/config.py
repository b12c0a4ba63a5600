"""
Pydantic models for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

from .layers import LayerId

# Web Mercator cannot represent latitudes beyond this value.
MAX_LATITUDE = 85.0511287798
MAX_SUPPORTED_ZOOM = 22

TILE_PLACEHOLDERS = ("{z}", "{x}", "{y}")


class BoundingBox(BaseModel):
    """A geographic area in degrees. Areas crossing the antimeridian are not supported."""

    south: float
    west: float
    north: float
    east: float

    @field_validator("south", "north")
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        if not -90.0 <= v <= 90.0:
            raise ValueError(f"Latitude must be between -90 and 90, got {v}.")
        return v

    @field_validator("west", "east")
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        if not -180.0 <= v <= 180.0:
            raise ValueError(f"Longitude must be between -180 and 180, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_extent(self) -> "BoundingBox":
        if self.south >= self.north:
            raise ValueError("South edge must be below the north edge.")
        if self.west >= self.east:
            raise ValueError(
                "West edge must be left of the east edge "
                "(areas crossing the antimeridian are not supported)."
            )
        return self

    @classmethod
    def parse(cls, text: str) -> "BoundingBox":
        """Parses a 'south,west,north,east' string."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 4:
            raise ValueError(
                f"Bounding box must be 'south,west,north,east', got '{text}'."
            )
        south, west, north, east = (float(p) for p in parts)
        return cls(south=south, west=west, north=north, east=east)

    def to_string(self) -> str:
        return f"{self.south},{self.west},{self.north},{self.east}"

    def clamped(self) -> "BoundingBox":
        """Returns a copy with latitudes clamped to the Web Mercator limit."""
        return BoundingBox.model_construct(
            south=max(self.south, -MAX_LATITUDE),
            west=self.west,
            north=min(self.north, MAX_LATITUDE),
            east=self.east,
        )


class LayerConfig(BaseModel):
    """Where and how tiles of one layer are downloaded."""

    url_template: str
    max_zoom: int = 19
    extension: str = "png"

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("url_template")
    @classmethod
    def validate_url_template(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Tile URL template must be an http(s) URL.")
        has_xyz = all(p in v for p in TILE_PLACEHOLDERS)
        if not has_xyz and "{quadkey}" not in v:
            raise ValueError(
                "Tile URL template must contain {z}, {x} and {y}, or {quadkey}."
            )
        return v

    @field_validator("max_zoom")
    @classmethod
    def validate_max_zoom(cls, v: int) -> int:
        if v < 0 or v > MAX_SUPPORTED_ZOOM:
            raise ValueError(f"Layer max zoom must be between 0 and {MAX_SUPPORTED_ZOOM}.")
        return v

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        v = v.lstrip(".")
        if not v or not v.isalnum():
            raise ValueError("Tile file extension must be alphanumeric, e.g. 'png'.")
        return v.lower()


class PrefetchConfig(BaseModel):
    """A validated configuration model for the application."""

    # Area to make available offline
    bbox: BoundingBox
    min_zoom: int = 12
    max_zoom: int = 17

    # Storage
    cache_dir: str
    cache_max_age_days: int = 30

    # Network
    user_agent: str = "tile-prefetch"
    max_connections: int = 4
    request_timeout: float = 30.0

    aerial: LayerConfig
    mapnik: LayerConfig

    # Internal field not loaded from INI file
    config_path: str = Field(..., repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("min_zoom", "max_zoom")
    @classmethod
    def validate_zoom(cls, v: int) -> int:
        if v < 0 or v > MAX_SUPPORTED_ZOOM:
            raise ValueError(f"Zoom must be between 0 and {MAX_SUPPORTED_ZOOM}.")
        return v

    @field_validator("cache_max_age_days")
    @classmethod
    def validate_cache_age(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Cache max age cannot be negative (0 disables expiry).")
        return v

    @field_validator("max_connections")
    @classmethod
    def validate_connections(cls, v: int) -> int:
        """Ensures a reasonable number of connections."""
        if v < 1 or v > 32:
            raise ValueError("Max connections must be between 1 and 32.")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Request timeout must be positive.")
        return v

    @field_validator("cache_dir")
    @classmethod
    def validate_cache_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Cache directory cannot be empty.")
        return v

    @model_validator(mode="after")
    def validate_zoom_range(self) -> "PrefetchConfig":
        if self.min_zoom > self.max_zoom:
            raise ValueError(
                f"min_zoom ({self.min_zoom}) cannot exceed max_zoom ({self.max_zoom})."
            )
        return self

    def layer(self, layer_id: LayerId | str) -> LayerConfig:
        """Returns the settings of a layer, by LayerId or its string value."""
        return getattr(self, LayerId.parse(layer_id).value)

    def zoom_range(self, layer_id: LayerId | str) -> range:
        """Zoom levels to prefetch for a layer, capped at the layer's own max zoom."""
        top = min(self.max_zoom, self.layer(layer_id).max_zoom)
        return range(self.min_zoom, top + 1)

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns the keys expected in the general section of the INI file."""
        internal_fields = {"config_path", "aerial", "mapnik"}
        return {key for key in cls.model_fields if key not in internal_fields}
