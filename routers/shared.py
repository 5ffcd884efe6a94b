"""
Shared models and utilities for routers.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from services.data.region_lookup import RegionLookup
from services.utils.config import CATALOG_PARAMS

# Boundary layer is downloaded on the first naming check and reused afterwards
region_lookup = RegionLookup()


class SelectionMode(str, Enum):
    """Temporal selection mode."""

    FIRST = "first"
    LATEST = "latest"
    COUNT = "count"


class CatalogRequest(BaseModel):
    """Inputs to resolve plus tiling parameters."""

    inputs: List[str] = Field(
        default=[],
        description="Point cloud files, directories or .vpc documents on the server",
        examples=[["/data/lidar/2024/", "/data/lidar/survey_2021.vpc"]],
    )
    catalog: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Inline catalog (GeoJSON FeatureCollection)",
    )
    cell_size: float = Field(
        default=CATALOG_PARAMS["cell_size"],
        description="Tile size in CRS units",
        gt=0,
    )
    tolerance: float = Field(
        default=CATALOG_PARAMS["tolerance"],
        description="Grid snapping tolerance in CRS units (0 disables snapping)",
        ge=0,
    )
    entire_tiles_only: bool = Field(default=CATALOG_PARAMS["entire_tiles_only"])

    @field_validator("inputs")
    @classmethod
    def validate_inputs(cls, v):
        return [item.strip() for item in v if item and item.strip()]

    @model_validator(mode="after")
    def validate_source(self):
        if not self.inputs and self.catalog is None:
            raise ValueError("Provide at least one input path or an inline catalog")
        return self

    def resolver_inputs(self) -> List[Any]:
        """Inline catalog first, then paths."""
        items: List[Any] = []
        if self.catalog is not None:
            items.append(self.catalog)
        items.extend(self.inputs)
        return items


class TableRequest(CatalogRequest):
    full_names: bool = False
    multitemporal_only: bool = False


class SelectionRequest(CatalogRequest):
    """Request model for first/latest/by-count selection."""

    mode: SelectionMode = SelectionMode.FIRST
    n: Optional[int] = Field(
        default=None,
        description="Observation count for mode 'count' (omit for two or more)",
        ge=1,
    )
    multitemporal_only: bool = False


class SpatialFilterRequest(CatalogRequest):
    """Request model for the spatial filter."""

    extent: Union[List[float], Dict[str, Any]] = Field(
        ...,
        description="Point [x, y], bbox [xmin, ymin, xmax, ymax] or a GeoJSON geometry",
        examples=[[547500, 5724500]],
    )
    extent_crs: Optional[int] = Field(
        default=None,
        description="EPSG code of the extent (defaults to the catalog CRS)",
    )
    use_geometry: bool = False


class TemporalFilterRequest(CatalogRequest):
    """Request model for the temporal filter."""

    start: str = Field(..., description="YYYY, YYYY-MM, YYYY-MM-DD or a full ISO datetime", examples=["2024"])
    end: Optional[str] = None


class NamesRequest(CatalogRequest):
    """Request model for the naming check."""

    prefix: str = Field(default=CATALOG_PARAMS["naming_prefix"], min_length=1, max_length=10)
    utm_zone: Optional[int] = Field(default=None, ge=1, le=60)
    region: Optional[str] = Field(default=None, min_length=2, max_length=2)
    year: Optional[int] = None
    full_names: bool = False

    @field_validator("region")
    @classmethod
    def validate_region(cls, v):
        return v.lower() if v else v


class CatalogResponse(BaseModel):
    """Response carrying a (filtered) catalog document."""

    success: bool
    message: str
    count: int = 0
    catalog: Optional[Dict[str, Any]] = None


class TableResponse(BaseModel):
    """Response carrying one row per entry or tile."""

    success: bool
    message: str
    rows: List[Dict[str, Any]] = []
