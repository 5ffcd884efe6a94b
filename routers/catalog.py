"""
Catalog endpoints: resolve, validate, classify and filter point cloud tiles.
"""

import logging
from dataclasses import asdict
from typing import Callable, Optional

from fastapi import APIRouter, HTTPException

from services.core.catalog import Catalog
from services.core.extent import spatial_extent, temporal_extent
from services.core.grid import check_tiling
from services.core.multitemporal import classify, multitemporal_table
from services.core.resolver import resolve
from services.core.selection import select_by_count, select_first, select_latest
from services.processing.spatial_filter import filter_spatial
from services.processing.temporal_filter import filter_temporal
from services.utils.naming import check_names

from . import shared
from .shared import (
    CatalogRequest,
    CatalogResponse,
    NamesRequest,
    SelectionMode,
    SelectionRequest,
    SpatialFilterRequest,
    TableRequest,
    TableResponse,
    TemporalFilterRequest,
)

logger = logging.getLogger("lidar-catalog-api")

router = APIRouter(prefix="/catalog")


def _run(label: str, operation: Callable):
    """Run a catalog operation, mapping input errors to 400 and failures to 500."""
    try:
        return operation()
    except HTTPException:
        raise
    except ValueError as e:
        logger.warning(f"{label}: invalid request: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except FileExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"{label} failed: {e}")
        raise HTTPException(status_code=500, detail=f"{label} failed: {str(e)}")


def _resolve(request: CatalogRequest) -> Optional[Catalog]:
    return resolve(request.resolver_inputs())


def _catalog_response(result: Optional[Catalog], empty_message: str) -> CatalogResponse:
    if result is None:
        return CatalogResponse(success=True, message=empty_message)
    return CatalogResponse(
        success=True,
        message=f"{len(result)} entries",
        count=len(result),
        catalog=result.to_document(),
    )


def _table_response(rows, empty_message: str) -> TableResponse:
    if not rows:
        return TableResponse(success=True, message=empty_message)
    return TableResponse(success=True, message=f"{len(rows)} rows", rows=rows)


@router.post("/resolve", response_model=CatalogResponse)
def resolve_catalog(request: CatalogRequest):
    """Resolve paths and inline catalogs into one deduplicated catalog."""
    result = _run("Resolve", lambda: _resolve(request))
    return _catalog_response(result, "No valid catalogs or LAS/LAZ/COPC files found")


@router.post("/check-tiling", response_model=TableResponse)
def check_catalog_tiling(request: TableRequest):
    """Check every tile's size and grid alignment."""

    def operation():
        return check_tiling(
            _resolve(request),
            cell_size=request.cell_size,
            tolerance=request.tolerance,
            full_names=request.full_names,
        )

    return _table_response(_run("Tiling check", operation), "No tiles found")


@router.post("/multitemporal", response_model=TableResponse)
def multitemporal_overview(request: TableRequest):
    """Group tiles and report how often each was observed."""

    def operation():
        groups = classify(
            _resolve(request),
            cell_size=request.cell_size,
            tolerance=request.tolerance,
            entire_tiles_only=request.entire_tiles_only,
        )
        return multitemporal_table(
            groups,
            full_names=request.full_names,
            multitemporal_only=request.multitemporal_only,
        )

    return _table_response(
        _run("Multi-temporal classification", operation), "No tiles found matching criteria"
    )


@router.post("/filter/selection", response_model=CatalogResponse)
def filter_selection(request: SelectionRequest):
    """Keep the first or latest acquisition per tile, or tiles observed n times."""

    def operation():
        catalog = _resolve(request)
        groups = classify(
            catalog,
            cell_size=request.cell_size,
            tolerance=request.tolerance,
            entire_tiles_only=request.entire_tiles_only,
        )
        if not groups:
            return None
        if request.multitemporal_only and request.mode != SelectionMode.COUNT:
            groups = [g for g in groups if g.is_multitemporal]

        if request.mode == SelectionMode.FIRST:
            selected = select_first(groups)
        elif request.mode == SelectionMode.LATEST:
            selected = select_latest(groups)
        else:
            selected = select_by_count(groups, request.n)
        if selected is None:
            return None
        return catalog.subset(selected.hrefs)

    result = _run("Selection", operation)
    return _catalog_response(result, "No tiles found matching criteria")


@router.post("/filter/spatial", response_model=CatalogResponse)
def filter_catalog_spatial(request: SpatialFilterRequest):
    """Keep tiles intersecting a point, bbox or geometry."""

    def operation():
        return filter_spatial(
            _resolve(request),
            request.extent,
            extent_crs=request.extent_crs,
            use_geometry=request.use_geometry,
        )

    result = _run("Spatial filter", operation)
    return _catalog_response(result, "No features intersect the specified extent")


@router.post("/filter/temporal", response_model=CatalogResponse)
def filter_catalog_temporal(request: TemporalFilterRequest):
    """Keep tiles acquired within a (possibly truncated) date range."""
    result = _run(
        "Temporal filter",
        lambda: filter_temporal(_resolve(request), request.start, request.end),
    )
    return _catalog_response(result, "No features within the specified temporal range")


@router.post("/check-names", response_model=TableResponse)
def check_catalog_names(request: NamesRequest):
    """Compare file names against the canonical tile naming schema."""

    def operation():
        results = check_names(
            _resolve(request),
            prefix=request.prefix,
            utm_zone=request.utm_zone,
            region=request.region,
            year=request.year,
            region_lookup=shared.region_lookup,
            cell_size=request.cell_size,
            tolerance=request.tolerance,
            full_names=request.full_names,
        )
        return [asdict(r) for r in results] if results is not None else None

    return _table_response(_run("Naming check", operation), "No files to check")


@router.post("/extent")
def catalog_extent(request: CatalogRequest):
    """Combined spatial and temporal extent of the resolved catalog."""

    def operation():
        catalog = _resolve(request)
        spatial = spatial_extent(catalog, per_file=False, verbose=False)
        temporal = temporal_extent(catalog, per_file=False, verbose=False)
        return {
            "success": True,
            "count": len(catalog) if catalog is not None else 0,
            "epsg": catalog.epsg_codes if catalog is not None else [],
            "spatial": spatial[0] if spatial else None,
            "temporal": temporal[0] if temporal else None,
        }

    return _run("Extent", operation)
