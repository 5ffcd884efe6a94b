#!/usr/bin/env python3
"""
STAC Collection Export

Writes a catalog as a self-contained static STAC collection: one item per
tile with the pointcloud and projection extensions, and a collection extent
computed from the items.
"""

import logging
from pathlib import Path
from typing import List, Optional

import pystac
from shapely.geometry import box, mapping

from services.core.catalog import DATETIME_SOURCE_KEY, Catalog, Entry
from services.processing.coordinate_transformer import CoordinateTransformer
from services.processing.point_cloud_io import STAC_EXTENSIONS, _tile_id

logger = logging.getLogger(__name__)

WGS84 = 4326


def create_safe_item_id(entry: Entry) -> str:
    """STAC item ID from the feature id or the tile filename."""
    raw = entry.feature.get("id") or _tile_id(Path(entry.filename))
    safe_id = str(raw).replace("/", "_").replace(" ", "_")
    return "".join(c for c in safe_id if c.isalnum() or c in ("_", "-", "."))


def _wgs84_bbox(entry: Entry) -> List[float]:
    if entry.epsg is None or entry.epsg == WGS84:
        return list(entry.bbox)
    return list(CoordinateTransformer.transform_bbox(entry.bbox, entry.epsg, WGS84))


def entry_to_item(entry: Entry) -> pystac.Item:
    """
    Build a STAC item for one catalog entry.

    Raises:
        ValueError: If the entry has no datetime
    """
    if entry.datetime is None:
        raise ValueError(f"Entry {entry.href} has no datetime")

    bbox = _wgs84_bbox(entry)
    geometry = entry.feature.get("geometry") or mapping(box(*bbox))

    properties = dict(entry.feature.get("properties") or {})
    properties.pop("datetime", None)
    if entry.epsg is not None:
        properties["proj:epsg"] = entry.epsg
    properties["proj:bbox"] = list(entry.bbox)
    if entry.datetime_source is not None:
        properties[DATETIME_SOURCE_KEY] = entry.datetime_source.value

    item = pystac.Item(
        id=create_safe_item_id(entry),
        geometry=geometry,
        bbox=bbox,
        datetime=entry.datetime,
        properties=properties,
        stac_extensions=list(entry.feature.get("stac_extensions") or STAC_EXTENSIONS),
    )
    item.add_asset("data", pystac.Asset(href=entry.href, roles=["data"]))
    return item


def export_stac_collection(
    catalog: Optional[Catalog],
    output_dir,
    collection_id: str = "lidar-tiles",
    description: str = "Airborne LiDAR point cloud tiles",
) -> Optional[str]:
    """
    Export a catalog as a static STAC collection.

    Entries without a datetime cannot become STAC items and are skipped.

    Args:
        catalog: Catalog to export
        output_dir: Directory receiving ``collection.json`` and the item files
        collection_id: STAC collection ID
        description: Collection description

    Returns:
        Path of the written ``collection.json``, or None if there was nothing to export
    """
    if catalog is None:
        return None

    items = []
    seen_ids = set()
    for entry in catalog:
        if entry.datetime is None:
            logger.warning(f"Skipping {entry.filename}: no datetime for STAC item")
            continue
        item = entry_to_item(entry)
        if item.id in seen_ids:
            logger.warning(f"Duplicate item ID '{item.id}' for {entry.href}. Skipping.")
            continue
        seen_ids.add(item.id)
        items.append(item)

    if not items:
        logger.warning("No catalog entries could be exported to STAC")
        return None

    bboxes = [item.bbox for item in items]
    spatial = pystac.SpatialExtent(
        [[
            min(b[0] for b in bboxes),
            min(b[1] for b in bboxes),
            max(b[2] for b in bboxes),
            max(b[3] for b in bboxes),
        ]]
    )
    datetimes = [item.datetime for item in items]
    temporal = pystac.TemporalExtent([[min(datetimes), max(datetimes)]])

    collection = pystac.Collection(
        id=collection_id,
        description=description,
        extent=pystac.Extent(spatial=spatial, temporal=temporal),
        stac_extensions=list(STAC_EXTENSIONS),
    )
    collection.add_items(items)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    collection.normalize_and_save(
        root_href=str(output_dir), catalog_type=pystac.CatalogType.SELF_CONTAINED
    )
    logger.info(f"Saved STAC collection with {len(items)} items to {output_dir}")
    return str(output_dir / "collection.json")
