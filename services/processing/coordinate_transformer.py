#!/usr/bin/env python3
"""
Coordinate Transformation Module

Handles reprojection of extents and tile footprints between EPSG codes.
"""

import logging
from functools import lru_cache
from typing import Tuple

from pyproj import CRS, Transformer
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

logger = logging.getLogger(__name__)


@lru_cache(maxsize=32)
def _get_transformer(source_epsg: int, target_epsg: int) -> Transformer:
    return Transformer.from_crs(
        CRS.from_epsg(source_epsg), CRS.from_epsg(target_epsg), always_xy=True
    )


class CoordinateTransformer:
    """Handles coordinate transformations between different CRS."""

    @staticmethod
    def transform_geometry(
        geometry: BaseGeometry, source_epsg: int, target_epsg: int
    ) -> BaseGeometry:
        """
        Reproject a shapely geometry.

        Args:
            geometry: Geometry in ``source_epsg`` coordinates
            source_epsg: EPSG code of the input geometry
            target_epsg: EPSG code to transform into

        Returns:
            The geometry in ``target_epsg`` coordinates (unchanged if codes match)
        """
        if int(source_epsg) == int(target_epsg):
            return geometry

        logger.debug(f"Transforming geometry: EPSG:{source_epsg} -> EPSG:{target_epsg}")
        try:
            transformer = _get_transformer(int(source_epsg), int(target_epsg))
            return transform(transformer.transform, geometry)
        except Exception as e:
            logger.error(f"Transformation failed: {e}")
            raise RuntimeError(f"Coordinate transformation failed: {e}")

    @staticmethod
    def transform_bbox(
        bbox: Tuple[float, float, float, float], source_epsg: int, target_epsg: int
    ) -> Tuple[float, float, float, float]:
        """Reproject a bbox and return the bounds of the transformed rectangle."""
        if int(source_epsg) == int(target_epsg):
            return tuple(bbox)
        # densify the edges so curved projections keep their true bounds
        rectangle = box(*bbox).segmentize(max(bbox[2] - bbox[0], bbox[3] - bbox[1]) / 8 or 1)
        return CoordinateTransformer.transform_geometry(
            rectangle, source_epsg, target_epsg
        ).bounds
