#!/usr/bin/env python3
"""
Administrative Region Lookup

Maps a tile bbox to a two-letter region code using a public
administrative-boundary dataset (German federal states by default). The
boundary layer is downloaded once and cached on the ``RegionLookup`` object;
call ``refresh()`` to reload it or ``invalidate()`` to drop it.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import geopandas as gpd
import requests
from pyproj import CRS
from shapely.geometry import box

from services.processing.coordinate_transformer import CoordinateTransformer
from services.utils.config import CATALOG_PARAMS

logger = logging.getLogger(__name__)

BOUNDARY_CRS = 4326

# Federal state names to ADV region codes
STATE_CODES = {
    "baden-württemberg": "bw",
    "bayern": "by",
    "berlin": "be",
    "brandenburg": "bb",
    "bremen": "hb",
    "hamburg": "hh",
    "hessen": "he",
    "mecklenburg-vorpommern": "mv",
    "niedersachsen": "ni",
    "nordrhein-westfalen": "nw",
    "rheinland-pfalz": "rp",
    "saarland": "sl",
    "sachsen": "sn",
    "sachsen-anhalt": "st",
    "schleswig-holstein": "sh",
    "thüringen": "th",
}


def _is_url(source: str) -> bool:
    return str(source).startswith(("http://", "https://"))


class RegionLookup:
    """Cached bbox-to-region lookup against an administrative boundary layer."""

    def __init__(
        self,
        source: Optional[str] = None,
        code_column: Optional[str] = None,
        name_column: Optional[str] = None,
        sentinel: Optional[str] = None,
        boundaries: Optional[gpd.GeoDataFrame] = None,
        timeout: int = 30,
    ):
        self.source = source or CATALOG_PARAMS["region_source"]
        self.code_column = code_column or CATALOG_PARAMS["region_code_column"]
        self.name_column = name_column or CATALOG_PARAMS["region_name_column"]
        self.sentinel = sentinel or CATALOG_PARAMS["region_sentinel"]
        self.timeout = timeout
        self._boundaries = boundaries
        self._load_error: Optional[Exception] = None

    @property
    def is_loaded(self) -> bool:
        return self._boundaries is not None

    def _download(self) -> gpd.GeoDataFrame:
        if _is_url(self.source):
            logger.info(f"Downloading region boundaries: {self.source}")
            resp = requests.get(self.source, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
            return gpd.GeoDataFrame.from_features(data["features"], crs=f"EPSG:{BOUNDARY_CRS}")

        path = Path(self.source)
        if not path.exists():
            raise FileNotFoundError(f"Region boundary file not found: {path}")
        return gpd.read_file(path)

    def load(self) -> gpd.GeoDataFrame:
        """Return the boundary layer, downloading it on first use."""
        if self._boundaries is None:
            boundaries = self._download()
            if boundaries.crs is None:
                boundaries = boundaries.set_crs(epsg=BOUNDARY_CRS)
            self._boundaries = boundaries.to_crs(epsg=BOUNDARY_CRS)
            logger.info(f"Loaded {len(self._boundaries)} region boundaries")
        return self._boundaries

    def refresh(self) -> gpd.GeoDataFrame:
        self.invalidate()
        return self.load()

    def invalidate(self) -> None:
        self._boundaries = None
        self._load_error = None

    def _code_for(self, row) -> str:
        code = row.get(self.code_column) if self.code_column in row else None
        if isinstance(code, str) and code.strip():
            # ISO 3166-2 style "DE-NI" -> "ni"
            return code.strip().split("-")[-1].lower()
        name = row.get(self.name_column) if self.name_column in row else None
        if isinstance(name, str):
            return STATE_CODES.get(name.strip().lower(), self.sentinel)
        return self.sentinel

    def lookup(self, bbox: Sequence[float], epsg: Optional[int]) -> str:
        """
        Region code of the boundary that overlaps the bbox the most.

        Returns the sentinel code when no region overlaps (e.g. offshore tiles)
        or when the boundary layer cannot be loaded. A failed load is not
        retried until ``refresh()`` or ``invalidate()`` is called.
        """
        if self._load_error is not None:
            return self.sentinel
        try:
            boundaries = self.load()
        except (requests.RequestException, OSError, ValueError, KeyError) as e:
            self._load_error = e
            logger.warning(f"Region boundaries unavailable, using {self.sentinel!r}: {e}")
            return self.sentinel

        native = tuple(bbox)
        wgs84 = native
        if epsg is not None and epsg != BOUNDARY_CRS:
            wgs84 = CoordinateTransformer.transform_bbox(native, epsg, BOUNDARY_CRS)
        footprint = box(*wgs84)

        candidates = boundaries[boundaries.intersects(footprint)]
        if candidates.empty:
            return self.sentinel

        # areas in a projected CRS: the tile's own one, or the local UTM zone
        if epsg is not None and not CRS.from_epsg(epsg).is_geographic:
            area_crs = CRS.from_epsg(epsg)
            area_footprint = box(*native)
        else:
            area_crs = candidates.estimate_utm_crs()
            area_footprint = gpd.GeoSeries([footprint], crs=f"EPSG:{BOUNDARY_CRS}").to_crs(area_crs).iloc[0]
        overlaps = candidates.geometry.to_crs(area_crs).intersection(area_footprint).area
        # point-like or degenerate footprints have zero overlap area
        best = overlaps.idxmax() if overlaps.max() > 0 else candidates.index[0]
        return self._code_for(candidates.loc[best])
