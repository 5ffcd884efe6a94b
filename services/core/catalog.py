#!/usr/bin/env python3
"""
Catalog Entry Model

A Catalog is the in-memory form of a Virtual Point Cloud (VPC) document: a
STAC-like GeoJSON FeatureCollection where every feature describes one
point-cloud tile (bbox, CRS, acquisition datetime and storage href).

All objects here are immutable; transformations return new instances and
keep the original feature records so that filtered catalogs can be written
back out without losing any properties.
"""

import copy
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime as DateTime
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DATETIME_SOURCE_KEY = "lidar:datetime_source"

BBox = Tuple[float, float, float, float]


class DatetimeSource(str, Enum):
    """Provenance of an entry's datetime."""

    DATA = "data"  # first GPS timestamps of the point records
    CSV = "csv"  # matched from an external reference table
    HEADER = "header"  # file creation (processing) date, not acquisition


def parse_datetime(value: Any) -> Optional[DateTime]:
    """
    Parse an ISO-8601 string into an aware UTC datetime, or None.

    Fractional seconds are dropped, matching the whole-second precision that
    catalog documents are written with.
    """
    if value is None:
        return None
    if isinstance(value, DateTime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = DateTime.fromisoformat(text)
        except ValueError:
            return None
    dt = dt.replace(microsecond=0)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(value: DateTime) -> str:
    return value.astimezone(timezone.utc).strftime(DATETIME_FORMAT)


def _planar_bbox(values: Sequence[float]) -> BBox:
    """Reduce a 4- or 6-value bbox to (xmin, ymin, xmax, ymax)."""
    if len(values) == 4:
        xmin, ymin, xmax, ymax = values
    elif len(values) == 6:
        xmin, ymin, _, xmax, ymax, _ = values
    else:
        raise ValueError(f"bbox must have 4 or 6 values, got {len(values)}")
    return float(xmin), float(ymin), float(xmax), float(ymax)


def _is_relative_path(href: str) -> bool:
    return "://" not in href and not Path(href).is_absolute()


@dataclass(frozen=True)
class Entry:
    """One tile's metadata record."""

    href: str
    bbox: BBox
    epsg: Optional[int]
    datetime: Optional[DateTime] = None
    datetime_source: Optional[DatetimeSource] = None
    geometry: Optional[Dict[str, Any]] = field(default=None, compare=False)
    feature: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_feature(cls, feature: Dict[str, Any], base_dir=None) -> "Entry":
        """
        Build an entry from a catalog feature.

        The native ``proj:bbox`` is preferred over the feature ``bbox`` since
        the latter is usually reprojected to WGS84 and carries rounding errors.
        Relative data hrefs (``./a.laz``) are resolved against ``base_dir``,
        the directory of the catalog file, when given.

        Raises:
            ValueError: If the feature lacks a data href or a usable bbox
        """
        if not isinstance(feature, dict):
            raise ValueError(f"Feature must be an object, got {type(feature).__name__}")

        try:
            href = feature["assets"]["data"]["href"]
        except (KeyError, TypeError):
            raise ValueError(f"Feature {feature.get('id')!r} has no assets.data.href")
        if isinstance(href, list):
            href = href[0]
        href = str(href)
        if base_dir is not None and _is_relative_path(href):
            href = str((Path(base_dir) / href).resolve())
            feature = copy.deepcopy(feature)
            feature["assets"]["data"]["href"] = href

        properties = feature.get("properties") or {}
        raw_bbox = properties.get("proj:bbox") or feature.get("bbox")
        if raw_bbox is None:
            raise ValueError(f"Feature {href!r} has no bbox")

        epsg = properties.get("proj:epsg")
        source = properties.get(DATETIME_SOURCE_KEY)

        return cls(
            href=href,
            bbox=_planar_bbox(raw_bbox),
            epsg=int(epsg) if epsg is not None else None,
            datetime=parse_datetime(properties.get("datetime")),
            datetime_source=DatetimeSource(source) if source else None,
            geometry=properties.get("proj:geometry"),
            feature=feature,
        )

    @property
    def filename(self) -> str:
        return Path(self.href).name

    def footprint(self, use_geometry: bool = False) -> BaseGeometry:
        """Rectangular polygon from the bbox, or the native footprint if requested."""
        if use_geometry and self.geometry:
            return shape(self.geometry)
        return box(*self.bbox)

    def to_feature(self) -> Dict[str, Any]:
        return copy.deepcopy(self.feature)

    def with_datetime(self, value: DateTime, source: DatetimeSource) -> "Entry":
        """Return a copy with a new datetime, updating the backing feature too."""
        feature = self.to_feature()
        properties = feature.setdefault("properties", {})
        properties["datetime"] = format_datetime(value)
        properties[DATETIME_SOURCE_KEY] = source.value
        return replace(self, datetime=value, datetime_source=source, feature=feature)


@dataclass(frozen=True)
class Catalog:
    """An ordered collection of entries plus document-level metadata."""

    entries: Tuple[Entry, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_document(cls, document: Dict[str, Any], base_dir=None) -> "Catalog":
        """
        Build a catalog from a FeatureCollection document.

        ``base_dir`` anchors relative data hrefs, see ``Entry.from_feature``.

        Raises:
            ValueError: If the document is not a FeatureCollection or a feature is malformed
        """
        if not isinstance(document, dict) or document.get("type") != "FeatureCollection":
            raise ValueError("Catalog document must be a GeoJSON FeatureCollection")
        features = document.get("features")
        if features is None:
            features = []
        if not isinstance(features, list):
            raise ValueError("Catalog document 'features' must be a list")

        metadata = {k: v for k, v in document.items() if k not in ("type", "features")}
        entries = tuple(Entry.from_feature(f, base_dir) for f in features)
        return cls(entries=entries, metadata=metadata)

    @classmethod
    def from_file(cls, path) -> "Catalog":
        path = Path(path)
        try:
            with open(path, "r") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in catalog {path}: {e}")
        return cls.from_document(document, base_dir=path.parent)

    @classmethod
    def from_entries(cls, entries: Iterable[Entry], metadata: Optional[Dict] = None) -> "Catalog":
        return cls(entries=tuple(entries), metadata=dict(metadata or {}))

    def to_document(self) -> Dict[str, Any]:
        document = {"type": "FeatureCollection"}
        document.update(copy.deepcopy(self.metadata))
        document["features"] = [e.to_feature() for e in self.entries]
        return document

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    @property
    def hrefs(self) -> List[str]:
        return [e.href for e in self.entries]

    @property
    def epsg_codes(self) -> List[Optional[int]]:
        """Distinct EPSG codes in order of first appearance."""
        seen = []
        for entry in self.entries:
            if entry.epsg not in seen:
                seen.append(entry.epsg)
        return seen

    def has_duplicates(self) -> bool:
        return len(set(self.hrefs)) != len(self.entries)

    def with_entries(self, entries: Iterable[Entry]) -> "Catalog":
        return Catalog(entries=tuple(entries), metadata=self.metadata)

    def subset(self, hrefs: Iterable[str]) -> "Catalog":
        """Keep entries whose href is in ``hrefs``, preserving catalog order."""
        keep = set(hrefs)
        return self.with_entries(e for e in self.entries if e.href in keep)

    def deduplicated(self) -> "Catalog":
        """Drop entries whose href was already seen (first occurrence wins)."""
        seen = set()
        unique = []
        for entry in self.entries:
            if entry.href in seen:
                continue
            seen.add(entry.href)
            unique.append(entry)
        return self.with_entries(unique)


def write_catalog(catalog: Catalog, path, overwrite: bool = False) -> str:
    """
    Write a catalog as a FeatureCollection document.

    Raises:
        FileExistsError: If ``path`` exists and ``overwrite`` is False
    """
    path = Path(path)
    if path.exists() and not overwrite:
        raise FileExistsError(f"Output file exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(catalog.to_document(), f, indent=2)
    logger.info(f"Wrote catalog with {len(catalog)} entries: {path}")
    return str(path)
