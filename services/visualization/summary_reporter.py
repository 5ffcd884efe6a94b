"""
Summary Report Generator

Generates JSON summary reports for a classified catalog: tiling validity,
multi-temporal coverage, datetime provenance and extents.
"""

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from services.core.catalog import Catalog
from services.core.extent import spatial_extent, temporal_extent
from services.core.grid import check_tiling
from services.core.multitemporal import TileGroup, classify

logger = logging.getLogger(__name__)


class SummaryReporter:
    """Generates summary reports for catalogs."""

    def __init__(self, output_dir: Path):
        """
        Initialize the summary reporter.

        Args:
            output_dir: Output directory for reports
        """
        self.output_dir = Path(output_dir)

    def build_report(
        self,
        catalog: Catalog,
        cell_size=1000,
        tolerance=1,
        entire_tiles_only: bool = True,
    ) -> Dict[str, Any]:
        """Collect the report contents without writing them."""
        groups = classify(
            catalog,
            cell_size=cell_size,
            tolerance=tolerance,
            entire_tiles_only=entire_tiles_only,
        ) or []
        tiling = check_tiling(catalog, cell_size, tolerance) or []

        return {
            "entries": len(catalog),
            "epsg": catalog.epsg_codes,
            "parameters": {
                "cell_size": cell_size,
                "tolerance": tolerance,
                "entire_tiles_only": entire_tiles_only,
            },
            "tiling": self._calculate_tiling_stats(tiling),
            "multitemporal": self._calculate_multitemporal_stats(groups),
            "datetime_sources": self._count_datetime_sources(catalog),
            "spatial_extent": self._first(spatial_extent(catalog, per_file=False, verbose=False)),
            "temporal_extent": self._first(temporal_extent(catalog, per_file=False, verbose=False)),
        }

    def create_summary_report(
        self,
        catalog: Catalog,
        cell_size=1000,
        tolerance=1,
        entire_tiles_only: bool = True,
        filename: str = "catalog_report.json",
    ) -> str:
        """
        Create a summary report of a catalog.

        Returns:
            Path to the generated report file
        """
        report = self.build_report(catalog, cell_size, tolerance, entire_tiles_only)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        report_path = self.output_dir / filename
        with open(report_path, "w") as f:
            json.dump(report, f, indent=2)

        self._log_summary_info(report)
        logger.info(f"Summary report saved: {report_path}")

        return str(report_path)

    @staticmethod
    def _first(rows: Optional[List[Dict]]) -> Optional[Dict]:
        return rows[0] if rows else None

    def _calculate_tiling_stats(self, rows: List[Dict]) -> Dict[str, Any]:
        total = len(rows)
        valid = sum(1 for r in rows if r["valid"])
        return {
            "valid_tiles": valid,
            "invalid_size": sum(1 for r in rows if not r["size_ok"]),
            "invalid_grid": sum(1 for r in rows if not r["grid_ok"]),
            "valid_rate": float(valid / total) if total > 0 else 0.0,
        }

    def _calculate_multitemporal_stats(self, groups: List[TileGroup]) -> Dict[str, Any]:
        if not groups:
            return {
                "tiles": 0,
                "multitemporal_tiles": 0,
                "observations_histogram": {},
                "mean_observations": 0.0,
                "max_observations": 0,
            }

        observations = np.array([g.observations for g in groups])
        counts = np.bincount(observations)
        return {
            "tiles": len(groups),
            "multitemporal_tiles": int(np.sum(observations > 1)),
            "observations_histogram": {
                str(n): int(c) for n, c in enumerate(counts) if c > 0
            },
            "mean_observations": float(np.mean(observations)),
            "max_observations": int(np.max(observations)),
        }

    def _count_datetime_sources(self, catalog: Catalog) -> Dict[str, int]:
        counter = Counter(
            e.datetime_source.value if e.datetime_source else "unknown" for e in catalog
        )
        return dict(sorted(counter.items()))

    def _log_summary_info(self, report: Dict[str, Any]) -> None:
        tiling = report["tiling"]
        multitemporal = report["multitemporal"]
        logger.info("Catalog summary:")
        logger.info(f"  Entries: {report['entries']}")
        logger.info(f"  Valid tiles: {tiling['valid_tiles']} ({tiling['valid_rate']:.1%})")
        logger.info(
            f"  Tiles: {multitemporal['tiles']} "
            f"({multitemporal['multitemporal_tiles']} multi-temporal)"
        )
        logger.info(f"  Datetime sources: {report['datetime_sources']}")
