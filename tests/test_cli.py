"""
Tests for the catalog command line tool.
"""

import json

import pytest

from scripts.catalog_cli import main
from services.core.catalog import Catalog


class TestCatalogCli:
    def test_resolve_to_file(self, temp_dir, sample_vpc):
        out = temp_dir / "out.vpc"
        assert main(["-q", "resolve", str(sample_vpc), "-o", str(out)]) == 0
        assert len(Catalog.from_file(out)) == 8

    def test_select_latest(self, temp_dir, sample_vpc):
        out = temp_dir / "latest.vpc"
        assert main(["-q", "select", str(sample_vpc), "--mode", "latest", "-o", str(out)]) == 0
        assert {e.datetime.year for e in Catalog.from_file(out)} == {2024}

    def test_tiling_prints_rows(self, sample_vpc, capsys):
        assert main(["-q", "tiling", str(sample_vpc)]) == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 8
        assert json.loads(lines[0])["valid"] is True

    def test_spatial_without_match(self, sample_vpc):
        assert main(["-q", "spatial", str(sample_vpc), "--extent", "0", "0"]) == 1

    def test_invalid_temporal_input(self, sample_vpc, capsys):
        assert main(["-q", "temporal", str(sample_vpc), "--start", "someday"]) == 2
        assert "Error" in capsys.readouterr().out

    def test_merge_refuses_overwrite(self, temp_dir, sample_vpc):
        out = temp_dir / "merged.vpc"
        assert main(["-q", "merge", str(sample_vpc), "-o", str(out)]) == 0
        assert main(["-q", "merge", str(sample_vpc), "-o", str(out)]) == 2

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            main(["frobnicate"])
