"""Unit tests for the station catalog."""

from __future__ import annotations

import json
from pathlib import Path

from subway_client.catalog import DEFAULT_LINE_COLOR, Station, StationCatalog


def _catalog() -> StationCatalog:
    return StationCatalog(
        [
            Station("127", "Times Sq-42 St", ("1", "2", "3"), 40.755, -73.987, complex="611"),
            Station("R16", "Times Sq-42 St", ("N", "Q", "R", "W"), 40.754, -73.986, complex="611"),
            Station("L01", "8 Av", ("L",), 40.739, -74.002),
            Station("701", "Flushing-Main St", ("7",), 40.759, -73.830),
            Station("X1", "Nowhere", ("10",), 40.0, -73.0),
        ],
        {"1": "#EE352E", "L": "#A7A9AC"},
    )


def test_complex_members_groups_and_falls_back_to_identity() -> None:
    catalog = _catalog()

    assert catalog.complex_members("R16") == ["127", "R16"]
    assert catalog.complex_members("L01") == ["L01"]
    assert catalog.complex_members("unknown") == ["unknown"]
    assert catalog.complex_id("127") == "611"
    assert catalog.complex_id("L01") == "L01"
    assert catalog.complex_id("unknown") == "unknown"


def test_lines_sort_numeric_first() -> None:
    """Numeric lines sort numerically ahead of lettered lines."""
    assert _catalog().lines() == ["1", "2", "3", "7", "10", "L", "N", "Q", "R", "W"]


def test_line_color_falls_back() -> None:
    catalog = _catalog()

    assert catalog.line_color("1") == "#EE352E"
    assert catalog.line_color("Q") == DEFAULT_LINE_COLOR
    assert catalog.line_color(None) == DEFAULT_LINE_COLOR


def test_complex_count_counts_groups_once() -> None:
    catalog = _catalog()

    assert catalog.complex_count() == 4
    assert catalog.complex_count([s for s in catalog.stations if "1" in s.lines]) == 1


def test_load_from_file(tmp_path: Path) -> None:
    path = tmp_path / "stations.json"
    path.write_text(
        json.dumps(
            {
                "line_colors": {"G": "#6CBE45"},
                "stations": [
                    {"id": "G22", "name": "Court Sq", "lines": ["G"], "lat": 40.7, "lon": -73.9}
                ],
            }
        ),
        encoding="utf-8",
    )

    catalog = StationCatalog.load(path)

    assert [station.id for station in catalog.stations] == ["G22"]
    assert catalog.get("G22").lines_label == "G"
    assert catalog.line_color("G") == "#6CBE45"


def test_bundled_catalog_is_consistent() -> None:
    """Every bundled station has a coloured primary line and a valid complex."""
    catalog = StationCatalog.load()

    assert catalog.stations
    for station in catalog.stations:
        assert catalog.line_color(station.primary_line) != DEFAULT_LINE_COLOR
        assert station.id in catalog.complex_members(station.id)
    assert catalog.complex_members("725") == ["127", "725", "R16", "902", "A27"]
