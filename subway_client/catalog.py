"""Static station catalog: stations, complexes and line colours."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

DEFAULT_LINE_COLOR = "#666"


@dataclass(frozen=True)
class Station:
    """One physical station record."""

    id: str
    name: str
    lines: tuple[str, ...]
    lat: float
    lon: float
    complex: str | None = None

    @property
    def primary_line(self) -> str | None:
        return self.lines[0] if self.lines else None

    @property
    def lines_label(self) -> str:
        """Lines joined by spaces, e.g. `"N Q R W"`."""
        return " ".join(self.lines)


def _line_sort_key(line: str) -> tuple[int, int, str]:
    """Numeric lines first in numeric order, then the rest alphabetically."""
    if line.isdigit():
        return (0, int(line), line)
    return (1, 0, line)


class StationCatalog:
    """Lookup over a fixed set of stations.

    Complex membership is total: a station without a complex, or an id the
    catalog does not know, is its own single-member complex.
    """

    def __init__(self, stations: Iterable[Station], line_colors: Mapping[str, str]) -> None:
        self._stations = list(stations)
        self._by_id = {station.id: station for station in self._stations}
        self._line_colors = dict(line_colors)
        self._complexes: dict[str, list[str]] = {}
        for station in self._stations:
            if station.complex is not None:
                self._complexes.setdefault(station.complex, []).append(station.id)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> StationCatalog:
        """Build a catalog from the JSON document shape."""
        stations = [
            Station(
                id=str(item["id"]),
                name=str(item["name"]),
                lines=tuple(str(line) for line in item.get("lines", [])),
                lat=float(item["lat"]),
                lon=float(item["lon"]),
                complex=str(item["complex"]) if item.get("complex") is not None else None,
            )
            for item in payload.get("stations", [])
        ]
        return cls(stations, payload.get("line_colors", {}))

    @classmethod
    def load(cls, path: str | Path | None = None) -> StationCatalog:
        """Load a catalog from a JSON file, or the bundled one when `path` is None.

        The bundled file covers a sample of stations and complexes, so totals
        computed from it are not system-wide.
        """
        if path is None:
            raw = resources.files("subway_client").joinpath("data/stations.json").read_text(
                encoding="utf-8"
            )
        else:
            raw = Path(path).read_text(encoding="utf-8")
        return cls.from_dict(json.loads(raw))

    @property
    def stations(self) -> list[Station]:
        return list(self._stations)

    def get(self, station_id: str) -> Station | None:
        return self._by_id.get(station_id)

    def complex_id(self, station_id: str) -> str:
        """Grouping key for a station; the station id itself when ungrouped."""
        station = self._by_id.get(station_id)
        if station is None or station.complex is None:
            return station_id
        return station.complex

    def complex_members(self, station_id: str) -> list[str]:
        """Every station id sharing a complex with `station_id`, itself included."""
        station = self._by_id.get(station_id)
        if station is None or station.complex is None:
            return [station_id]
        return list(self._complexes[station.complex])

    def lines(self) -> list[str]:
        """Every line served by the catalog, sorted numeric-first."""
        seen = {line for station in self._stations for line in station.lines}
        return sorted(seen, key=_line_sort_key)

    def line_color(self, line: str | None) -> str:
        if line is None:
            return DEFAULT_LINE_COLOR
        return self._line_colors.get(line, DEFAULT_LINE_COLOR)

    def complex_count(self, stations: Iterable[Station] | None = None) -> int:
        """Distinct complexes among `stations` (all stations by default)."""
        pool = self._stations if stations is None else stations
        return len({self.complex_id(station.id) for station in pool})
