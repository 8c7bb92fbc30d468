#!/usr/bin/env python3
"""
Pharmacy Discovery — Coverage Grid Analyzer

Tiles a bounding box (see geodesy.coverage_grid) and measures, for every
grid point, how many pharmacies lie within a cutoff distance.  Used for
service-area planning: underserved cells have no pharmacy in reach,
well-covered cells have three or more.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .geodesy import BoundingBox, Coordinate, GridCell, coverage_grid, haversine_km

WELL_COVERED_MIN_PHARMACIES = 3
NEAREST_LIMIT = 3


@dataclass
class CoverageStats:
    total_cells: int
    covered_cells: int
    coverage_percentage: float
    average_pharmacies_per_cell: float
    underserved_cells: list[str] = field(default_factory=list)
    well_covered_cells: list[str] = field(default_factory=list)
    pharmacies_considered: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_cells": self.total_cells,
            "covered_cells": self.covered_cells,
            "coverage_percentage": round(self.coverage_percentage, 2),
            "average_pharmacies_per_cell": round(self.average_pharmacies_per_cell, 2),
            "underserved_cells": list(self.underserved_cells),
            "well_covered_cells": list(self.well_covered_cells),
            "pharmacies_considered": self.pharmacies_considered,
        }


def analyze_cell(
    cell: GridCell,
    pharmacies: list[tuple[str, Coordinate]],
    max_distance_km: float,
) -> GridCell:
    """Fill the coverage fields of one grid cell in place."""
    origin = cell.coordinate
    in_reach = []
    for pharmacy_id, coord in pharmacies:
        dist = haversine_km(origin, coord)
        if dist <= max_distance_km:
            in_reach.append((dist, pharmacy_id))
    in_reach.sort()

    cell.pharmacy_count = len(in_reach)
    cell.covered = cell.pharmacy_count > 0
    cell.nearest_pharmacy_ids = [pid for _, pid in in_reach[:NEAREST_LIMIT]]
    cell.average_distance_km = (
        round(sum(d for d, _ in in_reach) / len(in_reach), 3) if in_reach else None
    )
    if cell.pharmacy_count == 0:
        cell.status = "underserved"
    elif cell.pharmacy_count >= WELL_COVERED_MIN_PHARMACIES:
        cell.status = "well_covered"
    else:
        cell.status = "covered"
    return cell


def analyze_coverage(
    box: BoundingBox,
    cell_size_km: float,
    pharmacies: list[tuple[str, Coordinate]],
    max_distance_km: float,
    grid: list[GridCell] | None = None,
) -> tuple[list[GridCell], CoverageStats]:
    """
    Build the grid for box (unless a prebuilt grid is passed) and analyse
    every cell.

    Parameters
    ----------
    box : BoundingBox
        Area to analyse.
    cell_size_km : float
        Grid spacing.
    pharmacies : list of (pharmacy_id, Coordinate)
        Pharmacies that may serve the area (callers should include those
        just outside the box, up to max_distance_km away).
    max_distance_km : float
        Reach cutoff for a pharmacy to count toward a cell.
    grid : list of GridCell, optional
        Output of coverage_grid(box, cell_size_km), when already built.
    """
    if grid is None:
        grid = coverage_grid(box, cell_size_km)
    for cell in grid:
        analyze_cell(cell, pharmacies, max_distance_km)

    total = len(grid)
    covered = sum(1 for c in grid if c.covered)
    stats = CoverageStats(
        total_cells=total,
        covered_cells=covered,
        coverage_percentage=covered / total * 100 if total else 0.0,
        average_pharmacies_per_cell=sum(c.pharmacy_count for c in grid) / total if total else 0.0,
        underserved_cells=[c.cell_id for c in grid if c.status == "underserved"],
        well_covered_cells=[c.cell_id for c in grid if c.status == "well_covered"],
        pharmacies_considered=len(pharmacies),
    )
    return grid, stats
