"""
Environmental-impact calculator.

Formula
-------
fuel_saved       = distance_km x passenger_count / fuel_efficiency
co2_saved        = fuel_saved x CO2_PER_LITRE
trees_equivalent = co2_saved / CO2_PER_TREE

Each accepted passenger is assumed to have otherwise driven the whole trip
alone.  A missing or non-positive efficiency falls back to the default and
zero passengers yield zero impact.

Complexity: O(1) per call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_FUEL_EFFICIENCY = 15.0  # km / l (or km / kWh)
CO2_PER_LITRE = 2.3  # kg CO2 per litre of fuel
CO2_PER_TREE = 22.0  # kg CO2 absorbed by one tree per year


@dataclass(frozen=True)
class EnvironmentalImpact:
    co2_saved: float = 0.0
    fuel_saved: float = 0.0
    trees_equivalent: float = 0.0

    def __add__(self, other: EnvironmentalImpact) -> EnvironmentalImpact:
        return EnvironmentalImpact(
            co2_saved=self.co2_saved + other.co2_saved,
            fuel_saved=self.fuel_saved + other.fuel_saved,
            trees_equivalent=self.trees_equivalent + other.trees_equivalent,
        )

    def share(self, parts: int) -> EnvironmentalImpact:
        """Split evenly into *parts*; an empty split is zero impact."""
        if parts <= 0:
            return EnvironmentalImpact()
        return EnvironmentalImpact(
            co2_saved=self.co2_saved / parts,
            fuel_saved=self.fuel_saved / parts,
            trees_equivalent=self.trees_equivalent / parts,
        )


class ImpactCalculator:
    def __init__(
        self,
        default_efficiency: float = DEFAULT_FUEL_EFFICIENCY,
        co2_per_litre: float = CO2_PER_LITRE,
        co2_per_tree: float = CO2_PER_TREE,
    ):
        self.default_efficiency = default_efficiency
        self.co2_per_litre = co2_per_litre
        self.co2_per_tree = co2_per_tree

    def calculate(
        self,
        distance_km: Optional[float],
        fuel_efficiency: Optional[float],
        passenger_count: int,
    ) -> EnvironmentalImpact:
        distance = distance_km or 0.0
        if passenger_count <= 0 or distance <= 0:
            return EnvironmentalImpact()
        efficiency = (
            fuel_efficiency
            if fuel_efficiency and fuel_efficiency > 0
            else self.default_efficiency
        )

        fuel_saved = distance * passenger_count / efficiency
        co2_saved = fuel_saved * self.co2_per_litre
        return EnvironmentalImpact(
            co2_saved=co2_saved,
            fuel_saved=fuel_saved,
            trees_equivalent=co2_saved / self.co2_per_tree,
        )


def calculate_impact(
    distance_km: Optional[float],
    fuel_efficiency: Optional[float],
    passenger_count: int,
) -> EnvironmentalImpact:
    """Module-level shortcut using the default constants."""
    return ImpactCalculator().calculate(distance_km, fuel_efficiency, passenger_count)
