"""Unit tests for the environmental-impact calculator."""

import pytest

from carpool.domain.impact import EnvironmentalImpact, ImpactCalculator, calculate_impact


class TestImpactCalculator:
    def test_reference_example(self):
        impact = ImpactCalculator().calculate(100, 10, 2)
        assert impact.fuel_saved == pytest.approx(20.0)
        assert impact.co2_saved == pytest.approx(46.0)
        assert impact.trees_equivalent == pytest.approx(2.0909, rel=1e-3)

    def test_zero_passengers_is_zero_impact(self):
        assert ImpactCalculator().calculate(100, 10, 0) == EnvironmentalImpact()

    def test_missing_distance_is_zero_impact(self):
        assert ImpactCalculator().calculate(None, 10, 3) == EnvironmentalImpact()

    @pytest.mark.parametrize("efficiency", [None, 0, -5])
    def test_default_efficiency_when_missing_or_invalid(self, efficiency):
        impact = ImpactCalculator().calculate(150, efficiency, 1)
        assert impact.fuel_saved == pytest.approx(10.0)  # 150 / 15

    def test_configurable_constants(self):
        calc = ImpactCalculator(default_efficiency=20, co2_per_litre=2.0, co2_per_tree=10)
        impact = calc.calculate(100, None, 1)
        assert impact.fuel_saved == pytest.approx(5.0)
        assert impact.co2_saved == pytest.approx(10.0)
        assert impact.trees_equivalent == pytest.approx(1.0)

    def test_module_helper_matches_calculator(self):
        assert calculate_impact(100, 10, 2) == ImpactCalculator().calculate(100, 10, 2)


class TestEnvironmentalImpact:
    def test_share_splits_evenly(self):
        share = EnvironmentalImpact(46.0, 20.0, 2.0).share(2)
        assert share == EnvironmentalImpact(23.0, 10.0, 1.0)

    def test_share_of_nobody_is_zero(self):
        assert EnvironmentalImpact(46.0, 20.0, 2.0).share(0) == EnvironmentalImpact()

    def test_addition_accumulates(self):
        total = EnvironmentalImpact(1.0, 2.0, 3.0) + EnvironmentalImpact(1.0, 1.0, 1.0)
        assert total == EnvironmentalImpact(2.0, 3.0, 4.0)
