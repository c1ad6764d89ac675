"""
Tests for the Monte Carlo projection maths.

Covers the sampler, single-trajectory evolution (including scenario step
changes), percentile aggregation and risk bucketing. No database involved.
"""

import math
import random

import pytest
from pydantic import ValidationError

from app.twin.monte_carlo import (
    AggregatedResult,
    FinancialState,
    NormalSampler,
    SimulationRun,
    YearSnapshot,
    aggregate_runs,
    assess_risk_level,
    calculate_median,
    calculate_percentile,
    run_simulation,
    series_from_run,
    series_from_timeline,
)
from app.twin.schemas import ScenarioKind, SimulationParameters


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def state():
    return FinancialState(
        net_worth=100000,
        savings=20000,
        annual_income=60000,
        annual_expenses=40000,
    )


def make_run(values):
    return SimulationRun(snapshots=[
        YearSnapshot(year=i, net_worth=v, savings=0, income=0, expenses=0)
        for i, v in enumerate(values)
    ])


# =============================================================================
# Unit Tests - NormalSampler
# =============================================================================

class TestNormalSampler:
    """Tests for the Box-Muller sampler."""

    def test_same_seed_same_sequence(self):
        first = NormalSampler(seed=42)
        second = NormalSampler(seed=42)

        assert [first.normal(0.07, 0.15) for _ in range(20)] == [
            second.normal(0.07, 0.15) for _ in range(20)
        ]

    def test_different_seeds_differ(self):
        assert NormalSampler(seed=1).normal(0, 1) != NormalSampler(seed=2).normal(0, 1)

    def test_zero_uniform_is_redrawn(self):
        """A zero first draw would take log(0); the sampler draws again."""
        rng = random.Random()
        draws = iter([0.0, 0.5, 0.25])
        rng.random = lambda: next(draws)

        value = NormalSampler(rng=rng).normal(10.0, 2.0)

        # cos(pi / 2) == 0, so z is (numerically) zero
        assert value == pytest.approx(10.0, abs=1e-9)

    def test_sample_moments(self):
        sampler = NormalSampler(seed=123)
        values = [sampler.normal(0.07, 0.15) for _ in range(20000)]
        mean = sum(values) / len(values)
        sd = math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))

        assert mean == pytest.approx(0.07, abs=0.01)
        assert sd == pytest.approx(0.15, abs=0.01)


# =============================================================================
# Unit Tests - run_simulation
# =============================================================================

class TestRunSimulation:
    """Tests for one trajectory."""

    def test_snapshot_count_is_horizon_plus_one(self, state):
        params = SimulationParameters(years_to_project=7)
        run = run_simulation(state, params, NormalSampler(seed=3))

        assert len(run.snapshots) == 8
        assert [s.year for s in run.snapshots] == list(range(8))

    def test_year_zero_already_evolved(self, state, fixed_sampler):
        """Year 0 applies one full year of cash flow, growth and inflation."""
        params = SimulationParameters(years_to_project=2, salary_growth=0.03)
        run = run_simulation(state, params, fixed_sampler)

        first = run.snapshots[0]
        assert first.net_worth == pytest.approx(100000 + 20000 + 100000 * 0.07)
        assert first.savings == pytest.approx(40000)
        assert first.expenses == pytest.approx(40000 * 1.03)
        assert first.income == pytest.approx(60000 * 1.03)

    def test_career_change_replaces_income(self, state, fixed_sampler):
        params = SimulationParameters(
            scenario_type="career_change",
            years_to_project=3,
            change_year=1,
            new_income=90000,
            salary_growth=0.0,
        )
        run = run_simulation(state, params, fixed_sampler)

        assert run.snapshots[0].income == pytest.approx(60000)
        assert run.snapshots[1].income == pytest.approx(90000)
        assert run.snapshots[3].income == pytest.approx(90000)

    def test_buy_home_applies_down_payment_and_mortgage(self, state, fixed_sampler):
        params = SimulationParameters(
            scenario_type="buy_home",
            years_to_project=1,
            purchase_year=0,
            down_payment=50000,
            mortgage_payment=2000,
        )
        run = run_simulation(state, params, fixed_sampler)

        first = run.snapshots[0]
        # expenses 40000 + 24000 mortgage -> cash flow -4000
        assert first.net_worth == pytest.approx(50000 - 4000 + 50000 * 0.07)
        assert first.savings == pytest.approx(20000 - 50000 - 4000)
        assert first.expenses == pytest.approx(64000 * 1.03)

    def test_baseline_override_skips_step_change(self, state, fixed_sampler):
        params = SimulationParameters(
            scenario_type="buy_home",
            years_to_project=2,
            purchase_year=0,
            down_payment=50000,
        )
        baseline = run_simulation(state, params, fixed_sampler, scenario_type=ScenarioKind.BASELINE)
        plain = run_simulation(state, SimulationParameters(years_to_project=2), fixed_sampler)

        assert [s.net_worth for s in baseline.snapshots] == pytest.approx(
            [s.net_worth for s in plain.snapshots]
        )

    def test_same_seed_same_trajectory(self, state):
        params = SimulationParameters(years_to_project=10)
        first = run_simulation(state, params, NormalSampler(seed=9))
        second = run_simulation(state, params, NormalSampler(seed=9))

        assert first.final_net_worth == second.final_net_worth


# =============================================================================
# Unit Tests - Percentiles
# =============================================================================

class TestPercentiles:
    """Tests for floor-indexed percentiles."""

    def test_floor_index(self):
        values = [float(v) for v in range(10, 0, -1)]  # unsorted input

        assert calculate_percentile(values, 10) == 2.0
        assert calculate_percentile(values, 50) == 6.0
        assert calculate_percentile(values, 90) == 10.0

    def test_hundredth_percentile_is_clamped(self):
        assert calculate_percentile([1.0, 2.0, 3.0], 100) == 3.0

    def test_empty_is_zero(self):
        assert calculate_percentile([], 50) == 0.0
        assert calculate_median([]) == 0.0

    def test_single_value(self):
        for p in (10, 50, 90):
            assert calculate_percentile([42.0], p) == 42.0

    def test_input_not_mutated(self):
        values = [3.0, 1.0, 2.0]
        calculate_median(values)
        assert values == [3.0, 1.0, 2.0]


# =============================================================================
# Unit Tests - Aggregation
# =============================================================================

class TestAggregateRuns:
    """Tests for batch reduction."""

    def test_success_probability(self):
        runs = [make_run([0, v]) for v in (50, 100, 150, 200)]
        result = aggregate_runs(runs, target_net_worth=100)

        assert result.success_probability == 75.0

    def test_no_target_means_no_success(self):
        runs = [make_run([0, 1000])]
        assert aggregate_runs(runs, target_net_worth=None).success_probability == 0.0

    def test_empty_batch(self):
        result = aggregate_runs([], target_net_worth=100)

        assert result.success_probability == 0.0
        assert result.timeline == []
        assert result.percentiles == {"p10": 0.0, "p50": 0.0, "p90": 0.0}

    def test_timeline_is_cross_sectional(self):
        runs = [make_run([i, i * 10]) for i in range(1, 11)]
        result = aggregate_runs(runs, target_net_worth=None)

        assert len(result.timeline) == 2
        assert result.timeline[0].p10 == 2
        assert result.timeline[0].median == 6
        assert result.timeline[1].p90 == 100

    def test_percentiles_are_ordered(self, state):
        sampler = NormalSampler(seed=5)
        params = SimulationParameters(years_to_project=10)
        runs = [run_simulation(state, params, sampler) for _ in range(200)]
        result = aggregate_runs(runs, target_net_worth=500000)

        assert result.p10 <= result.p50 <= result.p90
        for point in result.timeline:
            assert point.p10 <= point.median <= point.p90
        assert 0 <= result.success_probability <= 100

    def test_to_dict_shape(self):
        result = aggregate_runs([make_run([1, 2])], target_net_worth=1)
        data = result.to_dict()

        assert isinstance(result, AggregatedResult)
        assert data["successProbability"] == 100.0
        assert set(data["percentiles"]) == {"p10", "p50", "p90"}
        assert data["timeline"][1] == {"year": 1, "median": 2, "p10": 2, "p90": 2}


# =============================================================================
# Unit Tests - Risk and Series
# =============================================================================

class TestRiskLevel:

    @pytest.mark.parametrize("probability,expected", [
        (100, "low"),
        (85, "low"),
        (84.9, "moderate"),
        (70, "moderate"),
        (69.9, "high"),
        (50, "high"),
        (49.9, "critical"),
        (0, "critical"),
    ])
    def test_thresholds(self, probability, expected):
        assert assess_risk_level(probability) == expected


class TestSeries:

    def test_run_series_dates(self):
        series = series_from_run(make_run([1.0, 2.0, 3.0]), start_year=2025)

        assert [p["date"] for p in series] == ["2025-01-01", "2026-01-01", "2027-01-01"]
        assert [p["value"] for p in series] == [1.0, 2.0, 3.0]

    def test_timeline_series_column(self):
        runs = [make_run([i, i]) for i in range(1, 11)]
        timeline = aggregate_runs(runs, None).timeline

        assert [p["value"] for p in series_from_timeline(timeline, "p90", 2030)] == [10, 10]


# =============================================================================
# Unit Tests - SimulationParameters
# =============================================================================

class TestSimulationParameters:

    def test_camel_case_input(self):
        params = SimulationParameters.model_validate({
            "scenarioType": "career_change",
            "yearsToProject": 20,
            "changeYear": 2,
            "newIncome": 85000,
            "targetNetWorth": 1000000,
        })

        assert params.scenario_type == ScenarioKind.CAREER_CHANGE
        assert params.years_to_project == 20
        assert params.new_income == 85000

    def test_defaults(self):
        params = SimulationParameters()

        assert params.years_to_project == 30
        assert params.salary_growth == 0.03
        assert params.target_net_worth is None

    def test_career_change_requires_year_and_income(self):
        with pytest.raises(ValidationError):
            SimulationParameters(scenario_type="career_change", change_year=2)

    def test_buy_home_requires_purchase_year(self):
        with pytest.raises(ValidationError):
            SimulationParameters(scenario_type="buy_home", down_payment=10000)

    def test_horizon_bounds(self):
        with pytest.raises(ValidationError):
            SimulationParameters(years_to_project=0)

    def test_frozen(self):
        params = SimulationParameters()
        with pytest.raises(ValidationError):
            params.years_to_project = 10
