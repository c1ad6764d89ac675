"""
Monte Carlo net-worth projection.

Pure, synchronous simulation code with no I/O:
1. NormalSampler draws market returns and inflation (Box-Muller)
2. run_simulation walks one trajectory year by year
3. aggregate_runs reduces a batch to success probability and percentiles
4. series helpers turn runs / timelines into chart points

Randomness is injected through NormalSampler so batches are reproducible
under a fixed seed.
"""
import math
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.twin.schemas import ScenarioKind, SimulationParameters

MARKET_RETURN_MEAN = 0.07
MARKET_RETURN_SD = 0.15
INFLATION_MEAN = 0.03
INFLATION_SD = 0.02


class NormalSampler:
    """Normal-distribution sampler over a seedable uniform source."""

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.rng = rng or random.Random(seed)

    def normal(self, mean: float, sd: float) -> float:
        """Box-Muller transform from two uniform draws."""
        u1 = self.rng.random()
        while u1 == 0.0:  # log(0) is undefined
            u1 = self.rng.random()
        u2 = self.rng.random()
        z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return mean + z * sd


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class FinancialState:
    """Starting point of every trajectory."""
    net_worth: float
    savings: float
    annual_income: float
    annual_expenses: float
    age: int = 30

    def to_dict(self) -> Dict[str, Any]:
        """Shape stored in digital_twin_profiles.current_state."""
        return {
            "netWorth": self.net_worth,
            "savings": self.savings,
            "annualIncome": self.annual_income,
            "annualExpenses": self.annual_expenses,
            "age": self.age,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinancialState":
        return cls(
            net_worth=float(data.get("netWorth", 0)),
            savings=float(data.get("savings", 0)),
            annual_income=float(data.get("annualIncome", 0)),
            annual_expenses=float(data.get("annualExpenses", 0)),
            age=int(data.get("age", 30)),
        )


@dataclass
class YearSnapshot:
    year: int
    net_worth: float
    savings: float
    income: float
    expenses: float


@dataclass
class SimulationRun:
    """One stochastic trajectory: snapshots for years 0..horizon."""
    snapshots: List[YearSnapshot] = field(default_factory=list)

    @property
    def final_net_worth(self) -> float:
        return self.snapshots[-1].net_worth if self.snapshots else 0.0


@dataclass
class TimelinePoint:
    """Cross-sectional percentiles of net worth for one year."""
    year: int
    median: float
    p10: float
    p90: float


@dataclass
class AggregatedResult:
    """Batch summary. The only part of a simulation that is persisted."""
    success_probability: float
    p10: float
    p50: float
    p90: float
    timeline: List[TimelinePoint] = field(default_factory=list)

    @property
    def percentiles(self) -> Dict[str, float]:
        return {"p10": self.p10, "p50": self.p50, "p90": self.p90}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successProbability": self.success_probability,
            "percentiles": self.percentiles,
            "timeline": [
                {"year": p.year, "median": p.median, "p10": p.p10, "p90": p.p90}
                for p in self.timeline
            ],
        }


# =============================================================================
# Simulation
# =============================================================================

def run_simulation(
    state: FinancialState,
    parameters: SimulationParameters,
    sampler: NormalSampler,
    scenario_type: Optional[ScenarioKind] = None,
) -> SimulationRun:
    """
    Simulate one trajectory of yearly net worth.

    Each year draws one market return and one inflation rate, applies any
    scenario step change configured for that year, then rolls cash flow,
    market growth, inflation and salary growth forward. The returned run has
    exactly ``years_to_project + 1`` snapshots.

    Args:
        scenario_type: Overrides ``parameters.scenario_type``; the baseline
            series passes ``ScenarioKind.BASELINE`` to skip step changes.
    """
    kind = scenario_type or parameters.scenario_type

    net_worth = state.net_worth
    savings = state.savings
    income = state.annual_income
    expenses = state.annual_expenses

    run = SimulationRun()
    for year in range(parameters.years_to_project + 1):
        market_return = sampler.normal(MARKET_RETURN_MEAN, MARKET_RETURN_SD)
        inflation = sampler.normal(INFLATION_MEAN, INFLATION_SD)

        if kind == ScenarioKind.CAREER_CHANGE and year == parameters.change_year:
            income = parameters.new_income
        elif kind == ScenarioKind.BUY_HOME and year == parameters.purchase_year:
            net_worth -= parameters.down_payment
            savings -= parameters.down_payment
            expenses += parameters.mortgage_payment * 12

        net_cash_flow = income - expenses
        net_worth += net_cash_flow + net_worth * market_return
        savings += net_cash_flow
        expenses *= 1 + inflation
        income *= 1 + parameters.salary_growth

        run.snapshots.append(
            YearSnapshot(
                year=year,
                net_worth=net_worth,
                savings=savings,
                income=income,
                expenses=expenses,
            )
        )

    return run


# =============================================================================
# Aggregation
# =============================================================================

def calculate_percentile(values: List[float], percentile: float) -> float:
    """Floor-indexed percentile of a sorted copy. Empty input yields 0.0."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.floor(len(ordered) * (percentile / 100))
    return ordered[min(index, len(ordered) - 1)]


def calculate_median(values: List[float]) -> float:
    return calculate_percentile(values, 50)


def aggregate_runs(runs: List[SimulationRun], target_net_worth: Optional[float]) -> AggregatedResult:
    """
    Reduce a batch of runs.

    Success is the share of runs ending at or above the target, in percent.
    Without a target no run succeeds. The timeline takes percentiles across
    all runs for each year, not within a single run.
    """
    finals = [run.final_net_worth for run in runs]

    if target_net_worth is None or not runs:
        success_probability = 0.0
    else:
        successes = sum(1 for value in finals if value >= target_net_worth)
        success_probability = 100.0 * successes / len(runs)

    timeline = []
    horizon = len(runs[0].snapshots) if runs else 0
    for index in range(horizon):
        year_values = [run.snapshots[index].net_worth for run in runs]
        timeline.append(
            TimelinePoint(
                year=runs[0].snapshots[index].year,
                median=calculate_median(year_values),
                p10=calculate_percentile(year_values, 10),
                p90=calculate_percentile(year_values, 90),
            )
        )

    return AggregatedResult(
        success_probability=success_probability,
        p10=calculate_percentile(finals, 10),
        p50=calculate_percentile(finals, 50),
        p90=calculate_percentile(finals, 90),
        timeline=timeline,
    )


def assess_risk_level(success_probability: float) -> str:
    """Bucket a 0-100 success probability."""
    if success_probability >= 85:
        return "low"
    if success_probability >= 70:
        return "moderate"
    if success_probability >= 50:
        return "high"
    return "critical"


# =============================================================================
# Chart Series
# =============================================================================

def _series_date(start_year: int, year: int) -> str:
    return f"{start_year + year}-01-01"


def series_from_run(run: SimulationRun, start_year: int) -> List[Dict[str, Any]]:
    return [
        {"date": _series_date(start_year, s.year), "value": s.net_worth}
        for s in run.snapshots
    ]


def series_from_timeline(timeline: List[TimelinePoint], attr: str, start_year: int) -> List[Dict[str, Any]]:
    """Chart points for one timeline column: "median", "p10" or "p90"."""
    return [
        {"date": _series_date(start_year, p.year), "value": getattr(p, attr)}
        for p in timeline
    ]
