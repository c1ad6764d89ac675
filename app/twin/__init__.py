"""Digital twin module - Monte Carlo net worth projection."""
from app.twin.engine import (
    DigitalTwinSimulator,
    SimulationError,
    ProfileCreationError,
    SimulationCancelled,
)
from app.twin.monte_carlo import (
    NormalSampler,
    FinancialState,
    SimulationRun,
    AggregatedResult,
    run_simulation,
    aggregate_runs,
    calculate_percentile,
    calculate_median,
)

__all__ = [
    "DigitalTwinSimulator",
    "SimulationError",
    "ProfileCreationError",
    "SimulationCancelled",
    "NormalSampler",
    "FinancialState",
    "SimulationRun",
    "AggregatedResult",
    "run_simulation",
    "aggregate_runs",
    "calculate_percentile",
    "calculate_median",
]
