"""
Digital Twin Simulator

Runs a batch of Monte Carlo trajectories for one user and scenario:
1. Serve from the response cache when an identical batch was computed recently
2. Load the user's financial state (or synthesize and store one)
3. Run N independent trajectories and aggregate percentiles
4. Upsert the aggregated scenario
5. Build baseline / scenario / confidence series and cache the payload

All simulation maths lives in app.twin.monte_carlo; this module only does
I/O and orchestration.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import ResponseCache, create_user_cache_key
from app.config import settings
from app.models import CashAccount, DigitalTwinProfile, Transaction, TwinScenario, generate_id
from app.twin.monte_carlo import (
    AggregatedResult,
    FinancialState,
    NormalSampler,
    aggregate_runs,
    assess_risk_level,
    run_simulation,
    series_from_run,
    series_from_timeline,
)
from app.twin.schemas import ScenarioKind, SimulationParameters, SimulationResponse

logger = logging.getLogger(__name__)

CACHE_PREFIX = "digital-twin"
CACHE_TYPE = "digital_twin_simulation"

# Fallback profile construction
TRAILING_DAYS = 90
TRAILING_MONTHS = 3
DEFAULT_NET_WORTH = 10000.0
DEFAULT_MONTHLY_INCOME = 5000.0
DEFAULT_MONTHLY_EXPENSES = 3750.0
SAVINGS_SHARE_OF_NET_WORTH = 0.2
DEFAULT_AGE = 30

# Yield to the event loop this often so cancellation can be observed
RUNS_PER_YIELD = 50


class SimulationError(Exception):
    """A simulation could not be completed."""


class ProfileCreationError(SimulationError):
    """The fallback financial profile could not be stored."""


class SimulationCancelled(SimulationError):
    """The caller cancelled the batch before it finished."""


class ScenarioNotFound(SimulationError):
    """The scenario id exists but belongs to another user."""


class DigitalTwinSimulator:
    """Monte Carlo projection of one user's net worth."""

    def __init__(
        self,
        db: AsyncSession,
        user_id: str,
        cache: Optional[ResponseCache] = None,
        sampler: Optional[NormalSampler] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.cache = cache
        self.sampler = sampler or NormalSampler()
        self.today = today or date.today()
        self._profile_id: Optional[str] = None

    # =========================================================================
    # Entry point
    # =========================================================================

    async def simulate(
        self,
        parameters: SimulationParameters,
        scenario_id: Optional[str] = None,
        monte_carlo_runs: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Run (or fetch from cache) a simulation batch.

        Returns:
            Tuple of (response payload, from_cache)
        """
        runs = monte_carlo_runs or settings.DEFAULT_MONTE_CARLO_RUNS
        cache_key = create_user_cache_key(CACHE_PREFIX, self.user_id, scenario_id or "new", runs)

        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Simulation cache hit: {cache_key}")
                return cached, True

        started = datetime.utcnow()
        state = await self.get_financial_state()

        batch = []
        for index in range(runs):
            if cancel_event is not None and cancel_event.is_set():
                raise SimulationCancelled(f"Simulation cancelled after {index} of {runs} runs")
            batch.append(run_simulation(state, parameters, self.sampler))
            if (index + 1) % RUNS_PER_YIELD == 0:
                await asyncio.sleep(0)

        result = aggregate_runs(batch, parameters.target_net_worth)
        scenario_id = await self._save_scenario(scenario_id, parameters, runs, result)

        baseline_run = run_simulation(state, parameters, self.sampler, scenario_type=ScenarioKind.BASELINE)
        # Single sample run near the middle of the batch, not a percentile path
        representative_run = batch[runs // 2]

        start_year = self.today.year
        payload = SimulationResponse.model_validate({
            "baseline": series_from_run(baseline_run, start_year),
            "scenario": series_from_run(representative_run, start_year),
            "confidence": {
                "p10": series_from_timeline(result.timeline, "p10", start_year),
                "p90": series_from_timeline(result.timeline, "p90", start_year),
            },
            "metadata": {
                "scenario_id": scenario_id,
                "success_probability": result.success_probability,
                "percentiles": result.percentiles,
                "simulations": runs,
                "risk_level": assess_risk_level(result.success_probability),
            },
        }).model_dump(by_alias=True, mode="json")

        elapsed_ms = int((datetime.utcnow() - started).total_seconds() * 1000)
        logger.info(
            f"Simulated {runs} runs over {parameters.years_to_project} years for user {self.user_id} "
            f"in {elapsed_ms}ms (success {result.success_probability:.1f}%)"
        )

        if self.cache is not None:
            await self.cache.set(
                cache_key,
                payload,
                cache_type=CACHE_TYPE,
                user_id=self.user_id,
                ttl_seconds=settings.SIMULATION_CACHE_TTL_SECONDS,
            )

        return payload, False

    # =========================================================================
    # Financial state
    # =========================================================================

    async def get_financial_state(self) -> FinancialState:
        """Stored profile state, or a synthesized one that is then persisted."""
        profile = await self._get_profile()
        if profile is not None:
            self._profile_id = profile.id
            if profile.current_state:
                return FinancialState.from_dict(profile.current_state)

        state = await self._synthesize_financial_state()
        await self._save_profile(state, profile)
        return state

    async def _synthesize_financial_state(self) -> FinancialState:
        """Estimate finances from account balances and trailing transactions."""
        balances = await self._get_account_balances()
        net_worth = float(sum(balances, Decimal("0"))) if balances else DEFAULT_NET_WORTH

        since = self.today - timedelta(days=TRAILING_DAYS)
        amounts = [float(a) for a in await self._get_transaction_amounts(since)]
        inflow = sum(a for a in amounts if a > 0)
        outflow = -sum(a for a in amounts if a < 0)

        monthly_income = inflow / TRAILING_MONTHS if inflow > 0 else DEFAULT_MONTHLY_INCOME
        monthly_expenses = outflow / TRAILING_MONTHS if outflow > 0 else DEFAULT_MONTHLY_EXPENSES

        logger.info(
            f"Synthesized financial profile for user {self.user_id}: "
            f"{len(balances)} accounts, {len(amounts)} transactions since {since.isoformat()}"
        )

        return FinancialState(
            net_worth=net_worth,
            savings=net_worth * SAVINGS_SHARE_OF_NET_WORTH,
            annual_income=monthly_income * 12,
            annual_expenses=monthly_expenses * 12,
            age=DEFAULT_AGE,
        )

    async def _get_profile(self) -> Optional[DigitalTwinProfile]:
        result = await self.db.execute(
            select(DigitalTwinProfile).where(DigitalTwinProfile.user_id == self.user_id)
        )
        return result.scalar_one_or_none()

    async def _get_account_balances(self) -> List[Decimal]:
        result = await self.db.execute(
            select(CashAccount.balance).where(CashAccount.user_id == self.user_id)
        )
        return list(result.scalars().all())

    async def _get_transaction_amounts(self, since: date) -> List[Decimal]:
        result = await self.db.execute(
            select(Transaction.amount).where(
                Transaction.user_id == self.user_id,
                Transaction.transaction_date >= since,
            )
        )
        return list(result.scalars().all())

    async def _save_profile(self, state: FinancialState, profile: Optional[DigitalTwinProfile]) -> None:
        try:
            if profile is None:
                profile = DigitalTwinProfile(
                    id=generate_id("twin"),
                    user_id=self.user_id,
                    current_state=state.to_dict(),
                )
                self.db.add(profile)
            else:
                profile.current_state = state.to_dict()
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to create financial profile for user {self.user_id}: {e}")
            raise ProfileCreationError("Failed to create financial profile") from e
        self._profile_id = profile.id

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _save_scenario(
        self,
        scenario_id: Optional[str],
        parameters: SimulationParameters,
        runs: int,
        result: AggregatedResult,
    ) -> str:
        """
        Upsert the aggregated result. Last write wins.

        Raises ScenarioNotFound when the id belongs to another user, since the
        conflict clause then leaves the row untouched.
        """
        scenario_id = scenario_id or generate_id("scenario")
        values = {
            "id": scenario_id,
            "user_id": self.user_id,
            "twin_id": self._profile_id,
            "scenario_name": parameters.name,
            "scenario_type": parameters.scenario_type.value,
            "parameters": parameters.model_dump(by_alias=True, mode="json"),
            "monte_carlo_runs": runs,
            "success_probability": round(result.success_probability, 2),
            "projected_outcomes": result.to_dict(),
        }
        stmt = insert(TwinScenario).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[TwinScenario.id],
            set_={k: stmt.excluded[k] for k in values if k not in ("id", "user_id")},
            where=TwinScenario.user_id == self.user_id,
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            await self.db.rollback()
            logger.warning(f"User {self.user_id} tried to overwrite scenario {scenario_id} they do not own")
            raise ScenarioNotFound(f"Scenario {scenario_id} not found")
        await self.db.commit()
        return scenario_id
