"""Digital twin simulation API routes."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai import AIServiceError
from app.auth.dependencies import get_current_user
from app.cache import ResponseCache, memory_cache
from app.database import get_db
from app.models import User, utc_now
from app.twin.engine import DigitalTwinSimulator, ProfileCreationError, ScenarioNotFound, SimulationError
from app.twin.explain import explain_simulation
from app.twin.monte_carlo import NormalSampler
from app.twin.schemas import ExplainRequest, ExplainResponse, SimulateRequest, SimulationResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_sampler() -> NormalSampler:
    """Fresh unseeded sampler per request."""
    return NormalSampler()


def get_response_cache(db: AsyncSession = Depends(get_db)) -> ResponseCache:
    return ResponseCache(db, memory=memory_cache)


@router.post("/digital-twin-simulate", response_model=SimulationResponse)
async def simulate(
    data: SimulateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
    sampler: NormalSampler = Depends(get_sampler),
):
    """Run a Monte Carlo projection. X-Cache tells whether it was recomputed."""
    simulator = DigitalTwinSimulator(db, current_user.id, cache=cache, sampler=sampler)

    try:
        payload, from_cache = await simulator.simulate(
            data.parameters,
            scenario_id=data.scenario_id,
            monte_carlo_runs=data.monte_carlo_runs,
        )
    except ProfileCreationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except ScenarioNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SimulationError as e:
        logger.error(f"Simulation failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return JSONResponse(
        content=payload,
        headers={
            "X-Cache": "HIT" if from_cache else "MISS",
            "X-Cache-Time": utc_now().isoformat(),
        },
    )


@router.post("/digital-twin-simulate/explain", response_model=ExplainResponse)
async def explain(
    data: ExplainRequest,
    current_user: User = Depends(get_current_user),
):
    """Narrate a simulation result. Rate limit -> 429, exhausted credits -> 402."""
    try:
        result = await explain_simulation(data.metadata, data.parameters)
    except AIServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return result
