"""Pydantic schemas for digital twin simulation.

The wire format is camelCase (the web client posts ``yearsToProject``,
``monteCarloRuns`` ...); fields are snake_case in Python and accept either.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from app.config import settings


CAMEL_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


class ScenarioKind(str, Enum):
    """Life-event scenario applied on top of the baseline trajectory."""
    BASELINE = "baseline"
    CAREER_CHANGE = "career_change"
    BUY_HOME = "buy_home"
    CUSTOM = "custom"


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class SimulationParameters(BaseModel):
    """Scenario parameters. Immutable for the duration of one simulation."""
    scenario_type: ScenarioKind = ScenarioKind.CUSTOM
    name: str = Field(default="Untitled Scenario", max_length=255)
    years_to_project: int = Field(default=30, ge=1, le=100)
    target_net_worth: Optional[float] = Field(default=None, ge=0)
    salary_growth: float = Field(default=0.03, ge=-1, le=1)

    # career_change
    change_year: Optional[int] = Field(default=None, ge=0)
    new_income: Optional[float] = Field(default=None, ge=0)

    # buy_home - mortgage_payment is monthly
    purchase_year: Optional[int] = Field(default=None, ge=0)
    down_payment: float = Field(default=0, ge=0)
    mortgage_payment: float = Field(default=0, ge=0)

    model_config = {**CAMEL_CONFIG, "frozen": True, "extra": "ignore"}

    @model_validator(mode="after")
    def check_scenario_fields(self) -> "SimulationParameters":
        if self.scenario_type == ScenarioKind.CAREER_CHANGE:
            if self.change_year is None or self.new_income is None:
                raise ValueError("career_change scenarios require changeYear and newIncome")
        if self.scenario_type == ScenarioKind.BUY_HOME and self.purchase_year is None:
            raise ValueError("buy_home scenarios require purchaseYear")
        return self


class SimulateRequest(BaseModel):
    """Body of POST /digital-twin-simulate."""
    scenario_id: Optional[str] = None
    parameters: SimulationParameters = Field(default_factory=SimulationParameters)
    monte_carlo_runs: Optional[int] = Field(default=None, ge=1, le=settings.MAX_MONTE_CARLO_RUNS)

    model_config = CAMEL_CONFIG


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class SeriesPoint(BaseModel):
    """One chart point: net worth on January 1st of a projected year."""
    date: str
    value: float


class ConfidenceBand(BaseModel):
    p10: List[SeriesPoint]
    p90: List[SeriesPoint]


class PercentileSummary(BaseModel):
    p10: float
    p50: float
    p90: float


class SimulationMetadata(BaseModel):
    scenario_id: str
    success_probability: float = Field(..., ge=0, le=100)
    percentiles: PercentileSummary
    simulations: int
    risk_level: Optional[str] = None

    model_config = CAMEL_CONFIG


class SimulationResponse(BaseModel):
    """Response of POST /digital-twin-simulate."""
    baseline: List[SeriesPoint]
    scenario: List[SeriesPoint]
    confidence: ConfidenceBand
    metadata: SimulationMetadata

    model_config = CAMEL_CONFIG


class ExplainRequest(BaseModel):
    """Body of POST /digital-twin-simulate/explain."""
    metadata: SimulationMetadata
    parameters: SimulationParameters = Field(default_factory=SimulationParameters)

    model_config = CAMEL_CONFIG


class ExplainResponse(BaseModel):
    explanation: str
    risk_level: str
    key_risks: List[str] = Field(default_factory=list)

    model_config = CAMEL_CONFIG
