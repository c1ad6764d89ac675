"""Digital twin models: stored financial profile and simulated scenarios."""
from sqlalchemy import Column, String, DateTime, Integer, Numeric, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.models.base import generate_id


class DigitalTwinProfile(Base):
    """Snapshot of the user's finances that seeds every simulation."""

    __tablename__ = "digital_twin_profiles"

    id = Column(String, primary_key=True, default=lambda: generate_id("twin"))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    # {"netWorth", "savings", "annualIncome", "annualExpenses", "age"}
    current_state = Column(JSONB, nullable=False, default=dict)
    life_stage = Column(String, nullable=True)
    risk_tolerance = Column(String, nullable=True)  # "conservative" | "moderate" | "aggressive"

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="twin_profile")
    scenarios = relationship("TwinScenario", back_populates="twin")


class TwinScenario(Base):
    """Aggregated outcome of one Monte Carlo batch. Individual runs are not kept."""

    __tablename__ = "twin_scenarios"

    id = Column(String, primary_key=True, default=lambda: generate_id("scenario"))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    twin_id = Column(String, ForeignKey("digital_twin_profiles.id", ondelete="SET NULL"), nullable=True)

    scenario_name = Column(String, nullable=True)
    scenario_type = Column(String, nullable=False)  # "baseline" | "career_change" | "buy_home" | "custom"
    parameters = Column(JSONB, nullable=False, default=dict)

    monte_carlo_runs = Column(Integer, nullable=True)
    success_probability = Column(Numeric(precision=5, scale=2), nullable=True)
    # {"percentiles": {...}, "timeline": [{"year", "median", "p10", "p90"}]}
    projected_outcomes = Column(JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="twin_scenarios")
    twin = relationship("DigitalTwinProfile", back_populates="scenarios")
