"""Plain-language explanation of a simulation result via the AI gateway."""
import logging

from app.ai import AIServiceError, complete_json
from app.twin.monte_carlo import assess_risk_level
from app.twin.schemas import ExplainResponse, ScenarioKind, SimulationMetadata, SimulationParameters

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a financial planning assistant. You explain Monte Carlo net worth "
    "projections to non-experts in two or three short paragraphs. Describe the "
    "range of outcomes, what the success probability means, and what drives the "
    "risk. Do not give investment advice or promise returns."
)

EXPLANATION_TOOL = {
    "name": "explain_projection",
    "description": "Return a plain-language explanation of a net worth projection.",
    "parameters": {
        "type": "object",
        "properties": {
            "explanation": {"type": "string"},
            "key_risks": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["explanation"],
    },
}


def _money(value: float) -> str:
    return f"${value:,.0f}"


def build_explanation_prompt(
    metadata: SimulationMetadata,
    parameters: SimulationParameters,
    risk_level: str,
) -> str:
    lines = [
        f"Scenario: {parameters.name} ({parameters.scenario_type.value})",
        f"Horizon: {parameters.years_to_project} years, {metadata.simulations} simulations",
        f"Median final net worth: {_money(metadata.percentiles.p50)}",
        f"10th percentile: {_money(metadata.percentiles.p10)}",
        f"90th percentile: {_money(metadata.percentiles.p90)}",
    ]
    if parameters.target_net_worth is not None:
        lines.append(
            f"Probability of reaching {_money(parameters.target_net_worth)}: "
            f"{metadata.success_probability:.1f}% (risk level: {risk_level})"
        )
    if parameters.scenario_type == ScenarioKind.CAREER_CHANGE:
        lines.append(f"Career change in year {parameters.change_year} to {_money(parameters.new_income or 0)} per year")
    elif parameters.scenario_type == ScenarioKind.BUY_HOME:
        lines.append(
            f"Home purchase in year {parameters.purchase_year}: {_money(parameters.down_payment)} down, "
            f"{_money(parameters.mortgage_payment)} per month"
        )
    return "\n".join(lines)


async def explain_simulation(
    metadata: SimulationMetadata,
    parameters: SimulationParameters,
) -> ExplainResponse:
    """Ask the AI gateway to narrate a simulation. AI errors propagate unchanged."""
    risk_level = assess_risk_level(metadata.success_probability)
    prompt = build_explanation_prompt(metadata, parameters, risk_level)

    result = await complete_json(SYSTEM_PROMPT, prompt, tool=EXPLANATION_TOOL)

    explanation = str(result.get("explanation") or "").strip()
    if not explanation:
        logger.warning(f"Empty explanation for scenario {metadata.scenario_id}")
        raise AIServiceError("AI returned an empty explanation")

    return ExplainResponse(
        explanation=explanation,
        risk_level=risk_level,
        key_risks=[str(r) for r in result.get("key_risks") or []],
    )
