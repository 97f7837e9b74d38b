"""Estimated drug price and availability from a pricing-expert sub-agent."""

from __future__ import annotations

import logging
from typing import Any

from medicine_agent_orchestrator.agents.agent import Agent, AgentError
from medicine_agent_orchestrator.llm.provider import LLMProvider
from medicine_agent_orchestrator.tools.base import Tool
from medicine_agent_orchestrator.workflow.schema import Field, Schema

logger = logging.getLogger(__name__)

PRICING_EXPERT_INSTRUCTIONS = """
You are a pharmaceutical pricing expert. Given a drug name, provide a realistic, estimated
cash price range for it in the United States.
Also, state whether it is typically available "OTC" (over-the-counter) or "Prescription".
Respond only with the JSON object.
"""

PricingLookupInput = Schema({"drug": Field("string", description="The name of the drug to look up.")})
PricingLookupOutput = Schema(
    {
        "name": Field("string"),
        "cost": Field("string", description="The estimated price range, e.g., '$10 - $20'."),
        "availability": Field(
            "string", description="'OTC' for over-the-counter or 'Prescription'."
        ),
    }
)
PricingEstimate = Schema(
    {
        "cost": Field("string"),
        "availability": Field("string", enum=("OTC", "Prescription")),
    }
)


def pricing_lookup_tool(provider: LLMProvider, *, model: str | None = None) -> Tool:
    expert = Agent(
        name="pricing-expert-agent",
        instructions=PRICING_EXPERT_INSTRUCTIONS,
        provider=provider,
        model=model,
    )

    def lookup(data: dict[str, Any]) -> dict[str, Any]:
        drug = data["drug"]
        try:
            response = expert.generate(
                f"What is the price and availability of {drug}?", output_schema=PricingEstimate
            )
        except AgentError as e:
            logger.warning("Pricing estimate failed", extra={"drug": drug, "error": str(e)})
            return {"name": drug, "cost": "N/A", "availability": "Unknown"}

        estimate = response.object or {}
        return {"name": drug, "cost": estimate["cost"], "availability": estimate["availability"]}

    return Tool(
        id="pricing-lookup",
        description=(
            "Fetches an estimated drug cost and its typical availability "
            "(e.g., OTC or Prescription)."
        ),
        input_schema=PricingLookupInput,
        output_schema=PricingLookupOutput,
        fn=lookup,
    )
