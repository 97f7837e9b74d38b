"""Side-by-side product comparison."""

from __future__ import annotations

from typing import Any

from medicine_agent_orchestrator.tools.base import Tool
from medicine_agent_orchestrator.workflow.schema import Field, Schema

ComparisonInput = Schema({"products": Field("array", items=Field("string"))})
ComparisonOutput = Schema({"comparison": Field("string")})


def _compare(data: dict[str, Any]) -> dict[str, Any]:
    # TODO: pull real product data from the pricing lookup instead of mock text.
    products = data["products"]
    return {"comparison": f"Comparison of {' vs '.join(products)} (mock data)."}


def comparison_tool() -> Tool:
    return Tool(
        id="comparison-tool",
        description="Compares multiple medicines side by side",
        input_schema=ComparisonInput,
        output_schema=ComparisonOutput,
        fn=_compare,
    )
