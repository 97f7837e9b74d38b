"""Medicine routing workflow.

classify -> attach prompt -> route to exactly one answering agent -> collapse.

The classifier's free text is parsed into an :class:`Intent` so the branch
predicates are mutually exclusive by construction.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from medicine_agent_orchestrator.agents import catalog
from medicine_agent_orchestrator.agents.agent import Agent
from medicine_agent_orchestrator.agents.steps import agent_step
from medicine_agent_orchestrator.workflow.builder import Workflow, create_workflow
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.stages import Predicate
from medicine_agent_orchestrator.workflow.step import StepContext, create_step

MEDICINE_WORKFLOW_ID = "medicine-workflow"


class Intent(str, Enum):
    GENERAL_NEED = "general_need"
    PRODUCT_LOOKUP = "product_lookup"
    COMPARE = "compare"
    RESEARCH = "research"

    @classmethod
    def parse(cls, text: str) -> Intent:
        """Map classifier output (possibly quoted or chatty) to an intent.

        Unrecognized text falls back to ``GENERAL_NEED``.
        """

        cleaned = text.strip().strip("\"'` .").lower().replace("-", "_").replace(" ", "_")
        for intent in cls:
            if cleaned == intent.value:
                return intent
        for intent in cls:
            if intent.value in cleaned:
                return intent
        return cls.GENERAL_NEED


MedicineInput = Schema({"input": Field("string")})
MedicineOutput = Schema({"output": Field("string")})
ClassifiedQuery = Schema(
    {
        "intent": Field("string", enum=tuple(i.value for i in Intent)),
        "input": Field("string"),
    }
)


def intent_is(intent: Intent) -> Predicate:
    def predicate(value: dict[str, Any]) -> bool:
        return value.get("intent") == intent.value

    return predicate


def attach_prompt(value: dict[str, Any]) -> dict[str, Any]:
    return {"prompt": value["input"], "intent": value["intent"]}


def collapse_answers(value: dict[str, Any]) -> dict[str, Any]:
    texts = [answer["text"] for answer in value.values() if answer.get("text")]
    return {"output": "\n\n".join(texts)}


def build_medicine_workflow(agents: Mapping[str, Agent]) -> Workflow:
    classifier = agents[catalog.CLASSIFIER]

    def classify(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        response = classifier.generate([{"role": "user", "content": data["input"]}])
        return {"intent": Intent.parse(response.text).value, "input": data["input"]}

    classify_step = create_step(
        id="classify-step",
        description="Classify user intent",
        input_schema=MedicineInput,
        output_schema=ClassifiedQuery,
        execute=classify,
    )

    routes = [
        (Intent.GENERAL_NEED, catalog.MEDICINE_INFO, "medicine-info-step"),
        (Intent.PRODUCT_LOOKUP, catalog.PRODUCT_LOOKUP, "product-lookup-step"),
        (Intent.COMPARE, catalog.COMPARISON, "comparison-step"),
        (Intent.RESEARCH, catalog.RESEARCH, "research-step"),
    ]

    return (
        create_workflow(
            id=MEDICINE_WORKFLOW_ID,
            description="Routes user queries to the correct medicine-related agent",
            input_schema=MedicineInput,
            output_schema=MedicineOutput,
        )
        .then(classify_step)
        .map(attach_prompt, id="attach-prompt")
        .branch(
            [
                (intent_is(intent), agent_step(agents[name], id=step_id))
                for intent, name, step_id in routes
            ],
            id="route-by-intent",
        )
        .map(collapse_answers, id="collapse-answers")
        .commit()
    )
