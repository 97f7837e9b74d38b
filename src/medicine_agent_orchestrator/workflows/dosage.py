"""Dosage confirmation workflow.

Looks up the drug label, then pauses for a human to confirm the dosage. The
run is resumed with ``{"answer": "yes"}`` (or anything else to decline).
"""

from __future__ import annotations

from typing import Any

from medicine_agent_orchestrator.tools.base import Tool
from medicine_agent_orchestrator.workflow.builder import Workflow, create_workflow
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import StepContext, SuspendSignal, create_step

DOSAGE_WORKFLOW_ID = "dosage-confirmation-workflow"
CONFIRM_QUESTION = "Confirm dosage?"
AFFIRMATIVE_ANSWERS = frozenset({"yes", "y", "confirm", "confirmed", "ok"})

DosageInput = Schema({"drug": Field("string"), "dosage": Field("string")})
LabelledDosage = Schema(
    {"drug": Field("string"), "dosage": Field("string"), "label": Field("string")}
)
DosageAnswer = Schema({"answer": Field("string")})
DosageOutput = Schema({"output": Field("string"), "confirmed": Field("boolean")})


def is_affirmative(answer: str) -> bool:
    return answer.strip().lower() in AFFIRMATIVE_ANSWERS


def build_dosage_workflow(retrieval: Tool) -> Workflow:
    def lookup(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        found = retrieval.execute({"query": data["drug"]})
        return {**data, "label": found["info"]}

    def confirm(data: dict[str, Any], ctx: StepContext) -> dict[str, Any] | SuspendSignal:
        if ctx.resume_data is None:
            return SuspendSignal(
                {
                    "question": CONFIRM_QUESTION,
                    "drug": data["drug"],
                    "dosage": data["dosage"],
                    "label": data["label"],
                }
            )

        confirmed = is_affirmative(ctx.resume_data["answer"])
        verdict = "confirmed" if confirmed else "not confirmed"
        output = f"Dosage {data['dosage']} of {data['drug']} {verdict}.\n\n{data['label']}"
        ctx.emit(output)
        return {"output": output, "confirmed": confirmed}

    lookup_step = create_step(
        id="lookup-label",
        description="Fetch the drug label",
        input_schema=DosageInput,
        output_schema=LabelledDosage,
        execute=lookup,
    )
    confirm_step = create_step(
        id="confirm-dosage",
        description="Ask a human to confirm the dosage",
        input_schema=LabelledDosage,
        output_schema=DosageOutput,
        resume_schema=DosageAnswer,
        execute=confirm,
    )

    return (
        create_workflow(
            id=DOSAGE_WORKFLOW_ID,
            description="Looks up a drug label and waits for dosage confirmation",
            input_schema=DosageInput,
            output_schema=DosageOutput,
        )
        .then(lookup_step)
        .then(confirm_step)
        .commit()
    )
