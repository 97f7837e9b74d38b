#!/usr/bin/env python3
"""Programmatic dosage confirmation example.

This demonstrates using the workflow engine directly:

* load settings from `.env`
* start the dosage workflow (drug label lookup needs OPENFDA_API_KEY, and
  degrades to an error string without it)
* resume the suspended run with the human's answer
"""

from __future__ import annotations

import argparse
import json
from typing import Sequence

from medicine_agent_orchestrator.core.config import OrchestratorConfig
from medicine_agent_orchestrator.tools.medical_retrieval import medical_retrieval_tool
from medicine_agent_orchestrator.workflow import CollectingSink, RunEngine, RunStatus
from medicine_agent_orchestrator.workflows.dosage import build_dosage_workflow


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Confirm a dosage (programmatic example).")
    parser.add_argument("--drug", required=True, help='Drug name, e.g. "ibuprofen"')
    parser.add_argument("--dosage", required=True, help='Dosage, e.g. "200mg"')
    parser.add_argument("--answer", default="yes", help="Answer to the confirmation question")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    config = OrchestratorConfig()
    config.setup_logging()

    engine = RunEngine.from_config(config.engine)
    workflow = build_dosage_workflow(medical_retrieval_tool(config.tools))

    started = engine.start(workflow, {"drug": args.drug, "dosage": args.dosage})
    if started.status != RunStatus.SUSPENDED:
        print(json.dumps(started.to_json(), indent=2))
        return 1

    print(f"{started.payload['question']} ({args.dosage} of {args.drug}) -> {args.answer}")

    sink = CollectingSink()
    finished = engine.resume(started.run_id, {"answer": args.answer}, sink=sink)
    print(sink.text)
    return 0 if finished.status == RunStatus.SUCCESS else 1


if __name__ == "__main__":
    raise SystemExit(main())
