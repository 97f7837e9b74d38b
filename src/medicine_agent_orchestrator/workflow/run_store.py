"""In-process arena of runs, indexed by run id.

Only the run engine mutates runs, and every mutation goes through this store
under its lock. If ``path`` is set, the runs are mirrored to a JSON file after
every change so they can be inspected; the mirror is never read back.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from medicine_agent_orchestrator.workflow.errors import (
    IllegalTransitionError,
    RunAlreadyTerminatedError,
    UnknownRunError,
)
from medicine_agent_orchestrator.workflow.run import Run, RunStatus, transition


@dataclass
class RunStore:
    path: Path | None = None

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, Run] = {}

    def _get_unlocked(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise UnknownRunError(run_id)
        return run

    def _save_unlocked(self, run: Run) -> Run:
        self._runs[run.run_id] = run
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [r.model_dump() for r in self._runs.values()]
            self.path.write_text(
                json.dumps(payload, indent=2, ensure_ascii=False, default=str) + "\n",
                encoding="utf-8",
            )
        return run

    def create(self, *, workflow_id: str, input_data: dict[str, Any]) -> Run:
        with self._lock:
            run = Run(run_id=uuid.uuid4().hex, workflow_id=workflow_id, input=input_data)
            return self._save_unlocked(run)

    def get(self, run_id: str) -> Run:
        with self._lock:
            return self._get_unlocked(run_id)

    def list(self) -> list[Run]:
        with self._lock:
            return list(self._runs.values())

    def update(self, run_id: str, **updates: Any) -> Run:
        """Update fields of a run without changing its status."""

        with self._lock:
            run = self._get_unlocked(run_id)
            return self._save_unlocked(run.model_copy(update=updates))

    def transition(
        self,
        run_id: str,
        to: RunStatus,
        *,
        expected: RunStatus | None = None,
        **updates: Any,
    ) -> Run:
        """Move a live run to ``to``.

        ``expected`` makes the check-and-set atomic: the transition only happens
        if the run is currently in that status.

        Raises:
            UnknownRunError: no such run.
            RunAlreadyTerminatedError: the run is already success/failed.
            IllegalTransitionError: the transition is otherwise not allowed.
        """

        with self._lock:
            run = self._get_unlocked(run_id)
            if run.status.is_terminal:
                raise RunAlreadyTerminatedError(run_id, run.status.value)
            if expected is not None and run.status != expected:
                raise IllegalTransitionError(
                    f"Run {run_id} is {run.status.value}, expected {expected.value}"
                )
            return self._save_unlocked(transition(current=run, to=to, **updates))
