"""Client for agents exposed over HTTP.

The agent service accepts ``POST <base_url>/api/agents/<agent_id>/generate``
with ``{"messages": [...]}`` and answers ``{"text": ..., "object": ...}``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from medicine_agent_orchestrator.agents.agent import AgentError, AgentResponse

logger = logging.getLogger(__name__)


class HttpAgentClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def generate(self, agent_id: str, messages: Sequence[dict[str, Any]]) -> AgentResponse:
        url = f"{self.base_url}/api/agents/{agent_id}/generate"
        logger.debug("Calling HTTP agent", extra={"agent": agent_id, "url": url})
        try:
            response = self._session.post(
                url,
                json={"messages": list(messages)},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise AgentError(agent_id, f"request failed: {e}") from e

        if not response.ok:
            raise AgentError(
                agent_id, f"API call failed with status {response.status_code}: {response.text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AgentError(agent_id, "response is not JSON") from e
        if not isinstance(data, dict):
            raise AgentError(agent_id, "response is not a JSON object")

        obj = data.get("object")
        return AgentResponse(
            text=str(data.get("text") or ""),
            object=obj if isinstance(obj, dict) else None,
        )
