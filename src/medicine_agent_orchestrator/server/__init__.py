"""FastAPI server exposing the medicine workflows.

Design intent:
- Keep workflow logic in `medicine_agent_orchestrator.workflow*`
- Keep server-specific concerns (routing, CORS, status mapping, streaming) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from medicine_agent_orchestrator.server.app import create_app
