"""Drug label lookup against the openFDA API."""

from __future__ import annotations

import logging
from typing import Any

import requests

from medicine_agent_orchestrator.core.config import ToolsConfig
from medicine_agent_orchestrator.tools.base import Tool
from medicine_agent_orchestrator.workflow.schema import Field, Schema

logger = logging.getLogger(__name__)

INDICATIONS_PREVIEW_CHARS = 300

MedicalRetrievalInput = Schema(
    {"query": Field("string", description="The generic or brand name of the drug to look up.")}
)
MedicalRetrievalOutput = Schema(
    {"info": Field("string", description="A summary of the drug information found or an error message.")}
)


def _search_expression(query: str) -> str:
    return (
        f'(openfda.generic_name:"{query}" OR openfda.brand_name:"{query}") '
        f'OR (description:"{query}" OR indications_and_usage:"{query}")'
    )


def _first(values: object, default: str) -> str:
    if isinstance(values, list) and values and isinstance(values[0], str):
        return values[0]
    return default


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return f"API request failed with status {response.status_code}"


def format_label(query: str, label: dict[str, Any]) -> str:
    openfda = label.get("openfda")
    if not isinstance(openfda, dict):
        openfda = {}
    generic_name = _first(openfda.get("generic_name"), "N/A")
    brand_name = _first(openfda.get("brand_name"), "N/A")
    indications = _first(label.get("indications_and_usage"), "No indications listed.")
    return (
        f"Found info for: {query}. Generic Name: {generic_name}. Brand Name: {brand_name}. "
        f"Indications: {indications[:INDICATIONS_PREVIEW_CHARS]}..."
    )


def medical_retrieval_tool(config: ToolsConfig, session: requests.Session | None = None) -> Tool:
    http = session or requests.Session()

    def lookup(data: dict[str, Any]) -> dict[str, Any]:
        query = data["query"]
        if not config.openfda_api_key:
            return {"info": "API Error: OPENFDA_API_KEY is not set in environment variables."}

        params = {
            "search": _search_expression(query),
            "api_key": config.openfda_api_key,
            "limit": "1",
        }
        try:
            response = http.get(
                config.openfda_base_url, params=params, timeout=config.request_timeout_seconds
            )
            if not response.ok:
                return {"info": f"API Error: {_error_message(response)}"}
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("openFDA lookup failed", extra={"query": query, "error": str(e)})
            return {"info": f"API Error: {e}"}

        results = payload.get("results") if isinstance(payload, dict) else None
        if results is not None and not isinstance(results, list):
            return {"info": "API Error: unexpected response shape"}
        if results:
            if not isinstance(results[0], dict):
                return {"info": "API Error: unexpected response shape"}
            return {"info": format_label(query, results[0])}
        return {"info": f"No drug label information found for: {query}"}

    return Tool(
        id="medical-retrieval",
        description="Fetches drug label information from the openFDA API.",
        input_schema=MedicalRetrievalInput,
        output_schema=MedicalRetrievalOutput,
        fn=lookup,
    )
