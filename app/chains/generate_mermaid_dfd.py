"""AI-synthesized Mermaid data-flow diagram from persisted matrix rows."""

import json
from typing import Any

from app.core.llm import call_structured
from app.core.logging import get_logger
from app.core.schemas_dfd import MermaidDFDResult

logger = get_logger(__name__)

# ruff: noqa: E501
MERMAID_DFD_PROMPT = """You are a privacy engineer drawing a Data Flow Diagram for the "{vertical_name}" vertical of {organization_name}.

Below is the data inventory (one entry per data element) produced by a privacy assessment. Draw how personal data moves between data subjects, external parties, processes/systems and data stores.

Diagram rules:
- Output Mermaid flowchart code starting with "flowchart LR".
- Use ["..."] for external entities (data subjects, third parties), ("...") for processes and systems, and [("...")] for data stores.
- Node ids must be short alphanumeric identifiers (e.g., ext_hr, proc_payroll, ds_hrms). Quote every label.
- Label each edge with the data elements it carries, e.g. A -->|"employee email, salary"| B.
- Style high-risk flows (elements with risk_score >= 15) with a red stroke using linkStyle.
- Mark cross-border transfers in the edge label with "(cross-border)".
- Do NOT invent systems, parties or flows that are not supported by the inventory.

Also report:
- summary: two or three sentences describing the main flows
- node_count and edge_count of the diagram
- high_risk_flows: descriptions of flows carrying elements with risk_score >= 15
- cross_border_flows: descriptions of flows that leave the country
- unencrypted_flows: descriptions of flows where encryption in transit is "no" or "unknown"

Data inventory:
---
{matrix_data_json}
---

Return a JSON object with the schema: {{"mermaid_code": string, "summary": string, "node_count": number, "edge_count": number, "high_risk_flows": [string], "cross_border_flows": [string], "unencrypted_flows": [string]}}"""


def summarize_matrix_row(row: dict[str, Any]) -> dict[str, Any]:
    """Compact projection of a data_matrix_rows record for the prompt."""
    return {
        "data_element": row.get("data_element_name"),
        "category": row.get("data_category"),
        "data_subjects": row.get("data_subjects"),
        "source": row.get("source_of_data"),
        "collection_method": row.get("collection_method"),
        "purpose": row.get("purpose_of_processing"),
        "systems": row.get("systems_applications"),
        "storage_location": row.get("storage_location"),
        "encryption_at_rest": row.get("encryption_at_rest"),
        "encryption_in_transit": row.get("encryption_in_transit"),
        "recipients_internal": row.get("data_recipients_internal"),
        "recipients_external": row.get("data_recipients_external"),
        "cross_border": row.get("cross_border_transfer"),
        "risk_score": row.get("risk_score"),
        "retention": row.get("retention_period"),
        "gaps": row.get("gaps_flagged"),
    }


async def generate_mermaid_dfd(
    rows: list[dict[str, Any]],
    vertical_name: str,
    organization_name: str,
) -> MermaidDFDResult:
    """
    Ask the model for a Mermaid DFD covering the given matrix rows.

    Args:
        rows: Current-generation matrix rows
        vertical_name: Vertical name
        organization_name: Organization name

    Returns:
        MermaidDFDResult
    """
    prompt = MERMAID_DFD_PROMPT.format(
        vertical_name=vertical_name,
        organization_name=organization_name or "the organization",
        matrix_data_json=json.dumps([summarize_matrix_row(row) for row in rows], indent=2),
    )

    logger.info(f"Generating Mermaid DFD from {len(rows)} matrix rows")
    return await call_structured(
        prompt,
        MermaidDFDResult,
        temperature=0.2,
        max_retries=2,
        component="mermaid_dfd",
    )
