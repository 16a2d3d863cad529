"""Schema-1 extraction: interview transcripts -> node/flow document -> data-mapping rows.

Two structured LLM calls. The first turns every finalized session of a
vertical into a Schema-1 document (nodes, flows and per-node data
elements); the second consolidates Schema-1 into one inventory row per
distinct data category.
"""

import json
from typing import Any

from app.core.exceptions import PreconditionError
from app.core.llm import call_structured
from app.core.logging import get_logger
from app.core.schemas_dfd import SchemaOne
from app.core.schemas_matrix import DataMappingRow
from app.db.matrix import replace_data_mapping_rows, save_schema_one
from app.db.sessions import list_finalized_sessions
from app.db.verticals import update_assessment_status

logger = get_logger(__name__)

# ruff: noqa: E501
SCHEMA_ONE_PROMPT = """You are a senior data protection and systems analyst carrying out a Privacy Impact Assessment. Read the interview transcript(s) below and extract a data-flow logic model enriched with privacy metadata and process detail.

## Nodes
Identify every entity in the system:
- EXTERNAL_ENTITY: people, departments, external systems, third parties, regulators, customers, employees
- PROCESS: any action, workflow, automated task or manual procedure that touches personal data
- DATA_STORE: databases, file shares, archives, cloud storage, SaaS platforms, inboxes, spreadsheets, paper records

Every node carries `data_elements`, a list of the distinct data categories it handles, each with:
`name`, `description`, `classification` (one of "Public", "Internal", "Confidential", "PII/Sensitive", "Special Category"), `purpose`, `retention_period`, `legal_basis`, `storage_location`, `owner`.

PROCESS nodes also carry `sub_processes` (each `name`, `description`, `routing`) capturing every branch, IVR option, case category and routing rule, and an `sla` (turnaround time).
DATA_STORE nodes also carry `integrations` (each `system`, `type`, `direction` of "inbound", "outbound" or "bidirectional").
Any node may list `reference_documents` (policies, SOPs, matrices mentioned for it).

## Flows
Every movement of information between two nodes: `id`, `source`, `target`, `label`, `data_elements` (list of data category names), `bi_directional` (boolean), `transfer_mechanism`, `cross_border` (true, false or null when unknown).

## Constraints
1. Node ids are unique and prefixed by type: ext_XX, proc_XX, ds_XX.
2. `type` is exactly one of "EXTERNAL_ENTITY", "PROCESS", "DATA_STORE".
3. Every flow source and target references an existing node id.
4. Be exhaustive: extract every data element, process, sub-process and flow mentioned or implied.
5. When a detail is not stated in the transcript use "Not specified" rather than guessing.

Return a JSON object: {"meta": {"project_name", "vertical_name", "generated_at"}, "nodes": [...], "flows": [...]}"""

DATA_MAPPING_PROMPT = """You are a data privacy analyst building a data mapping and inventory table from a Schema-1 document.

Schema-1 already holds enriched data_elements on each node and flow. Consolidate them into one flat table:
1. Deduplicate data elements across all nodes and flows. When the same data category appears on several nodes, merge them and keep the most specific, complete values.
2. Every distinct data category gets exactly one row. Do not skip any.

Row fields:
- data_category: consolidated category name
- description: what the data includes, combined across nodes
- purpose: primary purpose(s) of processing
- data_owner: primary responsible department or role
- storage_location: every place the data is stored, comma-separated
- data_classification: highest applicable level (Public < Internal < Confidential < PII/Sensitive < Special Category)
- retention_period: most specific value available
- legal_basis: primary legal basis

Return a JSON array of row objects."""


def build_transcript(sessions: list[dict[str, Any]]) -> str:
    """Combine session notes and file text under `--- Session N ... ---` headers."""
    transcript = ""
    for session in sessions:
        number = session.get("session_number")
        if session.get("raw_text_notes"):
            transcript += f"\n--- Session {number} Notes ---\n{session['raw_text_notes']}\n"
        for file in session.get("files") or []:
            if file.get("transcribed_text"):
                transcript += (
                    f"\n--- Session {number} File: {file.get('file_name')} ---\n"
                    f"{file['transcribed_text']}\n"
                )
    return transcript


async def extract_schema_one(vertical_id: str) -> dict[str, Any]:
    """
    Build and store Schema-1 and the data-mapping rows for a vertical.

    Args:
        vertical_id: Vertical ID

    Returns:
        Dict with schema_one (JSON-ready dict) and row_count

    Raises:
        PreconditionError: No transcript text in finalized sessions
        GenerationError: Either LLM call failed after retries
    """
    sessions = list_finalized_sessions(vertical_id)
    transcript = build_transcript(sessions)
    if not transcript.strip():
        raise PreconditionError(
            "No transcript text found in finalized sessions.",
            details={"vertical_id": vertical_id},
        )

    logger.info(
        f"Extracting Schema-1 from {len(sessions)} sessions",
        extra={"vertical_id": vertical_id},
    )
    schema_one = await call_structured(
        f"{SCHEMA_ONE_PROMPT}\n\n--- BEGIN TRANSCRIPTS ---\n{transcript}\n--- END TRANSCRIPTS ---",
        SchemaOne,
        temperature=0.1,
        max_retries=2,
        component="schema_one",
    )
    schema_one_json = schema_one.model_dump(mode="json")
    save_schema_one(vertical_id, schema_one_json)

    mapping_rows = await call_structured(
        f"{DATA_MAPPING_PROMPT}\n\n--- BEGIN SCHEMA-1 ---\n"
        f"{json.dumps(schema_one_json, indent=2)}\n--- END SCHEMA-1 ---",
        list[DataMappingRow],
        temperature=0.1,
        max_retries=2,
        component="data_mapping",
    )
    row_count = replace_data_mapping_rows(
        vertical_id, [row.model_dump() for row in mapping_rows]
    )
    update_assessment_status(vertical_id, "matrix_generated")

    logger.info(
        f"Stored Schema-1 ({len(schema_one.nodes)} nodes, {len(schema_one.flows)} flows) "
        f"and {row_count} data mapping rows",
        extra={"vertical_id": vertical_id},
    )
    return {"schema_one": schema_one_json, "row_count": row_count}
