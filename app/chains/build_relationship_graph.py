"""Step 2: merge extracted entities from all sessions into canonical data elements."""

import json

from app.core.llm import call_structured
from app.core.logging import get_logger
from app.core.schemas_matrix import EntityExtractionResult, RelationshipGraphResult

logger = get_logger(__name__)

# ruff: noqa: E501
RELATIONSHIP_GRAPH_PROMPT = """You are a privacy assessment analyst. Given the following extracted entities from multiple interview sessions for the "{vertical_name}" vertical, construct a relationship graph.

For each unique DATA_ELEMENT, determine based on the extracted entity relationships:
- data_element: the canonical element name
- category: personal | sensitive_personal | non_personal | anonymized | pseudonymized
- data_subjects: who the data is about (e.g., ["employees", "customers"])
- collected_by: actors/roles that collect this data
- collection_methods: how it is collected
- systems: systems/apps that process this data
- storage_locations: where it is stored
- processing_activities: what is done with it
- access_roles: who can access it
- shared_with_internal: internal departments/teams it goes to
- shared_with_external: external parties it goes to
- cross_border: boolean, whether it crosses national borders
- cross_border_details: destination country and mechanism if applicable, else null
- retention_info: how long it is kept, else null
- consent_info: how consent is obtained, else null
- source_session_ids: which session IDs mentioned this element
- confidence: overall confidence in the relationship mapping (0-1)

Rules:
- Merge entities that refer to the same thing (e.g., "employee email" and "staff email address").
- Take the UNION of information from all sessions. If one session says "stored in HRMS" and another adds "also in Oracle DB", include both.
- Set confidence lower for relationships that are implied rather than explicit.
- Do NOT invent relationships not supported by the entities.

Extracted entities:
---
{entities_json}
---

Return a JSON object with the schema: {{"vertical_name": string, "data_elements": [...]}}"""


async def build_relationship_graph(
    extraction_results: list[EntityExtractionResult],
    vertical_name: str,
) -> RelationshipGraphResult:
    """
    Build canonical data elements from every session's entities.

    Args:
        extraction_results: Step 1 output, one per session
        vertical_name: Vertical name

    Returns:
        RelationshipGraphResult; empty without an LLM call when there are no entities
    """
    all_entities = [
        {**entity.model_dump(), "session_id": result.session_id}
        for result in extraction_results
        for entity in result.entities
    ]

    if not all_entities:
        logger.info("No entities extracted, skipping relationship graph")
        return RelationshipGraphResult(vertical_name=vertical_name, data_elements=[])

    prompt = RELATIONSHIP_GRAPH_PROMPT.format(
        vertical_name=vertical_name,
        entities_json=json.dumps(all_entities, indent=2),
    )

    logger.info(f"Building relationship graph from {len(all_entities)} entities")
    return await call_structured(
        prompt,
        RelationshipGraphResult,
        temperature=0.1,
        component="relationship_graph",
    )
