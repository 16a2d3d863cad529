"""Step 3: classify and enrich canonical data elements into full matrix attributes."""

import json

from app.core.llm import call_structured
from app.core.logging import get_logger
from app.core.schemas_matrix import ClassificationResult, RelationshipGraphResult

logger = get_logger(__name__)

# ruff: noqa: E501
CLASSIFICATION_PROMPT = """You are a privacy compliance expert. Classify the following data elements according to privacy regulations.

Vertical: {vertical_name}
Organization Industry: {industry}
Applicable Regulations: {regulations}

For each data element, populate ALL of the following fields. For any field where the source material is insufficient, set confidence_score below 0.5 and add a specific gap description to gaps_flagged.

Required fields per element:
- data_element_name, data_category (personal | sensitive_personal | non_personal | anonymized | pseudonymized), data_sub_category
- data_subjects, source_of_data, collection_method
- purpose_of_processing, legal_basis
- consent_mechanism ({{type, collection_point, withdrawal_method}} or null if not applicable)
- processing_types, systems_applications
- storage_location, storage_format
- encryption_at_rest (yes/no/partial/unknown), encryption_in_transit (yes/no/partial/unknown)
- retention_period, retention_compliant (true/false/null), deletion_method
- access_roles (array of {{role, access_type}})
- data_recipients_internal, data_recipients_external
- third_party_details (array of {{party_name, purpose, agreement_type}} or null)
- cross_border_transfer, cross_border_details ({{destination_country, transfer_mechanism}} or null if not applicable)
- data_owner
- confidence_score (0-1, overall confidence)
- gaps_flagged (array of specific gaps like "Retention period not discussed", "Encryption status unknown")

Rules:
- NEVER fabricate data. If something was not discussed, flag it as a gap.
- Use the regulatory framework to infer legal basis where reasonable (e.g., DPDPA for India).
- Set confidence below 0.5 for any field that is inferred rather than explicitly stated.
- Return exactly one element per input data element.

Data elements with context:
---
{data_elements_json}
---

Return a JSON object with the schema: {{"elements": [...]}}"""


async def classify_data_elements(
    graph: RelationshipGraphResult,
    industry: str,
    regulatory_scope: list[str],
) -> ClassificationResult:
    """
    Expand each canonical element into a fully attributed record.

    Args:
        graph: Step 2 output
        industry: Organization industry
        regulatory_scope: Applicable regulations (e.g. ["GDPR", "DPDPA"])

    Returns:
        ClassificationResult; empty without an LLM call when the graph is empty
    """
    if not graph.data_elements:
        logger.info("No data elements in graph, skipping classification")
        return ClassificationResult(elements=[])

    prompt = CLASSIFICATION_PROMPT.format(
        vertical_name=graph.vertical_name,
        industry=industry,
        regulations=", ".join(regulatory_scope) or "Not specified",
        data_elements_json=json.dumps(
            [element.model_dump() for element in graph.data_elements], indent=2
        ),
    )

    result = await call_structured(
        prompt,
        ClassificationResult,
        temperature=0.1,
        component="classification",
    )

    if len(result.elements) != len(graph.data_elements):
        logger.warning(
            f"Classification returned {len(result.elements)} elements "
            f"for {len(graph.data_elements)} inputs"
        )
    return result
