"""
Data Matrix Pipeline

Runs the six-stage matrix generation for one vertical:
  1. entity extraction per session (batched, parallel within a batch)
  2. relationship graph across sessions
  3. classification / enrichment
  4. deterministic risk scoring
  5. deduplication
  6. persistence (generation swap)

Progress is reported through an optional `on_progress(ProgressEvent)`
callback with non-decreasing percentages.
"""

from collections.abc import Callable
from typing import Any

from app.chains.build_relationship_graph import build_relationship_graph
from app.chains.classify_data_elements import classify_data_elements
from app.chains.extract_privacy_entities import extract_entities_batch
from app.core.exceptions import PreconditionError
from app.core.logging import get_logger
from app.core.matrix_dedup import deduplicate_elements
from app.core.risk_scoring import score_elements
from app.core.schemas_matrix import PipelineStep, ProgressEvent
from app.db.matrix import persist_matrix
from app.db.sessions import list_finalized_sessions
from app.db.verticals import get_vertical_context, update_assessment_status

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

# Extraction owns the 5-30 band of the progress bar
EXTRACTION_START = 5
EXTRACTION_SPAN = 25


async def generate_data_matrix(
    vertical_id: str,
    on_progress: ProgressCallback | None = None,
) -> dict[str, Any]:
    """
    Generate and persist the data matrix for a vertical.

    Args:
        vertical_id: Vertical ID
        on_progress: Optional progress callback

    Returns:
        Dict with matrix_id, generation_id, row_count, avg_confidence

    Raises:
        PreconditionError: Vertical missing or no finalized sessions
        GenerationError: A generation stage failed after retries
    """

    def emit(step: PipelineStep, message: str, progress: int, detail: str | None = None) -> None:
        logger.info(
            f"[{step}] {message} ({progress}%)",
            extra={"vertical_id": vertical_id},
        )
        if on_progress:
            on_progress(ProgressEvent(step=step, message=message, progress=progress, detail=detail))

    vertical = get_vertical_context(vertical_id)
    if vertical is None:
        raise PreconditionError(
            f"Vertical {vertical_id} not found", details={"vertical_id": vertical_id}
        )

    sessions = list_finalized_sessions(vertical_id)
    if not sessions:
        raise PreconditionError(
            "No finalized sessions found. Finalize at least one interview session first.",
            details={"vertical_id": vertical_id},
        )

    # Stage 1
    emit("extracting", f"Extracting entities from {len(sessions)} sessions", EXTRACTION_START)

    def on_batch(completed: int, total: int) -> None:
        progress = EXTRACTION_START + (EXTRACTION_SPAN * completed) // total
        emit("extracting", f"Extracted entities from {completed}/{total} sessions", progress)

    extraction_results = await extract_entities_batch(sessions, vertical["name"], on_progress=on_batch)
    entity_count = sum(len(result.entities) for result in extraction_results)
    emit("extracting", f"Extracted {entity_count} entities", EXTRACTION_START + EXTRACTION_SPAN)

    # Stage 2
    emit("building_graph", "Building relationship graph", 35)
    graph = await build_relationship_graph(extraction_results, vertical["name"])
    emit("building_graph", f"Identified {len(graph.data_elements)} data elements", 50)

    # Stage 3
    emit("classifying", "Classifying data elements", 55)
    classification = await classify_data_elements(
        graph, vertical["industry"], vertical["regulatory_scope"]
    )
    emit("classifying", f"Classified {len(classification.elements)} data elements", 70)

    # Stage 4
    emit("scoring", "Computing risk scores", 75)
    scored = score_elements(classification.elements)
    high_risk = sum(1 for element in scored if element.risk.final_score >= 15)
    emit("scoring", f"Scored {len(scored)} elements ({high_risk} high risk)", 80)

    # Stage 5
    emit("deduplicating", "Removing duplicate data elements", 82)
    deduplicated = deduplicate_elements(scored)
    emit(
        "deduplicating",
        f"{len(deduplicated)} unique elements ({len(scored) - len(deduplicated)} merged)",
        85,
    )

    # Stage 6
    emit("persisting", "Saving data matrix", 88)
    result = persist_matrix(
        vertical_id,
        deduplicated,
        source_session_ids=[str(session["id"]) for session in sessions],
    )
    update_assessment_status(vertical_id, "matrix_generated")

    emit(
        "done",
        f"Data matrix generated with {result['row_count']} rows",
        100,
        detail=f"avg_confidence={result['avg_confidence']:.2f}",
    )
    return result
