"""
Data Flow Diagram Pipeline

Two ways to produce a vertical's DFD:
- `generate_dfd`: AI-synthesized Mermaid from the current matrix rows (runs as a job)
- `convert_schema_to_dfd`: deterministic Mermaid from the stored Schema-1 document
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from app.chains.generate_mermaid_dfd import generate_mermaid_dfd
from app.core.exceptions import PreconditionError
from app.core.logging import get_logger
from app.core.mermaid_converter import generate_mermaid
from app.core.schemas_dfd import SchemaOne
from app.core.schemas_matrix import PipelineStep, ProgressEvent
from app.db.dfd import replace_dfd_graph, update_dfd_mermaid_code
from app.db.matrix import get_data_matrix, get_schema_one, list_matrix_rows
from app.db.verticals import get_vertical_context, update_assessment_status

logger = get_logger(__name__)


async def generate_dfd(
    vertical_id: str,
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> dict[str, Any]:
    """
    Generate and store an AI-synthesized DFD for a vertical.

    Args:
        vertical_id: Vertical ID
        on_progress: Optional progress callback

    Returns:
        Dict with dfd_graph_id, node_count, edge_count

    Raises:
        PreconditionError: Vertical missing or no matrix rows
        GenerationError: Generation failed after retries
    """

    def emit(step: PipelineStep, message: str, progress: int) -> None:
        logger.info(f"[{step}] {message} ({progress}%)", extra={"vertical_id": vertical_id})
        if on_progress:
            on_progress(ProgressEvent(step=step, message=message, progress=progress))

    emit("loading", "Loading data matrix rows", 5)

    vertical = get_vertical_context(vertical_id)
    if vertical is None:
        raise PreconditionError(
            f"Vertical {vertical_id} not found", details={"vertical_id": vertical_id}
        )

    rows = list_matrix_rows(vertical_id)
    if not rows:
        raise PreconditionError(
            "No data matrix rows found. Generate the Data Matrix first.",
            details={"vertical_id": vertical_id},
        )
    emit("loading", f"Loaded {len(rows)} data matrix rows", 15)

    emit("generating_mermaid", "Preparing data for Mermaid generation", 20)
    emit("generating_mermaid", "Generating Mermaid DFD", 30)
    result = await generate_mermaid_dfd(rows, vertical["name"], vertical["organization_name"])
    emit(
        "generating_mermaid",
        f"Mermaid DFD generated: {result.node_count} nodes, {result.edge_count} edges",
        70,
    )

    emit("persisting", "Saving DFD", 75)
    matrix = get_data_matrix(vertical_id)
    dfd_graph = replace_dfd_graph(
        vertical_id,
        result.mermaid_code,
        graph_data={
            "mermaid_code": result.mermaid_code,
            "summary": result.summary,
            "node_count": result.node_count,
            "edge_count": result.edge_count,
            "high_risk_flows": result.high_risk_flows,
            "cross_border_flows": result.cross_border_flows,
            "unencrypted_flows": result.unencrypted_flows,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        },
        project_id=vertical["project_id"],
        matrix_ids=[matrix["id"]] if matrix else [],
    )
    emit("persisting", "Saving complete", 90)

    update_assessment_status(vertical_id, "dfd_generated")
    emit("done", f"DFD generated: {result.node_count} nodes, {result.edge_count} edges", 100)

    return {
        "dfd_graph_id": dfd_graph["id"],
        "node_count": result.node_count,
        "edge_count": result.edge_count,
    }


def convert_schema_to_dfd(vertical_id: str) -> str:
    """
    Render the stored Schema-1 as Mermaid and set it on the vertical's DFD.

    Only mermaid_code changes on an existing DFD record; an AI-generated
    summary and flow lists stay in place.

    Args:
        vertical_id: Vertical ID

    Returns:
        Mermaid source

    Raises:
        PreconditionError: No Schema-1 stored, or it has flows to unknown nodes
    """
    stored = get_schema_one(vertical_id)
    if not stored:
        raise PreconditionError(
            "No Schema-1 found. Please generate the Data Matrix first.",
            details={"vertical_id": vertical_id},
        )

    try:
        schema = SchemaOne.model_validate(stored)
    except ValueError as e:
        raise PreconditionError(
            f"Stored Schema-1 is invalid: {e}", details={"vertical_id": vertical_id}
        ) from e

    mermaid_code = generate_mermaid(schema)
    vertical = get_vertical_context(vertical_id)
    update_dfd_mermaid_code(
        vertical_id,
        mermaid_code,
        project_id=vertical["project_id"] if vertical else None,
        graph_data={"node_count": len(schema.nodes), "edge_count": len(schema.flows)},
    )
    update_assessment_status(vertical_id, "dfd_generated")

    logger.info(
        f"Converted Schema-1 to Mermaid ({len(schema.nodes)} nodes, {len(schema.flows)} flows)",
        extra={"vertical_id": vertical_id},
    )
    return mermaid_code
