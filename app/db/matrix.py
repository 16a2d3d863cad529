"""Persistence for the data matrix, its rows, Schema-1 and data-mapping rows.

Matrix rows are written with a generation swap: the new generation's rows
are inserted first, then `data_matrices.current_generation_id` is flipped,
then every other generation's rows for the vertical are deleted. Readers
filter on the current generation, so regeneration never exposes an empty
matrix and the final state holds exactly one generation.
"""

from datetime import datetime, timezone  # noqa: UP035
from typing import Any
from uuid import uuid4

from app.core.logging import get_logger
from app.core.schemas_matrix import ScoredDataElement
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()  # noqa: UP017


def element_to_row(
    vertical_id: str,
    generation_id: str,
    element: ScoredDataElement,
    source_session_ids: list[str],
) -> dict[str, Any]:
    """Flatten a scored element into a data_matrix_rows record."""
    data = element.model_dump(mode="json")
    risk = data.pop("risk")
    return {
        **data,
        "vertical_id": vertical_id,
        "generation_id": generation_id,
        "sensitivity_weight": risk["sensitivity_weight"],
        "processing_risk": risk["processing_risk"],
        "volume_indicator": risk["volume_indicator"],
        "exposure_factor": risk["exposure_factor"],
        "risk_score": risk["final_score"],
        "source_session_ids": source_session_ids,
        "status": "draft",
        "generated_by": "ai",
    }


def average_confidence(elements: list[ScoredDataElement]) -> float:
    if not elements:
        return 0.0
    return sum(e.confidence_score for e in elements) / len(elements)


def get_data_matrix(vertical_id: str) -> dict[str, Any] | None:
    """Get the data matrix aggregate for a vertical."""
    supabase = get_supabase()
    response = (
        supabase.table("data_matrices").select("*").eq("vertical_id", vertical_id).execute()
    )
    return response.data[0] if response.data else None


def persist_matrix(
    vertical_id: str,
    elements: list[ScoredDataElement],
    source_session_ids: list[str],
) -> dict[str, Any]:
    """
    Replace the vertical's matrix rows with `elements`.

    Args:
        vertical_id: Owning vertical
        elements: Deduplicated, scored elements
        source_session_ids: Sessions the generation was built from

    Returns:
        Dict with matrix_id, generation_id, row_count, avg_confidence

    Raises:
        Exception: If a database operation fails; the previous generation
            stays current unless the pointer flip already happened
    """
    supabase = get_supabase()
    generation_id = str(uuid4())
    avg_confidence = average_confidence(elements)
    existing = get_data_matrix(vertical_id)

    metadata: dict[str, Any] = {
        "total_rows": len(elements),
        "avg_confidence": avg_confidence,
        "sessions_used": source_session_ids,
    }
    metadata["regenerated_at" if existing else "generated_at"] = _utc_now_iso()

    try:
        rows = [
            element_to_row(vertical_id, generation_id, element, source_session_ids)
            for element in elements
        ]
        if rows:
            supabase.table("data_matrix_rows").insert(rows).execute()

        response = (
            supabase.table("data_matrices")
            .upsert(
                {
                    "vertical_id": vertical_id,
                    "status": "draft",
                    "generation_metadata": metadata,
                    "current_generation_id": generation_id,
                },
                on_conflict="vertical_id",
            )
            .execute()
        )
        if not response.data:
            raise ValueError("No data returned from data_matrices upsert")
        matrix = response.data[0]

        supabase.table("data_matrix_rows").delete().eq("vertical_id", vertical_id).neq(
            "generation_id", generation_id
        ).execute()
        # neq never matches NULL, so rows written before generations existed go separately
        supabase.table("data_matrix_rows").delete().eq("vertical_id", vertical_id).is_(
            "generation_id", "null"
        ).execute()

    except Exception as e:
        logger.error(
            f"Failed to persist matrix for vertical {vertical_id}: {e}",
            extra={"vertical_id": vertical_id, "generation_id": generation_id},
        )
        raise

    logger.info(
        f"Persisted {len(elements)} matrix rows for vertical {vertical_id}",
        extra={"vertical_id": vertical_id, "generation_id": generation_id},
    )

    return {
        "matrix_id": matrix["id"],
        "generation_id": generation_id,
        "row_count": len(elements),
        "avg_confidence": avg_confidence,
    }


def list_matrix_rows(vertical_id: str) -> list[dict[str, Any]]:
    """
    List the current generation's matrix rows, highest risk first.

    Args:
        vertical_id: Vertical ID

    Returns:
        Row dicts; empty when no matrix has been generated
    """
    matrix = get_data_matrix(vertical_id)
    if not matrix or not matrix.get("current_generation_id"):
        return []

    supabase = get_supabase()
    response = (
        supabase.table("data_matrix_rows")
        .select("*")
        .eq("vertical_id", vertical_id)
        .eq("generation_id", matrix["current_generation_id"])
        .order("risk_score", desc=True)
        .execute()
    )
    return response.data or []


# ============================================================================
# Schema-1 and data mapping
# ============================================================================


def save_schema_one(vertical_id: str, schema_one: dict[str, Any]) -> None:
    """Store Schema-1 on the vertical's data matrix (overwrites on regenerate)."""
    supabase = get_supabase()
    supabase.table("data_matrices").upsert(
        {"vertical_id": vertical_id, "schema_one_json": schema_one},
        on_conflict="vertical_id",
    ).execute()


def get_schema_one(vertical_id: str) -> dict[str, Any] | None:
    """Get the stored Schema-1 document, or None."""
    matrix = get_data_matrix(vertical_id)
    if not matrix:
        return None
    return matrix.get("schema_one_json")


def replace_data_mapping_rows(vertical_id: str, rows: list[dict[str, Any]]) -> int:
    """Delete the vertical's data-mapping rows and insert `rows` numbered from 1."""
    supabase = get_supabase()
    supabase.table("data_mapping_rows").delete().eq("vertical_id", vertical_id).execute()

    records = [
        {**row, "vertical_id": vertical_id, "s_no": index}
        for index, row in enumerate(rows, start=1)
    ]
    if records:
        supabase.table("data_mapping_rows").insert(records).execute()
    return len(records)


def list_data_mapping_rows(vertical_id: str) -> list[dict[str, Any]]:
    """List the vertical's data-mapping rows in s_no order."""
    supabase = get_supabase()
    response = (
        supabase.table("data_mapping_rows")
        .select("*")
        .eq("vertical_id", vertical_id)
        .order("s_no")
        .execute()
    )
    return response.data or []
