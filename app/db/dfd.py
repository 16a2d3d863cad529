"""Persistence for generated data-flow diagrams."""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

VERTICAL_DFD = "vertical"


def replace_dfd_graph(
    vertical_id: str,
    mermaid_code: str,
    graph_data: dict[str, Any],
    project_id: str | None = None,
    matrix_ids: list[str] | None = None,
) -> dict[str, Any]:
    """
    Replace the vertical's DFD with a new one (regeneration overwrites).

    Args:
        vertical_id: Vertical ID
        mermaid_code: Mermaid source
        graph_data: Summary statistics and flow lists
        project_id: Owning project
        matrix_ids: Data matrices the DFD was generated from

    Returns:
        The inserted dfd_graphs row
    """
    supabase = get_supabase()

    supabase.table("dfd_graphs").delete().eq("vertical_id", vertical_id).eq(
        "dfd_type", VERTICAL_DFD
    ).execute()

    response = (
        supabase.table("dfd_graphs")
        .insert(
            {
                "project_id": project_id,
                "vertical_id": vertical_id,
                "dfd_type": VERTICAL_DFD,
                "status": "draft",
                "mermaid_code": mermaid_code,
                "graph_data": graph_data,
                "generated_from_matrix_ids": matrix_ids or [],
                "layout_config": {"type": "mermaid", "direction": "LR"},
            }
        )
        .execute()
    )
    if not response.data:
        raise ValueError("No data returned from dfd_graphs insert")

    logger.info(f"Stored DFD for vertical {vertical_id}", extra={"vertical_id": vertical_id})
    return response.data[0]


def update_dfd_mermaid_code(
    vertical_id: str,
    mermaid_code: str,
    project_id: str | None = None,
    graph_data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Set mermaid_code on the vertical's DFD, creating the record if there is none.

    An existing record keeps its graph_data, layout and source matrix ids;
    `graph_data` is only used when a new record is created.

    Returns:
        The updated or inserted dfd_graphs row
    """
    supabase = get_supabase()

    if get_dfd_graph(vertical_id):
        response = (
            supabase.table("dfd_graphs")
            .update({"mermaid_code": mermaid_code})
            .eq("vertical_id", vertical_id)
            .eq("dfd_type", VERTICAL_DFD)
            .execute()
        )
    else:
        response = (
            supabase.table("dfd_graphs")
            .insert(
                {
                    "project_id": project_id,
                    "vertical_id": vertical_id,
                    "dfd_type": VERTICAL_DFD,
                    "status": "draft",
                    "mermaid_code": mermaid_code,
                    "graph_data": graph_data or {},
                    "generated_from_matrix_ids": [],
                    "layout_config": {"type": "mermaid", "direction": "TD"},
                }
            )
            .execute()
        )
    if not response.data:
        raise ValueError("No data returned from dfd_graphs write")

    logger.info(
        f"Updated Mermaid code for vertical {vertical_id}", extra={"vertical_id": vertical_id}
    )
    return response.data[0]


def get_dfd_graph(vertical_id: str) -> dict[str, Any] | None:
    """Get the vertical's current DFD row, or None."""
    supabase = get_supabase()
    response = (
        supabase.table("dfd_graphs")
        .select("*")
        .eq("vertical_id", vertical_id)
        .eq("dfd_type", VERTICAL_DFD)
        .execute()
    )
    return response.data[0] if response.data else None
