"""Read access to verticals and their owning project/organization."""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

DEFAULT_INDUSTRY = "General"


def get_vertical_context(vertical_id: str) -> dict[str, Any] | None:
    """
    Load a vertical with the project and organization fields the pipelines need.

    Args:
        vertical_id: Vertical ID

    Returns:
        Dict with id, name, project_id, project_name, organization_name,
        industry, regulatory_scope; None if the vertical does not exist
    """
    supabase = get_supabase()

    response = supabase.table("verticals").select("*").eq("id", vertical_id).execute()
    if not response.data:
        logger.warning(f"Vertical {vertical_id} not found")
        return None
    vertical = response.data[0]

    project: dict[str, Any] = {}
    organization: dict[str, Any] = {}
    if vertical.get("project_id"):
        project_resp = (
            supabase.table("projects").select("*").eq("id", vertical["project_id"]).execute()
        )
        project = project_resp.data[0] if project_resp.data else {}

    if project.get("organization_id"):
        org_resp = (
            supabase.table("organizations")
            .select("*")
            .eq("id", project["organization_id"])
            .execute()
        )
        organization = org_resp.data[0] if org_resp.data else {}

    return {
        "id": vertical["id"],
        "name": vertical.get("name") or "",
        "project_id": vertical.get("project_id"),
        "project_name": project.get("name") or "",
        "organization_name": organization.get("name") or "",
        "industry": organization.get("industry") or DEFAULT_INDUSTRY,
        "regulatory_scope": organization.get("regulatory_scope") or [],
    }


def update_assessment_status(vertical_id: str, status: str) -> None:
    """Set the vertical's assessment status (e.g. matrix_generated, dfd_generated)."""
    supabase = get_supabase()
    supabase.table("verticals").update({"assessment_status": status}).eq(
        "id", vertical_id
    ).execute()
    logger.info(
        f"Vertical {vertical_id} assessment status -> {status}",
        extra={"vertical_id": vertical_id},
    )
