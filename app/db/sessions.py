"""Read access to interview sessions and their extracted file text."""

from typing import Any

from app.db.supabase_client import get_supabase

FINALIZED = "finalized"


def list_finalized_sessions(vertical_id: str) -> list[dict[str, Any]]:
    """
    List finalized interview sessions for a vertical, with their files attached.

    Each session dict gains a `files` list of
    `{id, file_name, transcribed_text}` dicts.

    Args:
        vertical_id: Vertical ID

    Returns:
        Sessions ordered by session_number
    """
    supabase = get_supabase()

    response = (
        supabase.table("interview_sessions")
        .select("*")
        .eq("vertical_id", vertical_id)
        .eq("status", FINALIZED)
        .order("session_number")
        .execute()
    )
    sessions = response.data or []
    if not sessions:
        return []

    files_resp = (
        supabase.table("session_files")
        .select("id, session_id, file_name, transcribed_text")
        .in_("session_id", [s["id"] for s in sessions])
        .execute()
    )

    files_by_session: dict[str, list[dict[str, Any]]] = {}
    for file in files_resp.data or []:
        files_by_session.setdefault(file["session_id"], []).append(file)

    return [{**s, "files": files_by_session.get(s["id"], [])} for s in sessions]
