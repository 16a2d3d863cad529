"""Step 1: extract privacy entities from interview sessions.

One structured LLM call per session; sessions are processed in fixed-size
batches that run concurrently, one batch at a time.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from app.core.config import get_settings
from app.core.llm import call_structured
from app.core.logging import get_logger
from app.core.schemas_matrix import EntityExtractionResult

logger = get_logger(__name__)

# ruff: noqa: E501
ENTITY_EXTRACTION_PROMPT = """You are a privacy assessment analyst. Extract all privacy-relevant entities from this interview session transcript conducted for the "{vertical_name}" vertical.

Categorize each entity found as one of:
- DATA_ELEMENT: A specific type of personal or organizational data (e.g., "employee name", "customer email", "health records", "IP address")
- SYSTEM: A software system, application, or platform (e.g., "Salesforce", "HRMS", "AWS S3 bucket")
- ACTOR: A person, role, or team that interacts with data (e.g., "HR Manager", "external auditor", "marketing team")
- PROCESSING_ACTIVITY: An action performed on data (e.g., "collects", "stores", "shares with", "deletes after 2 years")
- THIRD_PARTY: An external organization (e.g., "payroll provider ADP", "cloud vendor AWS", "insurance company")

Rules:
- Be thorough. Extract EVERY privacy-relevant entity mentioned.
- Normalize names (e.g., "employee email address" and "staff email" should both be "employee email").
- Include a direct or near-direct quote from the source text as context_quote.
- Set confidence to 1.0 for explicitly mentioned entities, 0.7-0.9 for implied ones, and below 0.5 for uncertain ones.
- Do NOT invent entities that are not in the text.

Session content:
---
{session_content}
---

Return a JSON object with the schema: {{"session_id": string, "entities": [{{"entity_type", "name", "context_quote", "confidence"}}]}}"""


def build_session_content(session: dict[str, Any]) -> str:
    """Combine a session's notes, AI summary and transcribed file text."""
    parts: list[str] = []
    if session.get("raw_text_notes"):
        parts.append(session["raw_text_notes"])
    if session.get("ai_summary"):
        parts.append(f"\nAI Summary:\n{session['ai_summary']}")
    for file in session.get("files") or []:
        if file.get("transcribed_text"):
            parts.append(f"\nFile: {file.get('file_name', 'attachment')}\n{file['transcribed_text']}")
    return "\n".join(parts)


async def extract_entities(session: dict[str, Any], vertical_name: str) -> EntityExtractionResult:
    """
    Extract privacy entities from a single session.

    Args:
        session: Session dict (id, raw_text_notes, ai_summary, files)
        vertical_name: Vertical the interview belongs to

    Returns:
        EntityExtractionResult; empty entities without an LLM call when the
        session has no text
    """
    session_id = str(session["id"])
    content = build_session_content(session)

    if not content.strip():
        logger.info(f"Session {session_id} has no text, skipping extraction")
        return EntityExtractionResult(session_id=session_id, entities=[])

    prompt = ENTITY_EXTRACTION_PROMPT.format(
        vertical_name=vertical_name,
        session_content=content,
    )
    result = await call_structured(
        prompt,
        EntityExtractionResult,
        temperature=0.1,
        component="entity_extraction",
    )

    # The model does not know the real session id
    return result.model_copy(update={"session_id": session_id})


async def extract_entities_batch(
    sessions: list[dict[str, Any]],
    vertical_name: str,
    on_progress: Callable[[int, int], None] | None = None,
    batch_size: int | None = None,
) -> list[EntityExtractionResult]:
    """
    Extract entities from many sessions with bounded parallelism.

    Sessions are split into batches of `batch_size` (default
    EXTRACTION_CONCURRENCY). Each batch runs fully in parallel and must
    finish before the next starts. `on_progress(completed, total)` fires
    after every batch.

    Args:
        sessions: Session dicts
        vertical_name: Vertical name for the prompt
        on_progress: Optional progress callback
        batch_size: Override for the batch width

    Returns:
        One result per session, in input order
    """
    size = batch_size or get_settings().EXTRACTION_CONCURRENCY
    total = len(sessions)
    results: list[EntityExtractionResult] = []

    for start in range(0, total, size):
        batch = sessions[start : start + size]
        batch_results = await asyncio.gather(
            *(extract_entities(session, vertical_name) for session in batch)
        )
        results.extend(batch_results)

        logger.info(f"Extracted entities for {len(results)}/{total} sessions")
        if on_progress:
            on_progress(len(results), total)

    return results
