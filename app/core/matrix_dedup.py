"""Canonical-key deduplication of scored data elements.

Two elements collide when their names normalize to the same key. The
higher-confidence element survives as the base record (ties keep the
earlier one) and the flagged gaps of both are unioned onto it.

Note: normalization is aggressive. "Employee e-mail" and "employee_email"
merge, and so would two distinct elements that happen to normalize alike.
"""

import re

from app.core.logging import get_logger
from app.core.schemas_matrix import ScoredDataElement

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_element_key(name: str) -> str:
    """Lowercase and replace every non-alphanumeric character with `_`."""
    return _NON_ALNUM.sub("_", name.lower())


def _union_gaps(first: list[str], second: list[str]) -> list[str]:
    return list(dict.fromkeys([*first, *second]))


def deduplicate_elements(elements: list[ScoredDataElement]) -> list[ScoredDataElement]:
    """
    Collapse elements sharing a normalized name.

    Args:
        elements: Scored elements, possibly with duplicates

    Returns:
        One element per normalized key, in first-seen key order. Inputs are not mutated.
    """
    seen: dict[str, ScoredDataElement] = {}

    for element in elements:
        key = normalize_element_key(element.data_element_name)
        existing = seen.get(key)

        if existing is None:
            seen[key] = element
            continue

        if element.confidence_score > existing.confidence_score:
            base, other = element, existing
        else:
            base, other = existing, element
        seen[key] = base.model_copy(
            update={"gaps_flagged": _union_gaps(existing.gaps_flagged, element.gaps_flagged)}
        )
        logger.debug(
            f"Merged duplicate data element '{other.data_element_name}' into '{base.data_element_name}'",
            extra={"dedup_key": key},
        )

    if len(seen) < len(elements):
        logger.info(f"Deduplicated {len(elements)} elements to {len(seen)}")

    return list(seen.values())
