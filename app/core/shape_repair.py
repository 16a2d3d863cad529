"""Declarative shape-repair rules applied to parsed LLM JSON before validation.

Models drift from the requested shape in a handful of predictable ways:
synonym field names, booleans as strings, null sentinels as strings, and
nested objects serialized as JSON strings. Each quirk is one `RepairRule`;
a new provider quirk is a new entry in `REPAIR_RULES`, not a new branch.

Rules are evaluated against every dict item of a named top-level list
(`data_elements` for the relationship graph, `elements` for classification).
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

REPAIR_RULES_VERSION = "repair_v1"

NULL_SENTINELS = frozenset({"", "null", "n/a", "not applicable", "none"})
_TRUE_STRINGS = frozenset({"true", "yes"})
_FALSE_STRINGS = frozenset({"false", "no"})


def to_bool(value: str) -> bool:
    """"true"/"yes" -> True; any other string -> False."""
    return value.strip().lower() in _TRUE_STRINGS


def to_optional_bool(value: str) -> bool | None:
    """"true"/"yes" -> True, "false"/"no" -> False, anything else -> None."""
    normalized = value.strip().lower()
    if normalized in _TRUE_STRINGS:
        return True
    if normalized in _FALSE_STRINGS:
        return False
    return None


def null_or_json(fallback: Callable[[str], Any]) -> Callable[[str], Any]:
    """Build a coercion for fields that should hold an object/list but arrived as a string.

    Null sentinels become None; otherwise the string is parsed as JSON, and
    when that fails `fallback(value)` supplies a minimal wrapper.
    """

    def coerce(value: str) -> Any:
        if value.strip().lower() in NULL_SENTINELS:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return fallback(value)

    return coerce


@dataclass(frozen=True)
class RepairRule:
    """One repair applied to `field` on every dict in the `collection` list.

    `sources` are synonym fields copied onto `field` when it is missing or
    empty. `coerce` runs only when the (possibly renamed) value is a string.
    """

    collection: str
    field: str
    coerce: Callable[[str], Any] | None = None
    sources: tuple[str, ...] = ()

    def apply(self, item: dict[str, Any]) -> None:
        if self.sources and not item.get(self.field):
            for source in self.sources:
                if item.get(source):
                    item[self.field] = item[source]
                    break

        value = item.get(self.field)
        if self.coerce is not None and isinstance(value, str):
            item[self.field] = self.coerce(value)


REPAIR_RULES: tuple[RepairRule, ...] = (
    # Relationship graph
    RepairRule("data_elements", "data_element", sources=("name", "data_element_name")),
    RepairRule("data_elements", "cross_border", to_bool),
    # Classification
    RepairRule("elements", "retention_compliant", to_optional_bool),
    RepairRule("elements", "cross_border_transfer", to_bool),
    RepairRule(
        "elements",
        "cross_border_details",
        null_or_json(lambda s: {"destination_country": s, "transfer_mechanism": "unknown"}),
    ),
    RepairRule(
        "elements",
        "consent_mechanism",
        null_or_json(
            lambda s: {"type": s, "collection_point": "unknown", "withdrawal_method": "unknown"}
        ),
    ),
    RepairRule("elements", "third_party_details", null_or_json(lambda s: None)),
    RepairRule("elements", "data_element_name", sources=("name", "data_element")),
)


def apply_repair_rules(
    parsed: Any,
    rules: tuple[RepairRule, ...] = REPAIR_RULES,
) -> Any:
    """
    Apply repair rules to parsed LLM output in place.

    Args:
        parsed: Output of json.loads
        rules: Rules to evaluate (defaults to REPAIR_RULES)

    Returns:
        The same object, repaired. Non-dict payloads pass through unchanged.
    """
    if not isinstance(parsed, dict):
        return parsed

    for rule in rules:
        items = parsed.get(rule.collection)
        if not isinstance(items, list):
            continue
        for item in items:
            if isinstance(item, dict):
                rule.apply(item)

    return parsed
