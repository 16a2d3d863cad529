"""Deterministic risk scoring for classified data elements.

Risk Score = ceil((S x P x V x E) / 25), clamped to 1-25, where each factor
is 1-5:
  S  sensitivity of the data category
  P  processing risk (automation/profiling, external recipients)
  V  volume indicator inferred from the data subjects
  E  exposure (cross-border, encryption, retention, recipient count)

Rule-based only; no LLM call and no I/O.
"""

from app.core.schemas_matrix import ClassifiedDataElement, RiskFactors, ScoredDataElement

SPECIAL_CATEGORY_KEYWORDS = ("biometric", "genetic", "children", "criminal", "health")
AUTOMATED_KEYWORDS = ("profiling", "automated_decision", "automated decision-making")
SHARING_KEYWORDS = ("transfer", "sharing", "processing")

# Checked in order; first hit wins
VOLUME_KEYWORDS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("all", "public", "citizen"), 5),
    (("customer", "user"), 4),
    (("employee", "staff"), 3),
    (("contractor", "vendor"), 2),
)
DEFAULT_VOLUME = 2

CATEGORY_SENSITIVITY = {
    "non_personal": 1,
    "anonymized": 1,
    "pseudonymized": 2,
    "personal": 3,
    "sensitive_personal": 4,
}


def sensitivity_weight(element: ClassifiedDataElement) -> int:
    if element.data_category == "sensitive_personal":
        sub_category = (element.data_sub_category or "").lower()
        if any(keyword in sub_category for keyword in SPECIAL_CATEGORY_KEYWORDS):
            return 5
    return CATEGORY_SENSITIVITY.get(element.data_category, 3)


def processing_risk(element: ClassifiedDataElement) -> int:
    types = [t.lower() for t in element.processing_types]
    has_external = len(element.data_recipients_external) > 0
    has_automated = any(k in t for t in types for k in AUTOMATED_KEYWORDS)

    if has_automated and has_external:
        return 5
    if has_external:
        return 4
    if has_automated:
        return 3
    if any(k in t for t in types for k in SHARING_KEYWORDS):
        return 2
    return 1


def volume_indicator(element: ClassifiedDataElement) -> int:
    subjects = " ".join(s.lower() for s in element.data_subjects)
    for keywords, volume in VOLUME_KEYWORDS:
        if any(keyword in subjects for keyword in keywords):
            return volume
    return DEFAULT_VOLUME


def exposure_factor(element: ClassifiedDataElement) -> int:
    score = 1
    encryption = (element.encryption_at_rest, element.encryption_in_transit)

    if element.cross_border_transfer:
        score += 2
    if "no" in encryption:
        score += 1
    if "unknown" in encryption:
        score += 1
    if not element.retention_period or element.retention_compliant is False:
        score += 1
    if len(element.data_recipients_external) > 1:
        score += 1

    return min(5, score)


def compute_risk_score(element: ClassifiedDataElement) -> RiskFactors:
    """
    Compute risk factors for one element.

    Pure function of `element`: same input always yields the same factors.

    Args:
        element: Classified data element

    Returns:
        RiskFactors with final_score in [1, 25]
    """
    sensitivity = sensitivity_weight(element)
    processing = processing_risk(element)
    volume = volume_indicator(element)
    exposure = exposure_factor(element)

    # Integer ceil division keeps the score exact
    raw = -(-(sensitivity * processing * volume * exposure) // 25)
    final_score = min(25, max(1, raw))

    return RiskFactors(
        sensitivity_weight=sensitivity,
        processing_risk=processing,
        volume_indicator=volume,
        exposure_factor=exposure,
        final_score=final_score,
    )


def score_elements(elements: list[ClassifiedDataElement]) -> list[ScoredDataElement]:
    """Attach risk factors to each element, preserving order."""
    return [
        ScoredDataElement(**element.model_dump(), risk=compute_risk_score(element))
        for element in elements
    ]
