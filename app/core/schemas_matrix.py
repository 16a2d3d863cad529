"""Pydantic schemas for the data matrix pipeline."""

from typing import Literal

from pydantic import BaseModel, Field

DataCategory = Literal[
    "personal",
    "sensitive_personal",
    "non_personal",
    "anonymized",
    "pseudonymized",
]
EncryptionStatus = Literal["yes", "no", "partial", "unknown"]

PipelineStep = Literal[
    "loading",
    "extracting",
    "building_graph",
    "classifying",
    "scoring",
    "deduplicating",
    "persisting",
    "generating_mermaid",
    "done",
    "error",
]

TERMINAL_STEPS: frozenset[str] = frozenset({"done", "error"})


# =======================
# Step 1: Entity extraction
# =======================


class ExtractedEntity(BaseModel):
    """A privacy-relevant entity found in one session."""

    entity_type: Literal[
        "DATA_ELEMENT",
        "SYSTEM",
        "ACTOR",
        "PROCESSING_ACTIVITY",
        "THIRD_PARTY",
    ]
    name: str = Field(..., description="Normalized entity name")
    context_quote: str = Field(..., description="Exact or near-exact quote from the source text")
    confidence: float = Field(..., ge=0, le=1, description="Extraction confidence 0-1")


class EntityExtractionResult(BaseModel):
    """Step 1 output for one session."""

    session_id: str
    entities: list[ExtractedEntity]


# =======================
# Step 2: Relationship graph
# =======================


class DataElementRelationship(BaseModel):
    """A canonical data element merged across all sessions."""

    data_element: str
    category: DataCategory
    data_subjects: list[str]
    collected_by: list[str] = Field(..., description="Actors/roles that collect this data")
    collection_methods: list[str]
    systems: list[str] = Field(..., description="Systems/apps that process this data")
    storage_locations: list[str]
    processing_activities: list[str]
    access_roles: list[str]
    shared_with_internal: list[str]
    shared_with_external: list[str]
    cross_border: bool
    cross_border_details: str | None
    retention_info: str | None
    consent_info: str | None
    source_session_ids: list[str]
    confidence: float = Field(..., ge=0, le=1)


class RelationshipGraphResult(BaseModel):
    """Step 2 output."""

    vertical_name: str
    data_elements: list[DataElementRelationship]


# =======================
# Step 3: Classification & enrichment
# =======================


class ConsentMechanism(BaseModel):
    type: str
    collection_point: str
    withdrawal_method: str


class AccessRole(BaseModel):
    role: str
    access_type: str


class ThirdPartyDetail(BaseModel):
    party_name: str
    purpose: str
    agreement_type: str


class CrossBorderDetails(BaseModel):
    destination_country: str
    transfer_mechanism: str


class ClassifiedDataElement(BaseModel):
    """A fully attributed, regulation-aware data element."""

    data_element_name: str
    data_category: DataCategory
    data_sub_category: str | None
    data_subjects: list[str]
    source_of_data: str
    collection_method: str
    purpose_of_processing: str
    legal_basis: str
    consent_mechanism: ConsentMechanism | None
    processing_types: list[str]
    systems_applications: list[str]
    storage_location: str
    storage_format: str
    encryption_at_rest: EncryptionStatus
    encryption_in_transit: EncryptionStatus
    retention_period: str | None
    retention_compliant: bool | None
    deletion_method: str | None
    access_roles: list[AccessRole]
    data_recipients_internal: list[str]
    data_recipients_external: list[str]
    third_party_details: list[ThirdPartyDetail] | None
    cross_border_transfer: bool
    cross_border_details: CrossBorderDetails | None
    data_owner: str
    confidence_score: float = Field(..., ge=0, le=1)
    gaps_flagged: list[str]


class ClassificationResult(BaseModel):
    """Step 3 output."""

    elements: list[ClassifiedDataElement]


# =======================
# Step 4: Risk scoring
# =======================


class RiskFactors(BaseModel):
    """Deterministic risk factors for one data element."""

    sensitivity_weight: int = Field(..., ge=1, le=5)
    processing_risk: int = Field(..., ge=1, le=5)
    volume_indicator: int = Field(..., ge=1, le=5)
    exposure_factor: int = Field(..., ge=1, le=5)
    final_score: int = Field(..., ge=1, le=25)


class ScoredDataElement(ClassifiedDataElement):
    """A classified element with its risk factors attached."""

    risk: RiskFactors


# =======================
# Progress events
# =======================


class ProgressEvent(BaseModel):
    """One entry of a job's progress log."""

    step: PipelineStep
    message: str
    progress: int = Field(..., ge=-1, le=100, description="0-100, or -1 on error")
    detail: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.step in TERMINAL_STEPS


# =======================
# API
# =======================


class GenerateRequest(BaseModel):
    """Request body for matrix / DFD generation triggers."""

    vertical_id: str = Field(..., min_length=1, description="Vertical to generate for")


class GenerateResponse(BaseModel):
    """Trigger response: the job to subscribe to."""

    job_id: str
    status: Literal["started", "already_running"]


class DataMappingRow(BaseModel):
    """A consolidated data-mapping inventory row derived from Schema-1."""

    data_category: str
    description: str
    purpose: str
    data_owner: str
    storage_location: str
    data_classification: str
    retention_period: str
    legal_basis: str
