"""Pydantic schemas for Schema-1 (the structured data-flow document) and DFD output."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

NOT_SPECIFIED = "Not specified"

NodeType = Literal["EXTERNAL_ENTITY", "PROCESS", "DATA_STORE"]

# Classification tiers that mark a node as sensitive in the diagram
SENSITIVE_CLASSIFICATIONS: frozenset[str] = frozenset({"PII/Sensitive", "Special Category"})


# =======================
# Schema-1
# =======================


class SchemaOneDataElement(BaseModel):
    """A data category handled by a node."""

    name: str
    description: str = ""
    classification: str = NOT_SPECIFIED
    purpose: str = NOT_SPECIFIED
    retention_period: str = NOT_SPECIFIED
    legal_basis: str = NOT_SPECIFIED
    storage_location: str = NOT_SPECIFIED
    owner: str = NOT_SPECIFIED


class SubProcess(BaseModel):
    """A sub-step, branch or category within a PROCESS node."""

    name: str
    description: str = ""
    routing: str = NOT_SPECIFIED


class Integration(BaseModel):
    """A system a DATA_STORE node connects to."""

    system: str
    type: str = NOT_SPECIFIED
    direction: str = NOT_SPECIFIED


class SchemaOneNode(BaseModel):
    id: str
    type: NodeType
    label: str
    description: str | None = None
    data_elements: list[SchemaOneDataElement] = Field(default_factory=list)
    # PROCESS only
    sub_processes: list[SubProcess] = Field(default_factory=list)
    sla: str = NOT_SPECIFIED
    # DATA_STORE only
    integrations: list[Integration] = Field(default_factory=list)
    reference_documents: list[str] = Field(default_factory=list)

    @property
    def is_sensitive(self) -> bool:
        return any(de.classification in SENSITIVE_CLASSIFICATIONS for de in self.data_elements)


class SchemaOneFlow(BaseModel):
    id: str
    source: str
    target: str
    label: str
    data_elements: list[str] = Field(default_factory=list)
    bi_directional: bool = False
    transfer_mechanism: str = NOT_SPECIFIED
    cross_border: bool | None = None


class SchemaOneMeta(BaseModel):
    project_name: str | None = None
    vertical_name: str | None = None
    generated_at: str | None = None


class SchemaOne(BaseModel):
    """The canonical node/flow document for a vertical."""

    meta: SchemaOneMeta | None = None
    nodes: list[SchemaOneNode]
    flows: list[SchemaOneFlow]

    @model_validator(mode="after")
    def _flows_reference_nodes(self) -> "SchemaOne":
        node_ids = {node.id for node in self.nodes}
        dangling = [
            f"{flow.id}: {endpoint}"
            for flow in self.flows
            for endpoint in (flow.source, flow.target)
            if endpoint not in node_ids
        ]
        if dangling:
            raise ValueError(f"flows reference unknown node ids: {', '.join(dangling)}")
        return self


# =======================
# AI-synthesized DFD
# =======================


class MermaidDFDResult(BaseModel):
    """LLM output for DFD synthesis from matrix rows."""

    mermaid_code: str = Field(..., min_length=1)
    summary: str
    node_count: int = Field(..., ge=0)
    edge_count: int = Field(..., ge=0)
    high_risk_flows: list[str]
    cross_border_flows: list[str]
    unencrypted_flows: list[str]


class ConvertDFDResponse(BaseModel):
    success: bool = True
    mermaid_code: str
