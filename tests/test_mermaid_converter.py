"""Tests for the deterministic Schema-1 -> Mermaid converter."""

import pytest
from pydantic import ValidationError

from app.core.mermaid_converter import generate_mermaid, sanitize_label
from app.core.schemas_dfd import SchemaOne

SCHEMA = {
    "meta": {"project_name": "Acme", "vertical_name": "Customer Care"},
    "nodes": [
        {"id": "proc_01", "type": "PROCESS", "label": "Customer Care"},
        {"id": "ext_01", "type": "EXTERNAL_ENTITY", "label": "Customer"},
        {
            "id": "ds_01",
            "type": "DATA_STORE",
            "label": "Salesforce CRM",
            "data_elements": [{"name": "Customer PII", "classification": "PII/Sensitive"}],
        },
    ],
    "flows": [
        {"id": "flow_01", "source": "ext_01", "target": "proc_01", "label": 'Call "details"'},
        {"id": "flow_02", "source": "proc_01", "target": "ds_01", "label": "Case <notes> & status"},
    ],
}


def test_full_document():
    expected = "\n".join(
        [
            "graph TD",
            "  classDef process fill:#f9f,stroke:#333,stroke-width:2px;",
            "  classDef entity fill:#ff9,stroke:#333,stroke-width:2px;",
            "  classDef store fill:#eee,stroke:#333,stroke-dasharray:5 5;",
            "  classDef sensitive fill:#fcc,stroke:#c33,stroke-width:2px;",
            "  subgraph External Entities",
            '  ext_01["Customer"]:::entity',
            "  end",
            "  subgraph Processes",
            '  proc_01("Customer Care"):::process',
            "  end",
            "  subgraph Data Stores",
            '  ds_01[("Salesforce CRM")]:::sensitive',
            "  end",
            '  ext_01 -->|"Call \'details\'"| proc_01',
            '  proc_01 -->|"Case notes and status"| ds_01',
        ]
    ) + "\n"

    assert generate_mermaid(SchemaOne.model_validate(SCHEMA)) == expected


def test_is_deterministic():
    schema = SchemaOne.model_validate(SCHEMA)
    assert generate_mermaid(schema) == generate_mermaid(SchemaOne.model_validate(SCHEMA))


def test_empty_groups_are_omitted():
    schema = SchemaOne(
        nodes=[{"id": "proc_01", "type": "PROCESS", "label": "Payroll"}],
        flows=[],
    )
    code = generate_mermaid(schema)
    assert "subgraph Processes" in code
    assert "External Entities" not in code
    assert "Data Stores" not in code


def test_special_category_marks_node_sensitive():
    schema = SchemaOne(
        nodes=[
            {
                "id": "proc_01",
                "type": "PROCESS",
                "label": "Medical claims",
                "data_elements": [
                    {"name": "Claims", "classification": "Internal"},
                    {"name": "Diagnoses", "classification": "Special Category"},
                ],
            }
        ],
        flows=[],
    )
    assert '  proc_01("Medical claims"):::sensitive' in generate_mermaid(schema)


def test_sanitize_label():
    assert sanitize_label('A "quoted" <b>R&D</b>') == "A 'quoted' bRandD/b"


def test_flows_must_reference_known_nodes():
    bad = {
        "nodes": [{"id": "ext_01", "type": "EXTERNAL_ENTITY", "label": "Customer"}],
        "flows": [{"id": "flow_01", "source": "ext_01", "target": "proc_99", "label": "x"}],
    }
    with pytest.raises(ValidationError, match="proc_99"):
        SchemaOne.model_validate(bad)
