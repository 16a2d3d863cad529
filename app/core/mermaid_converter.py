"""Deterministic Schema-1 -> Mermaid flowchart converter.

Same input always yields the same text: nodes render grouped by type
(external entities, processes, data stores) in their input order, then
one edge per flow in input order.
"""

from app.core.schemas_dfd import SchemaOne, SchemaOneNode

CLASS_DEFS = (
    "  classDef process fill:#f9f,stroke:#333,stroke-width:2px;",
    "  classDef entity fill:#ff9,stroke:#333,stroke-width:2px;",
    "  classDef store fill:#eee,stroke:#333,stroke-dasharray:5 5;",
    "  classDef sensitive fill:#fcc,stroke:#c33,stroke-width:2px;",
)

# (node type, subgraph title, default style class)
NODE_GROUPS = (
    ("EXTERNAL_ENTITY", "External Entities", "entity"),
    ("PROCESS", "Processes", "process"),
    ("DATA_STORE", "Data Stores", "store"),
)

NODE_SHAPES = {
    "PROCESS": '{id}("{label}")',
    "EXTERNAL_ENTITY": '{id}["{label}"]',
    "DATA_STORE": '{id}[("{label}")]',
}


def sanitize_label(label: str) -> str:
    """Make a label safe inside a quoted Mermaid label."""
    return label.replace('"', "'").replace("&", "and").replace("<", "").replace(">", "")


def render_node(node: SchemaOneNode, default_class: str) -> str:
    style_class = "sensitive" if node.is_sensitive else default_class
    shape = NODE_SHAPES[node.type].format(id=node.id, label=sanitize_label(node.label))
    return f"  {shape}:::{style_class}"


def generate_mermaid(schema: SchemaOne) -> str:
    """
    Render a Schema-1 document as Mermaid `graph TD` source.

    Args:
        schema: Validated Schema-1 (flows already reference known nodes)

    Returns:
        Mermaid source ending with a newline
    """
    lines = ["graph TD", *CLASS_DEFS]

    for node_type, title, default_class in NODE_GROUPS:
        group = [node for node in schema.nodes if node.type == node_type]
        if not group:
            continue
        lines.append(f"  subgraph {title}")
        lines.extend(render_node(node, default_class) for node in group)
        lines.append("  end")

    for flow in schema.flows:
        lines.append(f'  {flow.source} -->|"{sanitize_label(flow.label)}"| {flow.target}')

    return "\n".join(lines) + "\n"
