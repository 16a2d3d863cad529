"""Tests for matrix, Schema-1 and DFD persistence against an in-memory Supabase."""

from app.db.dfd import get_dfd_graph, replace_dfd_graph
from app.db.matrix import (
    average_confidence,
    element_to_row,
    get_data_matrix,
    get_schema_one,
    list_data_mapping_rows,
    list_matrix_rows,
    persist_matrix,
    replace_data_mapping_rows,
    save_schema_one,
)
from tests.fixtures_privacy import VERTICAL_ID, scored_element


def _elements():
    return [
        scored_element(data_element_name="Employee Email", confidence_score=0.8),
        scored_element(
            data_element_name="Health Record",
            data_category="sensitive_personal",
            data_sub_category="health",
            confidence_score=0.6,
            cross_border_transfer=True,
        ),
    ]


def test_element_to_row_flattens_risk():
    element = scored_element(data_element_name="Salary")
    row = element_to_row(VERTICAL_ID, "gen-1", element, ["s1"])

    assert "risk" not in row
    assert row["risk_score"] == element.risk.final_score
    assert row["sensitivity_weight"] == element.risk.sensitivity_weight
    assert row["generation_id"] == "gen-1"
    assert row["status"] == "draft"
    assert row["generated_by"] == "ai"
    assert row["source_session_ids"] == ["s1"]


def test_average_confidence_of_empty_set_is_zero():
    assert average_confidence([]) == 0.0


def test_persist_writes_rows_and_aggregate(fake_supabase):
    result = persist_matrix(VERTICAL_ID, _elements(), ["s1", "s2"])

    assert result["row_count"] == 2
    assert abs(result["avg_confidence"] - 0.7) < 1e-9

    matrix = get_data_matrix(VERTICAL_ID)
    assert matrix["current_generation_id"] == result["generation_id"]
    assert matrix["generation_metadata"]["total_rows"] == 2
    assert matrix["generation_metadata"]["sessions_used"] == ["s1", "s2"]
    assert "generated_at" in matrix["generation_metadata"]


def test_rows_are_listed_highest_risk_first(fake_supabase):
    persist_matrix(VERTICAL_ID, _elements(), ["s1"])

    rows = list_matrix_rows(VERTICAL_ID)

    scores = [row["risk_score"] for row in rows]
    assert scores == sorted(scores, reverse=True)
    assert rows[0]["data_element_name"] == "Health Record"


def test_regeneration_is_idempotent(fake_supabase):
    """Persisting the same input twice leaves one generation with the same rows."""
    first = persist_matrix(VERTICAL_ID, _elements(), ["s1"])
    first_rows = list_matrix_rows(VERTICAL_ID)

    second = persist_matrix(VERTICAL_ID, _elements(), ["s1"])
    second_rows = list_matrix_rows(VERTICAL_ID)

    assert second["generation_id"] != first["generation_id"]
    assert len(fake_supabase.rows("data_matrix_rows")) == 2
    assert len(fake_supabase.rows("data_matrices")) == 1

    def strip(rows):
        return [{k: v for k, v in r.items() if k not in ("id", "generation_id")} for r in rows]

    assert strip(second_rows) == strip(first_rows)
    assert "regenerated_at" in get_data_matrix(VERTICAL_ID)["generation_metadata"]


def test_new_rows_land_before_old_generation_is_removed(fake_supabase):
    persist_matrix(VERTICAL_ID, _elements(), ["s1"])
    fake_supabase.operations.clear()

    persist_matrix(VERTICAL_ID, _elements()[:1], ["s1"])

    row_ops = [op for table, op in fake_supabase.operations if table == "data_matrix_rows"]
    assert row_ops.index("insert") < row_ops.index("delete")
    assert len(list_matrix_rows(VERTICAL_ID)) == 1


def test_regeneration_with_no_elements_clears_rows(fake_supabase):
    persist_matrix(VERTICAL_ID, _elements(), ["s1"])
    result = persist_matrix(VERTICAL_ID, [], ["s1"])

    assert result["row_count"] == 0
    assert result["avg_confidence"] == 0.0
    assert list_matrix_rows(VERTICAL_ID) == []
    assert fake_supabase.rows("data_matrix_rows") == []


def test_rows_without_generation_are_removed(fake_supabase):
    """Rows with a NULL generation_id do not survive a regenerate."""
    fake_supabase.seed(
        "data_matrix_rows",
        {"id": "legacy-1", "vertical_id": VERTICAL_ID, "generation_id": None},
        {"id": "legacy-other", "vertical_id": "other-vertical", "generation_id": None},
    )

    result = persist_matrix(VERTICAL_ID, _elements(), ["s1"])

    rows = fake_supabase.rows("data_matrix_rows")
    ours = [r for r in rows if r["vertical_id"] == VERTICAL_ID]
    assert {r["generation_id"] for r in ours} == {result["generation_id"]}
    assert [r["id"] for r in rows if r["vertical_id"] != VERTICAL_ID] == ["legacy-other"]


def test_other_verticals_are_untouched(fake_supabase):
    persist_matrix("other-vertical", _elements(), ["x"])
    persist_matrix(VERTICAL_ID, _elements(), ["s1"])
    persist_matrix(VERTICAL_ID, _elements(), ["s1"])

    assert len(list_matrix_rows("other-vertical")) == 2


def test_list_rows_without_matrix_is_empty(fake_supabase):
    assert list_matrix_rows(VERTICAL_ID) == []


def test_schema_one_round_trip_keeps_matrix_pointer(fake_supabase):
    result = persist_matrix(VERTICAL_ID, _elements(), ["s1"])
    schema = {"meta": None, "nodes": [], "flows": []}

    save_schema_one(VERTICAL_ID, schema)

    assert get_schema_one(VERTICAL_ID) == schema
    assert get_data_matrix(VERTICAL_ID)["current_generation_id"] == result["generation_id"]


def test_replace_data_mapping_rows_numbers_from_one(fake_supabase):
    replace_data_mapping_rows(VERTICAL_ID, [{"data_category": "Old"}])
    count = replace_data_mapping_rows(
        VERTICAL_ID, [{"data_category": "A"}, {"data_category": "B"}]
    )

    rows = fake_supabase.rows("data_mapping_rows")
    assert count == 2
    assert [(r["s_no"], r["data_category"]) for r in rows] == [(1, "A"), (2, "B")]


def test_data_mapping_rows_listed_by_serial_number(fake_supabase):
    replace_data_mapping_rows(VERTICAL_ID, [{"data_category": "A"}, {"data_category": "B"}])
    replace_data_mapping_rows("other-vertical", [{"data_category": "X"}])
    fake_supabase.tables["data_mapping_rows"].reverse()

    rows = list_data_mapping_rows(VERTICAL_ID)

    assert [(r["s_no"], r["data_category"]) for r in rows] == [(1, "A"), (2, "B")]


def test_replace_dfd_graph_overwrites(fake_supabase):
    replace_dfd_graph(VERTICAL_ID, "graph TD\n", {"node_count": 0})
    replace_dfd_graph(VERTICAL_ID, "flowchart LR\n", {"node_count": 2}, project_id="p1")

    graphs = fake_supabase.rows("dfd_graphs")
    assert len(graphs) == 1
    assert get_dfd_graph(VERTICAL_ID)["mermaid_code"] == "flowchart LR\n"
    assert graphs[0]["layout_config"] == {"type": "mermaid", "direction": "LR"}
