"""Tests for the HTTP surface: triggers, reads, job status and SSE progress."""

import asyncio
import json
import threading
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.core.schemas_matrix import ProgressEvent
from app.db.matrix import persist_matrix, replace_data_mapping_rows, save_schema_one
from app.main import app
from tests.fixtures_privacy import VERTICAL_ID, scored_element, seed_vertical


@pytest.fixture
def client(fake_supabase, fresh_registry):
    with TestClient(app) as test_client:
        yield test_client


def _sse_events(body: str) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in body.split("\n\n")
        if line.startswith("data: ")
    ]


def test_health_check(client):
    """Test that /health returns 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestMatrixTrigger:
    def test_unknown_vertical_is_404(self, client):
        response = client.post("/v1/matrix/generate", json={"vertical_id": "missing"})
        assert response.status_code == 404

    def test_empty_vertical_id_is_rejected(self, client):
        response = client.post("/v1/matrix/generate", json={"vertical_id": ""})
        assert response.status_code == 422

    def test_second_trigger_while_running_is_already_running(self, client, fake_supabase):
        """Only one matrix job per vertical runs at a time."""
        seed_vertical(fake_supabase)
        release = threading.Event()
        runs = []

        async def slow_generation(vertical_id, on_progress=None):
            runs.append(vertical_id)
            on_progress(ProgressEvent(step="extracting", message="Extracting", progress=5))
            while not release.is_set():
                await asyncio.sleep(0.01)
            return {"row_count": 0}

        with patch("app.api.matrix.generate_data_matrix", new=slow_generation):
            first = client.post("/v1/matrix/generate", json={"vertical_id": VERTICAL_ID})
            second = client.post("/v1/matrix/generate", json={"vertical_id": VERTICAL_ID})

            assert first.status_code == 200
            assert first.json() == {"job_id": f"matrix-{VERTICAL_ID}", "status": "started"}
            assert second.json() == {"job_id": f"matrix-{VERTICAL_ID}", "status": "already_running"}

            release.set()
            stream = client.get(f"/v1/jobs/matrix-{VERTICAL_ID}/stream")

        assert runs == [VERTICAL_ID]
        steps = [event["step"] for event in _sse_events(stream.text)]
        assert steps == ["extracting", "done"]

        status = client.get(f"/v1/jobs/matrix-{VERTICAL_ID}").json()
        assert status["status"] == "done"
        assert status["result"] == {"row_count": 0}


class TestJobEndpoints:
    def test_unknown_job_is_404(self, client):
        assert client.get("/v1/jobs/matrix-nope").status_code == 404
        assert client.get("/v1/jobs/matrix-nope/stream").status_code == 404

    def test_stream_headers_and_error_event(self, client, fake_supabase):
        seed_vertical(fake_supabase)

        async def failing_generation(vertical_id, on_progress=None):
            on_progress(ProgressEvent(step="extracting", message="Extracting", progress=5))
            raise RuntimeError("classification failed")

        with patch("app.api.matrix.generate_data_matrix", new=failing_generation):
            client.post("/v1/matrix/generate", json={"vertical_id": VERTICAL_ID})
            response = client.get(f"/v1/jobs/matrix-{VERTICAL_ID}/stream")

        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = _sse_events(response.text)
        assert events[0] == {"step": "extracting", "message": "Extracting", "progress": 5}
        assert events[-1]["step"] == "error"
        assert events[-1]["progress"] == -1
        assert events[-1]["message"] == "classification failed"

        status = client.get(f"/v1/jobs/matrix-{VERTICAL_ID}").json()
        assert status["status"] == "error"
        assert status["error"] == "classification failed"

    def test_list_jobs(self, client, fake_supabase):
        seed_vertical(fake_supabase)

        async def quick_generation(vertical_id, on_progress=None):
            return {"dfd_graph_id": "g1"}

        with patch("app.api.dfd.generate_dfd", new=quick_generation):
            response = client.post("/v1/dfd/generate", json={"vertical_id": VERTICAL_ID})
            client.get(f"/v1/jobs/dfd-{VERTICAL_ID}/stream")

        assert response.json()["job_id"] == f"dfd-{VERTICAL_ID}"
        jobs = client.get("/v1/jobs/").json()
        assert jobs["count"] == 1
        assert jobs["jobs"][0]["id"] == f"dfd-{VERTICAL_ID}"


class TestReads:
    def test_matrix_rows(self, client, fake_supabase):
        persist_matrix(VERTICAL_ID, [scored_element(data_element_name="Salary")], ["s1"])

        body = client.get("/v1/matrix", params={"vertical_id": VERTICAL_ID}).json()

        assert body["count"] == 1
        assert body["rows"][0]["data_element_name"] == "Salary"

    def test_data_mapping_rows_in_serial_order(self, client, fake_supabase):
        replace_data_mapping_rows(
            VERTICAL_ID,
            [{"data_category": "Employee PII"}, {"data_category": "Payroll"}],
        )
        fake_supabase.tables["data_mapping_rows"].reverse()

        body = client.get("/v1/matrix/mapping", params={"vertical_id": VERTICAL_ID}).json()

        assert body["count"] == 2
        assert [row["s_no"] for row in body["rows"]] == [1, 2]
        assert body["rows"][0]["data_category"] == "Employee PII"

    def test_data_mapping_rows_absent_is_empty(self, client):
        body = client.get("/v1/matrix/mapping", params={"vertical_id": VERTICAL_ID}).json()
        assert body == {"rows": [], "count": 0}

    def test_schema_one_absent_is_empty(self, client):
        body = client.get("/v1/matrix/schema-one", params={"vertical_id": VERTICAL_ID}).json()
        assert body == {"meta": None, "nodes": [], "flows": []}

    def test_dfd_absent_is_null(self, client):
        body = client.get("/v1/dfd", params={"vertical_id": VERTICAL_ID}).json()
        assert body == {"mermaid_code": None, "graph_data": None}


class TestDfdConvert:
    def test_without_schema_one_is_400(self, client, fake_supabase):
        seed_vertical(fake_supabase)
        response = client.post("/v1/dfd/convert", json={"vertical_id": VERTICAL_ID})
        assert response.status_code == 400
        assert "No Schema-1 found" in response.json()["detail"]

    def test_converts_stored_schema(self, client, fake_supabase):
        seed_vertical(fake_supabase)
        save_schema_one(
            VERTICAL_ID,
            {
                "nodes": [
                    {"id": "ext_01", "type": "EXTERNAL_ENTITY", "label": "Customer"},
                    {"id": "proc_01", "type": "PROCESS", "label": "Support"},
                ],
                "flows": [{"id": "f1", "source": "ext_01", "target": "proc_01", "label": "Query"}],
            },
        )

        response = client.post("/v1/dfd/convert", json={"vertical_id": VERTICAL_ID})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert '  ext_01 -->|"Query"| proc_01' in body["mermaid_code"]

        dfd = client.get("/v1/dfd", params={"vertical_id": VERTICAL_ID}).json()
        assert dfd["mermaid_code"] == body["mermaid_code"]


class TestSchemaOneTrigger:
    def test_no_transcripts_is_400_with_error_body(self, client, fake_supabase):
        seed_vertical(fake_supabase)
        response = client.post("/v1/matrix/schema-one", json={"vertical_id": VERTICAL_ID})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "PreconditionError"
        assert "No transcript text" in body["message"]

    def test_unknown_vertical_is_404(self, client):
        response = client.post("/v1/matrix/schema-one", json={"vertical_id": "missing"})
        assert response.status_code == 404
