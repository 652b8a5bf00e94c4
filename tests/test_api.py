"""
Clause2Case
Tests — HTTP API.

Covers:
    - POST /api/v1/documents/<id>/generate-tests (local stub, repair, timeout)
    - GET  /api/v1/processing-jobs[/<id>]
    - GET  /api/v1/test-cases, template.csv
    - POST /api/v1/test-cases/upload-csv, reconcile
    - health + error envelopes
"""

import io
import json

from clause2case.core.exceptions import PersistenceError
from clause2case.models import db as _db
from clause2case.models.document import Document
from clause2case.services.storage import SQLAlchemyStorage

from conftest import ScriptedProvider, SlowProvider, make_case, make_response


def _generate(client, document_id, **body):
    return client.post(f"/api/v1/documents/{document_id}/generate-tests", json=body)


# ═════════════════════════════════════════════════════════════════════════════
# Generation
# ═════════════════════════════════════════════════════════════════════════════

class TestGenerateTests:
    def test_local_stub_end_to_end(self, client, document):
        res = _generate(client, document.id)
        assert res.status_code == 202
        body = res.get_json()
        assert body["message"]
        job_id = body["job"]["id"]
        assert body["job"]["documentId"] == document.id

        job = client.get(f"/api/v1/processing-jobs/{job_id}").get_json()
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["result"]["testCasesGenerated"] == 10
        assert job["errorMessage"] is None

        cases = client.get(f"/api/v1/test-cases?documentId={document.id}").get_json()
        assert len(cases) == 10
        assert all(tc["source"] == "generated" for tc in cases)
        assert all(5 <= len(tc["steps"]) <= 10 for tc in cases)
        assert cases[0]["contextUsed"].startswith("Chunk 0: Refund Policy")

        doc = _db.session.get(Document, document.id, populate_existing=True)
        assert doc.status == "completed"

    def test_repaired_output_is_persisted(self, client, document, use_provider):
        a = json.dumps(make_case("Refund inside 30 days"))
        b = json.dumps(make_case("Refund after 30 days", category="edge_case"))
        use_provider(ScriptedProvider('{"testCases": [' + a + " " + b + "]}"))

        job_id = _generate(client, document.id).get_json()["job"]["id"]
        job = client.get(f"/api/v1/processing-jobs/{job_id}").get_json()
        assert job["status"] == "completed"
        assert job["result"]["metadata"]["repaired"] is True

        cases = client.get(f"/api/v1/test-cases?documentId={document.id}").get_json()
        assert sorted(tc["title"] for tc in cases) == ["Refund after 30 days", "Refund inside 30 days"]

    def test_timeout_fails_job_and_keeps_progress(self, client, document, use_provider):
        use_provider(SlowProvider(delay=5.0), timeout=0.2)

        job_id = _generate(client, document.id).get_json()["job"]["id"]
        job = client.get(f"/api/v1/processing-jobs/{job_id}").get_json()
        assert job["status"] == "failed"
        assert "timed out" in job["errorMessage"]
        assert job["progress"] == 40

        assert client.get(f"/api/v1/test-cases?documentId={document.id}").get_json() == []
        doc = _db.session.get(Document, document.id, populate_existing=True)
        assert doc.status == "failed"

    def test_no_valid_cases_fails_job(self, client, document, use_provider):
        use_provider(ScriptedProvider(make_response(make_case(n_steps=3))))
        job_id = _generate(client, document.id).get_json()["job"]["id"]
        job = client.get(f"/api/v1/processing-jobs/{job_id}").get_json()
        assert job["status"] == "failed"
        assert "no valid test cases" in job["errorMessage"]

    def test_persistence_failure_leaves_no_cases(self, client, document, monkeypatch):
        def broken_batch(self, items):
            raise PersistenceError("create_test_cases", RuntimeError("disk full"))

        monkeypatch.setattr(SQLAlchemyStorage, "create_test_cases", broken_batch)
        job_id = _generate(client, document.id).get_json()["job"]["id"]
        job = client.get(f"/api/v1/processing-jobs/{job_id}").get_json()
        assert job["status"] == "failed"
        assert "create_test_cases" in job["errorMessage"]
        assert job["progress"] == 80
        assert client.get(f"/api/v1/test-cases?documentId={document.id}").get_json() == []

    def test_requirements_reach_the_prompt(self, client, document, use_provider):
        provider = ScriptedProvider(make_response(make_case()))
        use_provider(provider)
        _generate(client, document.id, requirements="Only approval rules")
        assert "Only approval rules" in provider.calls[0]["messages"][-1]["content"]

    def test_unknown_document(self, client):
        res = _generate(client, "missing-doc")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_document_without_text(self, client):
        doc = Document(filename="scan.pdf", content="")
        _db.session.add(doc)
        _db.session.commit()
        res = _generate(client, doc.id)
        assert res.status_code == 400
        assert client.get(f"/api/v1/processing-jobs?documentId={doc.id}").get_json() == []

    def test_bad_requirements_type(self, client, document):
        res = _generate(client, document.id, requirements=["a"])
        assert res.status_code == 400


class TestProcessingJobs:
    def test_list_by_document(self, client, document):
        _generate(client, document.id)
        _generate(client, document.id)
        jobs = client.get(f"/api/v1/processing-jobs?documentId={document.id}").get_json()
        assert len(jobs) == 2
        assert all(j["jobType"] == "test_generation" for j in jobs)

    def test_unknown_job(self, client):
        res = client.get("/api/v1/processing-jobs/nope")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# CSV upload & template
# ═════════════════════════════════════════════════════════════════════════════

class TestUploadCsv:
    def test_multipart_upload(self, client, document):
        csv_bytes = b"title,description\nLogin,Users sign in\nLogout,\n"
        res = client.post(
            "/api/v1/test-cases/upload-csv",
            data={"file": (io.BytesIO(csv_bytes), "cases.csv"), "documentId": document.id},
            content_type="multipart/form-data",
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["created"] == 1
        assert body["errors"] == ["Row 3: Missing title or description"]
        assert body["testCases"][0]["documentId"] == document.id
        assert body["testCases"][0]["source"] == "manual"

    def test_raw_body_upload(self, client):
        res = client.post("/api/v1/test-cases/upload-csv",
                          data="title,description\nA,B\n", content_type="text/csv")
        assert res.status_code == 200
        assert res.get_json()["created"] == 1

    def test_missing_column(self, client):
        res = client.post("/api/v1/test-cases/upload-csv",
                          data="name,description\nA,B\n", content_type="text/csv")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_IMPORT_MISSING_COLUMN"

    def test_no_file(self, client):
        res = client.post("/api/v1/test-cases/upload-csv")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_unknown_document(self, client):
        res = client.post(
            "/api/v1/test-cases/upload-csv",
            data={"file": (io.BytesIO(b"title,description\nA,B\n"), "c.csv"), "documentId": "nope"},
            content_type="multipart/form-data",
        )
        assert res.status_code == 404


class TestTemplateDownload:
    def test_template(self, client):
        res = client.get("/api/v1/test-cases/template.csv?industry=Finance")
        assert res.status_code == 200
        assert res.mimetype == "text/csv"
        assert "test-cases-template-finance.csv" in res.headers["Content-Disposition"]
        text = res.get_data(as_text=True)
        assert text.startswith("title,description,category,priority,preconditions,steps,expected_result,source\n")
        assert "Wire transfer" in text


# ═════════════════════════════════════════════════════════════════════════════
# Reconcile
# ═════════════════════════════════════════════════════════════════════════════

class TestReconcileApi:
    def test_with_lists(self, client):
        res = client.post("/api/v1/test-cases/reconcile", json={
            "existing": [{"id": "g1", "source": "generated"}, {"id": "m1", "source": "manual"}],
            "authoritative": [{"id": "m2", "source": "manual"}],
        })
        assert res.status_code == 200
        assert [tc["id"] for tc in res.get_json()] == ["g1", "m2"]

    def test_with_document(self, client, document):
        _generate(client, document.id)
        first = client.post("/api/v1/test-cases/upload-csv", data={
            "file": (io.BytesIO(b"title,description\nOld,manual\n"), "a.csv"),
            "documentId": document.id,
        }, content_type="multipart/form-data").get_json()
        second = client.post("/api/v1/test-cases/upload-csv", data={
            "file": (io.BytesIO(b"title,description\nNew,manual\n"), "b.csv"),
            "documentId": document.id,
        }, content_type="multipart/form-data").get_json()
        new_ids = [tc["id"] for tc in second["testCases"]]

        res = client.post("/api/v1/test-cases/reconcile",
                          json={"documentId": document.id, "authoritativeIds": new_ids})
        merged = res.get_json()
        titles = [tc["title"] for tc in merged]
        assert len(merged) == 11
        assert titles[-1] == "New"
        assert "Old" not in titles
        assert first["created"] == 1

    def test_bad_body(self, client):
        res = client.post("/api/v1/test-cases/reconcile", json={"existing": "x"})
        assert res.status_code == 400

    def test_non_string_authoritative_ids(self, client, document):
        res = client.post("/api/v1/test-cases/reconcile", json={
            "documentId": document.id,
            "authoritativeIds": [{"id": "x"}],
        })
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


class TestHealth:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_unknown_route(self, client):
        assert client.get("/api/v1/nowhere").status_code == 404
