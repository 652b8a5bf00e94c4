"""
Clause2Case
Test Case Blueprint — manual CSV ingestion and reconciliation.

Endpoints:
  GET  /api/v1/test-cases                 — List test cases (?documentId=)
  GET  /api/v1/test-cases/template.csv    — Download CSV template (?industry=)
  POST /api/v1/test-cases/upload-csv      — Upload & import CSV
  POST /api/v1/test-cases/reconcile       — Merge working set with a manual batch
"""

import logging

from flask import Blueprint, Response, jsonify, request

from clause2case.core.exceptions import CSVImportError, CSVImportErrorKind, NotFoundError
from clause2case.services.csv_import_service import generate_csv_template, import_csv
from clause2case.services.reconcile_service import reconcile
from clause2case.services.storage import SQLAlchemyStorage
from clause2case.utils.errors import E, api_error

logger = logging.getLogger(__name__)

testcase_bp = Blueprint("testcase", __name__, url_prefix="/api/v1/test-cases")


# ═══════════════════════════════════════════════════════════════
# Error Handler
# ═══════════════════════════════════════════════════════════════
@testcase_bp.errorhandler(CSVImportError)
def handle_csv_import_error(e):
    code = E.IMPORT_EMPTY_FILE if e.kind == CSVImportErrorKind.EMPTY_FILE else E.IMPORT_MISSING_COLUMN
    return api_error(code, str(e))


# ═══════════════════════════════════════════════════════════════
# List
# ═══════════════════════════════════════════════════════════════
@testcase_bp.route("", methods=["GET"])
def list_test_cases():
    document_id = request.args.get("documentId")
    test_cases = SQLAlchemyStorage().get_test_cases(document_id)
    return jsonify([tc.to_dict() for tc in test_cases])


# ═══════════════════════════════════════════════════════════════
# Template Download
# ═══════════════════════════════════════════════════════════════
@testcase_bp.route("/template.csv", methods=["GET"])
def download_template():
    """Download an industry-specific CSV template for manual test cases."""
    industry = request.args.get("industry", "General")
    csv_content = generate_csv_template(industry)
    filename = f"test-cases-template-{industry.lower()}.csv"
    return Response(
        csv_content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ═══════════════════════════════════════════════════════════════
# Upload
# ═══════════════════════════════════════════════════════════════
@testcase_bp.route("/upload-csv", methods=["POST"])
def upload_csv():
    """Import manual test cases from a CSV upload (multipart ``file`` or raw body)."""
    file_content = _extract_file_content()
    if file_content is None:
        return api_error(E.VALIDATION_REQUIRED, "CSV file is required (file upload or raw body)")

    storage = SQLAlchemyStorage()
    document_id = request.form.get("documentId") or request.args.get("documentId") or None
    if document_id and storage.get_document(document_id) is None:
        raise NotFoundError("Document", document_id)

    result = import_csv(file_content, document_id, storage=storage)
    return jsonify(result.to_dict())


def _extract_file_content() -> bytes | None:
    """Extract CSV file content from multipart upload or raw body."""
    # Multipart file upload
    if request.files:
        file = request.files.get("file")
        if file:
            return file.read()
        return None

    # Raw body
    if request.data:
        return request.data

    return None


# ═══════════════════════════════════════════════════════════════
# Reconcile
# ═══════════════════════════════════════════════════════════════
@testcase_bp.route("/reconcile", methods=["POST"])
def reconcile_test_cases():
    """
    Merge a working set with an authoritative manual batch.

    Body is either ``{existing: [...], authoritative: [...]}`` with test case
    dicts, or ``{documentId, authoritativeIds: [...]}`` to reconcile the
    stored test cases of a document.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")

    if "documentId" in data:
        ids = data.get("authoritativeIds")
        if not isinstance(ids, list):
            return api_error(E.VALIDATION_REQUIRED, "authoritativeIds must be a list")
        if not all(isinstance(i, str) for i in ids):
            return api_error(E.VALIDATION_INVALID, "authoritativeIds must be a list of ids")
        storage = SQLAlchemyStorage()
        if storage.get_document(data["documentId"]) is None:
            raise NotFoundError("Document", data["documentId"])
        stored = [tc.to_dict() for tc in storage.get_test_cases(data["documentId"])]
        by_id = {tc["id"]: tc for tc in stored}
        authoritative = [by_id[i] for i in ids if i in by_id]
        return jsonify(reconcile(stored, authoritative))

    existing = data.get("existing")
    authoritative = data.get("authoritative")
    if not isinstance(existing, list) or not isinstance(authoritative, list):
        return api_error(E.VALIDATION_REQUIRED, "existing and authoritative must be lists")
    if not all(isinstance(tc, dict) for tc in existing + authoritative):
        return api_error(E.VALIDATION_INVALID, "test cases must be objects")
    return jsonify(reconcile(existing, authoritative))
