"""
Clause2Case
Generation Blueprint.

Endpoints:
    GENERATE   /api/v1/documents/<id>/generate-tests       POST  (202, async)
    JOBS       /api/v1/processing-jobs                     GET   ?documentId=
               /api/v1/processing-jobs/<id>                GET
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from clause2case.ai.gateway import LLMGateway
from clause2case.ai.job_tracker import JobTracker
from clause2case.ai.prompt_registry import PromptRegistry
from clause2case.ai.rag import GatewayEmbedder, HashEmbedder, Retriever
from clause2case.ai.test_case_generator import TestCaseGenerator
from clause2case.services.generation_service import GenerationService
from clause2case.services.storage import SQLAlchemyStorage
from clause2case.utils.errors import E, api_error

logger = logging.getLogger(__name__)

generation_bp = Blueprint("generation", __name__, url_prefix="/api/v1")

# ── Rate limiting ─────────────────────────────────────────────────────────
from clause2case import limiter  # noqa: E402

_generate_limit = limiter.shared_limit("30/minute", scope="ai_generate")


# ── Lazy singletons stored on Flask app (test-isolation safe) ───────────────

def _get_gateway():
    if not hasattr(current_app, "_ai_gateway"):
        current_app._ai_gateway = LLMGateway(
            provider=current_app.config.get("AI_PROVIDER", "local"),
            model=current_app.config.get("AI_MODEL") or None,
        )
    return current_app._ai_gateway


def _get_prompt_registry():
    if not hasattr(current_app, "_ai_prompt_registry"):
        current_app._ai_prompt_registry = PromptRegistry(current_app.config.get("PROMPTS_DIR"))
    return current_app._ai_prompt_registry


def _get_retriever():
    if not hasattr(current_app, "_ai_retriever"):
        if current_app.config.get("EMBEDDING_PROVIDER") == "gateway":
            embedder = GatewayEmbedder(_get_gateway())
        else:
            embedder = HashEmbedder()
        current_app._ai_retriever = Retriever(
            embedder,
            top_k=current_app.config.get("RETRIEVAL_TOP_K", 5),
            threshold=current_app.config.get("RETRIEVAL_THRESHOLD"),
        )
    return current_app._ai_retriever


def _get_tracker() -> JobTracker:
    return JobTracker(
        SQLAlchemyStorage(),
        executor=current_app.extensions["job_executor"],
        app=current_app._get_current_object(),
    )


def _get_service() -> GenerationService:
    tracker = _get_tracker()
    generator = TestCaseGenerator(
        _get_gateway(),
        prompt_registry=_get_prompt_registry(),
        timeout=current_app.config.get("GENERATION_TIMEOUT_SECONDS", 90.0),
    )
    return GenerationService(
        tracker.storage, tracker, generator, _get_retriever(),
        chunk_size=current_app.config.get("CHUNK_MAX_SIZE", 1000),
    )


# ═══════════════════════════════════════════════════════════════
# Generate
# ═══════════════════════════════════════════════════════════════

@generation_bp.route("/documents/<document_id>/generate-tests", methods=["POST"])
@_generate_limit
def generate_tests(document_id):
    """Start AI test case generation for a document; returns the job immediately."""
    data = request.get_json(silent=True) or {}
    requirements = data.get("requirements")
    model = data.get("model")
    if requirements is not None and not isinstance(requirements, str):
        return api_error(E.VALIDATION_INVALID, "requirements must be a string")
    if model is not None and not isinstance(model, str):
        return api_error(E.VALIDATION_INVALID, "model must be a string")

    job = _get_service().start(document_id, requirements=requirements, model=model)
    logger.info("Generation requested", extra={"document_id": document_id, "job_id": job["id"]})
    return jsonify({
        "job": job,
        "message": "Test case generation started",
    }), 202


# ═══════════════════════════════════════════════════════════════
# Job polling
# ═══════════════════════════════════════════════════════════════

@generation_bp.route("/processing-jobs", methods=["GET"])
def list_jobs():
    document_id = request.args.get("documentId")
    return jsonify(_get_tracker().list_jobs(document_id))


@generation_bp.route("/processing-jobs/<job_id>", methods=["GET"])
def get_job(job_id):
    status = _get_tracker().get_status(job_id)
    if status is None:
        return api_error(E.NOT_FOUND, f"Processing job {job_id} not found")
    return jsonify(status)
