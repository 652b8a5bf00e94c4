"""
Clause2Case
Document generation pipeline.

Wires the retrieval and generation components for one document:

    document text → chunks → embeddings → top-k context
        → TestCaseGenerator → persisted TestCases (source=generated)

The HTTP trigger calls ``start``; the actual work runs through the
JobTracker on a background executor and reports progress as it goes.
"""

import logging

from clause2case.ai.rag import ParagraphChunker
from clause2case.ai.test_case_generator import GenerationRequest
from clause2case.core.exceptions import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

# Progress milestones reported to the job
PROGRESS_CHUNKED = 10
PROGRESS_EMBEDDED = 30
PROGRESS_RETRIEVED = 40
PROGRESS_GENERATED = 80
PROGRESS_PERSISTED = 95

RETRIEVAL_QUERY = "business rules requirements workflows validations thresholds compliance"


class GenerationService:
    """Starts and runs test-case generation jobs for documents."""

    def __init__(self, storage, tracker, generator, retriever, chunk_size: int = 1000):
        self.storage = storage
        self.tracker = tracker
        self.generator = generator
        self.retriever = retriever
        self.chunk_size = chunk_size

    def start(self, document_id: str, *, requirements: str | None = None,
              model: str | None = None) -> dict:
        """
        Create a test_generation job for the document and dispatch it.

        Raises:
            NotFoundError: unknown document.
            ValidationError: document has no extracted text.
        """
        doc = self.storage.get_document(document_id)
        if doc is None:
            raise NotFoundError("Document", document_id)
        if not (doc.content or "").strip():
            raise ValidationError("Document has no extracted text to generate from",
                                  {"documentId": "content is empty"})

        job = self.tracker.create(document_id, "test_generation")
        return self.tracker.dispatch(
            job["id"],
            lambda progress: self.run(document_id, progress,
                                      requirements=requirements, model=model),
        )

    def run(self, document_id: str, progress, *, requirements: str | None = None,
            model: str | None = None) -> dict:
        """
        Execute the pipeline for one document. Returns the job result summary.

        Raises whatever the pipeline raises (GenerationError, PersistenceError);
        the document is marked failed first.
        """
        doc = self.storage.get_document(document_id)
        if doc is None:
            raise NotFoundError("Document", document_id)

        self.storage.update_document(document_id, {"status": "processing"})
        try:
            summary = self._run(doc, progress, requirements, model)
        except Exception:
            self._mark_failed(document_id)
            raise
        self.storage.update_document(document_id, {"status": "completed"})
        return summary

    def _run(self, doc, progress, requirements, model) -> dict:
        texts = ParagraphChunker.chunk(doc.content or "", self.chunk_size)
        progress(PROGRESS_CHUNKED)

        chunks = self.retriever.embed_chunks(doc.id, texts)
        progress(PROGRESS_EMBEDDED)

        query = " ".join(filter(None, [doc.filename, requirements, RETRIEVAL_QUERY]))
        ranked = self.retriever.select(query, chunks)
        progress(PROGRESS_RETRIEVED)
        logger.info("Retrieved %d of %d chunks", len(ranked), len(chunks),
                    extra={"document_id": doc.id})

        used = [chunk for chunk, _ in ranked]
        request = GenerationRequest(
            document_title=doc.filename,
            document_type=doc.doc_type or "business_document",
            context="\n\n".join(chunk.content for chunk in used),
            requirements=requirements,
            model=model,
            chunks_used=used,
        )
        result = self.generator.generate(request)
        progress(PROGRESS_GENERATED)

        avg_similarity = (
            round(sum(score for _, score in ranked) / len(ranked), 3) if ranked else None
        )
        context_used = "\n".join(result.context_used)
        # Single commit for the whole batch
        test_cases = self.storage.create_test_cases([
            {
                "document_id": doc.id,
                "title": draft.title,
                "description": draft.description,
                "category": draft.category,
                "priority": draft.priority,
                "steps": draft.steps,
                "expected_result": draft.expected_result,
                "tags": draft.tags,
                "source": "generated",
                "confidence_score": (
                    draft.confidence_score if draft.confidence_score is not None
                    else _clamp_unit(avg_similarity)
                ),
                "context_used": context_used,
            }
            for draft in result.test_cases
        ])
        ids = [tc.id for tc in test_cases]
        progress(PROGRESS_PERSISTED)

        return {
            "testCasesGenerated": len(ids),
            "testCaseIds": ids,
            "processingTimeMs": result.processing_time_ms,
            "contextUsed": result.context_used,
            "metadata": result.metadata,
        }

    def _mark_failed(self, document_id: str):
        try:
            self.storage.update_document(document_id, {"status": "failed"})
        except PersistenceError:
            logger.exception("Could not mark document failed", extra={"document_id": document_id})


def _clamp_unit(value: float | None) -> float | None:
    if value is None:
        return None
    return max(0.0, min(1.0, value))
