"""
Clause2Case
Storage capability used by the generation pipeline.

The pipeline never touches the ORM directly; it calls a PipelineStorage.
SQLAlchemyStorage is the implementation backed by Flask-SQLAlchemy. Every
write is its own committed transaction (a batch of test cases counts as one
write), and any SQLAlchemyError is rolled back and re-raised as
PersistenceError.
"""

import logging
from abc import ABC, abstractmethod

from sqlalchemy.exc import SQLAlchemyError

from clause2case.core.exceptions import PersistenceError
from clause2case.models import db
from clause2case.models.ai import ProcessingJob
from clause2case.models.document import Document
from clause2case.models.testing import TestCase

logger = logging.getLogger(__name__)


class PipelineStorage(ABC):
    """Persistence operations the pipeline needs, and nothing more."""

    @abstractmethod
    def create_job(self, document_id: str | None, job_type: str) -> ProcessingJob: ...

    @abstractmethod
    def update_job(self, job_id: str, fields: dict) -> ProcessingJob | None: ...

    @abstractmethod
    def get_job(self, job_id: str) -> ProcessingJob | None: ...

    @abstractmethod
    def list_jobs(self, document_id: str | None = None) -> list[ProcessingJob]: ...

    @abstractmethod
    def create_test_case(self, data: dict) -> TestCase: ...

    @abstractmethod
    def create_test_cases(self, items: list[dict]) -> list[TestCase]: ...

    @abstractmethod
    def get_test_cases(self, document_id: str | None = None) -> list[TestCase]: ...

    @abstractmethod
    def get_document(self, document_id: str) -> Document | None: ...

    @abstractmethod
    def update_document(self, document_id: str, fields: dict) -> Document | None: ...


class SQLAlchemyStorage(PipelineStorage):
    """PipelineStorage on the shared ``db.session``."""

    def _commit(self, operation: str):
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Storage %s failed: %s", operation, exc)
            raise PersistenceError(operation, exc) from exc

    def _read(self, operation: str, fn):
        try:
            return fn()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Storage %s failed: %s", operation, exc)
            raise PersistenceError(operation, exc) from exc

    # ── Jobs ─────────────────────────────────────────────────────────────

    def create_job(self, document_id, job_type="test_generation"):
        job = ProcessingJob(document_id=document_id, job_type=job_type,
                            status="pending", progress=0)
        db.session.add(job)
        self._commit("create_job")
        return job

    def update_job(self, job_id, fields):
        job = self.get_job(job_id)
        if job is None:
            return None
        for key, value in fields.items():
            setattr(job, key, value)
        self._commit("update_job")
        return job

    def get_job(self, job_id):
        # populate_existing so a poller never sees a stale identity-map copy
        return self._read(
            "get_job",
            lambda: db.session.get(ProcessingJob, job_id, populate_existing=True),
        )

    def list_jobs(self, document_id=None):
        def query():
            q = ProcessingJob.query.order_by(ProcessingJob.created_at.desc())
            if document_id:
                q = q.filter_by(document_id=document_id)
            return q.all()
        return self._read("list_jobs", query)

    # ── Test cases ───────────────────────────────────────────────────────

    def create_test_case(self, data):
        tc = _build_test_case(data)
        db.session.add(tc)
        self._commit("create_test_case")
        return tc

    def create_test_cases(self, items):
        """All-or-nothing: one commit for the whole batch."""
        test_cases = [_build_test_case(data) for data in items]
        db.session.add_all(test_cases)
        self._commit("create_test_cases")
        return test_cases

    def get_test_cases(self, document_id=None):
        def query():
            q = TestCase.query.order_by(TestCase.created_at.asc())
            if document_id:
                q = q.filter_by(document_id=document_id)
            return q.all()
        return self._read("get_test_cases", query)

    # ── Documents ────────────────────────────────────────────────────────

    def get_document(self, document_id):
        return self._read("get_document", lambda: db.session.get(Document, document_id))

    def update_document(self, document_id, fields):
        doc = self.get_document(document_id)
        if doc is None:
            return None
        for key, value in fields.items():
            setattr(doc, key, value)
        self._commit("update_document")
        return doc


def _build_test_case(data: dict) -> TestCase:
    data = dict(data)
    steps = data.pop("steps", [])
    tags = data.pop("tags", [])
    tc = TestCase(**data)
    tc.steps = steps
    tc.tags = tags
    return tc
