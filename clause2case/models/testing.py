"""
Clause2Case
Test case domain models.

Models:
    - TestCase: a persisted test case, either AI-generated from a document
      or imported from a manual CSV batch.

Steps and tags are stored as JSON text so the table works the same on
SQLite (dev/test) and PostgreSQL.
"""

import json
import uuid
from datetime import datetime, timezone

from clause2case.models import db


# ── Constants ────────────────────────────────────────────────────────────

TEST_CASE_CATEGORIES = {"functional", "compliance", "integration", "edge_case"}
TEST_CASE_PRIORITIES = {"high", "medium", "low"}
TEST_CASE_SOURCES = {"generated", "manual", "uploaded"}
EXECUTION_STATUSES = {"ready", "in_progress", "complete", "failed"}

MIN_STEPS = 5
MAX_STEPS = 10


class TestCase(db.Model):
    """
    A reviewable test case.

    ``source`` records where it came from: ``generated`` by the AI pipeline,
    ``manual`` from a CSV import, ``uploaded`` for legacy file uploads.
    """

    __tablename__ = "test_cases"
    __test__ = False  # keep pytest from collecting the model

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = db.Column(
        db.String(36), db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(50), default="functional",
                         comment="functional | compliance | integration | edge_case | Manual")
    priority = db.Column(db.String(10), default="medium", comment="high | medium | low")
    preconditions = db.Column(db.Text, default="")
    steps_json = db.Column(db.Text, default="[]", comment="JSON-encoded ordered list of steps")
    expected_result = db.Column(db.Text, default="")
    tags_json = db.Column(db.Text, default="[]", comment="JSON-encoded list of tags")

    source = db.Column(db.String(20), nullable=False, default="generated")
    confidence_score = db.Column(db.Float, nullable=True)
    context_used = db.Column(db.Text, nullable=True, comment="RAG context that produced the case")
    execution_status = db.Column(db.String(20), nullable=False, default="ready")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint(
            "source IN ('generated','manual','uploaded')",
            name="ck_test_case_source",
        ),
    )

    @property
    def steps(self) -> list[str]:
        return json.loads(self.steps_json) if self.steps_json else []

    @steps.setter
    def steps(self, value):
        self.steps_json = json.dumps(list(value or []))

    @property
    def tags(self) -> list[str]:
        return json.loads(self.tags_json) if self.tags_json else []

    @tags.setter
    def tags(self, value):
        self.tags_json = json.dumps(sorted(set(value or [])))

    def to_dict(self):
        return {
            "id": self.id,
            "documentId": self.document_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "preconditions": self.preconditions,
            "steps": self.steps,
            "expectedResult": self.expected_result,
            "tags": self.tags,
            "source": self.source,
            "confidenceScore": self.confidence_score,
            "contextUsed": self.context_used,
            "executionStatus": self.execution_status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TestCase id={self.id} source={self.source} title={self.title[:40]!r}>"
