"""
Clause2Case
AI processing models.

Models:
    - ProcessingJob: per-document asynchronous job with progress, polled by
      callers until it reaches a terminal state.
"""

import json
import uuid
from datetime import datetime, timezone

from clause2case.models import db


# ── Constants ────────────────────────────────────────────────────────────────

JOB_TYPES = {"test_generation"}
JOB_STATUSES = {"pending", "processing", "completed", "failed"}
TERMINAL_JOB_STATUSES = {"completed", "failed"}


class ProcessingJob(db.Model):
    """Tracks one unit of background work scoped to a single document."""

    __tablename__ = "processing_jobs"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = db.Column(
        db.String(36), db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    job_type = db.Column(db.String(40), nullable=False, default="test_generation")
    status = db.Column(db.String(20), nullable=False, default="pending")
    progress = db.Column(db.Integer, nullable=False, default=0)

    result_json = db.Column(db.Text, nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','processing','completed','failed')",
            name="ck_processing_job_status",
        ),
        db.CheckConstraint(
            "progress >= 0 AND progress <= 100",
            name="ck_processing_job_progress",
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "documentId": self.document_id,
            "jobType": self.job_type,
            "status": self.status,
            "progress": self.progress,
            "result": json.loads(self.result_json) if self.result_json else None,
            "errorMessage": self.error_message,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<ProcessingJob id={self.id} status={self.status} progress={self.progress}>"
