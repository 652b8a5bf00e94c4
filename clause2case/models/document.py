"""
Clause2Case
Document model.

Only the fields the generation pipeline reads (title, type, extracted text)
and writes (status). Upload, customer linkage and file storage live outside
this service.
"""

import uuid
from datetime import datetime, timezone

from clause2case.models import db


DOCUMENT_STATUSES = {"uploaded", "processing", "completed", "failed"}


class Document(db.Model):
    """A business document whose extracted text feeds test-case generation."""

    __tablename__ = "documents"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    filename = db.Column(db.String(255), nullable=False)
    doc_type = db.Column(db.String(100), default="business_document",
                         comment="Contract, Handbook, Tax Filing, ...")
    content = db.Column(db.Text, nullable=True, comment="Extracted plain text")
    status = db.Column(db.String(20), nullable=False, default="uploaded")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('uploaded','processing','completed','failed')",
            name="ck_document_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "filename": self.filename,
            "docType": self.doc_type,
            "status": self.status,
            "contentLength": len(self.content or ""),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Document id={self.id} filename={self.filename!r} status={self.status}>"
