"""
VISITA Church Registry
Document storage tables.

Models:
    - Document: one JSON document inside a named collection
    - DocumentField: flattened index rows (one per scalar leaf or array item)
      so equality and array-membership filters run in SQL
"""

from datetime import datetime, timezone

from visita.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Document(db.Model):
    """A schemaless document addressed by ``(collection, doc_id)``."""

    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
        db.Index("ix_documents_collection_created", "collection", "created_at"),
    )

    pk = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(80), nullable=False)
    doc_id = db.Column(db.String(64), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    fields = db.relationship(
        "DocumentField",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self):
        return {**(self.data or {}), "id": self.doc_id}

    def __repr__(self):
        return f"<Document {self.collection}/{self.doc_id}>"


class DocumentField(db.Model):
    """Index row: ``path`` holds ``value`` (JSON-encoded) on the parent document."""

    __tablename__ = "document_fields"
    __table_args__ = (
        db.Index("ix_document_fields_lookup", "path", "value", "is_array_item"),
    )

    id = db.Column(db.Integer, primary_key=True)
    document_pk = db.Column(
        db.Integer, db.ForeignKey("documents.pk", ondelete="CASCADE"), nullable=False, index=True,
    )
    path = db.Column(db.String(120), nullable=False)
    value = db.Column(db.String(255), nullable=False)
    is_array_item = db.Column(db.Boolean, nullable=False, default=False)

    document = db.relationship("Document", back_populates="fields")

    def __repr__(self):
        return f"<DocumentField {self.path}={self.value}>"
