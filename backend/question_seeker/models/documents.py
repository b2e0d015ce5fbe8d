"""
SQLAlchemy ORM Models — Uploads, Documents & Questions

Using SQLAlchemy 2.x mapped classes for full async support.

Lifecycle:
  Upload    — created when a file is received; mutated only by the pipeline
  Document  — created once text extraction has returned for an Upload
  Question  — created after its Document exists; answer fixed at creation

Timestamps use Python-side defaults so that values are available on the
instance right after flush, without a refresh round-trip.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Upload model — uploads
# ---------------------------------------------------------------------------

class Upload(Base):
    """
    Tracks a single received file through the processing pipeline.

    State machine (status column):
        pending    — file staged locally, pipeline not yet started
        processing — background task running (see progress / message)
        completed  — document and questions persisted (progress = 100)
        failed     — a stage failed (progress = 0, message explains why)
    """

    __tablename__ = "uploads"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="uploads_status_check",
        ),
        CheckConstraint("progress BETWEEN 0 AND 100", name="uploads_progress_check"),
        Index("idx_uploads_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    filename: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Local staging path the pipeline reads the raw bytes from",
    )

    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Plain integer, set once the Document exists
    document_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<Upload id={self.id} status={self.status} "
            f"progress={self.progress} file={self.filename!r}>"
        )


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """A stored file together with the text extracted from it."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Durable storage location returned by the storage client",
    )
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="completed")

    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    questions: Mapped[list["Question"]] = relationship(
        back_populates="document",
        order_by="Question.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} status={self.status} file={self.file_name!r}>"


# ---------------------------------------------------------------------------
# Question model — questions
# ---------------------------------------------------------------------------

class Question(Base):
    """One extracted or generated question, with its answer."""

    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_document_id", "document_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    document: Mapped[Document] = relationship(back_populates="questions")

    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<Question id={self.id} document={self.document_id} text={self.text[:40]!r}>"
