from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import declarative_base, relationship
import sqlalchemy as sa
from datetime import datetime, timezone

Base = declarative_base()


def now():
    return datetime.now(tz=timezone.utc)


# --- QUESTION CATALOG ---

class Question(Base):
    __tablename__ = "questions"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    # Category name as carried in the token's organizations[*].categories
    category = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=now)

    revisions = relationship(
        "QuestionRevision",
        back_populates="question",
        order_by="QuestionRevision.created_at.desc()",
        cascade="all, delete-orphan",
    )


class QuestionRevision(Base):
    """Immutable snapshot of a question's text and weight."""
    __tablename__ = "question_revisions"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    question_id = Column(UUID(as_uuid=True), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    # {"en": "...", "de": "..."}
    text = Column(JSONB, nullable=False)
    weight = Column(Float, nullable=False, default=1.0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    question = relationship("Question", back_populates="revisions")

    __table_args__ = (
        Index("ix_question_revisions_question_created", "question_id", "created_at"),
    )


class CategoryCatalog(Base):
    __tablename__ = "category_catalog"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    template_id = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=now)
    updated_at = Column(DateTime(timezone=True), default=now, onupdate=now)


class OrganizationCategory(Base):
    __tablename__ = "organization_categories"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    org_id = Column(String, nullable=False, index=True)
    # No cascade: a catalog entry in use cannot be deleted
    catalog_id = Column(UUID(as_uuid=True), ForeignKey("category_catalog.id"), nullable=False)
    weight = Column(Integer, nullable=False)
    order = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now)
    updated_at = Column(DateTime(timezone=True), default=now, onupdate=now)

    catalog = relationship("CategoryCatalog")

    __table_args__ = (
        UniqueConstraint("org_id", "catalog_id", name="uq_organization_categories_org_catalog"),
    )


# --- ASSESSMENTS & RESPONSES ---

class Assessment(Base):
    __tablename__ = "assessments"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    org_id = Column(String, nullable=False, index=True)
    language = Column(String, nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now)
    updated_at = Column(DateTime(timezone=True), default=now, onupdate=now)


class Response(Base):
    __tablename__ = "responses"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    assessment_id = Column(UUID(as_uuid=True), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False)
    # RESTRICT: a revision referenced by a response cannot be deleted
    revision_id = Column(UUID(as_uuid=True), ForeignKey("question_revisions.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=now)

    files = relationship("File", secondary="response_files", viewonly=True)

    __table_args__ = (
        UniqueConstraint("assessment_id", "revision_id", "version", name="uq_responses_assessment_revision_version"),
    )


class File(Base):
    __tablename__ = "files"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    org_id = Column(String, nullable=False, index=True)
    content = Column(LargeBinary, nullable=False)
    # filename, content_type, size, created_at, uploaded_by plus caller metadata
    meta_data = Column(JSONB, nullable=False, server_default=sa.text("'{}'::jsonb"))
    created_at = Column(DateTime(timezone=True), default=now)


class ResponseFile(Base):
    __tablename__ = "response_files"
    response_id = Column(UUID(as_uuid=True), ForeignKey("responses.id", ondelete="CASCADE"), primary_key=True)
    # RESTRICT: a linked file cannot be deleted
    file_id = Column(UUID(as_uuid=True), ForeignKey("files.id"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=now)


# --- SUBMISSIONS & REPORTS ---

class TempSubmission(Base):
    __tablename__ = "temp_submissions"
    assessment_id = Column(UUID(as_uuid=True), ForeignKey("assessments.id", ondelete="CASCADE"), primary_key=True)
    org_id = Column(String, nullable=False, index=True)
    content = Column(JSONB, nullable=False)
    submitted_at = Column(DateTime(timezone=True), default=now)
    status = Column(String, nullable=False, default="under_review")  # under_review, approved, rejected, revision_requested
    reviewed_at = Column(DateTime(timezone=True), nullable=True)


class AssessmentSubmission(Base):
    """Frozen organization-level submission; id is the assessment id.

    No foreign key to assessments: removing an assessment does
    not remove its submission.
    """
    __tablename__ = "assessment_submissions"
    id = Column(UUID(as_uuid=True), primary_key=True)
    org_id = Column(String, nullable=False, index=True)
    content = Column(JSONB, nullable=False)
    submitted_at = Column(DateTime(timezone=True), default=now)
    status = Column(String, nullable=False, default="under_review")
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    reports = relationship("SubmissionReport", back_populates="submission", passive_deletes=True)


class SubmissionReport(Base):
    __tablename__ = "submission_reports"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    submission_id = Column(UUID(as_uuid=True), ForeignKey("assessment_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    report_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default="generating")  # generating, completed, failed
    generated_at = Column(DateTime(timezone=True), default=now)
    data = Column(JSONB, nullable=True)

    submission = relationship("AssessmentSubmission", back_populates="reports")
