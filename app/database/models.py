import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from .db import Base

INITIAL_STATUS = "New"


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    status = Column(String(50), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class SubmissionMeta(Base):
    """One key/value pair of submission metadata (form fields, dates, tags)."""

    __tablename__ = "submission_meta"
    __table_args__ = (UniqueConstraint("submission_id", "key", name="uq_submission_meta_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(String(36), ForeignKey("submissions.id"), nullable=False, index=True)
    key = Column(String(191), nullable=False)
    value = Column(Text, nullable=False)


class FileAttachment(Base):
    __tablename__ = "submission_files"
    __table_args__ = (UniqueConstraint("submission_id", "stored_name", name="uq_submission_files_stored_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(String(36), ForeignKey("submissions.id"), nullable=False, index=True)
    field_name = Column(String(191), nullable=False)
    stored_name = Column(String(255), nullable=False)
    original_name = Column(Text, nullable=False)
    mime_type = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    url = Column(Text, nullable=False)
    thumbnail_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


Index("idx_submission_files_created", FileAttachment.created_at)
