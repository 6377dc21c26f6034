"""Persistence functions used by the intake pipeline.

Writes only flush; the caller owns the transaction and commits once the
whole submission has been recorded.
"""
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models


def create_record(db: Session, *, title: str) -> models.Submission:
    submission = models.Submission(title=title)
    db.add(submission)
    db.flush()
    return submission


def set_initial_status(db: Session, *, sub_id: str, tag: str) -> None:
    submission = get_submission(db, sub_id=sub_id)
    if submission is None:
        raise LookupError(f"Submission {sub_id} not found")
    submission.status = tag
    db.flush()


def set_metadata(db: Session, *, sub_id: str, key: str, value: str) -> models.SubmissionMeta:
    meta = (
        db.query(models.SubmissionMeta)
        .filter(models.SubmissionMeta.submission_id == sub_id, models.SubmissionMeta.key == key)
        .first()
    )
    if meta is None:
        meta = models.SubmissionMeta(submission_id=sub_id, key=key, value=value)
        db.add(meta)
    else:
        meta.value = value
    db.flush()
    return meta


def get_metadata(db: Session, *, sub_id: str) -> Dict[str, str]:
    rows = (
        db.query(models.SubmissionMeta)
        .filter(models.SubmissionMeta.submission_id == sub_id)
        .order_by(models.SubmissionMeta.id)
        .all()
    )
    return {row.key: row.value for row in rows}


def get_submission(db: Session, *, sub_id: str) -> Optional[models.Submission]:
    return db.query(models.Submission).filter(models.Submission.id == sub_id).first()


def create_attachment(
    db: Session,
    *,
    submission_id: str,
    field_name: str,
    stored_name: str,
    original_name: str,
    mime_type: str,
    file_size: int,
    url: str,
) -> models.FileAttachment:
    attachment = models.FileAttachment(
        submission_id=submission_id,
        field_name=field_name,
        stored_name=stored_name,
        original_name=original_name,
        mime_type=mime_type,
        file_size=file_size,
        url=url,
    )
    db.add(attachment)
    db.flush()
    return attachment


def update_thumbnail_url(db: Session, *, file_id: int, url: str) -> Optional[models.FileAttachment]:
    attachment = get_attachment(db, file_id=file_id)
    if not attachment:
        return None
    attachment.thumbnail_url = url
    db.commit()
    db.refresh(attachment)
    return attachment


def get_attachment(db: Session, *, file_id: int) -> Optional[models.FileAttachment]:
    return db.query(models.FileAttachment).filter(models.FileAttachment.id == file_id).first()


def get_submission_files(db: Session, *, sub_id: str) -> List[models.FileAttachment]:
    return (
        db.query(models.FileAttachment)
        .filter(models.FileAttachment.submission_id == sub_id)
        .order_by(models.FileAttachment.created_at, models.FileAttachment.id)
        .all()
    )


def get_files_by_type(db: Session, *, sub_id: str, mime_prefix: str) -> List[models.FileAttachment]:
    return (
        db.query(models.FileAttachment)
        .filter(
            models.FileAttachment.submission_id == sub_id,
            models.FileAttachment.mime_type.like(f"{mime_prefix}%"),
        )
        .order_by(models.FileAttachment.created_at, models.FileAttachment.id)
        .all()
    )


def get_submission_total_size(db: Session, *, sub_id: str) -> int:
    total = (
        db.query(func.sum(models.FileAttachment.file_size))
        .filter(models.FileAttachment.submission_id == sub_id)
        .scalar()
    )
    return int(total or 0)


def get_submission_file_count(db: Session, *, sub_id: str) -> int:
    return db.query(models.FileAttachment).filter(models.FileAttachment.submission_id == sub_id).count()


def delete_submission_files(db: Session, *, sub_id: str) -> int:
    """Delete attachment rows only; stored bytes are the storage backend's concern."""
    deleted = (
        db.query(models.FileAttachment)
        .filter(models.FileAttachment.submission_id == sub_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
