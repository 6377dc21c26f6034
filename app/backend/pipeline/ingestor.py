"""Capture of one incoming form submission.

    payload
      └─ guard (target form, non-empty)
           └─ create record + status "New"
                └─ field metadata, mediums, open call
                     └─ FileIntake (when file storage is enabled)
                          └─ submission_date, commit
                               └─ submission_created event
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.backend.config import IngestConfig
from app.backend.tools.storage import LocalStorage
from app.database import crud
from app.database.models import INITIAL_STATUS, FileAttachment

from .intake import FileIntake, UploadHandle
from .notifications import SubmissionEvents, submission_events
from .security import sanitize_for_logging, sanitize_key, sanitize_text_field

log = structlog.get_logger()

FieldValue = Union[str, List[str]]

META_PREFIX = "field_"

# The complex uploader field carries raw upload data, never plain text.
RESERVED_FIELDS = frozenset({"your-work"})

MEDIUM_FIELDS = (
    "medium",
    "mediums",
    "artistic-medium",
    "artistic_medium",
    "art-medium",
    "art_medium",
    "techniques",
    "materials",
)

TEXT_MEDIUM_FIELDS = (
    "text-medium",
    "text_medium",
    "text-mediums",
    "text_mediums",
    "literary-medium",
    "literary_medium",
    "writing-type",
    "writing_type",
    "genre",
    "genres",
)

OPEN_CALL_FIELDS = ("open-call", "open_call", "call", "submission-call", "submission_call")


class SubmissionCaptureError(Exception):
    """The submission could not be recorded; nothing from it was kept."""


class FormPayload(BaseModel):
    form_id: str
    fields: Dict[str, FieldValue] = Field(default_factory=dict)
    uploads: Dict[str, List[UploadHandle]] = Field(default_factory=dict)


class IngestResult(BaseModel):
    submission_id: Optional[str] = None
    title: Optional[str] = None
    files: Dict[str, List[int]] = Field(default_factory=dict)

    @property
    def captured(self) -> bool:
        return self.submission_id is not None


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple)):
        return not any(str(v).strip() for v in value)
    return str(value).strip() == ""


def _first_value(value: FieldValue) -> str:
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else ""
    return str(value)


def derive_title(fields: Dict[str, FieldValue], now: Optional[datetime] = None) -> str:
    title = ""
    for key in ("artist-name", "your-name", "name"):
        if not _is_empty(fields.get(key)):
            title = _first_value(fields[key])
            break
    else:
        first, last = fields.get("first-name"), fields.get("last-name")
        if not _is_empty(first) and not _is_empty(last):
            title = f"{_first_value(first)} {_first_value(last)}"
    title = sanitize_text_field(title)
    if title:
        return title
    now = now or datetime.now()
    return f"Submission {now.strftime('%Y-%m-%d %H:%M:%S')}"


def flatten_value(value: FieldValue) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if str(v).strip())
    return str(value)


def collect_mediums(fields: Dict[str, FieldValue], keys=MEDIUM_FIELDS) -> List[str]:
    mediums: List[str] = []
    for key in keys:
        value = fields.get(key)
        if _is_empty(value):
            continue
        values = value if isinstance(value, (list, tuple)) else str(value).split(",")
        for item in values:
            clean = sanitize_text_field(item)
            if clean and clean not in mediums:
                mediums.append(clean)
    return mediums


class SubmissionIngestor:
    def __init__(
        self,
        db: Session,
        storage: Optional[LocalStorage] = None,
        events: Optional[SubmissionEvents] = None,
    ) -> None:
        self.db = db
        self.storage = storage
        self.events = events or submission_events

    def ingest(self, payload: FormPayload, config: IngestConfig) -> IngestResult:
        if not config.is_target_form(payload.form_id):
            log.info("submission_ignored", reason="form_not_configured", form_id=payload.form_id)
            return IngestResult()
        if not payload.fields:
            log.info("submission_ignored", reason="no_fields", form_id=payload.form_id)
            return IngestResult()

        title = derive_title(payload.fields)
        try:
            record = crud.create_record(self.db, title=title)
        except Exception as exc:
            self.db.rollback()
            log.error("submission_create_failed", form_id=payload.form_id, error=str(exc))
            raise SubmissionCaptureError("Submission could not be created") from exc

        sub_id = record.id
        log.info("submission_record_created", submission_id=sub_id, title=sanitize_for_logging(title))

        intake: Optional[FileIntake] = None
        try:
            crud.set_initial_status(self.db, sub_id=sub_id, tag=INITIAL_STATUS)
            self._store_fields(sub_id, payload)
            self._store_mediums(sub_id, payload.fields)
            self._store_open_call(sub_id, payload, config)

            uploads = {field: handles for field, handles in payload.uploads.items() if field not in RESERVED_FIELDS}
            if len(uploads) < len(payload.uploads):
                log.info("reserved_uploads_skipped", submission_id=sub_id, fields=sorted(set(payload.uploads) - set(uploads)))

            files: Dict[str, List[FileAttachment]] = {}
            if config.store_files and uploads:
                intake = FileIntake(self.db, self._storage_for(config))
                files = intake.commit_all(sub_id, uploads)
            elif uploads:
                log.info("uploads_discarded", submission_id=sub_id, fields=list(uploads))

            crud.set_metadata(self.db, sub_id=sub_id, key="submission_date", value=datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            if intake is not None:
                intake.discard()
            log.error("submission_capture_failed", submission_id=sub_id, error=str(exc))
            raise SubmissionCaptureError("Submission could not be captured") from exc

        self.events.emit_submission_created(sub_id)
        return IngestResult(
            submission_id=sub_id,
            title=title,
            files={field: [a.id for a in attachments] for field, attachments in files.items()},
        )

    # --- Internals ---

    def _storage_for(self, config: IngestConfig) -> LocalStorage:
        if self.storage is None:
            self.storage = LocalStorage(config.upload_dir, config.public_base_url)
        return self.storage

    def _store_fields(self, sub_id: str, payload: FormPayload) -> int:
        reserved = RESERVED_FIELDS | set(payload.uploads)
        stored = 0
        for key, value in payload.fields.items():
            if key in reserved or _is_empty(value):
                continue
            meta_key = sanitize_key(key)
            clean = sanitize_text_field(flatten_value(value))
            if not meta_key or not clean:
                continue
            crud.set_metadata(self.db, sub_id=sub_id, key=f"{META_PREFIX}{meta_key}", value=clean)
            stored += 1
        log.info("submission_fields_stored", submission_id=sub_id, count=stored)
        return stored

    def _store_mediums(self, sub_id: str, fields: Dict[str, FieldValue]) -> None:
        for meta_key, keys in (("artistic_mediums", MEDIUM_FIELDS), ("text_mediums", TEXT_MEDIUM_FIELDS)):
            mediums = collect_mediums(fields, keys)
            if mediums:
                crud.set_metadata(self.db, sub_id=sub_id, key=meta_key, value=", ".join(mediums))

    def _store_open_call(self, sub_id: str, payload: FormPayload, config: IngestConfig) -> None:
        title = None
        for key in OPEN_CALL_FIELDS:
            value = payload.fields.get(key)
            if _is_empty(value):
                continue
            wanted = sanitize_text_field(_first_value(value))
            for call in config.open_calls:
                if wanted.lower() in {call.title.lower(), (call.slug or "").lower()}:
                    title = call.title
                    break
            if title:
                break
        if title is None:
            call = config.open_call_for_form(payload.form_id)
            title = call.title if call else None
        if title:
            crud.set_metadata(self.db, sub_id=sub_id, key="open_call", value=title)
