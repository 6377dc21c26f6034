"""Validation and commit of uploaded files for one submission."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.backend.tools.storage import LocalStorage
from app.database import crud
from app.database.models import FileAttachment

log = structlog.get_logger()

ALLOWED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "pdf", "doc", "docx", "txt", "zip"})

EXTENSION_TO_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
    "zip": "application/zip",
}

# Declared content types browsers send for each extension besides the canonical one.
DECLARED_ALIASES = {
    "jpg": {"image/jpg", "image/pjpeg"},
    "jpeg": {"image/jpg", "image/pjpeg"},
    "pdf": {"application/x-pdf"},
    "zip": {"application/x-zip-compressed", "application/x-zip", "multipart/x-zip"},
}

# Declared types that say nothing about the content.
GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

MAX_NAME_ATTEMPTS = 100


class UploadHandle(BaseModel):
    """A transient upload: where the bytes are now and what the client called the file."""

    source_path: str
    original_name: str
    content_type: Optional[str] = Field(None, description="Content type declared by the client")


def file_extension(filename: str) -> str:
    _, dot, ext = (filename or "").rpartition(".")
    return ext.lower() if dot else ""


def resolve_mime_type(filename: str, declared: Optional[str] = None) -> Optional[str]:
    """MIME type for an allowed filename, or None when it cannot be trusted."""
    ext = file_extension(filename)
    mime = EXTENSION_TO_MIME.get(ext)
    if mime is None:
        return None
    declared = (declared or "").split(";")[0].strip().lower()
    if declared in GENERIC_CONTENT_TYPES:
        return mime
    if declared != mime and declared not in DECLARED_ALIASES.get(ext, set()):
        return None
    return mime


class FileIntake:
    """
    Commits uploads best-effort per file: a file that fails validation or
    copying is skipped and logged, its siblings are still processed.
    """

    def __init__(self, db: Session, storage: LocalStorage) -> None:
        self.db = db
        self.storage = storage
        # (namespace, stored_name) of every object written by this intake
        self.written: List[Tuple[str, str]] = []

    def commit(self, submission_id: str, field_name: str, uploads: Iterable[UploadHandle]) -> List[FileAttachment]:
        attachments: List[FileAttachment] = []
        for upload in uploads:
            attachment = self._commit_one(submission_id, field_name, upload)
            if attachment is not None:
                attachments.append(attachment)
        log.info(
            "field_files_committed",
            submission_id=submission_id,
            field=field_name,
            committed=len(attachments),
        )
        return attachments

    def commit_all(
        self, submission_id: str, uploads_by_field: Dict[str, List[UploadHandle]]
    ) -> Dict[str, List[FileAttachment]]:
        results: Dict[str, List[FileAttachment]] = {}
        for field_name, uploads in uploads_by_field.items():
            committed = self.commit(submission_id, field_name, uploads)
            if committed:
                results[field_name] = committed
        return results

    def discard(self) -> None:
        """Remove every object this intake wrote; used when the enclosing transaction rolls back."""
        for namespace, stored_name in self.written:
            self.storage.delete(namespace, stored_name)
        self.written.clear()

    # --- Internals ---

    def _commit_one(self, submission_id: str, field_name: str, upload: UploadHandle) -> Optional[FileAttachment]:
        original_name = upload.original_name

        source = Path(upload.source_path)
        try:
            data = source.read_bytes()
        except OSError as exc:
            log.info("file_skipped", reason="unreadable_source", file=original_name, error=str(exc))
            return None

        ext = file_extension(original_name)
        if ext not in ALLOWED_EXTENSIONS:
            log.info("file_skipped", reason="extension_not_allowed", file=original_name, extension=ext)
            return None

        mime_type = resolve_mime_type(original_name, upload.content_type)
        if mime_type is None:
            log.info(
                "file_skipped",
                reason="mime_type_unresolved",
                file=original_name,
                declared=upload.content_type,
            )
            return None

        stored_name = self._write_unique(submission_id, original_name, data)
        if stored_name is None:
            return None

        try:
            attachment = crud.create_attachment(
                self.db,
                submission_id=submission_id,
                field_name=field_name,
                stored_name=stored_name,
                original_name=original_name,
                mime_type=mime_type,
                file_size=len(data),
                url=self.storage.url(submission_id, stored_name),
            )
        except Exception:
            # Bytes without a record would be orphaned.
            self.storage.delete(submission_id, stored_name)
            raise

        self.written.append((submission_id, stored_name))
        log.info(
            "file_committed",
            submission_id=submission_id,
            field=field_name,
            stored_name=stored_name,
            mime_type=mime_type,
            size_bytes=len(data),
        )
        return attachment

    def _write_unique(self, submission_id: str, original_name: str, data: bytes) -> Optional[str]:
        for _ in range(MAX_NAME_ATTEMPTS):
            name = self.storage.unique_name(submission_id, original_name)
            try:
                self.storage.write(submission_id, name, data)
            except FileExistsError:
                # Lost the race for this name to a concurrent upload; pick the next one.
                continue
            except OSError as exc:
                log.warning("file_skipped", reason="copy_failed", file=original_name, error=str(exc))
                return None
            return name
        log.warning("file_skipped", reason="no_free_name", file=original_name)
        return None
