import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from app.backend.config import IngestConfig, load_config
from app.backend.pipeline import (
    FormPayload,
    SubmissionCaptureError,
    SubmissionIngestor,
    ThumbnailResolver,
    UploadHandle,
)
from app.backend.pipeline import classifier
from app.backend.tools.storage import LocalStorage
from app.database import crud
from app.database.db import get_db

log = structlog.get_logger()

SPOOL_CHUNK_BYTES = 1024 * 1024


class SubmitResponse(BaseModel):
    status: str
    id: Optional[str]


class FileInfo(BaseModel):
    id: int
    field_name: str
    original_name: str
    stored_name: str
    mime_type: str
    size: str
    url: str
    thumbnail_url: str
    icon_class: str


class ResultResponse(BaseModel):
    id: str
    title: str
    status: Optional[str]
    fields: Dict[str, str]
    files: List[FileInfo]
    total_size: str


router = APIRouter(prefix="/api/form", tags=["form"])

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def require_api_key(api_key: Optional[str] = Depends(API_KEY_HEADER)):
    expected = os.getenv("API_KEY")
    if expected and api_key != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return True


def get_config() -> IngestConfig:
    return load_config()


def get_storage(config: IngestConfig = Depends(get_config)) -> LocalStorage:
    return LocalStorage(config.upload_dir, config.public_base_url)


async def _spool_upload(upload: UploadFile, spool_dir: Path) -> Path:
    """Copy an incoming upload to a temp file so intake can read it from disk."""
    dest = spool_dir / uuid.uuid4().hex
    async with aiofiles.open(dest, "wb") as f:
        while True:
            chunk = await upload.read(SPOOL_CHUNK_BYTES)
            if not chunk:
                break
            await f.write(chunk)
    return dest


@router.post("/{form_id}/submit", response_model=SubmitResponse)
async def submit_form(
    form_id: str,
    request: Request,
    db: Session = Depends(get_db),
    config: IngestConfig = Depends(get_config),
    storage: LocalStorage = Depends(get_storage),
) -> SubmitResponse:
    """Capture one form submission. Forms that are not configured are acknowledged and ignored."""
    try:
        form = await request.form()
    except Exception:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid multipart/form-data payload.")

    spool_dir = Path(tempfile.mkdtemp(prefix="submission-"))
    try:
        fields: Dict[str, Union[str, List[str]]] = {}
        uploads: Dict[str, List[UploadHandle]] = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if not value.filename:
                    continue
                spooled = await _spool_upload(value, spool_dir)
                uploads.setdefault(key, []).append(
                    UploadHandle(source_path=str(spooled), original_name=value.filename, content_type=value.content_type)
                )
            elif key in fields:
                previous = fields[key]
                fields[key] = (previous if isinstance(previous, list) else [previous]) + [value]
            else:
                fields[key] = value

        payload = FormPayload(form_id=form_id, fields=fields, uploads=uploads)
        try:
            result = SubmissionIngestor(db, storage=storage).ingest(payload, config)
        except SubmissionCaptureError as exc:
            log.error("submit_form_error", form_id=form_id, error=str(exc))
            raise HTTPException(status_code=500, detail="Your submission could not be saved. Please try again.")
    finally:
        shutil.rmtree(spool_dir, ignore_errors=True)
        await form.close()

    if not result.captured:
        return SubmitResponse(status="ignored", id=None)
    return SubmitResponse(status="captured", id=result.submission_id)


@router.get("/result/{sub_id}", response_model=ResultResponse)
def get_result(
    sub_id: str,
    db: Session = Depends(get_db),
    config: IngestConfig = Depends(get_config),
    _: bool = Depends(require_api_key),
) -> ResultResponse:
    record = crud.get_submission(db, sub_id=sub_id)
    if not record:
        raise HTTPException(status_code=404, detail="Not found")

    resolver = ThumbnailResolver(db, icon_base_url=config.icon_base_url)
    files = [
        FileInfo(
            id=f.id,
            field_name=f.field_name,
            original_name=f.original_name,
            stored_name=f.stored_name,
            mime_type=f.mime_type,
            size=classifier.format_file_size(f.file_size),
            url=f.url,
            thumbnail_url=resolver.resolve(f),
            icon_class=classifier.icon_class(f.mime_type),
        )
        for f in crud.get_submission_files(db, sub_id=sub_id)
    ]
    return ResultResponse(
        id=record.id,
        title=record.title,
        status=record.status,
        fields=crud.get_metadata(db, sub_id=sub_id),
        files=files,
        total_size=classifier.format_file_size(crud.get_submission_total_size(db, sub_id=sub_id)),
    )
