from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.backend.config import IngestConfig
from app.backend.pipeline import ThumbnailResolver, classify
from app.backend.pipeline.classifier import icon_class
from app.backend.routers.submit import get_config, require_api_key
from app.database import crud
from app.database.db import get_db

log = structlog.get_logger()


class ThumbnailResponse(BaseModel):
    id: int
    url: str
    html: str
    category: str
    icon_class: str


class GenerateResponse(BaseModel):
    id: int
    generated: bool
    thumbnail_url: Optional[str]


router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/{file_id}/thumbnail", response_model=ThumbnailResponse)
def get_thumbnail(
    file_id: int,
    db: Session = Depends(get_db),
    config: IngestConfig = Depends(get_config),
) -> ThumbnailResponse:
    attachment = crud.get_attachment(db, file_id=file_id)
    if not attachment:
        raise HTTPException(status_code=404, detail="Not found")
    resolver = ThumbnailResolver(db, icon_base_url=config.icon_base_url)
    return ThumbnailResponse(
        id=attachment.id,
        url=resolver.resolve(attachment),
        html=resolver.render_markup(attachment),
        category=classify(attachment.mime_type).value,
        icon_class=icon_class(attachment.mime_type),
    )


@router.post("/{file_id}/thumbnail", response_model=GenerateResponse)
def generate_thumbnail(
    file_id: int,
    db: Session = Depends(get_db),
    config: IngestConfig = Depends(get_config),
    _: bool = Depends(require_api_key),
) -> GenerateResponse:
    attachment = crud.get_attachment(db, file_id=file_id)
    if not attachment:
        raise HTTPException(status_code=404, detail="Not found")
    generated = ThumbnailResolver(db, icon_base_url=config.icon_base_url).generate(attachment)
    log.info("thumbnail_requested", file_id=file_id, generated=generated)
    return GenerateResponse(id=attachment.id, generated=generated, thumbnail_url=attachment.thumbnail_url)
