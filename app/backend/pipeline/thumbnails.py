"""Thumbnail resolution for stored submission files."""
from __future__ import annotations

import html
from typing import Callable, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.backend.tools.storage import sanitize_file_name
from app.database import crud
from app.database.models import FileAttachment

from . import classifier

log = structlog.get_logger()

#: ``(attachment, storage_key) -> thumbnail url``
Renderer = Callable[[FileAttachment, str], str]

DEFAULT_ATTRIBUTES = {
    "class": "submission-thumbnail",
    "loading": "lazy",
}


def thumbnail_key(submission_id: str, original_name: str) -> str:
    """Storage key for a file's thumbnail: ``thumbnails/<submission>/<stem>_thumb.<ext>``."""
    name = sanitize_file_name(original_name)
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return f"thumbnails/{submission_id}/{name}_thumb"
    return f"thumbnails/{submission_id}/{stem}_thumb.{ext}"


class ThumbnailResolver:
    def __init__(
        self,
        db: Session,
        *,
        icon_base_url: Optional[str] = None,
        renderer: Optional[Renderer] = None,
    ) -> None:
        self.db = db
        self.icon_base_url = icon_base_url
        self.renderer = renderer

    def fallback(self, mime_type: Optional[str]) -> str:
        return classifier.fallback_icon(mime_type, base_url=self.icon_base_url)

    def resolve(self, attachment: FileAttachment) -> str:
        """Stored thumbnail if one was generated, otherwise the category icon. Never writes."""
        if attachment.thumbnail_url:
            return attachment.thumbnail_url
        return self.fallback(attachment.mime_type)

    def generate(self, attachment: FileAttachment) -> bool:
        """
        Produce and record a thumbnail for ``attachment``.

        Returns False without side effects for types outside the thumbnail
        allow-list, and False if rendering fails or the metadata update does
        not commit.
        """
        if not classifier.supports_generated_thumbnail(attachment.mime_type):
            log.info("thumbnail_unsupported", file_id=attachment.id, mime_type=attachment.mime_type)
            return False

        key = thumbnail_key(attachment.submission_id, attachment.original_name)

        if self.renderer is None:
            # Degraded mode: no renderer wired in, record the category icon as the thumbnail.
            thumbnail_url = self.fallback(attachment.mime_type)
        else:
            try:
                thumbnail_url = self.renderer(attachment, key)
            except Exception as exc:  # noqa: BLE001
                log.error("thumbnail_render_failed", file_id=attachment.id, key=key, error=str(exc))
                return False

        try:
            updated = crud.update_thumbnail_url(self.db, file_id=attachment.id, url=thumbnail_url)
        except SQLAlchemyError as exc:
            self.db.rollback()
            log.error("thumbnail_update_failed", file_id=attachment.id, key=key, error=str(exc))
            return False
        if updated is None:
            return False
        log.info("thumbnail_generated", file_id=attachment.id, key=key, degraded=self.renderer is None)
        return True

    def render_markup(self, attachment: FileAttachment, extra_attributes: Optional[Dict[str, str]] = None) -> str:
        attributes = {"alt": attachment.original_name, **DEFAULT_ATTRIBUTES}
        for key, value in (extra_attributes or {}).items():
            if key.lower() == "src":
                continue
            attributes[key] = value
        attributes = {"src": self.resolve(attachment), **attributes}
        attr_string = "".join(
            f' {html.escape(str(key))}="{html.escape(str(value))}"' for key, value in attributes.items()
        )
        return f"<img{attr_string} />"
