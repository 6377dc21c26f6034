"""MIME type classification and fallback iconography.

Every "is this an image / a document" decision in the service goes through
``classify`` so that all call sites agree on category boundaries.
"""
from __future__ import annotations

import enum
import os
from typing import Optional

DEFAULT_ICON_BASE_URL = "/static/icons"


class MediaCategory(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    DOCUMENT_PDF = "document-pdf"
    TEXT = "text"
    OTHER = "other"

    @property
    def family(self) -> "MediaCategory":
        """Coarse category; PDF is a variant of document."""
        if self is MediaCategory.DOCUMENT_PDF:
            return MediaCategory.DOCUMENT
        return self


FALLBACK_ICONS = {
    MediaCategory.IMAGE: "image-icon.svg",
    MediaCategory.VIDEO: "video-icon.svg",
    MediaCategory.DOCUMENT_PDF: "pdf-icon.svg",
    MediaCategory.DOCUMENT: "document-icon.svg",
    MediaCategory.TEXT: "text-icon.svg",
    MediaCategory.OTHER: "file-icon.svg",
}

THUMBNAIL_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/bmp",
        "image/tiff",
        "video/mp4",
        "video/quicktime",
        "video/webm",
        "application/pdf",
    }
)

DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "application/rtf",
    }
)

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def _normalize(mime_type: Optional[str]) -> str:
    if not mime_type:
        return ""
    return str(mime_type).split(";")[0].strip().lower()


def classify(mime_type: Optional[str]) -> MediaCategory:
    mime = _normalize(mime_type)
    primary = mime.split("/")[0]
    if primary == "image":
        return MediaCategory.IMAGE
    if primary == "video":
        return MediaCategory.VIDEO
    if primary == "text":
        return MediaCategory.TEXT
    if primary == "application":
        if "pdf" in mime:
            return MediaCategory.DOCUMENT_PDF
        return MediaCategory.DOCUMENT
    return MediaCategory.OTHER


def icon_base_url() -> str:
    return os.getenv("ICON_BASE_URL", DEFAULT_ICON_BASE_URL).rstrip("/")


def fallback_icon(mime_type: Optional[str], base_url: Optional[str] = None) -> str:
    base = (base_url if base_url is not None else icon_base_url()).rstrip("/")
    return f"{base}/{FALLBACK_ICONS[classify(mime_type)]}"


def supports_generated_thumbnail(mime_type: Optional[str]) -> bool:
    return _normalize(mime_type) in THUMBNAIL_MIME_TYPES


def icon_class(mime_type: Optional[str]) -> str:
    """Admin list icon class for a file row."""
    category = classify(mime_type)
    if category is MediaCategory.IMAGE:
        return "dashicons-format-image"
    if category is MediaCategory.VIDEO:
        return "dashicons-format-video"
    if category is MediaCategory.DOCUMENT_PDF:
        return "dashicons-media-document"
    if category is MediaCategory.DOCUMENT and "word" in _normalize(mime_type):
        return "dashicons-media-text"
    if category is MediaCategory.TEXT:
        return "dashicons-media-text"
    return "dashicons-media-default"


def is_image(mime_type: Optional[str]) -> bool:
    return classify(mime_type) is MediaCategory.IMAGE


def is_video(mime_type: Optional[str]) -> bool:
    return classify(mime_type) is MediaCategory.VIDEO


def is_document(mime_type: Optional[str]) -> bool:
    return _normalize(mime_type) in DOCUMENT_MIME_TYPES


def format_file_size(n_bytes: int) -> str:
    size = float(n_bytes)
    unit = 0
    while size > 1024 and unit < len(SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{round(size, 2):g} {SIZE_UNITS[unit]}"
