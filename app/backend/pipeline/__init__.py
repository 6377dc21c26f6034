from .classifier import MediaCategory, classify, fallback_icon, supports_generated_thumbnail
from .thumbnails import ThumbnailResolver
from .intake import FileIntake, UploadHandle
from .ingestor import FormPayload, IngestResult, SubmissionCaptureError, SubmissionIngestor
from .notifications import submission_events

__all__ = [
    "MediaCategory",
    "classify",
    "fallback_icon",
    "supports_generated_thumbnail",
    "ThumbnailResolver",
    "FileIntake",
    "UploadHandle",
    "FormPayload",
    "IngestResult",
    "SubmissionCaptureError",
    "SubmissionIngestor",
    "submission_events",
]
