"""Ingestion configuration, read from the environment and passed explicitly to the pipeline."""
import json
import os
from typing import List, Optional

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator

load_dotenv()

log = structlog.get_logger()

TRUTHY = {"1", "true", "yes", "on"}


class OpenCall(BaseModel):
    title: str
    form_id: str
    status: str = Field("active", description="active or inactive")
    slug: Optional[str] = None

    @validator("form_id", pre=True)
    def coerce_form_id(cls, v) -> str:
        return str(v).strip()

    @validator("status")
    def validate_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"active", "inactive"}:
            raise ValueError("Open call status must be 'active' or 'inactive'")
        return v

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class IngestConfig(BaseModel):
    target_form_id: Optional[str] = Field(None, description="Legacy single target form")
    open_calls: List[OpenCall] = Field(default_factory=list)
    store_files: bool = Field(True, description="Commit uploads to storage")
    upload_dir: str = "uploads"
    public_base_url: str = "/uploads"
    icon_base_url: str = "/static/icons"

    @validator("target_form_id", pre=True)
    def coerce_target_form_id(cls, v) -> Optional[str]:
        if v is None or str(v).strip() == "":
            return None
        return str(v).strip()

    def is_target_form(self, form_id) -> bool:
        form_id = str(form_id).strip()
        if any(call.is_active and call.form_id == form_id for call in self.open_calls):
            return True
        return self.target_form_id is not None and self.target_form_id == form_id

    def open_call_for_form(self, form_id) -> Optional[OpenCall]:
        form_id = str(form_id).strip()
        for call in self.open_calls:
            if call.form_id == form_id:
                return call
        return None


def _load_open_calls(raw: Optional[str]) -> List[OpenCall]:
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except json.JSONDecodeError as exc:
        log.error("open_calls_config_invalid", error=str(exc))
        raise ValueError("OPEN_CALLS must be a JSON list") from exc
    return [OpenCall(**item) for item in items]


def load_config() -> IngestConfig:
    return IngestConfig(
        target_form_id=os.getenv("TARGET_FORM_ID"),
        open_calls=_load_open_calls(os.getenv("OPEN_CALLS")),
        store_files=os.getenv("STORE_FILES", "true").lower() in TRUTHY,
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "/uploads"),
        icon_base_url=os.getenv("ICON_BASE_URL", "/static/icons"),
    )
