import json

import pytest
from pydantic import ValidationError

from app.backend.config import IngestConfig, OpenCall, load_config


def test_target_form_matching():
    config = IngestConfig(
        target_form_id=" 42 ",
        open_calls=[OpenCall(title="Spring", form_id=7), OpenCall(title="Winter", form_id="8", status="inactive")],
    )

    assert config.is_target_form("42")
    assert config.is_target_form(7)
    assert not config.is_target_form("8")
    assert not config.is_target_form("9")


def test_no_target_configured_matches_nothing():
    assert not IngestConfig(target_form_id="").is_target_form("")


def test_open_call_status_is_validated():
    with pytest.raises(ValidationError):
        OpenCall(title="Bad", form_id="1", status="paused")


def test_load_config_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TARGET_FORM_ID", "12")
    monkeypatch.setenv("STORE_FILES", "no")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))
    monkeypatch.setenv("OPEN_CALLS", json.dumps([{"title": "Spring", "form_id": 5, "slug": "spring"}]))

    config = load_config()

    assert config.target_form_id == "12"
    assert config.store_files is False
    assert config.upload_dir == str(tmp_path)
    assert config.open_call_for_form("5").title == "Spring"
    assert config.is_target_form("5")


def test_load_config_rejects_malformed_open_calls(monkeypatch):
    monkeypatch.setenv("OPEN_CALLS", "{not json")
    with pytest.raises(ValueError):
        load_config()
