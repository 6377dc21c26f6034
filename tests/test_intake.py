import pytest
from sqlalchemy.exc import IntegrityError

from app.backend.pipeline.intake import FileIntake, resolve_mime_type
from app.backend.tools.storage import LocalStorage
from app.database import crud


@pytest.fixture
def submission_id(db):
    record = crud.create_record(db, title="Jane Doe")
    db.commit()
    return record.id


def test_empty_batch(db, storage, submission_id):
    assert FileIntake(db, storage).commit(submission_id, "artwork", []) == []


def test_single_file_is_committed(db, storage, submission_id, make_upload):
    upload = make_upload("Portfolio.PDF", b"%PDF-1.4", "application/pdf")

    [attachment] = FileIntake(db, storage).commit(submission_id, "portfolio", [upload])

    assert attachment.submission_id == submission_id
    assert attachment.field_name == "portfolio"
    assert attachment.original_name == "Portfolio.PDF"
    assert attachment.stored_name == "Portfolio.pdf"
    assert attachment.mime_type == "application/pdf"
    assert attachment.file_size == 8
    assert attachment.thumbnail_url is None
    assert attachment.url == f"https://example.org/uploads/{submission_id}/Portfolio.pdf"
    assert storage.path(submission_id, "Portfolio.pdf").read_bytes() == b"%PDF-1.4"


def test_identical_names_get_distinct_stored_names(db, storage, submission_id, make_upload):
    uploads = [make_upload("photo.jpg", b"one"), make_upload("photo.jpg", b"two")]

    attachments = FileIntake(db, storage).commit(submission_id, "artwork", uploads)

    assert [a.stored_name for a in attachments] == ["photo.jpg", "photo-1.jpg"]
    assert len({a.url for a in attachments}) == 2
    assert storage.path(submission_id, "photo.jpg").read_bytes() == b"one"
    assert storage.path(submission_id, "photo-1.jpg").read_bytes() == b"two"


def test_disallowed_extension_is_skipped_without_aborting(db, storage, submission_id, make_upload):
    uploads = [make_upload("setup.exe"), make_upload("cv.docx"), make_upload("noext")]

    attachments = FileIntake(db, storage).commit(submission_id, "files", uploads)

    assert [a.original_name for a in attachments] == ["cv.docx"]
    assert not storage.exists(submission_id, "setup.exe")


def test_unreadable_source_is_skipped(db, storage, submission_id, make_upload, tmp_path):
    missing = make_upload("gone.png")
    missing.source_path = str(tmp_path / "does-not-exist")

    attachments = FileIntake(db, storage).commit(submission_id, "artwork", [missing, make_upload("ok.png")])

    assert [a.original_name for a in attachments] == ["ok.png"]


def test_mismatched_declared_type_is_skipped(db, storage, submission_id, make_upload):
    uploads = [
        make_upload("photo.jpg", content_type="application/x-msdownload"),
        make_upload("photo.jpg", content_type="image/pjpeg"),
        make_upload("bundle.zip", content_type="application/x-zip-compressed"),
        make_upload("notes.txt", content_type="application/octet-stream"),
    ]

    attachments = FileIntake(db, storage).commit(submission_id, "files", uploads)

    assert [(a.stored_name, a.mime_type) for a in attachments] == [
        ("photo.jpg", "image/jpeg"),
        ("bundle.zip", "application/zip"),
        ("notes.txt", "text/plain"),
    ]


def test_resolve_mime_type():
    assert resolve_mime_type("a.JPEG") == "image/jpeg"
    assert resolve_mime_type("a.docx").endswith("wordprocessingml.document")
    assert resolve_mime_type("a.exe") is None
    assert resolve_mime_type("a.png", "image/png; charset=binary") == "image/png"
    assert resolve_mime_type("a.png", "text/html") is None


class RacingStorage(LocalStorage):
    """Another writer claims the first proposed name between the check and the write."""

    raced = False

    def unique_name(self, namespace, proposed):
        name = super().unique_name(namespace, proposed)
        if not self.raced:
            self.raced = True
            super().write(namespace, name, b"concurrent")
        return name


def test_concurrent_writer_does_not_get_overwritten(db, submission_id, make_upload, tmp_path):
    storage = RacingStorage(tmp_path / "racing", "/uploads")

    [attachment] = FileIntake(db, storage).commit(submission_id, "artwork", [make_upload("photo.jpg", b"mine")])

    assert attachment.stored_name == "photo-1.jpg"
    assert storage.path(submission_id, "photo.jpg").read_bytes() == b"concurrent"
    assert storage.path(submission_id, "photo-1.jpg").read_bytes() == b"mine"


def test_copy_failure_skips_only_that_file(db, storage, submission_id, make_upload, monkeypatch):
    original_write = LocalStorage.write

    def flaky_write(self, namespace, name, data):
        if name.startswith("broken"):
            raise PermissionError("read-only volume")
        return original_write(self, namespace, name, data)

    monkeypatch.setattr(LocalStorage, "write", flaky_write)

    attachments = FileIntake(db, storage).commit(
        submission_id, "artwork", [make_upload("broken.png"), make_upload("fine.png")]
    )

    assert [a.stored_name for a in attachments] == ["fine.png"]


def test_metadata_failure_removes_written_bytes(db, storage, submission_id, make_upload, monkeypatch):
    def failing_create(*args, **kwargs):
        raise IntegrityError("INSERT", {}, Exception("constraint failed"))

    monkeypatch.setattr(crud, "create_attachment", failing_create)

    with pytest.raises(IntegrityError):
        FileIntake(db, storage).commit(submission_id, "artwork", [make_upload("photo.png")])
    assert not storage.exists(submission_id, "photo.png")


def test_commit_all_groups_by_field_and_discard_removes_bytes(db, storage, submission_id, make_upload):
    intake = FileIntake(db, storage)
    results = intake.commit_all(
        submission_id,
        {
            "artwork": [make_upload("a.png"), make_upload("b.gif")],
            "cv": [make_upload("cv.pdf")],
            "junk": [make_upload("virus.exe")],
        },
    )

    assert {field: len(files) for field, files in results.items()} == {"artwork": 2, "cv": 1}
    assert crud.get_submission_file_count(db, sub_id=submission_id) == 3
    assert [f.stored_name for f in crud.get_files_by_type(db, sub_id=submission_id, mime_prefix="image/")] == [
        "a.png",
        "b.gif",
    ]
    assert crud.get_submission_total_size(db, sub_id=submission_id) == 12

    intake.discard()
    assert not storage.exists(submission_id, "a.png")
    assert not storage.exists(submission_id, "cv.pdf")

    assert crud.delete_submission_files(db, sub_id=submission_id) == 3
    assert crud.get_submission_files(db, sub_id=submission_id) == []


def test_names_without_a_usable_stem_keep_their_extension(db, storage, submission_id, make_upload):
    uploads = [make_upload("作品.jpg"), make_upload("ページ.jpg"), make_upload(".png")]

    attachments = FileIntake(db, storage).commit(submission_id, "artwork", uploads)

    assert [(a.original_name, a.stored_name, a.mime_type) for a in attachments] == [
        ("作品.jpg", "file.jpg", "image/jpeg"),
        ("ページ.jpg", "file-1.jpg", "image/jpeg"),
        (".png", "file.png", "image/png"),
    ]
    assert attachments[0].url == f"https://example.org/uploads/{submission_id}/file.jpg"
    assert storage.exists(submission_id, "file-1.jpg")
